"""
Remote catalog API client.

HTTP calls run on worker threads through `requests` so the event loop
never blocks; a shared semaphore bounds how many run at once.
"""
import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Protocol

import requests
from dotenv import load_dotenv
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from config.settings import settings

from .errors import RemoteFetchFailed

load_dotenv()

logger = logging.getLogger("catalog_client")


def _is_transient(exc: BaseException) -> bool:
    """Connection problems, timeouts, throttling and server errors are retried."""
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code == 429 or exc.response.status_code >= 500
    return False


class CatalogSource(Protocol):
    """
    Interface the section caches consume.

    Implementations:
    - CatalogClient: the public catalog HTTP API
    - in-process fakes in tests
    """

    async def fetch_categories(self) -> List[str]:
        ...

    async def fetch_weekly_picks(self, day: str) -> Dict[str, Any]:
        """Return {"apps": [{"app_id", "position", "isFullscreen"}]}."""
        ...

    async def fetch_featured_app(self, day: str) -> Dict[str, Any]:
        """Return {"app_id", "day"}."""
        ...

    async def fetch_app_detail(self, app_id: str) -> Dict[str, Any]:
        """Return the appstream payload of an app."""
        ...

    async def fetch_extended_detail(self, app_id: str) -> Optional[Dict[str, Any]]:
        """Return the full catalog listing of an app, or None if not listed."""
        ...

    async def search_catalog(
        self,
        query: str,
        filters: Optional[List[Dict[str, str]]] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        ...


def today_string() -> str:
    """Local calendar date as YYYY-MM-DD."""
    return date.today().isoformat()


class CatalogClient:
    """
    Client for the public app catalog API.

    Every method raises RemoteFetchFailed on network errors, non-2xx
    statuses or undecodable bodies.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        locale: Optional[str] = None,
        timeout: Optional[int] = None,
        max_concurrent: Optional[int] = None,
        retries: Optional[int] = None,
        backoff: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.catalog_base_url).rstrip("/")
        self.locale = locale or settings.catalog_locale
        self.timeout = settings.request_timeout_seconds if timeout is None else timeout
        self.retries = settings.request_retries if retries is None else retries
        self.backoff = settings.retry_backoff_seconds if backoff is None else backoff
        self._session = session or requests.Session()
        self._semaphore = asyncio.Semaphore(max_concurrent or settings.max_concurrent_requests)

    def _get_headers(self) -> dict:
        return {"accept": "application/json"}

    def _request(self, method: str, endpoint: str, params: Optional[dict] = None, body: Any = None) -> Any:
        url = f"{self.base_url}/{endpoint}"
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(max(self.retries, 1)),
                wait=wait_exponential(multiplier=self.backoff, max=10),
                retry=retry_if_exception(_is_transient),
                before_sleep=self._log_retry,
                reraise=True,
            ):
                with attempt:
                    response = self._session.request(
                        method,
                        url,
                        headers=self._get_headers(),
                        params=params,
                        json=body,
                        timeout=self.timeout,
                    )
                    response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise RemoteFetchFailed(endpoint, e) from e

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        logger.warning(
            f"Transient catalog error, retrying (attempt {retry_state.attempt_number}): "
            f"{retry_state.outcome.exception()}"
        )

    async def _call(self, method: str, endpoint: str, params: Optional[dict] = None, body: Any = None) -> Any:
        async with self._semaphore:
            logger.debug(f"{method} {endpoint}")
            return await asyncio.to_thread(self._request, method, endpoint, params, body)

    # ===== SECTIONS =====

    async def fetch_categories(self) -> List[str]:
        data = await self._call("GET", "collection/category")
        if not isinstance(data, list):
            raise RemoteFetchFailed("collection/category", ValueError("expected a list of categories"))
        return [str(name) for name in data]

    async def fetch_weekly_picks(self, day: Optional[str] = None) -> Dict[str, Any]:
        return await self._call("GET", f"app-picks/apps-of-the-week/{day or today_string()}")

    async def fetch_featured_app(self, day: Optional[str] = None) -> Dict[str, Any]:
        return await self._call("GET", f"app-picks/app-of-the-day/{day or today_string()}")

    # ===== APP DETAIL =====

    async def fetch_app_detail(self, app_id: str) -> Dict[str, Any]:
        return await self._call("GET", f"appstream/{app_id}")

    async def fetch_app_summary(self, app_id: str, branch: str = "main") -> Dict[str, Any]:
        return await self._call("GET", f"summary/{app_id}", params={"branch": branch})

    async def fetch_extended_detail(self, app_id: str) -> Optional[Dict[str, Any]]:
        """Find the catalog listing whose app_id matches exactly."""
        response = await self.search_catalog(app_id)
        for hit in response.get("hits", []):
            if hit.get("app_id") == app_id:
                return hit
        return None

    # ===== SEARCH =====

    async def search_catalog(
        self,
        query: str,
        filters: Optional[List[Dict[str, str]]] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"query": query}
        if filters:
            body["filters"] = filters
        if page is not None:
            body["page"] = page
        if page_size is not None:
            body["hits_per_page"] = page_size
        return await self._call("POST", "search", params={"locale": self.locale}, body=body)

    async def fetch_developer_apps(self, developer: str) -> List[Dict[str, Any]]:
        response = await self.search_catalog(
            "",
            filters=[{"filterType": "developer_name", "value": developer}],
            page_size=100,
        )
        return response.get("hits", [])

    def close(self) -> None:
        self._session.close()
