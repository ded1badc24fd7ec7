"""
Shared fixtures: a temporary cache database and an in-process catalog.
"""
import asyncio
from collections import Counter
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import pytest

from catalogcache.errors import RemoteFetchFailed
from catalogcache.storage import CacheStore


class Clock:
    """Settable calendar for freshness checks."""

    def __init__(self, today: date = date(2024, 1, 1)):
        self.current = today

    def __call__(self) -> date:
        return self.current

    def advance(self, days: int) -> None:
        self.current = self.current + timedelta(days=days)


class FakeCatalog:
    """
    In-process stand-in for the remote catalog.

    Names in `failing` raise RemoteFetchFailed; `delay` makes every call
    yield to the event loop for that many seconds.
    """

    def __init__(self):
        self.categories: List[str] = ["Tools", "Games"]
        self.featured: Dict[str, Any] = {"app_id": "org.foo.Bar", "day": "2024-01-01"}
        self.picks: List[Dict[str, Any]] = [
            {"app_id": "org.pick.Two", "position": 2, "isFullscreen": False},
            {"app_id": "org.pick.One", "position": 1, "isFullscreen": True},
        ]
        self.details: Dict[str, Dict[str, Any]] = {
            "org.foo.Bar": {"id": "org.foo.Bar", "name": "Bar", "summary": "A bar", "icon": "bar.png"},
            "org.pick.One": {"id": "org.pick.One", "name": "One", "summary": "First", "icons": [{"url": "one.png"}]},
            "org.pick.Two": {"id": "org.pick.Two", "name": "Two", "summary": "Second", "icon": "two.png"},
        }
        self.extended: Dict[str, Dict[str, Any]] = {
            "org.foo.Bar": {
                "app_id": "org.foo.Bar",
                "name": "Bar",
                "summary": "A bar",
                "description": "Serves drinks",
                "icon": "bar.png",
                "project_license": "GPL-3.0",
            },
        }
        self.failing: set = set()
        self.delay: float = 0.0
        self.calls: Counter = Counter()

    async def _enter(self, name: str) -> None:
        self.calls[name] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.failing:
            raise RemoteFetchFailed(name, ConnectionError("network down"))

    async def fetch_categories(self) -> List[str]:
        await self._enter("categories")
        return list(self.categories)

    async def fetch_weekly_picks(self, day: str) -> Dict[str, Any]:
        await self._enter("weekly_picks")
        return {"apps": [dict(pick) for pick in self.picks]}

    async def fetch_featured_app(self, day: str) -> Dict[str, Any]:
        await self._enter("featured_app")
        return dict(self.featured)

    async def fetch_app_detail(self, app_id: str) -> Dict[str, Any]:
        await self._enter(f"detail:{app_id}")
        if app_id not in self.details:
            raise RemoteFetchFailed(f"appstream/{app_id}", LookupError("not found"))
        return dict(self.details[app_id])

    async def fetch_extended_detail(self, app_id: str) -> Optional[Dict[str, Any]]:
        await self._enter(f"extended:{app_id}")
        extended = self.extended.get(app_id)
        return dict(extended) if extended else None

    async def search_catalog(self, query, filters=None, page=None, page_size=None) -> Dict[str, Any]:
        await self._enter("search")
        return {"hits": [hit for hit in self.extended.values() if query in hit["app_id"]]}


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cache.db"


@pytest.fixture
def store(db_path):
    return CacheStore(db_path)


def run(coro_fn, *stores):
    """Run an async scenario, closing the given stores on the same loop."""

    async def scenario():
        try:
            return await coro_fn()
        finally:
            for s in stores:
                await s.close()

    return asyncio.run(scenario())


@pytest.fixture
def runner():
    return run
