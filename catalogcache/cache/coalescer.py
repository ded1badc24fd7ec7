"""
Request coalescing to prevent duplicate upstream fetches.

When several callers ask for the same key while a fetch is in flight,
only one fetch runs and every caller shares its outcome.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightRequest:
    """Tracks an in-progress upstream fetch."""
    task: asyncio.Task
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Ensures concurrent requests for the same key share one upstream call.

    Pattern:
    - First request for a key starts the fetch as a task
    - Subsequent requests for the same key join that task
    - When the task finishes, all joiners receive the same result or error
    - The key is released as soon as the task is done

    Usage:
        coalescer = RequestCoalescer()
        result = await coalescer.get_or_fetch(
            "categories",
            lambda: fetch_categories(),
        )
    """

    def __init__(self, timeout: float = 30.0):
        """
        Initialize the coalescer.

        Args:
            timeout: Max seconds a joining caller waits for an in-flight fetch
        """
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._timeout = timeout

    def start(self, key: str, fetch_fn: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        """
        Start a fetch for `key` unless one is already running.

        Returns the task of the in-flight fetch (new or existing). The
        caller is not required to await it.
        """
        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            in_flight.waiter_count += 1
            logger.debug(f"Coalescing request for {key} (waiters: {in_flight.waiter_count})")
            return in_flight.task

        logger.debug(f"Initiating fetch for {key}")
        task = asyncio.ensure_future(fetch_fn())
        self._in_flight[key] = InFlightRequest(task=task)
        task.add_done_callback(lambda t: self._finish(key, t))
        return task

    def _finish(self, key: str, task: asyncio.Task) -> None:
        in_flight = self._in_flight.get(key)
        if in_flight is not None and in_flight.task is task:
            del self._in_flight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Fetch failed for {key}: {task.exception()}")

    async def get_or_fetch(self, key: str, fetch_fn: Callable[[], Awaitable[Any]]) -> Any:
        """
        Either join an existing in-flight fetch or initiate a new one.

        Raises:
            TimeoutError: If waiting for a joined fetch times out
            Exception: Any error from fetch_fn is propagated
        """
        is_initiator = key not in self._in_flight
        task = self.start(key, fetch_fn)

        if is_initiator:
            return await asyncio.shield(task)

        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error(f"Timeout waiting for coalesced request: {key}")
            raise TimeoutError(f"Request for {key} timed out after {self._timeout}s")

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def drain(self) -> None:
        """Wait for every in-flight fetch to settle (errors are not raised)."""
        while self._in_flight:
            tasks = [entry.task for entry in self._in_flight.values()]
            await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        return {
            "active_requests": len(self._in_flight),
            "active_keys": list(self._in_flight.keys()),
        }
