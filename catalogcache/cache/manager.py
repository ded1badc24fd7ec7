"""
Section revalidation with stale-while-revalidate and request coalescing.
"""
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Set

import aiosqlite

from config.settings import settings

from ..errors import RemoteFetchFailed, StoreUnavailable
from .coalescer import RequestCoalescer
from .core import CacheSource, RefreshDecision, SectionState
from .freshness import FreshnessPolicy

logger = logging.getLogger("cache.manager")


class RevalidationCoordinator:
    """
    Serves cached sections and keeps them fresh:
    - Cached value is surfaced without waiting on the network
    - Freshness dates and reconciliation rules decide whether to refetch
    - At most one fetch per section is in flight (coalesced)
    - Successful fetches are written through and mark the section fresh
    - Failed fetches fall back to the cached value when there is one
    """

    def __init__(
        self,
        freshness: FreshnessPolicy,
        sections: Iterable,
        coalesce_timeout: Optional[float] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            freshness: Section date bookkeeping (shares the sections' store)
            sections: SectionCache instances, keyed by their name
            coalesce_timeout: Timeout for callers joining an in-flight refresh
        """
        self.freshness = freshness
        self._sections = {section.name: section for section in sections}
        self._coalescer = RequestCoalescer(
            timeout=coalesce_timeout if coalesce_timeout is not None else settings.coalesce_timeout
        )

        # Last value seen per section; advisory only
        self._mirror: Dict[str, Any] = {}
        self._errors: Dict[str, BaseException] = {}
        # Sections whose last fetched value never reached the database
        self._unsaved: Set[str] = set()

        self._stats = {
            "hits_fresh": 0,
            "hits_stale": 0,
            "misses": 0,
            "revalidations": 0,
            "failures": 0,
        }

    @property
    def section_names(self) -> List[str]:
        return list(self._sections)

    def section(self, name: str):
        """Look up a section cache; raises KeyError for unknown names."""
        try:
            return self._sections[name]
        except KeyError:
            raise KeyError(f"Unknown section: {name}") from None

    def is_refreshing(self, name: str) -> bool:
        return self._coalescer.is_in_flight(name)

    async def _load(self, section) -> Any:
        name = section.name
        mirrored = self._mirror.get(name)
        if not section.is_empty(mirrored) and (self.is_refreshing(name) or name in self._unsaved):
            return mirrored

        cached = await section.load()
        if section.is_empty(cached):
            if not section.is_empty(mirrored):
                return mirrored
            return cached

        self._mirror[name] = cached
        return cached

    async def _evaluate(self, section, cached: Any) -> RefreshDecision:
        decision = await self.freshness.evaluate(
            section.name,
            cached,
            is_empty=section.is_empty(cached),
            max_age_days=section.max_age_days,
            rules=section.rules,
        )
        if decision.needed:
            logger.info(f"REFRESH NEEDED: {section.name} [{', '.join(decision.reasons)}]")
        return decision

    async def get_section(self, name: str) -> SectionState:
        """
        Snapshot a section for a consumer.

        Returns immediately with whatever is cached; a needed refresh runs
        in the background and is reported through `is_refreshing`.
        """
        section = self.section(name)
        cached = await self._load(section)
        decision = await self._evaluate(section, cached)
        empty = section.is_empty(cached)

        if decision.needed:
            self._trigger_refresh(name)
            if empty:
                self._stats["misses"] += 1
            else:
                self._stats["hits_stale"] += 1
        else:
            logger.debug(f"CACHE HIT (fresh): {name}")
            self._stats["hits_fresh"] += 1

        return await self._make_state(section, cached, decision)

    async def read_through(self, name: str) -> Any:
        """
        Return the cached-or-fresh value of a section.

        With a cached value this never waits on the network. Without one it
        waits for the refresh and raises RemoteFetchFailed if it fails.
        """
        section = self.section(name)
        cached = await self._load(section)
        decision = await self._evaluate(section, cached)

        if not decision.needed:
            self._stats["hits_fresh"] += 1
            return cached

        if not section.is_empty(cached):
            self._stats["hits_stale"] += 1
            self._trigger_refresh(name)
            return cached

        self._stats["misses"] += 1
        try:
            return await self._coalescer.get_or_fetch(name, lambda: self._revalidate(name))
        except TimeoutError as e:
            raise RemoteFetchFailed(name, e) from e

    async def refresh(self, name: str) -> SectionState:
        """Run (or join) a refresh of a section and return the outcome."""
        section = self.section(name)
        try:
            await self._coalescer.get_or_fetch(name, lambda: self._revalidate(name))
        except (RemoteFetchFailed, TimeoutError) as e:
            logger.info(f"Refresh of {name} failed: {e}")
            cached = await self._load(section)
            decision = await self._evaluate(section, cached)
            return await self._make_state(section, cached, decision)

        cached = await self._load(section)
        return await self._make_state(section, cached, RefreshDecision(), source=CacheSource.UPSTREAM)

    def _trigger_refresh(self, name: str) -> None:
        """Start a background refresh unless one is already running."""
        if self._coalescer.is_in_flight(name):
            logger.debug(f"Already revalidating: {name}")
            return
        self._coalescer.start(name, lambda: self._revalidate(name))

    async def _revalidate(self, name: str) -> Any:
        section = self.section(name)
        logger.debug(f"Revalidation started: {name}")
        try:
            value = await section.fetch()
        except RemoteFetchFailed as e:
            self._record_failure(name, e)
            raise
        except Exception as e:
            error = RemoteFetchFailed(name, e)
            self._record_failure(name, error)
            raise error from e

        self._errors.pop(name, None)
        self._mirror[name] = value

        try:
            await section.save(value)
            await self.freshness.mark_fresh(name)
        except (aiosqlite.Error, StoreUnavailable) as e:
            # Value is still served from the mirror; the date stays stale
            logger.error(f"Write-through failed for {name}: {e}")
            self._unsaved.add(name)
            return value

        self._unsaved.discard(name)

        self._stats["revalidations"] += 1
        logger.info(f"Revalidation complete: {name}")
        return value

    def _record_failure(self, name: str, error: RemoteFetchFailed) -> None:
        self._errors[name] = error
        self._stats["failures"] += 1
        logger.warning(f"Background revalidation failed: {name} - {error}")

    async def _make_state(
        self,
        section,
        cached: Any,
        decision: RefreshDecision,
        source: Optional[CacheSource] = None,
    ) -> SectionState:
        name = section.name
        empty = section.is_empty(cached)

        if empty:
            source = CacheSource.NONE
        elif source is None:
            source = CacheSource.STALE if decision.needed else CacheSource.FRESH

        try:
            last_update: Optional[date] = await self.freshness.last_update_date(name)
        except (aiosqlite.Error, StoreUnavailable, ValueError):
            last_update = None

        return SectionState(
            section=name,
            value=None if empty else cached,
            is_refreshing=self.is_refreshing(name),
            error=self._errors.get(name) if empty else None,
            source=source,
            last_update_date=last_update,
            refresh_reasons=list(decision.reasons),
        )

    async def drain(self) -> None:
        """Wait for all background refreshes to settle."""
        await self._coalescer.drain()

    def invalidate(self, name: str) -> None:
        """Forget the in-memory mirror and last error of a section."""
        self.section(name)
        self._mirror.pop(name, None)
        self._errors.pop(name, None)
        self._unsaved.discard(name)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total_hits = self._stats["hits_fresh"] + self._stats["hits_stale"]
        total_requests = total_hits + self._stats["misses"]
        hit_rate = (total_hits / total_requests * 100) if total_requests > 0 else 0

        return {
            **self._stats,
            "hit_rate_percent": round(hit_rate, 1),
            "sections": self.section_names,
            "coalescer": self._coalescer.get_stats(),
        }
