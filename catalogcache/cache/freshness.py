"""
Freshness windows per section and the staleness check.

Freshness is tracked per section as the calendar date of the last
successful write-through, not as elapsed time.
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, Optional, Union

import aiosqlite

from config.settings import settings

from ..errors import StoreUnavailable
from ..models import Section
from .core import RefreshDecision

logger = logging.getLogger("cache.freshness")


# Freshness window by section (in days, 0 = once per calendar day)
SECTION_POLICIES: Dict[Section, int] = {
    Section.APP_OF_THE_DAY: settings.featured_max_age_days,
    Section.APPS_OF_THE_WEEK: settings.weekly_picks_max_age_days,
    Section.CATEGORIES: settings.categories_max_age_days,
}


def get_max_age_days(section: Union[Section, str]) -> int:
    """Get the freshness window for a section (0 for unknown sections)."""
    if isinstance(section, str):
        try:
            section = Section(section)
        except ValueError:
            return 0
    return SECTION_POLICIES.get(section, 0)


@dataclass
class RefreshRule:
    """
    A reconciliation predicate over a cached value.

    When `predicate(value)` is true the section is refreshed even if its
    date says it is fresh.
    """
    name: str
    predicate: Callable[[Any], bool]

    def applies(self, value: Any) -> bool:
        return bool(self.predicate(value))


def _section_name(section: Union[Section, str]) -> str:
    return section.value if isinstance(section, Section) else section


class FreshnessPolicy:
    """
    Reads and writes the per-section last-update date.

    Usage:
        policy = FreshnessPolicy(store)
        if await policy.is_stale("categories", max_age_days=7):
            ...
        await policy.mark_fresh("categories")
    """

    def __init__(self, store, today: Callable[[], date] = date.today):
        self.store = store
        self._today = today

    def today(self) -> date:
        return self._today()

    async def last_update_date(self, section: Union[Section, str]) -> Optional[date]:
        """Date of the last successful update, or None if never updated."""
        rows = await self.store.select(
            "SELECT last_update_date FROM cache_metadata WHERE section_name = ?",
            (_section_name(section),),
        )
        if not rows:
            return None
        return date.fromisoformat(rows[0]["last_update_date"])

    async def is_stale(self, section: Union[Section, str], max_age_days: int = 0) -> bool:
        """
        Decide whether a section needs a refresh by date.

        - No metadata row: stale.
        - max_age_days == 0: stale unless last updated today.
        - max_age_days > 0: stale if last updated before today - max_age_days.
        """
        name = _section_name(section)
        try:
            last_update = await self.last_update_date(name)
        except (aiosqlite.Error, StoreUnavailable, ValueError) as e:
            logger.warning(f"Cannot read freshness for {name}, treating as stale: {e}")
            return True

        if last_update is None:
            return True

        today = self.today()
        if max_age_days == 0:
            return last_update != today
        return last_update < today - timedelta(days=max_age_days)

    async def mark_fresh(self, section: Union[Section, str]) -> None:
        """Record today as the section's last update date."""
        name = _section_name(section)
        await self.store.execute(
            """
            INSERT OR REPLACE INTO cache_metadata (section_name, last_update_date, updated_at)
            VALUES (?, ?, CURRENT_TIMESTAMP)
            """,
            (name, self.today().isoformat()),
        )
        logger.debug(f"Marked {name} fresh")

    async def evaluate(
        self,
        section: Union[Section, str],
        value: Any,
        is_empty: bool,
        max_age_days: int = 0,
        rules: Iterable[RefreshRule] = (),
    ) -> RefreshDecision:
        """
        Combine emptiness, date staleness and reconciliation rules.

        Rules only run against a non-empty value.
        """
        decision = RefreshDecision()
        if is_empty:
            decision.reasons.append("empty")
        if await self.is_stale(section, max_age_days):
            decision.reasons.append("stale")
        if not is_empty:
            for rule in rules:
                if rule.applies(value):
                    decision.reasons.append(rule.name)
        return decision
