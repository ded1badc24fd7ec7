"""
Read-through caches for the date-refreshed catalog sections.

Each section maps its domain value to rows and back, knows how to fetch
itself from the catalog, and declares the reconciliation rules that can
force a refresh regardless of the section date.
"""
import asyncio
import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import aiosqlite

from .cache.freshness import RefreshRule, get_max_age_days
from .catalog_client import CatalogSource
from .errors import DecodeFailed, StoreUnavailable
from .models import FeaturedApp, Section, WeeklyPick
from .storage import CacheStore, Transaction, decode_payload, encode_payload

logger = logging.getLogger("cache.sections")

# Store failures a read path degrades to "no cache"
READ_ERRORS = (aiosqlite.Error, StoreUnavailable, DecodeFailed)


def _icon_from_detail(detail: Dict[str, Any]) -> Optional[str]:
    """Appstream payloads carry either `icon` or a list of `icons`."""
    if detail.get("icon"):
        return detail["icon"]
    icons = detail.get("icons") or []
    if icons and isinstance(icons[0], dict):
        return icons[0].get("url")
    return None


class SectionCache:
    """
    Base class for one cached section.

    Subclasses implement `_read`, `write` and `fetch`.
    """

    section: Section
    rules: List[RefreshRule] = []

    def __init__(
        self,
        store: CacheStore,
        source: CatalogSource,
        max_age_days: Optional[int] = None,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.source = source
        self.max_age_days = get_max_age_days(self.section) if max_age_days is None else max_age_days
        self._today = today

    @property
    def name(self) -> str:
        return self.section.value

    def is_empty(self, value: Any) -> bool:
        return value is None

    async def load(self) -> Any:
        """Cached value, or the empty value when missing or unreadable."""
        try:
            return await self._read()
        except READ_ERRORS as e:
            logger.warning(f"Error reading {self.name} cache, treating as empty: {e}")
            return self.empty_value()

    def empty_value(self) -> Any:
        return None

    async def save(self, value: Any) -> None:
        """Replace the stored value atomically."""
        async with self.store.transaction() as tx:
            await self.write(tx, value)
        logger.debug(f"Wrote {self.name} cache")

    async def _read(self) -> Any:
        raise NotImplementedError

    async def write(self, tx: Transaction, value: Any) -> None:
        raise NotImplementedError

    async def fetch(self) -> Any:
        raise NotImplementedError


# =============================================================================
# Featured app of the day
# =============================================================================

def _missing_extended_detail(app: FeaturedApp) -> bool:
    return not app.extended_detail


class FeaturedAppCache(SectionCache):
    """Singleton featured app; every write fully replaces the row."""

    section = Section.APP_OF_THE_DAY
    rules = [RefreshRule("missing_extended_detail", _missing_extended_detail)]

    async def _read(self) -> Optional[FeaturedApp]:
        rows = await self.store.select("SELECT app_id, name, icon, data FROM featured_app LIMIT 1")
        if not rows:
            return None
        row = rows[0]
        data = decode_payload(row["data"])
        return FeaturedApp(
            app_id=row["app_id"],
            day=data.get("day", ""),
            name=row["name"],
            icon=row["icon"],
            detail=data.get("detail"),
            extended_detail=data.get("extended_detail"),
        )

    async def write(self, tx: Transaction, value: FeaturedApp) -> None:
        await tx.execute("DELETE FROM featured_app")
        await tx.execute(
            "INSERT INTO featured_app (app_id, name, icon, data) VALUES (?, ?, ?, ?)",
            (
                value.app_id,
                value.name,
                value.icon,
                encode_payload({
                    "day": value.day,
                    "detail": value.detail,
                    "extended_detail": value.extended_detail,
                }),
            ),
        )

    async def fetch(self) -> FeaturedApp:
        """Fetch today's pick and enrich it, preferring the full listing."""
        response = await self.source.fetch_featured_app(self._today().isoformat())
        app_id = response["app_id"]
        day = response.get("day", self._today().isoformat())

        extended = await self.source.fetch_extended_detail(app_id)
        if extended:
            logger.debug(f"Using catalog listing for featured app {app_id}")
            return FeaturedApp(
                app_id=app_id,
                day=day,
                name=extended.get("name"),
                icon=extended.get("icon"),
                detail={
                    "id": extended.get("app_id", app_id),
                    "name": extended.get("name"),
                    "summary": extended.get("summary"),
                    "description": extended.get("description"),
                    "icon": extended.get("icon"),
                },
                extended_detail=extended,
            )

        logger.info(f"No catalog listing for featured app {app_id}, falling back to appstream")
        detail = await self.source.fetch_app_detail(app_id)
        return FeaturedApp(
            app_id=app_id,
            day=day,
            name=detail.get("name"),
            icon=_icon_from_detail(detail),
            detail=detail,
        )


# =============================================================================
# Weekly picks
# =============================================================================

def _any_pick_missing_detail(picks: List[WeeklyPick]) -> bool:
    return any(not pick.detail for pick in picks)


class WeeklyPicksCache(SectionCache):
    """Ordered list of weekly picks, replaced wholesale."""

    section = Section.APPS_OF_THE_WEEK
    rules = [RefreshRule("pick_missing_detail", _any_pick_missing_detail)]

    def is_empty(self, value: Any) -> bool:
        return not value

    def empty_value(self) -> List[WeeklyPick]:
        return []

    async def _read(self) -> List[WeeklyPick]:
        rows = await self.store.select(
            "SELECT app_id, position, name, icon, summary, data FROM weekly_picks ORDER BY position"
        )
        picks = []
        for row in rows:
            data = decode_payload(row["data"])
            picks.append(WeeklyPick(
                app_id=row["app_id"],
                position=row["position"],
                is_fullscreen=bool(data.get("is_fullscreen", False)),
                name=row["name"],
                icon=row["icon"],
                summary=row["summary"],
                detail=data.get("detail"),
                extended_detail=data.get("extended_detail"),
            ))
        return picks

    async def write(self, tx: Transaction, value: List[WeeklyPick]) -> None:
        await tx.execute("DELETE FROM weekly_picks")
        await tx.executemany(
            """
            INSERT INTO weekly_picks (app_id, position, name, icon, summary, data)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    pick.app_id,
                    pick.position,
                    pick.name,
                    pick.icon,
                    pick.summary,
                    encode_payload({
                        "is_fullscreen": pick.is_fullscreen,
                        "detail": pick.detail,
                        "extended_detail": pick.extended_detail,
                    }),
                )
                for pick in value
            ],
        )

    async def _enrich(self, entry: Dict[str, Any]) -> WeeklyPick:
        pick = WeeklyPick.from_dict(entry)
        try:
            detail = await self.source.fetch_app_detail(pick.app_id)
        except Exception as e:
            logger.warning(f"Error fetching detail for weekly pick {pick.app_id}: {e}")
            pick.name = pick.app_id
            return pick

        pick.name = detail.get("name")
        pick.icon = _icon_from_detail(detail)
        pick.summary = detail.get("summary")
        pick.detail = detail
        return pick

    async def fetch(self) -> List[WeeklyPick]:
        response = await self.source.fetch_weekly_picks(self._today().isoformat())
        entries: Dict[str, Dict[str, Any]] = {}
        for entry in response.get("apps", []):
            # app_id is the row key; a repeated pick keeps its best position
            seen = entries.get(entry["app_id"])
            if seen is None or int(entry.get("position", 0)) < int(seen.get("position", 0)):
                entries[entry["app_id"]] = entry
        picks = await asyncio.gather(*(self._enrich(entry) for entry in entries.values()))
        return sorted(picks, key=lambda pick: pick.position)


# =============================================================================
# Categories
# =============================================================================

class CategoriesCache(SectionCache):
    """Flat set of category names, replaced wholesale, read in name order."""

    section = Section.CATEGORIES

    def is_empty(self, value: Any) -> bool:
        return not value

    def empty_value(self) -> List[str]:
        return []

    async def _read(self) -> List[str]:
        rows = await self.store.select("SELECT category_name FROM categories ORDER BY category_name")
        return [row["category_name"] for row in rows]

    async def write(self, tx: Transaction, value: List[str]) -> None:
        await tx.execute("DELETE FROM categories")
        await tx.executemany(
            "INSERT OR IGNORE INTO categories (category_name) VALUES (?)",
            [(name,) for name in value],
        )

    async def fetch(self) -> List[str]:
        names = await self.source.fetch_categories()
        return sorted(set(names))


def build_sections(
    store: CacheStore,
    source: CatalogSource,
    today: Callable[[], date] = date.today,
) -> List[SectionCache]:
    """Create the standard set of section caches."""
    return [
        FeaturedAppCache(store, source, today=today),
        WeeklyPicksCache(store, source, today=today),
        CategoriesCache(store, source, today=today),
    ]
