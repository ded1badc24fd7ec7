"""
Core cache data structures.
"""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, List, Optional


class CacheSource(Enum):
    """Where the surfaced value of a section came from."""
    FRESH = "fresh"       # Cached and within its freshness window
    STALE = "stale"       # Cached, refresh needed or in flight
    UPSTREAM = "upstream" # Fetched from the remote catalog in this process
    NONE = "none"         # Nothing cached yet


@dataclass
class RefreshDecision:
    """
    Outcome of evaluating a section's refresh predicates.

    Each reason names a predicate that fired ("empty", "stale", or a
    reconciliation rule name).
    """
    reasons: List[str] = field(default_factory=list)

    @property
    def needed(self) -> bool:
        return bool(self.reasons)


@dataclass
class SectionState:
    """
    Snapshot of a section as seen by a consumer.

    `value` is the cached-or-fresh value (None when nothing is available),
    `is_refreshing` reports a background fetch in flight, and `error` is
    only set when a fetch failed and there is nothing to fall back to.
    """
    section: str
    value: Any = None
    is_refreshing: bool = False
    error: Optional[BaseException] = None
    source: CacheSource = CacheSource.NONE
    last_update_date: Optional[date] = None
    refresh_reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        return {
            "section": self.section,
            "value": _serialize(self.value),
            "isRefreshing": self.is_refreshing,
            "error": str(self.error) if self.error is not None else None,
            "cacheSource": self.source.value,
            "lastUpdateDate": self.last_update_date.isoformat() if self.last_update_date else None,
            "refreshReasons": list(self.refresh_reasons),
        }


def _serialize(value: Any) -> Any:
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value
