"""
Catalog Cache - client-side freshness and persistence for catalog data.

Provides:
- A single-connection SQLite store with additive schema migrations
- Per-section freshness windows and reconciliation rules
- Stale-while-revalidate section reads with coalesced refreshes
- A batch permission cache with outdated flags and pruning
"""

from .errors import (
    CatalogCacheError,
    DecodeFailed,
    RemoteFetchFailed,
    SchemaMigrationSkipped,
    StoreUnavailable,
)
from .models import (
    AppVersion,
    FeaturedApp,
    Notification,
    PermissionEntry,
    Section,
    WeeklyPick,
)
from .storage import CacheStore
from .permissions import PermissionCache
from .sections import (
    CategoriesCache,
    FeaturedAppCache,
    SectionCache,
    WeeklyPicksCache,
)
from .notifications import NotificationCenter
from .runtime import CatalogCache, build_catalog_cache

__all__ = [
    # Errors
    "CatalogCacheError",
    "DecodeFailed",
    "RemoteFetchFailed",
    "SchemaMigrationSkipped",
    "StoreUnavailable",
    # Models
    "AppVersion",
    "FeaturedApp",
    "Notification",
    "PermissionEntry",
    "Section",
    "WeeklyPick",
    # Storage
    "CacheStore",
    "PermissionCache",
    # Sections
    "CategoriesCache",
    "FeaturedAppCache",
    "SectionCache",
    "WeeklyPicksCache",
    "NotificationCenter",
    # Wiring
    "CatalogCache",
    "build_catalog_cache",
]
