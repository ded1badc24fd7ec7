"""
Wiring of the cache components around one explicitly constructed store.
"""
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional

from config.settings import settings

from .cache.freshness import FreshnessPolicy
from .cache.manager import RevalidationCoordinator
from .catalog_client import CatalogClient, CatalogSource
from .models import Notification
from .notifications import NotificationCenter, load_notifications
from .permissions import PermissionCache
from .sections import build_sections
from .storage import CacheStore

logger = logging.getLogger("cache.runtime")


@dataclass
class CatalogCache:
    """Everything a consumer needs, sharing one store."""
    store: CacheStore
    source: CatalogSource
    freshness: FreshnessPolicy
    coordinator: RevalidationCoordinator
    permissions: PermissionCache
    notifications: NotificationCenter

    async def close(self) -> None:
        await self.coordinator.drain()
        await self.store.close()


def build_catalog_cache(
    db_path: Optional[Path] = None,
    source: Optional[CatalogSource] = None,
    notifications: Optional[List[Notification]] = None,
    today: Callable[[], date] = date.today,
) -> CatalogCache:
    """
    Construct the cache components.

    Nothing touches the database until the first operation.
    """
    store = CacheStore(db_path)
    source = source if source is not None else CatalogClient()
    if notifications is None:
        notifications = load_notifications(settings.notifications_file)

    freshness = FreshnessPolicy(store, today=today)
    coordinator = RevalidationCoordinator(freshness, build_sections(store, source, today=today))
    logger.debug(f"Catalog cache built for {store.db_path}")

    return CatalogCache(
        store=store,
        source=source,
        freshness=freshness,
        coordinator=coordinator,
        permissions=PermissionCache(store),
        notifications=NotificationCenter(store, notifications),
    )
