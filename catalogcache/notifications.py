"""
In-app notifications and their viewed state.

The notification feed is bundled data (a JSON list); only the set of
viewed notification ids is persisted.
"""
import json
import logging
from pathlib import Path
from typing import List, Optional, Set

import aiosqlite

from .errors import StoreUnavailable
from .models import Notification
from .storage import CacheStore

logger = logging.getLogger("notifications")


def load_notifications(path: Optional[Path]) -> List[Notification]:
    """Load the notification feed; a missing or unreadable file yields none."""
    if path is None:
        return []
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Cannot load notifications from {path}: {e}")
        return []
    return [Notification.from_dict(item) for item in data]


class NotificationCenter:
    """Tracks which notifications the user has already opened."""

    def __init__(self, store: CacheStore, notifications: Optional[List[Notification]] = None):
        self.store = store
        self.notifications = list(notifications or [])
        self._viewed: Optional[Set[str]] = None

    async def get_viewed(self) -> Set[str]:
        """Ids of viewed notifications; empty if the store cannot be read."""
        try:
            rows = await self.store.select("SELECT notification_id FROM viewed_notifications")
        except (aiosqlite.Error, StoreUnavailable) as e:
            logger.warning(f"Error reading viewed notifications: {e}")
            return set(self._viewed or ())
        self._viewed = {row["notification_id"] for row in rows}
        return set(self._viewed)

    async def list_all(self) -> List[dict]:
        viewed = await self.get_viewed()
        return [
            {**notification.to_dict(), "viewed": notification.id in viewed}
            for notification in self.notifications
        ]

    async def unread_count(self) -> int:
        viewed = await self.get_viewed()
        return sum(1 for notification in self.notifications if notification.id not in viewed)

    async def is_viewed(self, notification_id: str) -> bool:
        return notification_id in await self.get_viewed()

    async def mark_as_viewed(self, notification_id: str) -> None:
        """Record a notification as viewed (insert-if-absent)."""
        try:
            await self.store.execute(
                "INSERT OR IGNORE INTO viewed_notifications (notification_id) VALUES (?)",
                (notification_id,),
            )
        except (aiosqlite.Error, StoreUnavailable) as e:
            logger.warning(f"Error marking notification {notification_id} as viewed: {e}")
            return
        if self._viewed is not None:
            self._viewed.add(notification_id)

    async def mark_all_as_viewed(self) -> None:
        """Record every known notification as viewed."""
        ids = [notification.id for notification in self.notifications]
        if not ids:
            return
        try:
            async with self.store.transaction() as tx:
                await tx.executemany(
                    "INSERT OR IGNORE INTO viewed_notifications (notification_id) VALUES (?)",
                    [(notification_id,) for notification_id in ids],
                )
        except (aiosqlite.Error, StoreUnavailable) as e:
            logger.warning(f"Error marking all notifications as viewed: {e}")
            return
        if self._viewed is not None:
            self._viewed.update(ids)
