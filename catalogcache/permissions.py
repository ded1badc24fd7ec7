"""
Batch cache of per-version permission manifests.

Rows are keyed by (app_id, version). Version pinning is the only
freshness mechanism: a row is valid until its app is updated, at which
point it is flagged `outdated` and readers treat it as a miss.
"""
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import aiosqlite

from .errors import DecodeFailed, StoreUnavailable
from .models import AppVersion, PermissionEntry
from .storage import CacheStore, decode_permissions, encode_payload

logger = logging.getLogger("cache.permissions")

# Pairs per query; keeps bound parameters well under SQLite's limit
LOOKUP_CHUNK_SIZE = 400

AppVersionLike = Union[AppVersion, Tuple[str, str]]


def _as_pair(item: AppVersionLike) -> Tuple[str, str]:
    if isinstance(item, AppVersion):
        return item.app_id, item.version
    app_id, version = item
    return app_id, version


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class PermissionCache:
    """
    Permission manifests for installed app versions.

    Read methods never raise store errors: they log and report misses.
    Write methods run in a single transaction and propagate errors so the
    caller can decide whether to retry.
    """

    def __init__(self, store: CacheStore):
        self.store = store

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, app_id: str, version: str) -> Optional[List[str]]:
        """Permissions for one app version, or None on miss/outdated."""
        result = await self.get_many([(app_id, version)])
        return result.get(app_id)

    async def get_many(self, keys: Iterable[AppVersionLike]) -> Dict[str, List[str]]:
        """
        Look up many (app_id, version) pairs.

        Returns app_id -> permissions for pairs that are present and not
        outdated. Misses are simply absent from the result.
        """
        pairs = list(dict.fromkeys(_as_pair(key) for key in keys))
        if not pairs:
            return {}

        result: Dict[str, List[str]] = {}
        try:
            for chunk in _chunks(pairs, LOOKUP_CHUNK_SIZE):
                placeholders = ", ".join("(?, ?)" for _ in chunk)
                params = [value for pair in chunk for value in pair]
                rows = await self.store.select(
                    f"""
                    SELECT app_id, version, permissions FROM app_permissions
                    WHERE outdated = 0 AND (app_id, version) IN (VALUES {placeholders})
                    """,
                    params,
                )
                for row in rows:
                    try:
                        result[row["app_id"]] = decode_permissions(row["permissions"])
                    except DecodeFailed as e:
                        logger.warning(f"Discarding unreadable permissions for {row['app_id']}: {e}")
        except (aiosqlite.Error, StoreUnavailable) as e:
            logger.warning(f"Error reading cached permissions batch: {e}")
            return {}

        logger.debug(f"Permission cache: {len(result)}/{len(pairs)} hits")
        return result

    # =========================================================================
    # Writes
    # =========================================================================

    async def put(self, app_id: str, version: str, permissions: List[str]) -> None:
        await self.put_many({app_id: PermissionEntry(version=version, permissions=permissions)})

    async def put_many(self, entries: Mapping[str, Union[PermissionEntry, dict]]) -> None:
        """
        Store manifests for many apps atomically.

        Replaces any existing row for the same (app_id, version) and clears
        its outdated flag. Either every entry lands or none does.
        """
        if not entries:
            return

        async with self.store.transaction() as tx:
            for app_id, entry in entries.items():
                if isinstance(entry, dict):
                    entry = PermissionEntry(version=entry["version"], permissions=entry["permissions"])
                await tx.execute(
                    """
                    INSERT OR REPLACE INTO app_permissions (app_id, version, permissions, outdated, cached_at)
                    VALUES (?, ?, ?, 0, CURRENT_TIMESTAMP)
                    """,
                    (app_id, entry.version, encode_payload(list(entry.permissions))),
                )
        logger.debug(f"Cached permissions for {len(entries)} apps")

    async def mark_outdated(self, app_id: str) -> int:
        """Flag every stored version of an app as outdated."""
        return await self.mark_outdated_batch([app_id])

    async def mark_outdated_batch(self, app_ids: Iterable[str]) -> int:
        """
        Flag every stored version of the given apps as outdated.

        Runs as one transaction; a failure leaves no app flagged.
        Returns the number of rows flagged.
        """
        ids = list(dict.fromkeys(app_ids))
        if not ids:
            return 0

        flagged = 0
        async with self.store.transaction() as tx:
            for chunk in _chunks(ids, LOOKUP_CHUNK_SIZE * 2):
                placeholders = ", ".join("?" for _ in chunk)
                flagged += await tx.execute(
                    f"UPDATE app_permissions SET outdated = 1 WHERE app_id IN ({placeholders})",
                    list(chunk),
                )
        logger.info(f"Marked permissions outdated for {len(ids)} apps ({flagged} rows)")
        return flagged

    async def clean_old_versions(self, app_id: str, current_version: str) -> int:
        """Delete every stored version of an app except the current one."""
        return await self.store.execute(
            "DELETE FROM app_permissions WHERE app_id = ? AND version != ?",
            (app_id, current_version),
        )

    async def prune_to_current(self, current_apps: Iterable[AppVersionLike]) -> int:
        """
        Delete every row whose (app_id, version) is not currently installed.

        An empty installed list is treated as "unknown" and deletes nothing.
        Returns the number of rows deleted.
        """
        pairs = list(dict.fromkeys(_as_pair(app) for app in current_apps))
        if not pairs:
            return 0

        async with self.store.transaction() as tx:
            await tx.execute(
                "CREATE TEMP TABLE IF NOT EXISTS current_apps (app_id TEXT NOT NULL, version TEXT NOT NULL)"
            )
            await tx.execute("DELETE FROM temp.current_apps")
            await tx.executemany("INSERT INTO temp.current_apps (app_id, version) VALUES (?, ?)", pairs)
            deleted = await tx.execute(
                """
                DELETE FROM app_permissions
                WHERE NOT EXISTS (
                    SELECT 1 FROM temp.current_apps c
                    WHERE c.app_id = app_permissions.app_id AND c.version = app_permissions.version
                )
                """
            )
            await tx.execute("DELETE FROM temp.current_apps")

        if deleted:
            logger.info(f"Pruned {deleted} stale permission rows")
        return deleted
