"""
SQLite storage layer for the catalog cache.

Owns the single database connection, the table schema and the payload
wire format. Nested records are kept as JSON text in a `data` column:

- featured_app.data:  {"day", "detail", "extended_detail"}
- weekly_picks.data:  {"is_fullscreen", "detail", "extended_detail"}
- app_permissions.permissions: JSON array of strings

All statements are parameterized; app identifiers and free text never end
up in SQL text.
"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence

import aiosqlite

from config.settings import settings

from .errors import DecodeFailed, SchemaMigrationSkipped, StoreUnavailable

logger = logging.getLogger("cache.store")


SCHEMA = """
-- Per-section refresh bookkeeping
CREATE TABLE IF NOT EXISTS cache_metadata (
    section_name TEXT PRIMARY KEY,
    last_update_date TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Featured app of the day (at most one row)
CREATE TABLE IF NOT EXISTS featured_app (
    app_id TEXT PRIMARY KEY,
    name TEXT,
    icon TEXT,
    data TEXT NOT NULL,
    cached_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Weekly picks (replaced wholesale)
CREATE TABLE IF NOT EXISTS weekly_picks (
    app_id TEXT PRIMARY KEY,
    position INTEGER NOT NULL,
    name TEXT,
    icon TEXT,
    summary TEXT,
    data TEXT NOT NULL,
    cached_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Category names (replaced wholesale)
CREATE TABLE IF NOT EXISTS categories (
    category_name TEXT PRIMARY KEY,
    cached_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Notifications the user has opened
CREATE TABLE IF NOT EXISTS viewed_notifications (
    notification_id TEXT PRIMARY KEY,
    viewed_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Permission manifests per installed version
CREATE TABLE IF NOT EXISTS app_permissions (
    app_id TEXT NOT NULL,
    version TEXT NOT NULL,
    permissions TEXT NOT NULL,
    outdated INTEGER DEFAULT 0,
    cached_at TEXT DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (app_id, version)
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_weekly_picks_position ON weekly_picks(position);
CREATE INDEX IF NOT EXISTS idx_app_permissions_app ON app_permissions(app_id);
"""

# Additive migrations: (name, statement). Never destructive.
MIGRATIONS = [
    (
        "app_permissions.outdated",
        "ALTER TABLE app_permissions ADD COLUMN outdated INTEGER DEFAULT 0",
    ),
]


# =============================================================================
# Payload codec
# =============================================================================

def encode_payload(payload: Any) -> str:
    """Serialize a nested record for a TEXT column."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def decode_payload(text: Optional[str]) -> Dict[str, Any]:
    """Parse a `data` column back into a dict."""
    try:
        value = json.loads(text)
    except (TypeError, ValueError) as e:
        raise DecodeFailed(f"Invalid payload: {e}") from e
    if not isinstance(value, dict):
        raise DecodeFailed(f"Expected object payload, got {type(value).__name__}")
    return value


def decode_permissions(text: Optional[str]) -> List[str]:
    """Parse a permissions column back into a list of strings."""
    try:
        value = json.loads(text)
    except (TypeError, ValueError) as e:
        raise DecodeFailed(f"Invalid permissions payload: {e}") from e
    if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
        raise DecodeFailed("Permissions payload is not a list of strings")
    return value


# =============================================================================
# Store
# =============================================================================

class Transaction:
    """Statement handle valid inside `CacheStore.transaction()`."""

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        cursor = await self._conn.execute(sql, params)
        return cursor.rowcount

    async def executemany(self, sql: str, rows: Iterable[Sequence[Any]]) -> int:
        cursor = await self._conn.executemany(sql, rows)
        return cursor.rowcount

    async def select(self, sql: str, params: Sequence[Any] = ()) -> List[aiosqlite.Row]:
        return list(await self._conn.execute_fetchall(sql, params))


class CacheStore:
    """
    Persistent store for cached catalog data.

    One instance owns exactly one connection. It is opened lazily by the
    first operation; concurrent first callers all wait for the same
    initialization. Operations are serialized on an asyncio lock so that a
    transaction body never interleaves with statements from other tasks.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path is not None else settings.database_path
        self._conn: Optional[aiosqlite.Connection] = None
        self._open_lock = asyncio.Lock()
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> aiosqlite.Connection:
        """Open the connection and ensure the schema (idempotent)."""
        if self._conn is not None:
            return self._conn

        async with self._open_lock:
            if self._conn is not None:
                return self._conn

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreUnavailable(f"Cannot resolve database path {self.db_path}: {e}") from e

            try:
                conn = await aiosqlite.connect(str(self.db_path), isolation_level=None)
            except aiosqlite.Error as e:
                raise StoreUnavailable(f"Cannot open database {self.db_path}: {e}") from e

            conn.row_factory = aiosqlite.Row
            try:
                await self._ensure_schema(conn)
            except aiosqlite.Error as e:
                await conn.close()
                raise StoreUnavailable(f"Cannot initialize schema in {self.db_path}: {e}") from e

            self._conn = conn
            logger.info(f"Cache database opened at {self.db_path}")
            return conn

    async def close(self) -> None:
        if self._conn is None:
            return
        async with self._lock:
            conn, self._conn = self._conn, None
            await conn.close()
        logger.debug("Cache database closed")

    async def ensure_schema(self) -> None:
        """Create missing tables and apply additive migrations."""
        conn = await self.open()
        async with self._lock:
            await self._ensure_schema(conn)

    async def _ensure_schema(self, conn: aiosqlite.Connection) -> None:
        await conn.executescript(SCHEMA)
        for name, statement in MIGRATIONS:
            try:
                await self._apply_migration(conn, name, statement)
                logger.info(f"Applied migration {name}")
            except SchemaMigrationSkipped as e:
                logger.debug(str(e))

    async def _apply_migration(self, conn: aiosqlite.Connection, name: str, statement: str) -> None:
        try:
            await conn.execute(statement)
        except aiosqlite.OperationalError as e:
            if "duplicate column" in str(e).lower():
                raise SchemaMigrationSkipped(f"Migration {name} already applied") from e
            raise

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run one parameterized statement in autocommit mode; return rowcount."""
        conn = await self.open()
        async with self._lock:
            cursor = await conn.execute(sql, params)
            return cursor.rowcount

    async def select(self, sql: str, params: Sequence[Any] = ()) -> List[aiosqlite.Row]:
        """Run a parameterized query and return all rows."""
        conn = await self.open()
        async with self._lock:
            return list(await conn.execute_fetchall(sql, params))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """
        Run a block of statements atomically.

        Commits when the block exits normally; rolls back and re-raises on
        any exception. Use the yielded handle, not the store, for
        statements inside the block.
        """
        conn = await self.open()
        async with self._lock:
            await conn.execute("BEGIN")
            try:
                yield Transaction(conn)
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            else:
                await conn.execute("COMMIT")
