"""SQLite build cache mapping package versions to published hashes.

All cache operations catch ``aiosqlite.Error`` internally and degrade
gracefully: read failures return ``None`` (treated as cache miss by callers),
write failures are logged and ignored (the published hash is still returned,
and the builder keeps its own record of hashes produced in the run).

Entries are never expired or invalidated automatically. The table carries no
inter-process locking beyond SQLite's own; concurrent runs against one
database are unsupported.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from ipdocs.models.cache import CacheEntry

if TYPE_CHECKING:
    from ipdocs.models.package import PackageVersion

log = structlog.get_logger()

_CREATE_BUILD_TABLE = """
CREATE TABLE IF NOT EXISTS build_cache (
    name     TEXT NOT NULL,
    version  TEXT NOT NULL,
    hash     TEXT NOT NULL,
    built_at TEXT NOT NULL,
    PRIMARY KEY (name, version)
)
"""


class Cache:
    """SQLite-backed build cache implementing CacheProtocol."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_BUILD_TABLE)
        await self._db.commit()

    async def get_entry(self, pv: PackageVersion) -> CacheEntry | None:
        """Read a full entry. Returns ``None`` on cache miss or read failure."""
        try:
            cursor = await self._db.execute(
                "SELECT name, version, hash, built_at FROM build_cache "
                "WHERE name = ? AND version = ?",
                (pv.name, pv.version),
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            return CacheEntry(
                name=row[0],
                version=row[1],
                hash=row[2],
                built_at=datetime.fromisoformat(row[3]),
            )
        except aiosqlite.Error:
            log.warning("cache_read_error", key=str(pv), exc_info=True)
            return None

    async def get(self, pv: PackageVersion) -> str | None:
        entry = await self.get_entry(pv)
        return entry.hash if entry is not None else None

    async def put(self, pv: PackageVersion, hash_: str) -> None:
        """Record the published hash. Last write wins. Non-fatal on failure."""
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO build_cache (name, version, hash, built_at) "
                "VALUES (?, ?, ?, ?)",
                (pv.name, pv.version, hash_, datetime.now(UTC).isoformat()),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_write_error", key=str(pv), exc_info=True)
