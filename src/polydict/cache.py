"""SQLite-backed fingerprint cache.

Maps a primary index file's locator to the size, mtime and fingerprint it had
when last hashed, so unchanged files are not re-hashed across restarts.

The database is read into memory by ``load()`` and written back by ``save()``;
``get``/``put``/``prune`` only touch the in-memory map and never block on I/O.
All database operations catch ``aiosqlite.Error`` internally and degrade
gracefully: a failed load leaves an empty cache, a failed save is logged and
ignored. Cache failures never prevent dictionaries from loading.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog
from pydantic import ValidationError

from polydict.models.cache import FingerprintEntry

if TYPE_CHECKING:
    from collections.abc import Iterable

log = structlog.get_logger()

_CREATE_FINGERPRINT_TABLE = """
CREATE TABLE IF NOT EXISTS fingerprint_cache (
    locator         TEXT PRIMARY KEY,
    size_bytes      INTEGER NOT NULL,
    modified_at_ms  INTEGER NOT NULL,
    fingerprint     TEXT NOT NULL,
    display_name    TEXT NOT NULL DEFAULT ''
)
"""


class FingerprintCache:
    """Fingerprint cache persisted through an ``aiosqlite`` connection."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._entries: dict[str, FingerprintEntry] = {}

    async def init_db(self) -> None:
        """Create the table. Called once at startup."""
        await self._db.execute(_CREATE_FINGERPRINT_TABLE)
        await self._db.commit()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Replace in-memory state with the persisted rows. Empty on read failure."""
        entries: dict[str, FingerprintEntry] = {}
        try:
            cursor = await self._db.execute(
                "SELECT locator, size_bytes, modified_at_ms, fingerprint, display_name "
                "FROM fingerprint_cache"
            )
            for row in await cursor.fetchall():
                entries[row[0]] = FingerprintEntry(
                    locator=row[0],
                    size_bytes=row[1],
                    modified_at_ms=row[2],
                    fingerprint=row[3],
                    display_name=row[4],
                )
        except (aiosqlite.Error, ValidationError):
            log.warning("fingerprint_cache_load_error", exc_info=True)
            entries = {}
        self._entries = entries
        log.debug("fingerprint_cache_loaded", entries=len(entries))

    async def save(self) -> None:
        """Rewrite the persisted rows from memory. Non-fatal on failure."""
        rows = [
            (e.locator, e.size_bytes, e.modified_at_ms, e.fingerprint, e.display_name)
            for e in list(self._entries.values())
        ]
        try:
            await self._db.execute("DELETE FROM fingerprint_cache")
            await self._db.executemany(
                "INSERT OR REPLACE INTO fingerprint_cache "
                "(locator, size_bytes, modified_at_ms, fingerprint, display_name) "
                "VALUES (?, ?, ?, ?, ?)",
                rows,
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("fingerprint_cache_save_error", entries=len(rows), exc_info=True)
            try:
                await self._db.rollback()
            except aiosqlite.Error:
                log.debug("fingerprint_cache_rollback_error", exc_info=True)

    # ------------------------------------------------------------------
    # In-memory access
    # ------------------------------------------------------------------

    def get(self, locator: str) -> FingerprintEntry | None:
        return self._entries.get(locator)

    def put(self, entry: FingerprintEntry) -> None:
        self._entries[entry.locator] = entry

    def prune(self, valid_locators: Iterable[str]) -> int:
        """Drop every entry whose locator is not in ``valid_locators``. Returns the count."""
        keep = set(valid_locators)
        stale = [locator for locator in list(self._entries) if locator not in keep]
        for locator in stale:
            self._entries.pop(locator, None)
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)

    async def close(self) -> None:
        await self._db.close()


async def open_fingerprint_cache(db_path: str) -> FingerprintCache:
    """Open (creating parent dirs) the cache database at ``db_path``.

    A file SQLite cannot read is moved aside as ``<name>.corrupt`` and a fresh
    database is created in its place.
    """
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        return await _connect(path)
    except aiosqlite.Error:
        log.warning("fingerprint_cache_corrupt", path=str(path), exc_info=True)
        if path.exists():
            path.replace(path.with_name(path.name + ".corrupt"))
        return await _connect(path)


async def _connect(path: Path) -> FingerprintCache:
    db = await aiosqlite.connect(path)
    try:
        cache = FingerprintCache(db)
        await cache.init_db()
    except aiosqlite.Error:
        await db.close()
        raise
    return cache
