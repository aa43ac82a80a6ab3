"""Unit-specific fixtures (no I/O beyond in-memory SQLite)."""

from __future__ import annotations

import aiosqlite
import pytest

from polydict.cache import FingerprintCache
from polydict.registry import DictionaryRegistry


@pytest.fixture()
async def cache():
    """In-memory SQLite fingerprint cache for unit tests."""
    async with aiosqlite.connect(":memory:") as db:
        c = FingerprintCache(db)
        await c.init_db()
        yield c


@pytest.fixture()
def registry() -> DictionaryRegistry:
    return DictionaryRegistry()
