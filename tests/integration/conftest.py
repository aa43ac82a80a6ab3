"""Integration test fixtures.

Provides a fully wired DictionaryService over the local filesystem, a
file-backed fingerprint cache under tmp_path and the fake index engine from
tests/conftest.py.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from polydict.cache import open_fingerprint_cache
from polydict.config import LoaderSettings, Settings
from polydict.service import DictionaryService
from polydict.storage import LocalStorage

if TYPE_CHECKING:
    from pathlib import Path

    from tests.conftest import FakeIndexEngine


class FakeCompletion:
    def __init__(self, answer: str = "generated") -> None:
        self.answer = answer
        self.prompts: list[str] = []

    async def complete(self, model: str, api_key: str, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.answer


@pytest.fixture()
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "state" / "fingerprints.db")


@pytest.fixture()
def completion() -> FakeCompletion:
    return FakeCompletion()


@pytest.fixture()
async def service(engine: FakeIndexEngine, db_path: str, completion: FakeCompletion):
    """DictionaryService wired for integration tests; closed on teardown."""
    cache = await open_fingerprint_cache(db_path)
    settings = Settings(cache={"db_path": db_path}, loader=LoaderSettings(max_concurrent_bundles=2))
    svc = DictionaryService(LocalStorage(), engine, cache, completion, settings=settings)
    yield svc
    await svc.aclose()
