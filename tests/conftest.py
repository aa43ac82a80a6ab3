"""Shared fixtures: a fake index engine and helpers to lay out dictionary folders.

The fake engine stands in for the binary dictionary reader. Its "dictionary
files" are JSON documents, read through the file descriptor the loader hands
over, so a descriptor left at a non-zero offset fails to open, just as it
would with a real engine.
"""

from __future__ import annotations

import json
import os
import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pytest

from polydict.engine import DictionaryHandle
from polydict.models.dictionary import DictionaryKind, LoadedDictionary

if TYPE_CHECKING:
    from pathlib import Path


@dataclass
class FakeDict:
    source: str
    is_resource_store: bool
    entries: dict[str, Any]
    fail: bool = False
    progress_steps: list[float] = field(default_factory=list)
    delay: float = 0.0


class FakeIndexEngine:
    """In-memory ``IndexEngine`` backed by JSON payloads."""

    def __init__(self) -> None:
        self.opened: list[FakeDict] = []
        self.closed: list[FakeDict] = []
        self.full_text_started = threading.Event()
        self.close_threads: list[int] = []

    @property
    def live(self) -> list[FakeDict]:
        return [d for d in self.opened if not any(d is c for c in self.closed)]

    def open(self, source: int | str, is_resource_store: bool) -> FakeDict | None:
        if isinstance(source, int):
            chunks = []
            while chunk := os.read(source, 65536):
                chunks.append(chunk)
            data = b"".join(chunks)
        else:
            with open(source, "rb") as f:
                data = f.read()
        try:
            payload = json.loads(data)
        except ValueError:
            return None
        if isinstance(source, int):
            os.close(source)
        raw = FakeDict(
            source=str(source),
            is_resource_store=is_resource_store,
            entries=payload.get("entries", {}),
            fail=payload.get("fail", False),
            progress_steps=payload.get("progress", []),
            delay=payload.get("delay", 0.0),
        )
        self.opened.append(raw)
        return raw

    def close(self, raw: FakeDict) -> None:
        self.close_threads.append(threading.get_ident())
        self.closed.append(raw)

    def lookup(self, raw: FakeDict, word: str) -> list[str]:
        if raw.fail:
            raise RuntimeError("engine exploded")
        value = raw.entries.get(word)
        if value is None:
            return []
        return [value] if isinstance(value, str) else list(value)

    def suggest_prefix(self, raw: FakeDict, prefix: str) -> list[str]:
        if raw.fail:
            raise RuntimeError("engine exploded")
        return sorted(w for w in raw.entries if w.startswith(prefix))

    def suggest_regex(self, raw: FakeDict, pattern: str) -> list[str]:
        if raw.fail:
            raise RuntimeError("engine exploded")
        return sorted(w for w in raw.entries if re.fullmatch(pattern, w))

    def suggest_full_text(
        self, raw: FakeDict, query: str, progress: Callable[[float], None]
    ) -> list[str]:
        self.full_text_started.set()
        time.sleep(raw.delay)
        for step in raw.progress_steps:
            progress(step)
        if raw.fail:
            raise RuntimeError("engine exploded")
        hits = []
        for word, value in sorted(raw.entries.items()):
            texts = [value] if isinstance(value, str) else value
            if any(query in text for text in texts):
                hits.append(word)
        return hits

    def match_count(self, raw: FakeDict, word: str) -> int:
        value = raw.entries.get(word)
        if value is None:
            return 0
        return 1 if isinstance(value, str) else len(value)


@pytest.fixture()
def engine() -> FakeIndexEngine:
    return FakeIndexEngine()


@pytest.fixture()
def write_dictionary() -> Callable[..., Path]:
    """Write a fake dictionary file: ``write_dictionary(path, {"word": ["def"]})``."""

    def _write(path: Path, entries: dict[str, Any] | None = None, **extra: Any) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"entries": entries or {}, **extra}), encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def make_local(engine: FakeIndexEngine) -> Callable[..., LoadedDictionary]:
    """Build a registered-style local dictionary directly, without the loader."""

    def _make(
        dict_id: str,
        entries: dict[str, Any] | None = None,
        *,
        resources: list[dict[str, Any]] | None = None,
        fail: bool = False,
        progress: list[float] | None = None,
        with_primary: bool = True,
    ) -> LoadedDictionary:
        primary = None
        if with_primary:
            raw = FakeDict(
                source=f"{dict_id}.mdx",
                is_resource_store=False,
                entries=entries or {},
                fail=fail,
                progress_steps=progress or [],
            )
            engine.opened.append(raw)
            primary = DictionaryHandle(engine, raw, f"{dict_id}.mdx", is_resource_store=False)
        stores = []
        for i, store_entries in enumerate(resources or []):
            raw = FakeDict(
                source=f"{dict_id}.{i}.mdd", is_resource_store=True, entries=store_entries
            )
            engine.opened.append(raw)
            stores.append(
                DictionaryHandle(engine, raw, f"{dict_id}.{i}.mdd", is_resource_store=True)
            )
        return LoadedDictionary(
            id=dict_id,
            name=dict_id.title(),
            kind=DictionaryKind.LOCAL,
            primary=primary,
            resource_stores=stores,
            primary_locator=primary.locator if primary else None,
            resource_locators=[s.locator for s in stores],
        )

    return _make
