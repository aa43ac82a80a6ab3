"""Indexed dictionary engine boundary.

The engine that reads the binary dictionary format lives outside this package.
``IndexEngine`` is the interface it must offer; ``DictionaryHandle`` is the
owned resource this package passes around instead of raw engine handles.

Engine calls are blocking. Callers dispatch them with ``asyncio.to_thread``;
the handle's lock serializes calls made through the same handle.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, Protocol, Self

ProgressCallback = Callable[[float], None]


class IndexEngine(Protocol):
    """Operations the external index engine provides.

    ``open`` takes ownership of an integer file descriptor when it returns a
    handle; on ``None`` the descriptor still belongs to the caller. A ``None``
    return signals failure, not an exception. Lookups return empty lists on no match.
    """

    def open(self, source: int | str, is_resource_store: bool) -> Any | None: ...

    def close(self, raw: Any) -> None: ...

    def lookup(self, raw: Any, word: str) -> list[str]: ...

    def suggest_prefix(self, raw: Any, prefix: str) -> list[str]: ...

    def suggest_regex(self, raw: Any, pattern: str) -> list[str]: ...

    def suggest_full_text(
        self, raw: Any, query: str, progress: ProgressCallback
    ) -> list[str]: ...

    def match_count(self, raw: Any, word: str) -> int: ...


class DictionaryHandle:
    """An open primary index or resource store.

    Opened by the loader, released exactly once by ``close()`` on every exit
    path. Calls on a closed handle return empty results so queries running on
    a registry snapshot survive a concurrent reload.
    """

    def __init__(
        self, engine: IndexEngine, raw: Any, locator: str, *, is_resource_store: bool
    ) -> None:
        self._engine = engine
        self._raw = raw
        self._lock = threading.Lock()
        self.locator = locator
        self.is_resource_store = is_resource_store

    @classmethod
    def open(
        cls, engine: IndexEngine, source: int | str, locator: str, *, is_resource_store: bool
    ) -> DictionaryHandle | None:
        raw = engine.open(source, is_resource_store)
        if raw is None:
            return None
        return cls(engine, raw, locator, is_resource_store=is_resource_store)

    @property
    def closed(self) -> bool:
        return self._raw is None

    def lookup(self, word: str) -> list[str]:
        with self._lock:
            if self._raw is None:
                return []
            return list(self._engine.lookup(self._raw, word) or [])

    def suggest_prefix(self, prefix: str) -> list[str]:
        with self._lock:
            if self._raw is None:
                return []
            return list(self._engine.suggest_prefix(self._raw, prefix) or [])

    def suggest_regex(self, pattern: str) -> list[str]:
        with self._lock:
            if self._raw is None:
                return []
            return list(self._engine.suggest_regex(self._raw, pattern) or [])

    def suggest_full_text(self, query: str, progress: ProgressCallback) -> list[str]:
        with self._lock:
            if self._raw is None:
                return []
            return list(self._engine.suggest_full_text(self._raw, query, progress) or [])

    def match_count(self, word: str) -> int:
        with self._lock:
            if self._raw is None:
                return 0
            return self._engine.match_count(self._raw, word) or 0

    def close(self) -> None:
        with self._lock:
            raw, self._raw = self._raw, None
        if raw is not None:
            self._engine.close(raw)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"DictionaryHandle({self.locator!r}, {state})"
