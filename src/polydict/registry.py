"""In-memory dictionary registry.

Writers serialize on one ``asyncio.Lock`` and publish a freshly built mapping
with a single reference swap. Readers never take the lock: ``snapshot()``
returns an immutable tuple of whichever mapping was current, so a query never
observes a half-replaced registry.

Ordering is web engines, then AI prompts, then local dictionaries in the order
the loader inserted them. Writers never close handles themselves: they return
what they displaced or rejected, and callers hand that to ``release()``, which
closes on a worker thread because closing waits for in-flight engine calls.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from polydict.errors import RegistryNotLoadedError
from polydict.models.dictionary import DictionaryKind, LoadedDictionary

if TYPE_CHECKING:
    from collections.abc import Iterable

    from polydict.models.dictionary import AIPrompt, WebSearchEngine

log = structlog.get_logger()

_KIND_ORDER = (DictionaryKind.WEB, DictionaryKind.AI_PROMPT, DictionaryKind.LOCAL)


class DictionaryRegistry:
    def __init__(self) -> None:
        self._by_id: dict[str, LoadedDictionary] = {}
        self._lock = asyncio.Lock()
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    # ------------------------------------------------------------------
    # Readers (lock-free)
    # ------------------------------------------------------------------

    def snapshot(self) -> tuple[LoadedDictionary, ...]:
        """Point-in-time copy in registry order. Raises before the first load."""
        if not self._loaded:
            raise RegistryNotLoadedError()
        return tuple(self._by_id.values())

    def get(self, dict_id: str) -> LoadedDictionary | None:
        return self._by_id.get(dict_id)

    def __contains__(self, dict_id: object) -> bool:
        return dict_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    async def replace_all(
        self,
        web_engines: Iterable[WebSearchEngine],
        ai_prompts: Iterable[AIPrompt],
        local: Iterable[LoadedDictionary],
    ) -> list[LoadedDictionary]:
        """Swap in a complete new registry.

        Local dictionaries whose id is already taken are left out; the first
        one in ``local`` order wins. Returns everything the caller must
        ``release()``: the replaced entries followed by the rejected duplicates.

        Writers are serialized, and the last one wins: a ``replace_kind`` that
        lands while a reload is running is overwritten by the reload's lists.
        """
        async with self._lock:
            entries: dict[str, LoadedDictionary] = {}
            for engine in web_engines:
                entries.setdefault(engine.id, LoadedDictionary.from_web_engine(engine))
            for prompt in ai_prompts:
                entries.setdefault(prompt.id, LoadedDictionary.from_ai_prompt(prompt))
            rejected = []
            for dictionary in local:
                if dictionary.id in entries:
                    log.info(
                        "duplicate_dictionary_skipped",
                        dict_id=dictionary.id,
                        name=dictionary.name,
                        locator=dictionary.primary_locator,
                    )
                    rejected.append(dictionary)
                    continue
                entries[dictionary.id] = dictionary

            previous = list(self._by_id.values())
            self._by_id = entries
            self._loaded = True
        return previous + rejected

    async def replace_kind(
        self, kind: DictionaryKind, dictionaries: Iterable[LoadedDictionary]
    ) -> list[LoadedDictionary]:
        """Replace every entry of ``kind`` wholesale, leaving the other kinds untouched.

        Incoming entries whose id is taken are left out. Returns the replaced
        entries followed by the rejected ones, for the caller to ``release()``.
        """
        async with self._lock:
            previous = [d for d in self._by_id.values() if d.kind is kind]
            kept = [d for d in self._by_id.values() if d.kind is not kind]
            taken = {d.id for d in kept}
            incoming: dict[str, LoadedDictionary] = {}
            rejected = []
            for d in dictionaries:
                if d.id in taken or d.id in incoming:
                    log.info("duplicate_dictionary_skipped", dict_id=d.id, name=d.name)
                    rejected.append(d)
                    continue
                incoming[d.id] = d

            merged = kept + list(incoming.values())
            rank = {k: i for i, k in enumerate(_KIND_ORDER)}
            # sorted() is stable, so order within each kind is preserved
            self._by_id = {d.id: d for d in sorted(merged, key=lambda d: rank[d.kind])}
        return previous + rejected

    async def clear(self) -> list[LoadedDictionary]:
        async with self._lock:
            previous = list(self._by_id.values())
            self._by_id = {}
        return previous


async def release(dictionaries: Iterable[LoadedDictionary]) -> None:
    """Close every engine handle of ``dictionaries`` on a worker thread.

    A handle busy with a long query on an old snapshot blocks ``close()``
    until that query finishes; the event loop keeps running meanwhile.
    """
    pending = list(dictionaries)
    if pending:
        await asyncio.to_thread(_close_all, pending)


def _close_all(dictionaries: list[LoadedDictionary]) -> None:
    for dictionary in dictionaries:
        dictionary.close()
