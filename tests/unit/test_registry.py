"""Unit tests for polydict.registry."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from polydict.errors import ErrorCode, RegistryNotLoadedError
from polydict.models.dictionary import (
    AIPrompt,
    DictionaryKind,
    LoadedDictionary,
    WebSearchEngine,
)
from polydict.registry import DictionaryRegistry, release

WEB = WebSearchEngine(id="web", name="Wiki", url="https://w.org/%s")
AI = AIPrompt(id="ai", name="Explain", provider_id="p", prompt_template="Explain %s")


class TestSnapshot:
    def test_raises_before_first_load(self, registry: DictionaryRegistry) -> None:
        with pytest.raises(RegistryNotLoadedError) as exc_info:
            registry.snapshot()
        assert exc_info.value.code == ErrorCode.NOT_LOADED
        assert not registry.is_loaded

    async def test_empty_after_load(self, registry: DictionaryRegistry) -> None:
        await registry.replace_all([], [], [])
        assert registry.is_loaded
        assert registry.snapshot() == ()

    async def test_snapshot_unaffected_by_later_swap(
        self, registry: DictionaryRegistry, make_local: Callable[..., LoadedDictionary]
    ) -> None:
        await registry.replace_all([], [], [make_local("a")])
        before = registry.snapshot()
        await registry.replace_all([], [], [make_local("b")])
        assert [d.id for d in before] == ["a"]
        assert [d.id for d in registry.snapshot()] == ["b"]


class TestReplaceAll:
    async def test_order_web_ai_local(
        self, registry: DictionaryRegistry, make_local: Callable[..., LoadedDictionary]
    ) -> None:
        await registry.replace_all([WEB], [AI], [make_local("z"), make_local("a")])
        assert [d.id for d in registry.snapshot()] == ["web", "ai", "z", "a"]
        assert registry.get("web").kind is DictionaryKind.WEB  # type: ignore[union-attr]
        assert "ai" in registry
        assert len(registry) == 4

    async def test_duplicate_local_returned_for_release_first_wins(
        self, registry: DictionaryRegistry, make_local: Callable[..., LoadedDictionary]
    ) -> None:
        first = make_local("same", {"w": "first"})
        second = make_local("same", {"w": "second"})

        displaced = await registry.replace_all([], [], [first, second])

        assert registry.get("same") is first
        assert displaced == [second]
        # Writers leave closing to release(), off the event loop thread.
        assert second.primary is not None and not second.primary.closed

        await release(displaced)

        assert second.primary.closed
        assert first.primary is not None and not first.primary.closed

    async def test_local_colliding_with_web_id_is_skipped(
        self, registry: DictionaryRegistry, make_local: Callable[..., LoadedDictionary]
    ) -> None:
        clash = make_local("web")
        displaced = await registry.replace_all([WEB], [], [clash])
        assert registry.get("web").kind is DictionaryKind.WEB  # type: ignore[union-attr]
        assert displaced == [clash]

    async def test_returns_previous_entries_without_closing(
        self, registry: DictionaryRegistry, make_local: Callable[..., LoadedDictionary]
    ) -> None:
        old = make_local("old")
        await registry.replace_all([], [], [old])

        previous = await registry.replace_all([], [], [make_local("new")])

        assert previous == [old]
        assert old.primary is not None and not old.primary.closed


class TestReplaceKind:
    async def test_replaces_only_that_kind(
        self, registry: DictionaryRegistry, make_local: Callable[..., LoadedDictionary]
    ) -> None:
        await registry.replace_all([WEB], [AI], [make_local("local")])
        other = WebSearchEngine(id="web2", name="Other", url="https://o.org/%s")

        previous = await registry.replace_kind(
            DictionaryKind.WEB, [LoadedDictionary.from_web_engine(other)]
        )

        assert [d.id for d in previous] == ["web"]
        assert [d.id for d in registry.snapshot()] == ["web2", "ai", "local"]

    async def test_collision_with_other_kind_rejected(
        self, registry: DictionaryRegistry, make_local: Callable[..., LoadedDictionary]
    ) -> None:
        await registry.replace_all([], [], [make_local("local")])
        clash = WebSearchEngine(id="local", name="Clash", url="https://c.org/%s")

        displaced = await registry.replace_kind(
            DictionaryKind.WEB, [LoadedDictionary.from_web_engine(clash)]
        )

        assert registry.get("local").kind is DictionaryKind.LOCAL  # type: ignore[union-attr]
        assert len(registry) == 1
        assert [d.name for d in displaced] == ["Clash"]


class TestClear:
    async def test_returns_everything(
        self, registry: DictionaryRegistry, make_local: Callable[..., LoadedDictionary]
    ) -> None:
        await registry.replace_all([WEB], [], [make_local("a")])
        previous = await registry.clear()
        assert {d.id for d in previous} == {"web", "a"}
        assert len(registry) == 0


class TestConcurrentWriters:
    async def test_last_writer_wins_without_mixing(
        self, registry: DictionaryRegistry, make_local: Callable[..., LoadedDictionary]
    ) -> None:
        local = make_local("local")
        other = WebSearchEngine(id="web2", name="Other", url="https://o.org/%s")
        await registry.replace_all([WEB], [], [local])

        await asyncio.gather(
            registry.replace_all([WEB], [AI], [local]),
            registry.replace_kind(DictionaryKind.WEB, [LoadedDictionary.from_web_engine(other)]),
        )

        ids = [d.id for d in registry.snapshot()]
        # The reload ran first and the web-only update landed on top of it.
        assert ids == ["web2", "ai", "local"]


class TestRelease:
    async def test_closes_every_handle(
        self, make_local: Callable[..., LoadedDictionary]
    ) -> None:
        d = make_local("a", resources=[{}, {}])
        await release([d])
        assert d.primary is not None and d.primary.closed
        assert all(s.closed for s in d.resource_stores)

    async def test_empty_is_noop(self) -> None:
        await release([])
