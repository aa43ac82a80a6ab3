"""Public entry point wiring the loader, registry and query components together."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from polydict.cache import open_fingerprint_cache
from polydict.completion import GeminiCompletionClient, build_http_client
from polydict.config import LoaderSettings
from polydict.loader import DictionaryLoader
from polydict.logging_config import setup_logging
from polydict.models.dictionary import DictionaryKind, LoadedDictionary
from polydict.query import QueryEngine
from polydict.registry import DictionaryRegistry, release
from polydict.resources import ResourceResolver
from polydict.storage import LocalStorage

if TYPE_CHECKING:
    from collections.abc import Iterable

    import httpx

    from polydict.cache import FingerprintCache
    from polydict.completion import CompletionProvider
    from polydict.config import Settings
    from polydict.engine import IndexEngine
    from polydict.models.dictionary import (
        AIPrompt,
        LLMProvider,
        LookupResult,
        Suggestion,
        WebSearchEngine,
    )
    from polydict.signals import ObservableValue
    from polydict.storage import Storage

log = structlog.get_logger()


class DictionaryService:
    """Owns one registry and everything that reads or writes it.

    Queries made before the first ``reload`` raise ``RegistryNotLoadedError``.
    """

    def __init__(
        self,
        storage: Storage,
        engine: IndexEngine,
        cache: FingerprintCache,
        completion: CompletionProvider | None = None,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        loader_settings = settings.loader if settings is not None else LoaderSettings()
        self.registry = DictionaryRegistry()
        self.cache = cache
        self.loader = DictionaryLoader(storage, engine, cache, self.registry, loader_settings)
        self.queries = QueryEngine(
            self.registry,
            completion,
            redirect_depth_limit=loader_settings.redirect_depth_limit,
        )
        self.resources = ResourceResolver(self.registry)
        self._http_client = http_client

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    @property
    def is_loading(self) -> ObservableValue[bool]:
        return self.loader.is_loading

    @property
    def search_progress(self) -> ObservableValue[float]:
        return self.queries.search_progress

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def reload(
        self,
        folders: Iterable[str],
        web_engines: Iterable[WebSearchEngine] = (),
        ai_prompts: Iterable[AIPrompt] = (),
        providers: Iterable[LLMProvider] = (),
    ) -> None:
        self.queries.set_providers(providers)
        await self.loader.load_all(folders, web_engines, ai_prompts)

    async def reload_from_settings(self, settings: Settings) -> None:
        library = settings.library
        await self.reload(
            library.folders, library.web_engines, library.ai_prompts, library.llm_providers
        )

    async def update_web_engines(self, engines: Iterable[WebSearchEngine]) -> None:
        displaced = await self.registry.replace_kind(
            DictionaryKind.WEB, [LoadedDictionary.from_web_engine(e) for e in engines]
        )
        await release(displaced)

    async def update_ai_prompts(self, prompts: Iterable[AIPrompt]) -> None:
        displaced = await self.registry.replace_kind(
            DictionaryKind.AI_PROMPT, [LoadedDictionary.from_ai_prompt(p) for p in prompts]
        )
        await release(displaced)

    def update_providers(self, providers: Iterable[LLMProvider]) -> None:
        self.queries.set_providers(providers)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def lookup_all(self, word: str) -> list[LookupResult]:
        return await self.queries.lookup_all(word)

    async def lookup(self, dict_id: str, word: str) -> str | None:
        return await self.queries.lookup(dict_id, word)

    async def suggest_prefix_raw(
        self, prefix: str, limit_to_ids: Iterable[str] | None = None
    ) -> list[Suggestion]:
        return await self.queries.suggest_prefix_raw(prefix, limit_to_ids)

    async def suggest_regex_raw(
        self, pattern: str, limit_to_ids: Iterable[str] | None = None
    ) -> list[Suggestion]:
        return await self.queries.suggest_regex_raw(pattern, limit_to_ids)

    async def suggest_full_text_raw(
        self, query: str, limit_to_ids: Iterable[str] | None = None
    ) -> list[Suggestion]:
        return await self.queries.suggest_full_text_raw(query, limit_to_ids)

    async def resolve_resource(self, key: str, dict_id: str | None = None) -> bytes | None:
        return await self.resources.resolve(key, dict_id)

    async def match_counts(self, word: str) -> dict[str, int]:
        """Number of index matches for ``word`` per local dictionary with a primary index."""
        counts: dict[str, int] = {}
        for dictionary in self.registry.snapshot():
            if dictionary.primary is None:
                continue
            try:
                counts[dictionary.id] = await asyncio.to_thread(
                    dictionary.primary.match_count, word
                )
            except Exception:
                log.warning("match_count_error", dict_id=dictionary.id, exc_info=True)
        return counts

    def get_dictionary_by_id(self, dict_id: str) -> LoadedDictionary | None:
        return self.registry.get(dict_id)

    def dictionaries(self) -> tuple[LoadedDictionary, ...]:
        return self.registry.snapshot()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Release every engine handle and the resources the service opened."""
        await release(await self.registry.clear())
        await self.cache.close()
        if self._http_client is not None:
            await self._http_client.aclose()
        log.info("service_closed")


async def create_service(
    settings: Settings,
    engine: IndexEngine,
    storage: Storage | None = None,
    completion: CompletionProvider | None = None,
) -> DictionaryService:
    """Build a service from settings: configure logging, open the fingerprint cache.

    Without an explicit ``completion`` provider a Gemini client is created on
    a dedicated ``httpx.AsyncClient`` that ``aclose()`` shuts down.
    """
    setup_logging(settings.logging)
    cache = await open_fingerprint_cache(settings.cache.db_path)
    http_client = None
    if completion is None:
        http_client = build_http_client(settings.completion)
        completion = GeminiCompletionClient(http_client, settings.completion)
    return DictionaryService(
        storage or LocalStorage(),
        engine,
        cache,
        completion,
        settings=settings,
        http_client=http_client,
    )
