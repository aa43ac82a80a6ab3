"""Reload cycle: discover bundles, open them, and swap the registry.

Folders load concurrently and each bundle loads independently on a worker
thread, bounded by ``loader.max_concurrent_bundles``. A failure in one bundle
is logged and its handles released; it never aborts the rest of the cycle.
Results are joined in discovery order before the registry pass, so duplicate
resolution is deterministic.
"""

from __future__ import annotations

import asyncio
import os
from contextlib import ExitStack
from typing import TYPE_CHECKING

import structlog

from polydict.config import LoaderSettings
from polydict.discovery import discover_bundles
from polydict.engine import DictionaryHandle
from polydict.fingerprint import compute_fingerprint, is_fallback
from polydict.models.cache import FingerprintEntry
from polydict.models.dictionary import DictionaryKind, LoadedDictionary
from polydict.registry import release
from polydict.signals import ObservableValue

if TYPE_CHECKING:
    from collections.abc import Iterable

    from polydict.cache import FingerprintCache
    from polydict.discovery import Bundle
    from polydict.engine import IndexEngine
    from polydict.models.dictionary import AIPrompt, WebSearchEngine
    from polydict.registry import DictionaryRegistry
    from polydict.storage import Storage, StorageEntry

log = structlog.get_logger()


class DictionaryLoader:
    def __init__(
        self,
        storage: Storage,
        engine: IndexEngine,
        cache: FingerprintCache,
        registry: DictionaryRegistry,
        settings: LoaderSettings | None = None,
    ) -> None:
        self._storage = storage
        self._engine = engine
        self._cache = cache
        self._registry = registry
        self._settings = settings or LoaderSettings()
        self._semaphore = asyncio.Semaphore(self._settings.max_concurrent_bundles)
        self._cycle_lock = asyncio.Lock()
        self.is_loading: ObservableValue[bool] = ObservableValue(False)

    async def load_all(
        self,
        folders: Iterable[str],
        web_engines: Iterable[WebSearchEngine] = (),
        ai_prompts: Iterable[AIPrompt] = (),
    ) -> None:
        """Run one reload cycle and replace the registry's contents.

        Overlapping calls queue up behind each other. ``is_loading`` is true for
        the whole cycle and always returns to false.
        """
        async with self._cycle_lock:
            self.is_loading.set(True)
            try:
                await self._run_cycle(list(dict.fromkeys(folders)), web_engines, ai_prompts)
            finally:
                self.is_loading.set(False)

    async def _run_cycle(
        self,
        folders: list[str],
        web_engines: Iterable[WebSearchEngine],
        ai_prompts: Iterable[AIPrompt],
    ) -> None:
        await self._cache.load()

        per_folder = await asyncio.gather(*(self._load_folder(f) for f in folders))
        local = [d for dictionaries in per_folder for d in dictionaries]

        try:
            pruned = self._cache.prune(d.primary_locator for d in local if d.primary_locator)
            displaced = await self._registry.replace_all(web_engines, ai_prompts, local)
        except BaseException:
            await release(local)
            raise

        await release(displaced)
        await self._cache.save()
        log.info(
            "reload_complete",
            folders=len(folders),
            local_opened=len(local),
            registered=len(self._registry),
            cache_pruned=pruned,
        )

    async def _load_folder(self, folder: str) -> list[LoadedDictionary]:
        try:
            bundles = await asyncio.to_thread(discover_bundles, self._storage, folder)
        except OSError:
            log.warning("folder_unreadable", folder=folder, exc_info=True)
            return []
        results = await asyncio.gather(*(self._load_bundle(folder, b) for b in bundles))
        return [d for d in results if d is not None]

    async def _load_bundle(self, folder: str, bundle: Bundle) -> LoadedDictionary | None:
        async with self._semaphore:
            try:
                return await asyncio.to_thread(self._open_bundle, bundle)
            except Exception:
                log.warning("bundle_load_error", folder=folder, bundle=bundle.name, exc_info=True)
                return None

    # ------------------------------------------------------------------
    # Worker-thread side
    # ------------------------------------------------------------------

    def _open_bundle(self, bundle: Bundle) -> LoadedDictionary | None:
        with ExitStack() as opened:
            primary: DictionaryHandle | None = None
            dict_id = ""
            if bundle.primary is not None:
                try:
                    primary, dict_id = self._open_primary(bundle.name, bundle.primary)
                except OSError:
                    log.warning("primary_open_error", locator=bundle.primary.locator, exc_info=True)
                if primary is not None:
                    opened.callback(primary.close)

            stores: list[DictionaryHandle] = []
            for entry in bundle.resources:
                try:
                    store = self._open_handle(entry.locator, is_resource_store=True)
                except OSError:
                    log.warning("resource_open_error", locator=entry.locator, exc_info=True)
                    continue
                if store is None:
                    log.warning("resource_open_rejected", locator=entry.locator)
                    continue
                opened.callback(store.close)
                stores.append(store)

            if primary is None and not stores:
                log.info("bundle_discarded", bundle=bundle.name)
                return None

            if primary is None:
                # Still register resource-only bundles so their media resolves.
                dict_id = stores[0].locator

            dictionary = LoadedDictionary(
                id=dict_id,
                name=bundle.name,
                kind=DictionaryKind.LOCAL,
                primary=primary,
                resource_stores=stores,
                primary_locator=primary.locator if primary is not None else None,
                resource_locators=[s.locator for s in stores],
                override_style=self._read_text(bundle.style),
                override_script=self._read_text(bundle.script),
            )
            opened.pop_all()
        log.debug(
            "bundle_loaded",
            bundle=bundle.name,
            dict_id=dictionary.id,
            resource_stores=len(stores),
        )
        return dictionary

    def _open_primary(
        self, name: str, entry: StorageEntry
    ) -> tuple[DictionaryHandle | None, str]:
        """Open a primary index, reusing the cached fingerprint when size and mtime match."""
        stat = self._storage.stat(entry.locator)
        cached = self._cache.get(entry.locator)
        if cached is not None and cached.matches(stat.size_bytes, stat.modified_at_ms):
            log.debug("fingerprint_cache_hit", locator=entry.locator)
            handle = self._open_handle(entry.locator, is_resource_store=False)
            return handle, cached.fingerprint

        fd = self._storage.open_descriptor(entry.locator)
        try:
            with os.fdopen(fd, "rb", closefd=False) as stream:
                fingerprint = compute_fingerprint(stream, self._settings.sample_window_bytes)
            handle = DictionaryHandle.open(
                self._engine, fd, entry.locator, is_resource_store=False
            )
        except BaseException:
            os.close(fd)
            raise
        if handle is None:
            os.close(fd)
            log.warning("primary_open_rejected", locator=entry.locator)
            return None, fingerprint

        if not is_fallback(fingerprint):
            self._cache.put(
                FingerprintEntry(
                    locator=entry.locator,
                    size_bytes=stat.size_bytes,
                    modified_at_ms=stat.modified_at_ms,
                    fingerprint=fingerprint,
                    display_name=name,
                )
            )
        return handle, fingerprint

    def _open_handle(self, locator: str, *, is_resource_store: bool) -> DictionaryHandle | None:
        fd = self._storage.open_descriptor(locator)
        try:
            handle = DictionaryHandle.open(
                self._engine, fd, locator, is_resource_store=is_resource_store
            )
        except BaseException:
            os.close(fd)
            raise
        if handle is None:
            os.close(fd)
        return handle

    def _read_text(self, entry: StorageEntry | None) -> str:
        if entry is None:
            return ""
        try:
            with self._storage.open_stream(entry.locator) as stream:
                return stream.read().decode("utf-8", errors="replace")
        except OSError:
            log.warning("override_read_error", locator=entry.locator, exc_info=True)
            return ""
