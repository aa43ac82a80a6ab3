"""Fan queries out across the registered dictionaries.

Every query works on a registry snapshot taken when it starts, so a reload
finishing mid-query never changes what the query sees. Engine calls run on
worker threads. A dictionary that errors contributes nothing; it never fails
the query.
"""

from __future__ import annotations

import asyncio
import html
import math
import zlib
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING
from urllib.parse import quote

import structlog

from polydict.completion import find_provider
from polydict.errors import CompletionError
from polydict.models.dictionary import DictionaryKind, LookupResult, Suggestion
from polydict.redirects import MAX_REDIRECT_DEPTH, resolve_redirects
from polydict.signals import ObservableValue

if TYPE_CHECKING:
    from polydict.completion import CompletionProvider
    from polydict.engine import DictionaryHandle
    from polydict.models.dictionary import AIPrompt, LLMProvider, LoadedDictionary
    from polydict.registry import DictionaryRegistry

log = structlog.get_logger()

WEB_URL_MARKER = "@@WEB_URL@@"
ENTRY_SEPARATOR = "<hr>"
MISSING_PROVIDER_TEXT = "Configuration Error: Provider not found or API Key missing."
EMPTY_COMPLETION_TEXT = "No response generated."


def render_entries(dict_id: str, entries: list[str]) -> str:
    """Join resolved entries for display.

    A single entry is returned untouched. Several entries (homographs) are each
    wrapped in an anchored block with an "Entry N" navigation bar linking to
    the others, then joined with ``<hr>``.
    """
    if len(entries) == 1:
        return entries[0]
    token = f"{zlib.crc32(dict_id.encode('utf-8')):08x}"
    blocks = []
    for index, entry in enumerate(entries):
        nav = []
        for i in range(len(entries)):
            if i == index:
                nav.append(
                    f"<span style='font-weight: bold; margin-right: 10px; color: #333;'>"
                    f"Entry {i + 1}</span>"
                )
            else:
                nav.append(
                    f"<a href='#entry-{token}-{i}' style='margin-right: 10px; "
                    f"text-decoration: none; color: #0066cc;'>Entry {i + 1}</a>"
                )
        blocks.append(
            f"<div id='entry-{token}-{index}' style='margin-bottom: 10px;'>"
            "<div class='entry-nav' style='font-size: 0.85em; color: #666; "
            "margin-bottom: 8px; padding: 4px; background-color: #f5f5f5; "
            f"border-radius: 4px;'>{''.join(nav)}</div>"
            f"{entry}</div>"
        )
    return ENTRY_SEPARATOR.join(blocks)


def web_marker(url_template: str, word: str) -> str:
    """Marker telling the host to open a web page instead of rendering HTML.

    The word is percent-encoded (``quote(word, safe="")``) before it replaces
    ``%s``, so the URL after ``@@WEB_URL@@`` is ready to load as is; hosts
    must not encode it again.
    """
    return WEB_URL_MARKER + url_template.replace("%s", quote(word, safe=""))


class _ProgressTracker:
    """Mean of per-dictionary fractions, published to a signal.

    Fractions are clamped to [0, 1] and never decrease, so the published mean
    is non-decreasing. Runs on the event loop thread only.
    """

    def __init__(self, dict_ids: Iterable[str], signal: ObservableValue[float]) -> None:
        self._fractions = dict.fromkeys(dict_ids, 0.0)
        self._signal = signal

    def update(self, dict_id: str, fraction: float) -> None:
        if math.isnan(fraction):
            return
        fraction = min(max(fraction, 0.0), 1.0)
        if fraction <= self._fractions.get(dict_id, 1.0):
            return
        self._fractions[dict_id] = fraction
        self._signal.set(sum(self._fractions.values()) / len(self._fractions))

    def complete(self, dict_id: str) -> None:
        self.update(dict_id, 1.0)


class QueryEngine:
    def __init__(
        self,
        registry: DictionaryRegistry,
        completion: CompletionProvider | None = None,
        providers: Iterable[LLMProvider] = (),
        redirect_depth_limit: int = MAX_REDIRECT_DEPTH,
    ) -> None:
        self._registry = registry
        self._completion = completion
        self._providers = list(providers)
        self._redirect_depth_limit = redirect_depth_limit
        self.search_progress: ObservableValue[float] = ObservableValue(0.0)

    def set_providers(self, providers: Iterable[LLMProvider]) -> None:
        self._providers = list(providers)

    # ------------------------------------------------------------------
    # Exact lookup
    # ------------------------------------------------------------------

    async def lookup_all(self, word: str) -> list[LookupResult]:
        """Rendered results from every dictionary that has ``word``, in registry order."""
        results = []
        for dictionary in self._registry.snapshot():
            content = await self._render(dictionary, word)
            if content:
                results.append(LookupResult(dictionary.id, dictionary.name, content))
        return results

    async def lookup(self, dict_id: str, word: str) -> str | None:
        """Rendered result from one dictionary, or None if it is unknown or has no entry."""
        dictionary = next((d for d in self._registry.snapshot() if d.id == dict_id), None)
        if dictionary is None:
            return None
        return await self._render(dictionary, word) or None

    async def _render(self, dictionary: LoadedDictionary, word: str) -> str | None:
        try:
            if dictionary.kind is DictionaryKind.WEB and dictionary.web_url_template is not None:
                return web_marker(dictionary.web_url_template, word)
            if dictionary.kind is DictionaryKind.AI_PROMPT and dictionary.ai_prompt is not None:
                return await self._ask(dictionary.ai_prompt, word)
            if dictionary.primary is None:
                return None
            entries = await asyncio.to_thread(
                resolve_redirects,
                dictionary.primary.lookup,
                word,
                0,
                self._redirect_depth_limit,
            )
        except Exception:
            log.warning("lookup_error", dict_id=dictionary.id, word=word, exc_info=True)
            return None
        if not entries:
            return None
        return render_entries(dictionary.id, entries)

    async def _ask(self, prompt: AIPrompt, word: str) -> str:
        """Run an AI-prompt dictionary and wrap the answer for display.

        HTML prompts insert the answer verbatim into ``<div class='ai-wrapper'>``.
        Plain-text prompts HTML-escape it inside ``<pre>``. Provider failures of
        any kind become ``Error: ...`` content rather than dropping the result.
        """
        text = prompt.prompt_template.replace("%s", word)
        provider = find_provider(self._providers, prompt.provider_id)
        if provider is None or not provider.api_key.strip() or self._completion is None:
            answer = MISSING_PROVIDER_TEXT
        else:
            try:
                answer = await self._completion.complete(provider.model, provider.api_key, text)
            except CompletionError as exc:
                answer = f"Error: {exc.message}"
            except Exception as exc:
                log.warning(
                    "completion_unexpected_error", provider_id=provider.id, exc_info=True
                )
                answer = f"Error: {exc}"
            answer = answer or EMPTY_COMPLETION_TEXT
        if prompt.is_html:
            return f"<div class='ai-wrapper'>{answer}</div>"
        return f"<pre>{html.escape(answer)}</pre>"

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    async def suggest_prefix_raw(
        self, prefix: str, limit_to_ids: Iterable[str] | None = None
    ) -> list[Suggestion]:
        return await self._fan_out("prefix", lambda h: h.suggest_prefix(prefix), limit_to_ids)

    async def suggest_regex_raw(
        self, pattern: str, limit_to_ids: Iterable[str] | None = None
    ) -> list[Suggestion]:
        return await self._fan_out("regex", lambda h: h.suggest_regex(pattern), limit_to_ids)

    async def suggest_full_text_raw(
        self, query: str, limit_to_ids: Iterable[str] | None = None
    ) -> list[Suggestion]:
        """Full-text search with progress published on ``search_progress``.

        Progress restarts at 0 and reaches exactly 1.0 once every selected
        dictionary has finished, whether it succeeded or failed.
        """
        self.search_progress.set(0.0)
        selected = self._select_local(limit_to_ids)
        if not selected:
            self.search_progress.set(1.0)
            return []

        tracker = _ProgressTracker((d.id for d, _ in selected), self.search_progress)
        loop = asyncio.get_running_loop()

        async def search(
            dictionary: LoadedDictionary, primary: DictionaryHandle
        ) -> list[Suggestion]:
            def report(fraction: float) -> None:
                loop.call_soon_threadsafe(tracker.update, dictionary.id, fraction)

            try:
                words = await asyncio.to_thread(primary.suggest_full_text, query, report)
            except Exception:
                log.warning("full_text_error", dict_id=dictionary.id, exc_info=True)
                words = []
            finally:
                tracker.complete(dictionary.id)
            return [Suggestion(w, dictionary.id) for w in words]

        batches = await asyncio.gather(*(search(d, h) for d, h in selected))
        return [s for batch in batches for s in batch]

    async def _fan_out(
        self,
        kind: str,
        call: Callable[[DictionaryHandle], list[str]],
        limit_to_ids: Iterable[str] | None,
    ) -> list[Suggestion]:
        async def suggest(
            dictionary: LoadedDictionary, primary: DictionaryHandle
        ) -> list[Suggestion]:
            try:
                words = await asyncio.to_thread(call, primary)
            except Exception:
                log.warning("suggest_error", kind=kind, dict_id=dictionary.id, exc_info=True)
                return []
            return [Suggestion(w, dictionary.id) for w in words]

        selected = self._select_local(limit_to_ids)
        batches = await asyncio.gather(*(suggest(d, h) for d, h in selected))
        return [s for batch in batches for s in batch]

    def _select_local(
        self, limit_to_ids: Iterable[str] | None
    ) -> list[tuple[LoadedDictionary, DictionaryHandle]]:
        """Local dictionaries with a primary index, optionally restricted to ``limit_to_ids``.

        An empty or missing filter selects all of them.
        """
        wanted = set(limit_to_ids or ())
        return [
            (d, d.primary)
            for d in self._registry.snapshot()
            if d.kind is DictionaryKind.LOCAL
            and d.primary is not None
            and (not wanted or d.id in wanted)
        ]
