from __future__ import annotations

from polydict.models.cache import FingerprintEntry
from polydict.models.dictionary import (
    AIPrompt,
    DictionaryKind,
    LLMProvider,
    LoadedDictionary,
    LookupResult,
    Suggestion,
    WebSearchEngine,
)

__all__ = [
    # configuration shapes
    "WebSearchEngine",
    "LLMProvider",
    "AIPrompt",
    # registry
    "DictionaryKind",
    "LoadedDictionary",
    # cache
    "FingerprintEntry",
    # query results
    "LookupResult",
    "Suggestion",
]
