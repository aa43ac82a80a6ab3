from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, NamedTuple

from pydantic import BaseModel

if TYPE_CHECKING:
    from polydict.engine import DictionaryHandle


class WebSearchEngine(BaseModel):
    """A web dictionary: ``url`` contains ``%s`` where the query goes."""

    id: str
    name: str
    url: str


class LLMProvider(BaseModel):
    id: str
    name: str
    type: str = "Google"
    api_key: str = ""
    model: str


class AIPrompt(BaseModel):
    """An LLM-backed dictionary: ``prompt_template`` contains ``%s`` where the query goes."""

    id: str
    name: str
    provider_id: str
    prompt_template: str
    is_html: bool = False


class DictionaryKind(StrEnum):
    LOCAL = "local"
    WEB = "web"
    AI_PROMPT = "ai_prompt"


@dataclass
class LoadedDictionary:
    """A registered dictionary and the engine handles it owns.

    Local dictionaries normally carry a primary index; a bundle with only
    resource stores is still registered (under a locator-derived id) so its
    media can be resolved.
    """

    id: str
    name: str
    kind: DictionaryKind
    primary: DictionaryHandle | None = None
    resource_stores: list[DictionaryHandle] = field(default_factory=list)
    primary_locator: str | None = None
    resource_locators: list[str] = field(default_factory=list)
    override_style: str = ""
    override_script: str = ""
    web_url_template: str | None = None
    ai_prompt: AIPrompt | None = None

    @classmethod
    def from_web_engine(cls, engine: WebSearchEngine) -> LoadedDictionary:
        return cls(
            id=engine.id,
            name=engine.name,
            kind=DictionaryKind.WEB,
            web_url_template=engine.url,
        )

    @classmethod
    def from_ai_prompt(cls, prompt: AIPrompt) -> LoadedDictionary:
        return cls(id=prompt.id, name=prompt.name, kind=DictionaryKind.AI_PROMPT, ai_prompt=prompt)

    def close(self) -> None:
        """Release every engine handle. Safe to call more than once."""
        if self.primary is not None:
            self.primary.close()
        for store in self.resource_stores:
            store.close()


class LookupResult(NamedTuple):
    dict_id: str
    dict_name: str
    content: str  # Rendered HTML, or "@@WEB_URL@@" + an already-encoded URL


class Suggestion(NamedTuple):
    word: str
    dict_id: str
