"""LLM completion providers used by AI-prompt dictionaries.

Providers raise ``CompletionError`` on any failure. The query engine turns
that into the text of the dictionary's result; no retry or backoff happens here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import httpx
import structlog

from polydict.config import CompletionSettings
from polydict.errors import CompletionError

if TYPE_CHECKING:
    from polydict.models.dictionary import LLMProvider

log = structlog.get_logger()


class CompletionProvider(Protocol):
    async def complete(self, model: str, api_key: str, prompt: str) -> str: ...


def build_http_client(settings: CompletionSettings | None = None) -> httpx.AsyncClient:
    settings = settings or CompletionSettings()
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"content-type": "application/json"},
    )


class GeminiCompletionClient:
    """``generateContent`` over the Gemini REST API."""

    def __init__(
        self, client: httpx.AsyncClient, settings: CompletionSettings | None = None
    ) -> None:
        self._client = client
        self._settings = settings or CompletionSettings()

    async def complete(self, model: str, api_key: str, prompt: str) -> str:
        model = model.strip()
        url = f"{self._settings.base_url.rstrip('/')}/models/{model}:generateContent"
        body = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        try:
            response = await self._client.post(
                url, json=body, headers={"x-goog-api-key": api_key.strip()}
            )
        except httpx.HTTPError as exc:
            log.warning("completion_transport_error", model=model, error=str(exc))
            raise CompletionError(f"Request failed: {exc}") from exc

        if response.status_code != 200:
            message = _error_message(response)
            log.warning("completion_http_error", model=model, status=response.status_code)
            raise CompletionError(f"HTTP {response.status_code}: {message}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise CompletionError("Provider returned invalid JSON") from exc
        return _extract_text(payload)


def _error_message(response: httpx.Response) -> str:
    try:
        return str(response.json()["error"]["message"])
    except (ValueError, KeyError, TypeError):
        return response.reason_phrase or "request failed"


def _extract_text(payload: Any) -> str:
    """Concatenate the text parts of the first candidate. Empty if there is none."""
    try:
        candidates = payload.get("candidates") or []
        if not candidates:
            return ""
        parts = candidates[0].get("content", {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)
    except (AttributeError, KeyError, IndexError, TypeError) as exc:
        raise CompletionError("Unexpected response shape from provider") from exc


def find_provider(providers: list[LLMProvider], provider_id: str) -> LLMProvider | None:
    return next((p for p in providers if p.id == provider_id), None)
