"""Error taxonomy.

Only contract violations cross the public surface. I/O, cache, engine and
completion failures are caught where they happen and degrade to partial or
empty results; ``CompletionError`` is raised by providers but turned into
result content by the query engine.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    NOT_LOADED = "NOT_LOADED"
    COMPLETION_FAILED = "COMPLETION_FAILED"


class PolyDictError(Exception):
    """Base error carrying a machine-readable code."""

    def __init__(self, code: ErrorCode, message: str, recoverable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable


class RegistryNotLoadedError(PolyDictError):
    def __init__(self) -> None:
        super().__init__(
            ErrorCode.NOT_LOADED,
            "No dictionaries loaded yet; call reload() first",
        )


class CompletionError(PolyDictError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.COMPLETION_FAILED, message, recoverable=True)
