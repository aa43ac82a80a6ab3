from __future__ import annotations

from pydantic import BaseModel


class FingerprintEntry(BaseModel):
    """Cached content fingerprint for one primary index file."""

    locator: str  # Storage locator of the file (primary key)
    size_bytes: int
    modified_at_ms: int
    fingerprint: str  # Hex digest, doubles as the dictionary id
    display_name: str

    def matches(self, size_bytes: int, modified_at_ms: int) -> bool:
        """True while the live file still has the size and mtime this entry was made from."""
        return self.size_bytes == size_bytes and self.modified_at_ms == modified_at_ms
