"""File enumeration boundary.

``Storage`` is what the loader needs from the storage layer. ``LocalStorage``
implements it on the local filesystem, where a locator is a path string.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import IO, NamedTuple, Protocol


class StorageEntry(NamedTuple):
    name: str
    locator: str
    is_dir: bool


class FileStat(NamedTuple):
    size_bytes: int
    modified_at_ms: int


class Storage(Protocol):
    def list_children(self, folder: str) -> list[StorageEntry]: ...

    def stat(self, locator: str) -> FileStat: ...

    def open_stream(self, locator: str) -> IO[bytes]: ...

    def open_descriptor(self, locator: str) -> int: ...


class LocalStorage:
    """Plain filesystem access. All methods raise ``OSError`` on failure."""

    def list_children(self, folder: str) -> list[StorageEntry]:
        with os.scandir(folder) as it:
            entries = [
                StorageEntry(entry.name, str(Path(folder) / entry.name), entry.is_dir())
                for entry in it
            ]
        # scandir order is filesystem-dependent
        return sorted(entries, key=lambda e: e.name)

    def stat(self, locator: str) -> FileStat:
        st = os.stat(locator)
        return FileStat(st.st_size, st.st_mtime_ns // 1_000_000)

    def open_stream(self, locator: str) -> IO[bytes]:
        return open(locator, "rb")

    def open_descriptor(self, locator: str) -> int:
        return os.open(locator, os.O_RDONLY | getattr(os, "O_BINARY", 0))
