"""Content fingerprints for primary index files.

A fingerprint hashes three fixed-size samples (start, middle, end) plus the
file size, so it is cheap to compute on multi-gigabyte files and stable for as
long as the file is unchanged. It is an identity, not an integrity check.
"""

from __future__ import annotations

import hashlib
import os
import time
from typing import IO

import structlog

log = structlog.get_logger()

SAMPLE_WINDOW = 4096
FALLBACK_PREFIX = "unknown_hash_"


def compute_fingerprint(stream: IO[bytes], window: int = SAMPLE_WINDOW) -> str:
    """Return the hex fingerprint of ``stream``, leaving its position at 0.

    The stream may share its offset with a descriptor the caller later hands
    to the index engine, so the position is rewound even when hashing fails.
    On I/O failure a time-derived fallback id is returned instead.
    """
    try:
        size = stream.seek(0, os.SEEK_END)
        digest = hashlib.md5(usedforsecurity=False)

        stream.seek(0)
        digest.update(stream.read(window))

        if size > 2 * window:
            stream.seek(size // 2)
            digest.update(stream.read(window))

        if size > window:
            stream.seek(max(0, size - window))
            digest.update(stream.read(window))

        digest.update(size.to_bytes(8, "big", signed=True))
        return digest.hexdigest()
    except (OSError, ValueError):
        log.warning("fingerprint_failed", exc_info=True)
        return fallback_fingerprint()
    finally:
        try:
            stream.seek(0)
        except (OSError, ValueError):
            log.debug("fingerprint_rewind_failed")


def fallback_fingerprint() -> str:
    return f"{FALLBACK_PREFIX}{time.time_ns()}"


def is_fallback(fingerprint: str) -> bool:
    """Fallback ids are unique per call and must never be cached."""
    return fingerprint.startswith(FALLBACK_PREFIX)
