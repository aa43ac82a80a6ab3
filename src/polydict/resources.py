"""Resolve embedded resource keys (images, audio) to bytes.

Definitions reference resources with whatever path convention their author
used. Resource stores key them with backslashes, usually with a leading one,
and return the payload as hex text.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterable

    from polydict.models.dictionary import LoadedDictionary
    from polydict.registry import DictionaryRegistry

log = structlog.get_logger()

_SEPARATORS = re.compile(r"[\\/]")


def key_variants(key: str) -> list[str]:
    """Candidate store keys for ``key``, most specific first, without duplicates.

    ``img/cat.png`` yields ``\\img\\cat.png``, ``img\\cat.png``, ``\\cat.png``
    and ``cat.png``.
    """
    backslashed = key.replace("/", "\\").lstrip("\\")
    basename = _SEPARATORS.split(key)[-1]
    return list(dict.fromkeys(["\\" + backslashed, backslashed, "\\" + basename, basename]))


def decode_hex(text: str) -> bytes:
    """Decode hex text, ignoring whitespace and a dangling odd digit."""
    digits = "".join(text.split())
    if len(digits) % 2:
        digits = digits[:-1]
    return bytes.fromhex(digits)


def find_resource(dictionaries: Iterable[LoadedDictionary], key: str) -> bytes | None:
    """Try every key variant against every resource store; first non-blank hit wins.

    Variants are the outer loop, so a more specific spelling in any store beats
    a bare file name in an earlier one. Blocking; run on a worker thread.
    """
    stores = [(d, store) for d in dictionaries for store in d.resource_stores]
    for variant in key_variants(key):
        for dictionary, store in stores:
            hits = store.lookup(variant)
            if not hits or not hits[0].strip():
                continue
            try:
                data = decode_hex(hits[0])
            except ValueError:
                log.warning("resource_not_hex", dict_id=dictionary.id, key=variant)
                continue
            log.debug("resource_found", key=key, variant=variant, dict_id=dictionary.id)
            return data
    return None


class ResourceResolver:
    def __init__(self, registry: DictionaryRegistry) -> None:
        self._registry = registry

    async def resolve(self, key: str, dict_id: str | None = None) -> bytes | None:
        """Bytes for ``key`` from one dictionary's stores, or from all when ``dict_id`` is None."""
        snapshot = self._registry.snapshot()
        if dict_id is not None:
            snapshot = tuple(d for d in snapshot if d.id == dict_id)
        if not snapshot or not key:
            return None
        try:
            return await asyncio.to_thread(find_resource, snapshot, key)
        except Exception:
            log.warning("resource_lookup_error", key=key, dict_id=dict_id, exc_info=True)
            return None
