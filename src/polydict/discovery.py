"""Group the files of one folder into dictionary bundles.

A bundle is every file sharing a base name once the dictionary suffix is
stripped: ``foo.mdx``, ``foo.mdd``, ``foo.1.mdd``, ``foo.css`` and ``foo.js``
all belong to bundle ``foo``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from polydict.storage import Storage, StorageEntry

PRIMARY_SUFFIX = ".mdx"
RESOURCE_SUFFIX = ".mdd"
STYLE_SUFFIX = ".css"
SCRIPT_SUFFIX = ".js"
HIDDEN_PREFIX = "."

_BUNDLE_SUFFIX = re.compile(r"(\.\d+)?\.(mdx|mdd|css|js)$", re.IGNORECASE)


@dataclass
class Bundle:
    name: str
    primary: StorageEntry | None = None
    resources: list[StorageEntry] = field(default_factory=list)
    style: StorageEntry | None = None
    script: StorageEntry | None = None

    @property
    def is_empty(self) -> bool:
        return self.primary is None and not self.resources


def bundle_key(file_name: str) -> str:
    return _BUNDLE_SUFFIX.sub("", file_name)


def group_bundles(entries: list[StorageEntry]) -> list[Bundle]:
    """Group visible files into bundles, in order of first appearance.

    Directories and hidden entries are skipped. Within a bundle the first
    primary index, style and script file win; every resource store is kept.
    Files with no recognised suffix form bundles with nothing to open.
    """
    bundles: dict[str, Bundle] = {}
    for entry in entries:
        if entry.is_dir or entry.name.startswith(HIDDEN_PREFIX):
            continue
        key = bundle_key(entry.name)
        bundle = bundles.setdefault(key, Bundle(name=key))
        lower = entry.name.lower()
        if lower.endswith(PRIMARY_SUFFIX):
            if bundle.primary is None:
                bundle.primary = entry
        elif lower.endswith(RESOURCE_SUFFIX):
            bundle.resources.append(entry)
        elif lower.endswith(STYLE_SUFFIX):
            if bundle.style is None:
                bundle.style = entry
        elif lower.endswith(SCRIPT_SUFFIX):
            if bundle.script is None:
                bundle.script = entry
    return list(bundles.values())


def discover_bundles(storage: Storage, folder: str) -> list[Bundle]:
    """List ``folder`` (non-recursively) and return its loadable bundles."""
    return [b for b in group_bundles(storage.list_children(folder)) if not b.is_empty]
