"""Follow ``@@@LINK=`` cross-references inside dictionary entries."""

from __future__ import annotations

from collections.abc import Callable, Iterator

REDIRECT_PREFIX = "@@@LINK="
MAX_REDIRECT_DEPTH = 5


def redirect_target(entry: str) -> str | None:
    """Return the word an entry redirects to, or None for a real definition."""
    if not entry.startswith(REDIRECT_PREFIX):
        return None
    return entry[len(REDIRECT_PREFIX) :].strip()


def resolve_redirects(
    lookup: Callable[[str], list[str]],
    word: str,
    depth: int = 0,
    max_depth: int = MAX_REDIRECT_DEPTH,
) -> list[str]:
    """Look up ``word`` and splice every redirect's target entries in its place.

    Words are looked up at depths ``depth`` through ``max_depth``; anything
    deeper resolves to nothing, so cyclic chains end quietly instead of failing
    the whole lookup. Walks an explicit stack rather than recursing.
    """
    if depth > max_depth:
        return []

    resolved: list[str] = []
    stack: list[tuple[Iterator[str], int]] = [(iter(lookup(word)), depth)]
    while stack:
        entries, level = stack[-1]
        entry = next(entries, None)
        if entry is None:
            stack.pop()
            continue
        target = redirect_target(entry)
        if target is None:
            resolved.append(entry)
        elif level + 1 <= max_depth:
            stack.append((iter(lookup(target)), level + 1))
    return resolved
