"""
Explicit session key sets.

The processed-key set (orders already materialised into receipts) and the
tombstone set (keys whose receipts were removed and must not be recreated)
are owned by the ReconciliationSession and shared with the services that
read or extend them.  Keys are stored normalised.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from procurement_kernel.domain.keys import INDENT_KEY_PREFIX, normalize


def _canonical(key: str) -> str:
    if key.upper().startswith(INDENT_KEY_PREFIX):
        return INDENT_KEY_PREFIX + normalize(key[len(INDENT_KEY_PREFIX):])
    return normalize(key)


class KeySet:
    """Mutable set of normalised order keys."""

    def __init__(self, name: str, keys: Iterable[str] = ()):
        self.name = name
        self._keys: set[str] = set()
        self.update(keys)

    def add(self, key: str) -> None:
        canonical = _canonical(key)
        if canonical:
            self._keys.add(canonical)

    def update(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.add(key)

    def discard(self, key: str) -> None:
        self._keys.discard(_canonical(key))

    def clear(self) -> None:
        self._keys.clear()

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._keys)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and _canonical(key) in self._keys

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._keys))

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        return f"KeySet({self.name!r}, size={len(self._keys)})"
