"""Computed values — derived state with automatic dependency tracking.

Each container owns a ComputedCache. Reading a computed key evaluates its
function with a TrackedView over the container's merged view; the keys the
function reads become that entry's dependency set and the result is cached.
When any dependency changes, the entry is invalidated. On next read, it
re-evaluates.

Computed values are lazy — they only recompute when read.
"""

from __future__ import annotations

from typing import Callable, Iterable, Mapping

from nestfx._tracking import TrackedView
from nestfx.errors import CyclicComputedError

_UNSET = object()


class ComputedEntry:
    """Cached value plus the keys read while producing it."""

    __slots__ = ("value", "dependencies", "valid")

    def __init__(self) -> None:
        self.value: object = _UNSET
        self.dependencies: frozenset[str] = frozenset()
        self.valid = False

    def __repr__(self) -> str:
        state = f"cached={self.value!r}" if self.valid else "dirty"
        return f"ComputedEntry({state}, deps={sorted(self.dependencies)!r})"


class ComputedCache:
    """Per-container memo table for computed keys."""

    __slots__ = ("_fns", "_read", "_entries", "_dependents", "_evaluating")

    def __init__(self, fns: Mapping[str, Callable], read: Callable[[str], object]) -> None:
        self._fns = fns
        self._read = read
        self._entries: dict[str, ComputedEntry] = {key: ComputedEntry() for key in fns}
        # dependency key -> computed keys whose last evaluation read it
        self._dependents: dict[str, set[str]] = {}
        self._evaluating: list[str] = []

    def __contains__(self, key: str) -> bool:
        return key in self._fns

    def keys(self):
        return self._fns.keys()

    def entry(self, key: str) -> ComputedEntry:
        return self._entries[key]

    def get(self, key: str) -> object:
        """Read the computed value. Recomputes if dirty."""
        entry = self._entries[key]
        if not entry.valid:
            self._recompute(key, entry)
        return entry.value

    def _recompute(self, key: str, entry: ComputedEntry) -> None:
        """Re-evaluate the function, tracking dependencies."""
        if key in self._evaluating:
            start = self._evaluating.index(key)
            raise CyclicComputedError(tuple(self._evaluating[start:]) + (key,))

        self._unlink(key, entry)
        view = TrackedView(self._read)
        self._evaluating.append(key)
        try:
            value = self._fns[key](view)
        finally:
            self._evaluating.pop()

        entry.value = value
        entry.dependencies = view.reads
        entry.valid = True
        for dep in entry.dependencies:
            self._dependents.setdefault(dep, set()).add(key)

    def _unlink(self, key: str, entry: ComputedEntry) -> None:
        for dep in entry.dependencies:
            dependents = self._dependents.get(dep)
            if dependents is not None:
                dependents.discard(key)
                if not dependents:
                    del self._dependents[dep]
        entry.dependencies = frozenset()

    def invalidate(self, keys: Iterable[str]) -> frozenset[str]:
        """Invalidate every entry that read any of keys, transitively.

        Returns every computed key reachable from keys, including entries
        already dirty: they stay linked until recomputed, so readers of a
        dirty entry keep hearing about its dependencies.
        """
        invalidated: set[str] = set()
        pending = list(keys)
        while pending:
            changed = pending.pop()
            for dependent in list(self._dependents.get(changed, ())):
                if dependent in invalidated:
                    continue
                entry = self._entries[dependent]
                entry.valid = False
                entry.value = _UNSET
                invalidated.add(dependent)
                pending.append(dependent)
        return frozenset(invalidated)

    def clear(self) -> None:
        """Drop every cached value. Entries re-evaluate from scratch on next read."""
        for entry in self._entries.values():
            entry.value = _UNSET
            entry.dependencies = frozenset()
            entry.valid = False
        self._dependents.clear()

    def __repr__(self) -> str:
        valid = sorted(k for k, e in self._entries.items() if e.valid)
        return f"ComputedCache(keys={sorted(self._fns)!r}, valid={valid!r})"
