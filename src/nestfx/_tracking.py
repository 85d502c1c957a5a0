"""Read tracking — the shared plumbing for computed values and subscribers.

Computed functions and subscribers receive a TrackedView: an explicit
accessor that records every key read through it. The recorded set becomes
the computed entry's dependency set or the subscriber's read-set.

Uses contextvars to carry which effect is currently running, so patches can
be attributed to an effect and serialized containers can tell a nested call
from a competing one.
"""

from __future__ import annotations

import contextvars
from typing import Callable


class _Absent:
    """Marker for a key that no container in the chain defines."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return "ABSENT"


ABSENT = _Absent()

# (instance id, effect name) of the effect whose chain is running in this task.
current_effect: contextvars.ContextVar[tuple[int, str] | None] = contextvars.ContextVar(
    "current_effect", default=None
)

# Ids of serialized containers whose effect lock this task already holds.
held_locks: contextvars.ContextVar[frozenset[int]] = contextvars.ContextVar(
    "held_locks", default=frozenset()
)


class TrackedView:
    """Read-only accessor that records which keys were read.

    Usage:
        view = TrackedView(instance.get_state)
        view["count"]           # -> value, or ABSENT
        view.get("label", "")   # -> value, or the default
        view.reads              # frozenset({"count", "label"})
    """

    __slots__ = ("_read", "_reads")

    def __init__(self, read: Callable[[str], object]) -> None:
        self._read = read
        self._reads: set[str] = set()

    def get(self, key: str, default: object = ABSENT) -> object:
        self._reads.add(key)
        value = self._read(key)
        return default if value is ABSENT else value

    def __getitem__(self, key: str) -> object:
        return self.get(key)

    @property
    def reads(self) -> frozenset[str]:
        return frozenset(self._reads)

    def __repr__(self) -> str:
        return f"TrackedView(reads={sorted(self._reads)!r})"
