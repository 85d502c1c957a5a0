"""Change notification — signal subscribers only about keys they read.

A Subscription learns its read-set the same way computed values learn their
dependencies: a tracked pass records every key read through a TrackedView.
After each patch the container hands the notifier the changed keys, and only
subscriptions whose read-set intersects them are called.

Subscriptions that have never read anything are not called at all.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator

from nestfx._tracking import TrackedView

logger = logging.getLogger("nestfx.notifier")

OnChange = Callable[[frozenset], None]


class Subscription:
    """A subscriber's handle: tracked reads in, change signals out.

    Calling the subscription unsubscribes it, so it can be used wherever a
    plain disposer function is expected.
    """

    __slots__ = ("_notifier", "_on_change", "_read", "_read_set", "_pass", "_disposed")

    def __init__(self, notifier: ChangeNotifier, on_change: OnChange, read: Callable[[str], object]) -> None:
        self._notifier = notifier
        self._on_change = on_change
        self._read = read
        self._read_set: frozenset[str] | None = None
        self._pass: TrackedView | None = None
        self._disposed = False

    @property
    def read_set(self) -> frozenset[str] | None:
        """Keys read during the last pass; None until a read was tracked."""
        return self._read_set

    @property
    def disposed(self) -> bool:
        return self._disposed

    @contextmanager
    def render(self) -> Iterator[TrackedView]:
        """Run one tracked pass. The keys read replace the previous read-set.

        Usage:
            with sub.render() as view:
                label.update(f"{view['count']} items")
        """
        view = TrackedView(self._read)
        outer, self._pass = self._pass, view
        try:
            yield view
        finally:
            self._pass = outer
            self._read_set = view.reads

    def track(self, key: str) -> object:
        """Read key and record it in the current pass (or the read-set)."""
        if self._pass is not None:
            return self._pass[key]
        self._read_set = (self._read_set or frozenset()) | {key}
        return self._read(key)

    def _signal(self, changed: frozenset) -> None:
        if self._disposed or not self._read_set or self._read_set.isdisjoint(changed):
            return
        try:
            self._on_change(changed)
        except Exception:
            logger.exception("Subscriber %r failed handling change to %s", self._on_change, sorted(changed))

    def dispose(self) -> None:
        if not self._disposed:
            self._disposed = True
            self._notifier._remove(self)

    def __call__(self) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else f"reads={sorted(self._read_set or ())!r}"
        return f"Subscription({state})"


class ChangeNotifier:
    """Holds a container's subscriptions and fans out change signals."""

    __slots__ = ("_read", "_subscriptions")

    def __init__(self, read: Callable[[str], object]) -> None:
        self._read = read
        self._subscriptions: list[Subscription] = []

    def subscribe(self, on_change: OnChange) -> Subscription:
        sub = Subscription(self, on_change, self._read)
        self._subscriptions.append(sub)
        return sub

    def notify(self, changed: Iterable[str]) -> None:
        changed = frozenset(changed)
        if not changed:
            return
        # Snapshot: callbacks may subscribe or unsubscribe.
        for sub in list(self._subscriptions):
            sub._signal(changed)

    def _remove(self, sub: Subscription) -> None:
        try:
            self._subscriptions.remove(sub)
        except ValueError:
            pass  # already removed

    def clear(self) -> None:
        for sub in list(self._subscriptions):
            sub._disposed = True
        self._subscriptions.clear()

    def __len__(self) -> int:
        return len(self._subscriptions)
