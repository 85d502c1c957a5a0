"""Container instances — live state attached from a template.

A ContainerInstance owns its state snapshot, its computed cache, its
subscribers and its effect executor. State is only ever replaced, never
mutated in place: apply_patch builds the merged record and swaps it in, so a
reader sees either all of a patch or none of it.

attach()/detach() are the mount/unmount boundary for whatever hosts the tree.
"""

from __future__ import annotations

import itertools
import logging
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from nestfx._tracking import ABSENT, current_effect
from nestfx.composition import CompositionView, EffectsView
from nestfx.computed import ComputedCache
from nestfx.effects import EffectExecutor
from nestfx.errors import DefinitionError, PatchError
from nestfx.middleware import PatchEvent, dispatch
from nestfx.notifier import ChangeNotifier, OnChange, Subscription
from nestfx.template import ContainerTemplate

logger = logging.getLogger("nestfx.container")

_id_counter = itertools.count(1)


class ContainerInstance:
    """One mounted container. Build with attach(), not directly."""

    __slots__ = (
        "id", "template", "parent", "children", "destroyed",
        "_state", "_cache", "_notifier", "executor", "effects", "view",
    )

    def __init__(
        self,
        template: ContainerTemplate,
        parent: ContainerInstance | None = None,
        initial: Mapping[str, Any] | None = None,
    ) -> None:
        if parent is not None and parent.destroyed:
            raise DefinitionError(f"Cannot attach {template.name!r} under destroyed container {parent!r}")
        self.id = next(_id_counter)
        self.template = template
        self.parent = parent
        self.children: list[ContainerInstance] = []
        self.destroyed = False
        seed = template.build_state() if initial is None else template.check_state(initial)
        self._state: Mapping[str, Any] = MappingProxyType(seed)
        self._cache = ComputedCache(template.computed, self.get_state)
        self._notifier = ChangeNotifier(self.get_state)
        self.executor = EffectExecutor(self)
        self.effects = EffectsView(self)
        self.view = CompositionView(self)
        if parent is not None:
            parent.children.append(self)

    @property
    def state(self) -> Mapping[str, Any]:
        """Own state snapshot. Read-only; replaced wholesale on every patch."""
        return self._state

    @property
    def cache(self) -> ComputedCache:
        return self._cache

    def own_keys(self) -> list[str]:
        return [*self._state, *self._cache.keys()]

    def get_state(self, key: str) -> Any:
        """Nearest-wins read: own state, own computed, then ancestors. ABSENT if none."""
        if key in self._state:
            return self._state[key]
        if key in self._cache:
            return self._cache.get(key)
        if self.parent is not None:
            return self.parent.get_state(key)
        return ABSENT

    def apply_patch(self, patch: Mapping[str, Any]) -> Mapping[str, Any] | None:
        """Shallow-merge patch into state, invalidate, notify. Returns the new snapshot.

        Called by the effect executor. Dropped (returns None) once destroyed.
        """
        if not isinstance(patch, Mapping):
            raise PatchError(f"Patch must be a mapping, got {type(patch).__name__}")
        clash = sorted(k for k in patch if k in self._cache)
        if clash:
            raise PatchError(f"Patch writes computed keys of {self!r}: {', '.join(clash)}")
        if self.destroyed:
            logger.warning("Dropping patch %s for destroyed container %r", sorted(patch), self)
            return None

        previous = self._state
        self._state = MappingProxyType({**previous, **patch})
        self._changed(patch.keys())

        running = current_effect.get()
        effect_name = running[1] if running is not None and running[0] == self.id else None
        dispatch(self.template.middleware, "on_patch", PatchEvent(self.id, effect_name, previous, self._state))
        return self._state

    def _changed(self, keys: Iterable[str]) -> None:
        """Invalidate, notify, and pass the change down to descendants."""
        keys = frozenset(keys)
        changed = keys | self._cache.invalidate(keys)
        self._notifier.notify(changed)
        for child in list(self.children):
            child._ancestor_changed(changed)

    def _ancestor_changed(self, keys: frozenset[str]) -> None:
        visible = keys.difference(self._state, self._cache.keys())
        if visible:
            self._changed(visible)

    def subscribe(self, on_change: OnChange) -> Subscription:
        return self._notifier.subscribe(on_change)

    def destroy(self) -> None:
        """Detach this container and every descendant. Idempotent."""
        if self.destroyed:
            return
        for child in list(self.children):
            child.destroy()
        self.destroyed = True
        self._cache.clear()
        self._notifier.clear()
        if self.parent is not None and self in self.parent.children:
            self.parent.children.remove(self)
        logger.debug("Detached %r", self)

    def __repr__(self) -> str:
        state = "destroyed" if self.destroyed else f"keys={sorted(self._state)!r}"
        return f"ContainerInstance({self.template.name!r}#{self.id}, {state})"


def attach(
    template: ContainerTemplate,
    parent: ContainerInstance | None = None,
    *,
    initial: Mapping[str, Any] | None = None,
) -> ContainerInstance:
    """Mount a container from template under parent (None for a root).

    initial, when given, seeds state in place of template.initial_state
    (hydrating a previously captured snapshot).
    """
    instance = ContainerInstance(template, parent, initial)
    logger.debug("Attached %r under %r", instance, parent)
    return instance


def detach(instance: ContainerInstance) -> None:
    """Unmount instance and its subtree. Effects still in flight are dropped on arrival."""
    instance.destroy()


def subscribe(instance: ContainerInstance, on_change: OnChange) -> Subscription:
    """Subscribe to changes of the keys read through the returned Subscription.

    Usage:
        sub = subscribe(instance, lambda changed: rerender())
        with sub.render() as view:
            draw(view["count"])
        ...
        sub()  # unsubscribe
    """
    return instance.subscribe(on_change)
