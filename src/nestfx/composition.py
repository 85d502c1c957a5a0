"""Composition — how a container sees its ancestors.

Containers form a tree through explicit parent references. Reads and effect
lookups walk from the container towards the root and stop at the first level
that defines the name: nearest wins. Nothing here is stored; both views are
computed on demand from the live chain.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, Iterator

from nestfx._tracking import ABSENT

if TYPE_CHECKING:
    import asyncio

    from nestfx.container import ContainerInstance


def lineage(instance: ContainerInstance) -> Iterator[ContainerInstance]:
    """Yield instance, its parent, its grandparent, ... up to the root."""
    node = instance
    while node is not None:
        yield node
        node = node.parent


def owner_of_effect(instance: ContainerInstance, name: str) -> ContainerInstance | None:
    """Nearest container in the chain that defines effect name."""
    for node in lineage(instance):
        if name in node.template.effects:
            return node
    return None


class CompositionView(Mapping):
    """Read-only merged state + computed view, nearest wins.

    Follows the Mapping protocol, so a missing key raises KeyError here;
    ContainerInstance.get_state returns ABSENT instead.
    """

    __slots__ = ("_instance",)

    def __init__(self, instance: ContainerInstance) -> None:
        self._instance = instance

    def __getitem__(self, key: str) -> Any:
        value = self._instance.get_state(key)
        if value is ABSENT:
            raise KeyError(key)
        return value

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for node in lineage(self._instance):
            for key in node.own_keys():
                if key not in seen:
                    seen.add(key)
                    yield key

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __repr__(self) -> str:
        return f"CompositionView({self._instance!r}, keys={list(self)!r})"


class EffectsView:
    """Merged effects: own effects first, then each ancestor's.

    Usage:
        await instance.effects.increment(2)
        await instance.effects["increment"](2)

    Calling an ancestor's effect runs it against the ancestor's state.
    """

    __slots__ = ("_instance",)

    def __init__(self, instance: ContainerInstance) -> None:
        self._instance = instance

    def _bind(self, name: str) -> Callable[..., asyncio.Task] | None:
        owner = owner_of_effect(self._instance, name)
        if owner is None:
            return None

        def invoke(*args: Any, **kwargs: Any) -> asyncio.Task:
            return owner.executor.invoke(name, *args, **kwargs)

        invoke.__name__ = name
        invoke.__qualname__ = f"{owner.template.name}.{name}"
        return invoke

    def __getattr__(self, name: str) -> Callable[..., asyncio.Task]:
        if name.startswith("__"):
            raise AttributeError(name)
        bound = self._bind(name)
        if bound is None:
            raise AttributeError(f"No effect named {name!r} in {self._instance!r} or its ancestors")
        return bound

    def __getitem__(self, name: str) -> Callable[..., asyncio.Task]:
        bound = self._bind(name)
        if bound is None:
            raise KeyError(name)
        return bound

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and owner_of_effect(self._instance, name) is not None

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for node in lineage(self._instance):
            for name in node.template.effects:
                if name not in seen:
                    seen.add(name)
                    yield name

    def __repr__(self) -> str:
        return f"EffectsView({self._instance!r}, effects={list(self)!r})"
