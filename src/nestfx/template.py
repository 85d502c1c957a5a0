"""Container templates — the immutable schema instances are built from.

A template bundles an initial-state producer, named effects and named
computed values. It is validated once, on construction, and never changes.
Any number of instances can be attached from the same template.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping

from nestfx.errors import DefinitionError

EffectFn = Callable[..., Any]
ComputedFn = Callable[[Any], Any]


def _frozen_callables(kind: str, fns: Mapping[str, Callable] | None) -> Mapping[str, Callable]:
    fns = dict(fns or {})
    for name, fn in fns.items():
        if not isinstance(name, str) or not name:
            raise DefinitionError(f"{kind} names must be non-empty strings, got {name!r}")
        if not callable(fn):
            raise DefinitionError(f"{kind} {name!r} must be callable, got {type(fn).__name__}")
    return MappingProxyType(fns)


@dataclass(frozen=True)
class ContainerTemplate:
    """Immutable container schema.

    initial_state: zero-argument callable returning the initial state mapping.
    effects: effect name -> fn(effects, *args, **kwargs).
    computed: computed key -> fn(view).
    middleware: observers notified around effects and patches.
    serialize_effects: run this container's effects one at a time instead of
        letting them race.
    name: label used in logs and reprs.
    """

    initial_state: Callable[[], Mapping[str, Any]]
    effects: Mapping[str, EffectFn] = field(default_factory=dict)
    computed: Mapping[str, ComputedFn] = field(default_factory=dict)
    middleware: tuple = ()
    serialize_effects: bool = False
    name: str = "container"

    def __post_init__(self) -> None:
        if self.initial_state is None or not callable(self.initial_state):
            raise DefinitionError(
                f"{self.name}: initial_state must be a zero-argument callable, "
                f"got {type(self.initial_state).__name__}"
            )
        try:
            signature = inspect.signature(self.initial_state)
        except (TypeError, ValueError):
            signature = None  # builtins without introspectable signatures
        if signature is not None:
            try:
                signature.bind()
            except TypeError as exc:
                raise DefinitionError(
                    f"{self.name}: initial_state must be callable without arguments ({exc})"
                ) from exc
        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "effects", _frozen_callables("effect", self.effects))
        object.__setattr__(self, "computed", _frozen_callables("computed", self.computed))
        object.__setattr__(self, "middleware", tuple(self.middleware))

    def build_state(self) -> dict[str, Any]:
        """Invoke initial_state and check the result against the template."""
        return self.check_state(self.initial_state())

    def check_state(self, state: Any) -> dict[str, Any]:
        if not isinstance(state, Mapping):
            raise DefinitionError(
                f"{self.name}: initial state must be a mapping, got {type(state).__name__}"
            )
        clash = sorted(set(state) & set(self.computed))
        if clash:
            raise DefinitionError(
                f"{self.name}: keys defined both as state and computed: {', '.join(clash)}"
            )
        return dict(state)

    def __repr__(self) -> str:
        return (
            f"ContainerTemplate({self.name!r}, effects={sorted(self.effects)!r}, "
            f"computed={sorted(self.computed)!r})"
        )


def provide_state(
    initial_state: Callable[[], Mapping[str, Any]],
    effects: Mapping[str, EffectFn] | None = None,
    computed: Mapping[str, ComputedFn] | None = None,
    *,
    middleware=(),
    serialize_effects: bool = False,
    name: str = "container",
) -> ContainerTemplate:
    """Factory for ContainerTemplate.

    Usage:
        counter = provide_state(
            lambda: {"count": 0},
            effects={"increment": lambda effects, by=1: lambda s: {"count": s["count"] + by}},
            computed={"doubled": lambda view: view["count"] * 2},
        )
    """
    return ContainerTemplate(
        initial_state=initial_state,
        effects=effects or {},
        computed=computed or {},
        middleware=middleware,
        serialize_effects=serialize_effects,
        name=name,
    )
