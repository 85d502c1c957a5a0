"""Effects — the only way container state changes.

An effect is fn(effects, *args, **kwargs). Whatever it returns is awaited
until it is no longer awaitable, so plain values, coroutines and futures are
all handled the same way. The settled value is classified:

- Transform(fn): fn(current_state) -> partial state, merged via apply_patch.
  The invocation resolves to the post-patch snapshot.
- Value(value): no state change. The invocation resolves to value.

A bare callable counts as a Transform and anything else as a Value; return
Value(fn) explicitly to resolve to a function without touching state.

Every call returns an asyncio.Task. Invocations race: patches land in the
order their chains finish, so on overlapping keys the last to resolve wins.
Templates built with serialize_effects=True run one invocation at a time.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Mapping

from nestfx._tracking import current_effect, held_locks
from nestfx.errors import PatchError
from nestfx.middleware import EffectEvent, dispatch

if TYPE_CHECKING:
    from nestfx.container import ContainerInstance

logger = logging.getLogger("nestfx.effects")


@dataclass(frozen=True)
class Transform:
    fn: Callable[[Mapping[str, Any]], Any]


@dataclass(frozen=True)
class Value:
    value: Any


def classify(outcome: Any) -> Transform | Value:
    """Tag a settled effect outcome."""
    if isinstance(outcome, (Transform, Value)):
        return outcome
    if callable(outcome):
        return Transform(outcome)
    return Value(outcome)


async def settle(outcome: Any) -> Any:
    """Await outcome until it is a plain value."""
    while inspect.isawaitable(outcome):
        outcome = await outcome
    return outcome


class EffectExecutor:
    """Runs a container's effects against that container's state."""

    __slots__ = ("_instance", "_lock", "_in_flight")

    def __init__(self, instance: ContainerInstance) -> None:
        self._instance = instance
        self._lock = asyncio.Lock() if instance.template.serialize_effects else None
        # Strong refs so fire-and-forget invocations are not garbage collected mid-run.
        self._in_flight: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> frozenset[asyncio.Task]:
        return frozenset(self._in_flight)

    def invoke(self, name: str, *args: Any, **kwargs: Any) -> asyncio.Task:
        """Start effect name. Must be called with an event loop running."""
        fn = self._instance.template.effects[name]
        loop = asyncio.get_running_loop()
        task = loop.create_task(
            self._guarded(name, fn, args, kwargs),
            name=f"nestfx:{self._instance.id}:{name}",
        )
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _guarded(self, name: str, fn: Callable, args: tuple, kwargs: dict) -> Any:
        instance = self._instance
        if self._lock is None or instance.id in held_locks.get():
            return await self._run(name, fn, args, kwargs)
        async with self._lock:
            token = held_locks.set(held_locks.get() | {instance.id})
            try:
                return await self._run(name, fn, args, kwargs)
            finally:
                held_locks.reset(token)

    async def _run(self, name: str, fn: Callable, args: tuple, kwargs: dict) -> Any:
        instance = self._instance
        if instance.destroyed:
            logger.warning("Effect %s invoked on destroyed container %r; ignored", name, instance)
            return None

        previous = instance.state
        token = current_effect.set((instance.id, name))
        logger.debug("[%d] effect %s started", instance.id, name)
        try:
            result = classify(await settle(fn(instance.effects, *args, **kwargs)))
            if isinstance(result, Transform):
                patch = await settle(result.fn(instance.state))
                if not isinstance(patch, Mapping):
                    raise PatchError(
                        f"Effect {name!r} transform must return a mapping, got {type(patch).__name__}"
                    )
                snapshot = instance.apply_patch(patch)
                resolved = instance.state if snapshot is None else snapshot
            else:
                resolved = result.value
        except Exception as exc:
            logger.debug("[%d] effect %s failed: %r", instance.id, name, exc)
            dispatch(
                instance.template.middleware, "on_effect",
                EffectEvent(instance.id, name, previous, previous, exc),
            )
            raise
        finally:
            current_effect.reset(token)

        dispatch(
            instance.template.middleware, "on_effect",
            EffectEvent(instance.id, name, previous, instance.state),
        )
        logger.debug("[%d] effect %s settled", instance.id, name)
        return resolved
