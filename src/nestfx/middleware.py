"""Middleware — observers that watch effects and patches go by.

Middleware is purely observational. A hook that raises is logged and
skipped; it never changes what the effect resolves to or which patch lands.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

logger = logging.getLogger("nestfx.middleware")


@dataclass(frozen=True)
class PatchEvent:
    """One applied patch. effect_name is None when applied outside an effect."""

    instance_id: int
    effect_name: str | None
    previous: Mapping[str, Any]
    next: Mapping[str, Any]


@dataclass(frozen=True)
class EffectEvent:
    """One settled effect invocation.

    next equals previous when the effect produced no transform or failed;
    error holds the exception in the failure case.
    """

    instance_id: int
    effect_name: str
    previous: Mapping[str, Any]
    next: Mapping[str, Any]
    error: BaseException | None = None


class Middleware:
    """Base class. Override either hook; both default to no-ops."""

    def on_effect(self, event: EffectEvent) -> None:
        pass

    def on_patch(self, event: PatchEvent) -> None:
        pass


class LoggingMiddleware(Middleware):
    """Logs every effect and patch to a logger (default: nestfx.middleware)."""

    def __init__(self, log: logging.Logger | None = None, level: int = logging.DEBUG) -> None:
        self._log = log or logger
        self._level = level

    def on_effect(self, event: EffectEvent) -> None:
        if event.error is not None:
            self._log.log(
                self._level, "[%d] effect %s failed: %r",
                event.instance_id, event.effect_name, event.error,
            )
        else:
            self._log.log(self._level, "[%d] effect %s settled", event.instance_id, event.effect_name)

    def on_patch(self, event: PatchEvent) -> None:
        changed = sorted(k for k in event.next if k not in event.previous or event.previous[k] is not event.next[k])
        self._log.log(
            self._level, "[%d] patch from %s: %s",
            event.instance_id, event.effect_name or "<direct>", ", ".join(changed) or "<none>",
        )


def dispatch(hooks: Iterable[Middleware], method: str, event) -> None:
    """Call hook.<method>(event) on every hook, logging failures."""
    for hook in hooks:
        fn = getattr(hook, method, None)
        if fn is None:
            continue
        try:
            fn(event)
        except Exception:
            logger.exception("Middleware %r failed in %s", hook, method)
