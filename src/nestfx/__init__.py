"""nestfx: nested, asynchronous state containers for Python."""

from importlib.metadata import version as _version

__version__ = _version("nestfx")

from nestfx._tracking import ABSENT, TrackedView
from nestfx.errors import NestfxError, DefinitionError, CyclicComputedError, PatchError
from nestfx.template import ContainerTemplate, provide_state
from nestfx.computed import ComputedCache, ComputedEntry
from nestfx.effects import Transform, Value, EffectExecutor
from nestfx.composition import CompositionView, EffectsView, lineage
from nestfx.notifier import ChangeNotifier, Subscription
from nestfx.middleware import Middleware, LoggingMiddleware, EffectEvent, PatchEvent
from nestfx.container import ContainerInstance, attach, detach, subscribe
# textual NOT auto-imported — opt-in only

__all__ = [
    "ABSENT",
    "TrackedView",
    "NestfxError",
    "DefinitionError",
    "CyclicComputedError",
    "PatchError",
    "ContainerTemplate",
    "provide_state",
    "ComputedCache",
    "ComputedEntry",
    "Transform",
    "Value",
    "EffectExecutor",
    "CompositionView",
    "EffectsView",
    "lineage",
    "ChangeNotifier",
    "Subscription",
    "Middleware",
    "LoggingMiddleware",
    "EffectEvent",
    "PatchEvent",
    "ContainerInstance",
    "attach",
    "detach",
    "subscribe",
]
