"""Exceptions raised by nestfx.

Definition errors surface when a template is built or attached. Effect
failures are never wrapped: whatever the effect raised reaches the caller.
Stale targets (destroyed containers) are logged rather than raised.
"""

from __future__ import annotations


class NestfxError(Exception):
    """Base class for every error nestfx raises itself."""


class DefinitionError(NestfxError, ValueError):
    """A container template is malformed or inconsistent."""


class CyclicComputedError(DefinitionError):
    """Computed values depend on each other in a loop."""

    def __init__(self, cycle: tuple[str, ...]) -> None:
        self.cycle = cycle
        super().__init__("Cyclic computed dependency: " + " -> ".join(cycle))


class PatchError(NestfxError, TypeError):
    """A state patch was not a mapping."""
