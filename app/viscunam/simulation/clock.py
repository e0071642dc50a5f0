import time
from collections.abc import Callable
from typing import Protocol

from viscunam.models.pet_state import PetState
from viscunam.simulation.rules import apply_decay


class Clock(Protocol):
    def now(self) -> float: ...


class SystemClock:
    def now(self) -> float:
        return time.monotonic()


class VirtualClock:
    """Hand-driven clock for tests and offline simulation."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("cannot advance a clock backwards")
        self._now += seconds
        return self._now

    def set(self, value: float) -> None:
        self._now = float(value)


def tick(state: PetState, now: float) -> float:
    """
    Bring ``state`` up to ``now`` and return the elapsed seconds applied.

    A clock reading older than ``last_update`` counts as zero elapsed time
    and leaves ``last_update`` where it is, so the same interval is never
    decayed twice.
    """
    elapsed = max(0.0, now - state.last_update)
    apply_decay(state, elapsed)
    state.last_update = max(state.last_update, now)
    return elapsed


def apply_command(state: PetState, now: float, effect: Callable[[PetState], object]):
    """Decay up to ``now``, then run ``effect``. Returns whatever ``effect`` returns."""
    tick(state, now)
    return effect(state)
