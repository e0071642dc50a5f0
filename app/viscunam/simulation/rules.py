"""
Decay and interaction rules for a single pet.

Both the server (authoritative) and the client (predictive) run exactly these
functions, so the two sides follow one decay law and one status table.
Every mutation clamps the stats and recomputes the status before returning.
A new pet starts out "normal"; its status is first derived on the first
change to its stats.
"""
import math

from viscunam.errors import AlreadyAwake
from viscunam.models.pet_state import PetState, Status

# seconds of wall-clock time per point
HUNGER_SECONDS_PER_POINT = 5.0
SLEEPINESS_SECONDS_PER_POINT = 10.0
MOVING_SLEEPINESS_SECONDS_PER_POINT = 20.0
HAPPINESS_FAST_SECONDS_PER_POINT = 3.0
HAPPINESS_SLOW_SECONDS_PER_POINT = 10.0
# points per second while asleep
SLEEP_RECOVERY_PER_SECOND = 5.0

HUNGRY_BELOW = 30
SLEEPY_ABOVE = 70
HAPPY_ABOVE = 70

FEED_HUNGER = 20
FEED_HAPPINESS = 10
PET_HAPPINESS = 5
COFFEE_SLEEPINESS = 30
COFFEE_HAPPINESS = 5


def recompute_status(state: PetState) -> Status:
    """
    First match wins:
      1) asleep, or sleepiness above 70  -> slumber
      2) hunger below 30                 -> slumber
      3) happiness above 70              -> happi
      4) otherwise                       -> normal
    """
    if state.is_sleeping or state.sleepiness > SLEEPY_ABOVE:
        status = Status.SLUMBER
    elif state.hunger < HUNGRY_BELOW:
        status = Status.SLUMBER
    elif state.happiness > HAPPY_ABOVE:
        status = Status.HAPPY
    else:
        status = Status.NORMAL
    state.status = status
    return status


def apply_decay(state: PetState, elapsed_seconds: float) -> None:
    elapsed = max(0.0, float(elapsed_seconds))
    if elapsed == 0:
        return

    state.hunger -= elapsed / HUNGER_SECONDS_PER_POINT

    if state.is_sleeping:
        state.sleepiness -= elapsed * SLEEP_RECOVERY_PER_SECOND
        if state.sleepiness <= 0:
            state.sleepiness = 0.0
            state.is_sleeping = False
    else:
        state.sleepiness += elapsed / SLEEPINESS_SECONDS_PER_POINT
        if state.is_moving:
            state.sleepiness += elapsed / MOVING_SLEEPINESS_SECONDS_PER_POINT
    state.clamp()

    # hungry or sleepy pets lose happiness faster
    if state.hunger < HUNGRY_BELOW or state.sleepiness > SLEEPY_ABOVE:
        state.happiness -= elapsed / HAPPINESS_FAST_SECONDS_PER_POINT
    else:
        state.happiness -= elapsed / HAPPINESS_SLOW_SECONDS_PER_POINT
    state.clamp()

    recompute_status(state)


def feed(state: PetState) -> None:
    before = _stats(state)
    state.hunger += FEED_HUNGER
    state.happiness += FEED_HAPPINESS
    _settle(state, before)


def pet(state: PetState) -> None:
    before = _stats(state)
    state.happiness += PET_HAPPINESS
    _settle(state, before)


def give_coffee(state: PetState) -> None:
    """Rejected while sleepiness still reads 0 on the wire, i.e. below one point."""
    if math.floor(state.sleepiness) == 0:
        raise AlreadyAwake()

    state.sleepiness -= COFFEE_SLEEPINESS
    state.happiness += COFFEE_HAPPINESS
    state.clamp()
    recompute_status(state)


def toggle_sleep(state: PetState) -> bool:
    """Flip between awake and asleep. Returns the new ``is_sleeping``."""
    if not state.is_sleeping:
        state.is_sleeping = True
        # movement belongs to the presentation layer; this tells it to stop
        state.is_moving = False
        state.status = Status.SLUMBER
    else:
        state.is_sleeping = False
        state.sleepiness = 0.0
        recompute_status(state)
    return state.is_sleeping


def _stats(state: PetState) -> tuple[float, float, float]:
    return state.hunger, state.happiness, state.sleepiness


def _settle(state: PetState, before: tuple[float, float, float]) -> None:
    # an effect fully absorbed by clamping is not a mutation; status stays put
    state.clamp()
    if _stats(state) != before:
        recompute_status(state)
