"""
Client-side view of the pet.

Disconnected, the client owns its pet and runs the shared rules itself
(predictive mode). Connected, the server owns the pet: feed/coffee become
commands that take effect only when the server's snapshot comes back, and
each snapshot replaces the local stats outright. Petting, sleeping and
walking have no protocol representation and always stay local.
"""
import logging

from viscunam.models.messages import Command, Event, SnapshotUpdate, StatusReply
from viscunam.models.pet_state import PetState, Status
from viscunam.simulation import rules
from viscunam.simulation.clock import Clock, apply_command, tick

log = logging.getLogger(__name__)


class Reconciler:
    def __init__(self, clock: Clock, state: PetState | None = None):
        self.clock = clock
        if state is None:
            state = PetState(last_update=clock.now())
        self.state = state
        self.connected = False

    # --- mode ---------------------------------------------------------

    def go_connected(self) -> None:
        if not self.connected:
            log.info("[CLIENT] Authoritative mode")
        self.connected = True

    def go_local(self) -> None:
        # last_update is kept: the first local tick covers the time since
        # the last snapshot
        if self.connected:
            log.info("[CLIENT] Local predictive mode")
        self.connected = False

    # --- simulation ---------------------------------------------------

    def tick(self) -> bool:
        if self.connected:
            return False
        tick(self.state, self.clock.now())
        return True

    def feed(self) -> Command | None:
        if self.connected:
            return Command.FEED
        apply_command(self.state, self.clock.now(), rules.feed)
        return None

    def give_coffee(self) -> Command | None:
        """Raises ``AlreadyAwake`` in local mode when the pet is not sleepy."""
        if self.connected:
            return Command.COFFEE
        apply_command(self.state, self.clock.now(), rules.give_coffee)
        return None

    def pet(self) -> None:
        self._local(rules.pet)

    def toggle_sleep(self) -> bool:
        return self._local(rules.toggle_sleep)

    def set_moving(self, moving: bool) -> None:
        # decay up to now at the old pace before switching
        self._local(lambda s: setattr(s, "is_moving", bool(moving) and not s.is_sleeping))

    def _local(self, effect):
        if self.connected:
            # no local decay while connected; only the effect itself
            return effect(self.state)
        return apply_command(self.state, self.clock.now(), effect)

    # --- server events ------------------------------------------------

    def apply_event(self, event: Event) -> Event:
        if isinstance(event, SnapshotUpdate):
            s = self.state
            s.hunger = float(event.hunger)
            s.happiness = float(event.happiness)
            s.sleepiness = float(event.sleepiness)
            s.clamp()
            s.status = Status.SLUMBER if s.is_sleeping else Status(event.status)
            s.last_update = max(s.last_update, self.clock.now())
        elif isinstance(event, StatusReply) and not event.ok:
            log.info("[CLIENT] Server rejected %s: %s", event.action, event.message)
        return event

    def snapshot(self) -> SnapshotUpdate:
        return SnapshotUpdate.from_state(self.state)
