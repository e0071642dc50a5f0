import itertools
import logging
from dataclasses import dataclass, field
from typing import Protocol

from viscunam.errors import (
    AlreadyAwake,
    ProtocolError,
    TransportFailure,
    UnknownAction,
    UnknownSession,
)
from viscunam.models.messages import (
    CODE_BAD_REQUEST,
    CODE_OK,
    Command,
    Event,
    SnapshotUpdate,
    StatusReply,
)
from viscunam.models.pet_state import PetState
from viscunam.repositories.event_repository import EventRepository
from viscunam.simulation import rules
from viscunam.simulation.clock import Clock, apply_command, tick
from viscunam.simulation.scheduler import Scheduler, TimerHandle
from viscunam.utils.messaging import decode_command

log = logging.getLogger(__name__)

# session ids stay unique for the whole process, across managers
_session_ids = itertools.count(1)


class Channel(Protocol):
    async def send(self, event: Event) -> None: ...


@dataclass
class Session:
    session_id: str
    state: PetState
    channel: Channel
    timer: TimerHandle | None = None
    commands_handled: int = field(default=0)


class SessionManager:
    def __init__(
        self,
        clock: Clock,
        scheduler: Scheduler,
        tick_period: float = 5.0,
        journal: EventRepository | None = None,
    ):
        self.clock = clock
        self.scheduler = scheduler
        self.tick_period = float(tick_period)
        self.journal = journal
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise UnknownSession(session_id)
        return session

    def snapshot(self, session_id: str) -> SnapshotUpdate:
        return SnapshotUpdate.from_state(self.get(session_id).state)

    # --- lifecycle ----------------------------------------------------

    def connect(self, channel: Channel) -> str:
        session_id = f"pet-{next(_session_ids)}"
        # defaults: 100/100/0, normal, awake
        state = PetState(last_update=self.clock.now())

        session = Session(session_id=session_id, state=state, channel=channel)
        self._sessions[session_id] = session
        session.timer = self.scheduler.call_every(
            self.tick_period, lambda: self._on_tick(session_id)
        )

        log.info("[SERVER] Session %s connected (%d live)", session_id, len(self))
        if self.journal is not None:
            self.journal.session_opened(session_id)
        return session_id

    def disconnect(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False

        # timer goes first so no tick can fire on a half-removed session
        if session.timer is not None:
            session.timer.cancel()
        del self._sessions[session_id]

        log.info("[SERVER] Session %s disconnected (%d live)", session_id, len(self))
        if self.journal is not None:
            self.journal.session_closed(session_id, session.commands_handled)
        return True

    def close_all(self) -> None:
        for session_id in self.session_ids():
            self.disconnect(session_id)

    async def aclose(self) -> None:
        """Tear down every session and wait for their timers to unwind."""
        self.close_all()
        await self.scheduler.join_cancelled()

    # --- inbound ------------------------------------------------------

    def handle_message(self, session_id: str, raw: str | bytes) -> list[Event]:
        session = self.get(session_id)
        try:
            command = decode_command(raw)
        except UnknownAction as e:
            log.info("[SERVER] %s sent unknown action %r", session_id, e.action)
            return [StatusReply(CODE_BAD_REQUEST, str(e))]
        except ProtocolError as e:
            log.info("[SERVER] %s sent malformed message %r: %s", session_id, raw, e)
            return [StatusReply(CODE_BAD_REQUEST, f"Malformed message: {e}")]
        return self._dispatch(session, command)

    def handle_command(self, session_id: str, command: Command) -> list[Event]:
        return self._dispatch(self.get(session_id), command)

    def _dispatch(self, session: Session, command: Command) -> list[Event]:
        # pending decay is always applied before the command's own effect
        now = self.clock.now()
        state = session.state
        session.commands_handled += 1

        if command is Command.CONNECT:
            tick(state, now)
            replies = self._ok(state, "Connected successfully", command)
        elif command is Command.FEED:
            apply_command(state, now, rules.feed)
            replies = self._ok(state, "Fed Viscunam successfully", command)
        elif command is Command.COFFEE:
            try:
                apply_command(state, now, rules.give_coffee)
            except AlreadyAwake as e:
                replies = [StatusReply(CODE_BAD_REQUEST, str(e), command)]
            else:
                replies = self._ok(state, "Gave coffee to Viscunam successfully", command)
        elif command is Command.DISCONNECT:
            tick(state, now)
            replies = [StatusReply(CODE_OK, "Disconnected successfully", command)]
        else:
            raise UnknownAction(str(command))

        if self.journal is not None:
            self.journal.command(
                session.session_id, command, replies[-1].code, SnapshotUpdate.from_state(state)
            )
        return replies

    @staticmethod
    def _ok(state: PetState, message: str, command: Command) -> list[Event]:
        return [SnapshotUpdate.from_state(state), StatusReply(CODE_OK, message, command)]

    # --- periodic -----------------------------------------------------

    async def _on_tick(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            # fired after teardown
            return

        tick(session.state, self.clock.now())
        snapshot = SnapshotUpdate.from_state(session.state)
        try:
            await session.channel.send(snapshot)
        except TransportFailure as e:
            log.warning("[SERVER] Push to %s failed (%s); dropping session", session_id, e)
            self.disconnect(session_id)
