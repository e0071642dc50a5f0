"""Tests for the server-side session manager."""

import pytest
from conftest import FailingChannel, RecordingChannel, read_journal

from viscunam.agents.server.sessions import SessionManager
from viscunam.errors import UnknownSession
from viscunam.models.messages import Command, SnapshotUpdate, StatusReply
from viscunam.models.pet_state import Status
from viscunam.repositories.event_repository import EventRepository
from viscunam.simulation.scheduler import AsyncioScheduler
from viscunam.utils.messaging import encode_event


class TestLifecycle:
    def test_connect_creates_default_pet(self, manager: SessionManager, channel) -> None:
        sid = manager.connect(channel)
        assert sid in manager
        assert len(manager) == 1

        state = manager.get(sid).state
        assert (state.hunger, state.happiness, state.sleepiness) == (100, 100, 0)
        assert state.status is Status.NORMAL
        assert not state.is_sleeping

    def test_session_ids_are_unique(self, manager: SessionManager, clock, scheduler) -> None:
        other = SessionManager(clock=clock, scheduler=scheduler)
        ids = {manager.connect(RecordingChannel()) for _ in range(5)}
        ids |= {other.connect(RecordingChannel()) for _ in range(5)}
        assert len(ids) == 10

    def test_disconnect_is_idempotent(self, manager: SessionManager, scheduler, channel) -> None:
        sid = manager.connect(channel)
        assert scheduler.active == 1

        assert manager.disconnect(sid) is True
        assert manager.disconnect(sid) is False
        assert sid not in manager
        assert scheduler.active == 0

    def test_commands_on_gone_session(self, manager: SessionManager, channel) -> None:
        sid = manager.connect(channel)
        manager.disconnect(sid)
        with pytest.raises(UnknownSession):
            manager.handle_command(sid, Command.FEED)
        with pytest.raises(UnknownSession):
            manager.handle_message(sid, "FEED")

    def test_close_all(self, manager: SessionManager) -> None:
        for _ in range(3):
            manager.connect(RecordingChannel())
        manager.close_all()
        assert len(manager) == 0

    @pytest.mark.asyncio
    async def test_aclose_reaps_timer_tasks(self, clock) -> None:
        manager = SessionManager(clock=clock, scheduler=AsyncioScheduler(), tick_period=3600)
        sids = [manager.connect(RecordingChannel()) for _ in range(3)]
        timers = [manager.get(sid).timer for sid in sids]

        await manager.aclose()

        assert len(manager) == 0
        assert all(t.cancelled and t._task.done() for t in timers)


class TestCommands:
    def test_connect_replies_snapshot_then_status(self, manager: SessionManager, channel) -> None:
        sid = manager.connect(channel)
        replies = manager.handle_message(sid, "CONNECT")
        assert replies == [
            SnapshotUpdate(100, 100, 0, Status.NORMAL),
            StatusReply(200, "Connected successfully", Command.CONNECT),
        ]

    def test_feed_on_fresh_pet(self, manager: SessionManager, channel) -> None:
        sid = manager.connect(channel)
        snapshot, status = manager.handle_message(sid, "FEED")
        assert snapshot == SnapshotUpdate(100, 100, 0, Status.NORMAL)
        assert encode_event(status) == "STATUS|code:200|message:Fed Viscunam successfully|action:FEED"

    def test_coffee_when_fully_awake_is_rejected(self, manager: SessionManager, channel) -> None:
        sid = manager.connect(channel)
        before = manager.snapshot(sid)

        replies = manager.handle_message(sid, "COFFEE")

        assert len(replies) == 1
        (status,) = replies
        assert status.code == 400
        assert status.action is Command.COFFEE
        assert "already awake" in status.message
        assert manager.snapshot(sid) == before

    def test_coffee_rejected_while_sleepiness_still_reads_zero(self, manager: SessionManager, clock, channel) -> None:
        sid = manager.connect(channel)
        clock.advance(0.5)

        (status,) = manager.handle_command(sid, Command.COFFEE)

        assert status == StatusReply(400, "Viscunam is already awake and doesn't need coffee", Command.COFFEE)
        state = manager.get(sid).state
        # only the pending decay landed, no coffee bonus
        assert state.sleepiness == pytest.approx(0.05)
        assert state.happiness == pytest.approx(99.95)
        assert manager.snapshot(sid).sleepiness == 0

    @pytest.mark.asyncio
    async def test_coffee_after_pet_gets_sleepy(self, manager: SessionManager, scheduler, channel) -> None:
        sid = manager.connect(channel)
        await scheduler.advance(50)

        replies = manager.handle_command(sid, Command.COFFEE)
        assert replies == [
            SnapshotUpdate(90, 100, 0, Status.HAPPY),
            StatusReply(200, "Gave coffee to Viscunam successfully", Command.COFFEE),
        ]

    def test_pending_decay_applies_before_command(self, manager: SessionManager, clock, channel) -> None:
        sid = manager.connect(channel)
        # no timer fires: the command itself has to catch up on 100 s of decay
        clock.advance(100)

        snapshot, _ = manager.handle_command(sid, Command.FEED)
        # hunger 80 -> 100, happiness 90 -> 100, sleepiness 10
        assert snapshot == SnapshotUpdate(100, 100, 10, Status.HAPPY)
        assert manager.get(sid).state.last_update == clock.now()

    def test_disconnect_command_acknowledged(self, manager: SessionManager, channel) -> None:
        sid = manager.connect(channel)
        assert manager.handle_message(sid, "DISCONNECT") == [
            StatusReply(200, "Disconnected successfully", Command.DISCONNECT)
        ]

    def test_unknown_action(self, manager: SessionManager, channel) -> None:
        sid = manager.connect(channel)
        (status,) = manager.handle_message(sid, "JUMP")
        assert encode_event(status) == "STATUS|code:400|message:Unknown action: JUMP"

    @pytest.mark.parametrize("raw", ["", "FEED|oops", "FEED|amount:3"])
    def test_malformed_message_leaves_state_alone(self, manager: SessionManager, clock, channel, raw) -> None:
        sid = manager.connect(channel)
        clock.advance(30)
        last_update = manager.get(sid).state.last_update

        (status,) = manager.handle_message(sid, raw)

        assert status.code == 400
        assert status.message.startswith("Malformed message:")
        assert manager.get(sid).state.last_update == last_update


class TestPeriodicPush:
    @pytest.mark.asyncio
    async def test_pushes_snapshot_every_period(self, manager: SessionManager, scheduler, channel) -> None:
        manager.connect(channel)
        await scheduler.advance(5)
        assert channel.sent == [SnapshotUpdate(99, 99, 0, Status.HAPPY)]

        await scheduler.advance(10)
        assert len(channel.sent) == 3
        assert channel.sent[-1] == SnapshotUpdate(97, 98, 1, Status.HAPPY)

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self, manager: SessionManager, scheduler, clock) -> None:
        a, b = RecordingChannel(), RecordingChannel()
        sid_a = manager.connect(a)
        clock.advance(2.5)
        sid_b = manager.connect(b)

        manager.handle_command(sid_a, Command.FEED)
        await scheduler.advance(9)

        assert manager.get(sid_a).state.hunger != manager.get(sid_b).state.hunger
        assert len(a.sent) == 2
        assert len(b.sent) == 1

    @pytest.mark.asyncio
    async def test_no_push_after_disconnect(self, manager: SessionManager, scheduler, channel) -> None:
        sid = manager.connect(channel)
        await scheduler.advance(5)
        manager.disconnect(sid)
        await scheduler.advance(60)
        assert len(channel.sent) == 1

    @pytest.mark.asyncio
    async def test_late_tick_after_teardown_is_harmless(self, manager: SessionManager, channel) -> None:
        sid = manager.connect(channel)
        manager.disconnect(sid)
        await manager._on_tick(sid)
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_failed_push_tears_session_down(self, manager: SessionManager, scheduler) -> None:
        failing = FailingChannel()
        sid = manager.connect(failing)
        keeper = manager.connect(RecordingChannel())

        await scheduler.advance(5)

        assert failing.attempts == 1
        assert sid not in manager
        assert keeper in manager

        await scheduler.advance(20)
        assert failing.attempts == 1


class TestJournal:
    def test_records_session_history(self, clock, scheduler, channel, tmp_path) -> None:
        journal = EventRepository(tmp_path / "logs" / "events.jsonl")
        manager = SessionManager(clock=clock, scheduler=scheduler, journal=journal)

        sid = manager.connect(channel)
        manager.handle_message(sid, "FEED")
        manager.handle_message(sid, "COFFEE")
        manager.disconnect(sid)

        entries = read_journal(journal.path)
        assert [e["event"] for e in entries] == ["opened", "command", "command", "closed"]
        assert {e["session_id"] for e in entries} == {sid}
        assert entries[1]["command"] == "FEED"
        assert entries[1]["code"] == 200
        assert entries[1]["pet"] == {"hunger": 100, "happiness": 100, "sleepiness": 0, "status": "normal"}
        assert entries[2]["command"] == "COFFEE"
        assert entries[2]["code"] == 400
        assert entries[3]["commands_handled"] == 2
