"""Shared test fixtures: virtual time, manual timers, in-memory channels."""

import json
from pathlib import Path

import pytest

from viscunam.agents.server.sessions import SessionManager
from viscunam.errors import TransportFailure
from viscunam.models.messages import SnapshotUpdate, StatusReply
from viscunam.simulation.clock import VirtualClock
from viscunam.simulation.scheduler import ManualScheduler


def read_journal(path: Path) -> list[dict]:
    if not path.exists():
        return []
    with path.open(encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


class RecordingChannel:
    def __init__(self) -> None:
        self.sent: list = []

    async def send(self, event) -> None:
        self.sent.append(event)


class FailingChannel:
    def __init__(self) -> None:
        self.attempts = 0

    async def send(self, event) -> None:
        self.attempts += 1
        raise TransportFailure("connection reset")


class RecordingListener:
    def __init__(self) -> None:
        self.snapshots: list[SnapshotUpdate] = []
        self.statuses: list[StatusReply] = []

    def on_snapshot(self, snapshot: SnapshotUpdate) -> None:
        self.snapshots.append(snapshot)

    def on_status(self, status: StatusReply) -> None:
        self.statuses.append(status)


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock(start=1000.0)


@pytest.fixture
def scheduler(clock: VirtualClock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
def manager(clock: VirtualClock, scheduler: ManualScheduler) -> SessionManager:
    return SessionManager(clock=clock, scheduler=scheduler, tick_period=5.0)


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()
