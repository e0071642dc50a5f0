import asyncio
import contextlib
import logging
from typing import Protocol

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from viscunam.agents.client.reconciler import Reconciler
from viscunam.errors import AlreadyAwake, ProtocolError, TransportFailure
from viscunam.models.messages import (
    CODE_BAD_REQUEST,
    Command,
    SnapshotUpdate,
    StatusReply,
)
from viscunam.simulation.clock import Clock, SystemClock
from viscunam.simulation.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from viscunam.utils.messaging import decode_event, encode_command

log = logging.getLogger(__name__)


class PetListener(Protocol):
    """Presentation side: renders snapshots, shows status replies."""

    def on_snapshot(self, snapshot: SnapshotUpdate) -> None: ...

    def on_status(self, status: StatusReply) -> None: ...


class PetClientAgent:
    def __init__(
        self,
        url: str,
        listener: PetListener | None = None,
        clock: Clock | None = None,
        scheduler: Scheduler | None = None,
        local_tick_period: float = 1.0,
        reconnect_delay: float = 5.0,
        open_timeout: float = 5.0,
    ):
        self.url = url
        self.listener = listener
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or AsyncioScheduler()
        self.local_tick_period = float(local_tick_period)
        self.reconnect_delay = float(reconnect_delay)
        self.open_timeout = float(open_timeout)

        self.reconciler = Reconciler(self.clock)

        self._ws = None
        self._timer: TimerHandle | None = None
        self._conn_task: asyncio.Task | None = None

    @property
    def connected(self) -> bool:
        return self.reconciler.connected

    # --- lifecycle ----------------------------------------------------

    async def start(self) -> None:
        self._timer = self.scheduler.call_every(self.local_tick_period, self._on_local_tick)
        self._conn_task = asyncio.create_task(self._connection_loop())
        self._notify_snapshot()

    async def stop(self) -> None:
        if self._ws is not None:
            with contextlib.suppress(TransportFailure):
                await self._send(Command.DISCONNECT)

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            await self.scheduler.join_cancelled()

        if self._conn_task is not None:
            self._conn_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._conn_task
            self._conn_task = None

        self.reconciler.go_local()

    async def _connection_loop(self) -> None:
        while True:
            try:
                async with websockets.connect(self.url, open_timeout=self.open_timeout) as ws:
                    self._ws = ws
                    self.reconciler.go_connected()
                    log.info("[CLIENT] Connected to %s", self.url)
                    await self._send(Command.CONNECT)
                    async for raw in ws:
                        self._on_frame(raw)
                log.info("[CLIENT] Server closed the connection")
            except (OSError, asyncio.TimeoutError, WebSocketException, TransportFailure) as e:
                log.warning(
                    "[CLIENT] No server at %s (%s); running locally",
                    self.url,
                    str(e) or type(e).__name__,
                )
            finally:
                self._ws = None
                self.reconciler.go_local()

            await asyncio.sleep(self.reconnect_delay)

    async def _send(self, command: Command) -> None:
        ws = self._ws
        if ws is None:
            raise TransportFailure("not connected")
        msg = encode_command(command)
        try:
            await ws.send(msg)
        except (ConnectionClosed, OSError) as e:
            raise TransportFailure(str(e) or type(e).__name__) from e
        log.debug("Sent: %s", msg)

    # --- inbound ------------------------------------------------------

    def _on_frame(self, raw: str | bytes) -> None:
        log.debug("Received: %s", raw)
        try:
            event = decode_event(raw)
        except ProtocolError as e:
            log.warning("[CLIENT] Ignoring undecodable frame %r: %s", raw, e)
            return

        self.reconciler.apply_event(event)
        if isinstance(event, SnapshotUpdate):
            self._notify_snapshot()
        else:
            self._notify_status(event)

    async def _on_local_tick(self) -> None:
        if self.reconciler.tick():
            self._notify_snapshot()

    # --- user actions -------------------------------------------------

    async def feed(self) -> None:
        await self._server_action(self.reconciler.feed)

    async def give_coffee(self) -> None:
        try:
            await self._server_action(self.reconciler.give_coffee)
        except AlreadyAwake as e:
            self._notify_status(StatusReply(CODE_BAD_REQUEST, str(e), Command.COFFEE))

    def pet(self) -> None:
        self.reconciler.pet()
        self._notify_snapshot()

    def toggle_sleep(self) -> bool:
        sleeping = self.reconciler.toggle_sleep()
        self._notify_snapshot()
        return sleeping

    def set_moving(self, moving: bool) -> None:
        self.reconciler.set_moving(moving)

    async def _server_action(self, action) -> None:
        command = action()
        if command is None:
            # applied locally
            self._notify_snapshot()
            return
        try:
            await self._send(command)
        except TransportFailure as e:
            log.warning("[CLIENT] Sending %s failed (%s); applying locally", command.value, e)
            self.reconciler.go_local()
            action()
            self._notify_snapshot()

    # --- listener -----------------------------------------------------

    def _notify_snapshot(self) -> None:
        if self.listener is not None:
            self.listener.on_snapshot(self.reconciler.snapshot())

    def _notify_status(self, status: StatusReply) -> None:
        if self.listener is not None:
            self.listener.on_status(status)
