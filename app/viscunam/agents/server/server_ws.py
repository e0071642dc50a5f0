import asyncio
import logging

import websockets
from websockets.exceptions import ConnectionClosed

from viscunam.agents.server.sessions import SessionManager
from viscunam.errors import TransportFailure, UnknownSession
from viscunam.models.messages import (
    CODE_SERVER_ERROR,
    Command,
    Event,
    StatusReply,
)
from viscunam.utils.messaging import encode_event

log = logging.getLogger(__name__)


class WebSocketChannel:
    """Session channel: encodes events and sends them with a timeout."""

    def __init__(self, ws, send_timeout_sec: float = 1.5):
        self.ws = ws
        self.send_timeout_sec = float(send_timeout_sec)

    async def send(self, event: Event) -> None:
        msg = encode_event(event)
        try:
            await asyncio.wait_for(self.ws.send(msg), timeout=self.send_timeout_sec)
        except (ConnectionClosed, asyncio.TimeoutError, OSError) as e:
            raise TransportFailure(str(e) or type(e).__name__) from e
        log.debug("Sent: %s", msg)


class PetWebSocketHub:
    def __init__(
        self,
        manager: SessionManager,
        send_timeout_sec: float = 1.5,
        max_queue: int = 32,
    ):
        self.manager = manager
        self.send_timeout_sec = float(send_timeout_sec)
        self.max_queue = int(max_queue)

    async def handler(self, ws, *args, **kwargs):
        channel = WebSocketChannel(ws, self.send_timeout_sec)
        session_id = self.manager.connect(channel)

        try:
            async for raw in ws:
                log.debug("Received from %s: %s", session_id, raw)
                try:
                    replies = self.manager.handle_message(session_id, raw)
                except UnknownSession:
                    # torn down by a failed push while this frame was in flight
                    break
                except Exception:
                    log.exception("[SERVER] Failed to handle %r from %s", raw, session_id)
                    replies = [StatusReply(CODE_SERVER_ERROR, "Server error")]

                for event in replies:
                    await channel.send(event)

                if _is_disconnect_ack(replies):
                    await ws.close()
                    break
        except TransportFailure as e:
            log.warning("[SERVER] Reply to %s failed: %s", session_id, e)
        except ConnectionClosed as e:
            log.debug("WS client disconnected: %r", e)
        finally:
            self.manager.disconnect(session_id)


def _is_disconnect_ack(replies: list[Event]) -> bool:
    return any(
        isinstance(e, StatusReply) and e.ok and e.action is Command.DISCONNECT
        for e in replies
    )


async def start_ws_server(
    hub: PetWebSocketHub,
    host: str = "0.0.0.0",
    port: int = 8080,
    ping_interval: float | None = 20,
    ping_timeout: float | None = 20,
):
    return await websockets.serve(
        hub.handler,
        host,
        port,
        ping_interval=ping_interval,
        ping_timeout=ping_timeout,
        max_size=64 * 1024,
        max_queue=hub.max_queue,
    )
