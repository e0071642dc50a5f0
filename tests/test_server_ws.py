"""Loopback tests: real WebSocket server, raw and agent clients."""

import asyncio

import pytest
import websockets
from websockets.exceptions import ConnectionClosed

from viscunam.agents.client.agent import PetClientAgent
from viscunam.agents.server.agent import PetServerAgent
from viscunam.models.messages import Command
from viscunam.simulation.clock import VirtualClock
from viscunam.utils.config_loader import AppConfig, LoggingConfig, ServerConfig


def _config() -> AppConfig:
    return AppConfig(
        server=ServerConfig(host="127.0.0.1", port=0, tick_period=3600),
        logging=LoggingConfig(events_file=None),
    )


async def _wait_for(predicate, timeout: float = 5.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


@pytest.mark.asyncio
async def test_protocol_over_websocket() -> None:
    server = PetServerAgent(_config(), clock=VirtualClock())
    await server.start()
    try:
        async with websockets.connect(f"ws://127.0.0.1:{server.port}") as ws:
            await ws.send("CONNECT")
            assert await ws.recv() == "UPDATE|hunger:100|happiness:100|sleepiness:0|status:normal"
            assert await ws.recv() == "STATUS|code:200|message:Connected successfully|action:CONNECT"

            await ws.send("COFFEE")
            reply = await ws.recv()
            assert reply.startswith("STATUS|code:400|message:")
            assert "already awake" in reply
            assert reply.endswith("|action:COFFEE")

            await ws.send("JUMP")
            assert await ws.recv() == "STATUS|code:400|message:Unknown action: JUMP"

            await ws.send("FEED|oops")
            assert (await ws.recv()).startswith("STATUS|code:400|message:Malformed message:")

            assert len(server.manager) == 1

            await ws.send("DISCONNECT")
            assert await ws.recv() == "STATUS|code:200|message:Disconnected successfully|action:DISCONNECT"
            with pytest.raises(ConnectionClosed):
                await asyncio.wait_for(ws.recv(), 5)

        await _wait_for(lambda: len(server.manager) == 0)
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_dropped_connection_tears_session_down() -> None:
    server = PetServerAgent(_config(), clock=VirtualClock())
    await server.start()
    try:
        ws = await websockets.connect(f"ws://127.0.0.1:{server.port}")
        await _wait_for(lambda: len(server.manager) == 1)
        await ws.close()
        await _wait_for(lambda: len(server.manager) == 0)
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_client_agent_follows_server(listener) -> None:
    server = PetServerAgent(_config(), clock=VirtualClock())
    await server.start()
    client = PetClientAgent(f"ws://127.0.0.1:{server.port}", listener=listener, reconnect_delay=0.1)
    await client.start()
    try:
        await _wait_for(lambda: any(s.action is Command.CONNECT for s in listener.statuses))
        assert client.connected

        await client.feed()
        await _wait_for(lambda: any(s.action is Command.FEED for s in listener.statuses))
        assert listener.statuses[-1].ok
    finally:
        await client.stop()
        await server.stop()

    assert not client.connected


@pytest.mark.asyncio
async def test_handler_error_replies_500_and_keeps_session(monkeypatch) -> None:
    server = PetServerAgent(_config(), clock=VirtualClock())
    await server.start()
    handle_message = server.manager.handle_message
    calls = 0

    def flaky(session_id, raw):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("boom")
        return handle_message(session_id, raw)

    monkeypatch.setattr(server.manager, "handle_message", flaky)
    try:
        async with websockets.connect(f"ws://127.0.0.1:{server.port}") as ws:
            await ws.send("FEED")
            assert await ws.recv() == "STATUS|code:500|message:Server error"
            assert len(server.manager) == 1

            await ws.send("FEED")
            assert await ws.recv() == "UPDATE|hunger:100|happiness:100|sleepiness:0|status:normal"
            assert await ws.recv() == "STATUS|code:200|message:Fed Viscunam successfully|action:FEED"
    finally:
        await server.stop()
