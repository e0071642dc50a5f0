import asyncio
import logging

from viscunam.agents.server.server_ws import PetWebSocketHub, start_ws_server
from viscunam.agents.server.sessions import SessionManager
from viscunam.repositories.event_repository import EventRepository
from viscunam.simulation.clock import Clock, SystemClock
from viscunam.simulation.scheduler import AsyncioScheduler, Scheduler
from viscunam.utils.config_loader import AppConfig, configure_logging, load_config, resolve_path

log = logging.getLogger(__name__)


class PetServerAgent:
    """Authoritative pet server: one session per WebSocket connection."""

    def __init__(
        self,
        cfg: AppConfig,
        clock: Clock | None = None,
        scheduler: Scheduler | None = None,
    ):
        self.cfg = cfg
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or AsyncioScheduler()

        self.journal: EventRepository | None = None
        self.manager: SessionManager | None = None
        self.hub: PetWebSocketHub | None = None
        self.server = None

    async def setup(self):
        server_cfg = self.cfg.server
        if self.cfg.logging.events_file:
            self.journal = EventRepository(resolve_path(self.cfg.logging.events_file))

        self.manager = SessionManager(
            clock=self.clock,
            scheduler=self.scheduler,
            tick_period=server_cfg.tick_period,
            journal=self.journal,
        )
        self.hub = PetWebSocketHub(
            self.manager,
            send_timeout_sec=server_cfg.send_timeout_sec,
            max_queue=server_cfg.max_queue,
        )

    async def start(self) -> None:
        await self.setup()
        server_cfg = self.cfg.server
        self.server = await start_ws_server(
            self.hub,
            host=server_cfg.host,
            port=server_cfg.port,
            ping_interval=server_cfg.ping_interval,
            ping_timeout=server_cfg.ping_timeout,
        )
        log.info("[SERVER] Listening on %s:%s", server_cfg.host, self.port)

    @property
    def port(self) -> int | None:
        if self.server is None:
            return None
        for sock in self.server.sockets:
            return sock.getsockname()[1]
        return None

    async def stop(self) -> None:
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
        if self.manager is not None:
            await self.manager.aclose()
        log.info("[SERVER] Stopped.")


async def main():
    cfg = load_config()
    configure_logging(cfg)

    agent = PetServerAgent(cfg)
    await agent.start()
    print(f"PetServerAgent is online on port {agent.port}. CTRL+C to stop.")

    try:
        while True:
            await asyncio.sleep(1)
    finally:
        print("Stopping PetServerAgent...")
        await agent.stop()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
