import asyncio

from viscunam.agents.client.agent import PetClientAgent
from viscunam.agents.client.console import ConsoleListener, prompt_loop
from viscunam.agents.server.agent import PetServerAgent
from viscunam.utils.config_loader import configure_logging, load_config


async def main():
    cfg = load_config()
    configure_logging(cfg)

    server = PetServerAgent(cfg)
    await server.start()
    print(f"PetServerAgent started on port {server.port}")

    client = PetClientAgent(
        f"ws://localhost:{server.port}",
        listener=ConsoleListener(),
        local_tick_period=cfg.client.local_tick_period,
        reconnect_delay=cfg.client.reconnect_delay,
    )
    await client.start()
    print("PetClientAgent started. Type 'quit' to stop everything.")

    try:
        await prompt_loop(client)
    finally:
        print("Stopping all agents...")
        await client.stop()
        await server.stop()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
