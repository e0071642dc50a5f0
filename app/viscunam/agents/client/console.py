import asyncio

from viscunam.agents.client.agent import PetClientAgent
from viscunam.models.messages import SnapshotUpdate, StatusReply
from viscunam.utils.config_loader import configure_logging, load_config

HELP = "commands: feed | coffee | pet | sleep | walk | stop | quit"


def _bar(value: int, width: int = 20) -> str:
    filled = max(0, min(width, round(value * width / 100)))
    return "#" * filled + "." * (width - filled)


class ConsoleListener:
    """Prints a line per snapshot; skips repeats so the 1 s local tick stays quiet."""

    def __init__(self, only_changes: bool = True):
        self.only_changes = bool(only_changes)
        self._last: SnapshotUpdate | None = None

    def on_snapshot(self, snapshot: SnapshotUpdate) -> None:
        if self.only_changes and snapshot == self._last:
            return
        self._last = snapshot
        print(self.render(snapshot))

    def on_status(self, status: StatusReply) -> None:
        action = f" [{status.action.value}]" if status.action else ""
        if status.ok:
            print(f"  ok{action}: {status.message}")
        else:
            print(f"  error {status.code}{action}: {status.message}")

    @staticmethod
    def render(s: SnapshotUpdate) -> str:
        return (
            f"hunger {_bar(s.hunger)} {s.hunger:>3} | "
            f"happiness {_bar(s.happiness)} {s.happiness:>3} | "
            f"sleepiness {_bar(s.sleepiness)} {s.sleepiness:>3} | "
            f"{s.status.value}"
        )


async def prompt_loop(agent: PetClientAgent) -> None:
    print(HELP)
    while True:
        try:
            line = await asyncio.to_thread(input, "> ")
        except EOFError:
            return

        cmd = line.strip().lower()
        if cmd in ("quit", "exit"):
            return
        if cmd == "feed":
            await agent.feed()
        elif cmd == "coffee":
            await agent.give_coffee()
        elif cmd == "pet":
            agent.pet()
        elif cmd == "sleep":
            agent.toggle_sleep()
        elif cmd == "walk":
            agent.set_moving(True)
        elif cmd == "stop":
            agent.set_moving(False)
        elif cmd:
            print(HELP)


async def main():
    cfg = load_config()
    configure_logging(cfg)

    agent = PetClientAgent(
        cfg.client.url,
        listener=ConsoleListener(),
        local_tick_period=cfg.client.local_tick_period,
        reconnect_delay=cfg.client.reconnect_delay,
    )
    await agent.start()
    print(f"PetClientAgent started ({cfg.client.url}).")

    try:
        await prompt_loop(agent)
    finally:
        print("Stopping PetClientAgent...")
        await agent.stop()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
