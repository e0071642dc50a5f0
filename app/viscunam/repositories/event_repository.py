import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from viscunam.models.messages import Command, SnapshotUpdate


class EventRepository:
    """Append-only JSON-lines journal of session events (audit trail only).

    One line per event, all sharing ``ts``, ``event`` and ``session_id``:

        {"ts": ..., "event": "opened", "session_id": "pet-1"}
        {"ts": ..., "event": "command", "session_id": "pet-1",
         "command": "FEED", "code": 200,
         "pet": {"hunger": 100, "happiness": 100, "sleepiness": 0, "status": "normal"}}
        {"ts": ..., "event": "closed", "session_id": "pet-1", "commands_handled": 1}
    """

    def __init__(self, file_path: str | Path) -> None:
        self.path = Path(file_path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def session_opened(self, session_id: str) -> None:
        self._append("opened", session_id)

    def session_closed(self, session_id: str, commands_handled: int) -> None:
        self._append("closed", session_id, commands_handled=commands_handled)

    def command(self, session_id: str, command: Command, code: int, pet: SnapshotUpdate) -> None:
        self._append(
            "command",
            session_id,
            command=command.value,
            code=code,
            pet={
                "hunger": pet.hunger,
                "happiness": pet.happiness,
                "sleepiness": pet.sleepiness,
                "status": pet.status.value,
            },
        )

    def _append(self, event: str, session_id: str, **fields: Any) -> None:
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "session_id": session_id,
            **fields,
        }
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
            f.flush()
            try:
                os.fsync(f.fileno())
            except OSError:
                # pipes and some virtual filesystems refuse fsync
                pass
