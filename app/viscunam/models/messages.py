import math
from dataclasses import dataclass
from enum import Enum

from viscunam.models.pet_state import PetState, Status


class Command(str, Enum):
    CONNECT = "CONNECT"
    FEED = "FEED"
    COFFEE = "COFFEE"
    DISCONNECT = "DISCONNECT"


# server -> client actions
UPDATE = "UPDATE"
STATUS = "STATUS"

CODE_OK = 200
CODE_BAD_REQUEST = 400
CODE_SERVER_ERROR = 500


@dataclass(frozen=True)
class SnapshotUpdate:
    hunger: int
    happiness: int
    sleepiness: int
    status: Status

    @classmethod
    def from_state(cls, state: PetState) -> "SnapshotUpdate":
        # wire values are floored, never rounded
        return cls(
            hunger=math.floor(state.hunger),
            happiness=math.floor(state.happiness),
            sleepiness=math.floor(state.sleepiness),
            status=state.status,
        )


@dataclass(frozen=True)
class StatusReply:
    code: int
    message: str
    action: Command | None = None

    @property
    def ok(self) -> bool:
        return self.code == CODE_OK


Event = SnapshotUpdate | StatusReply
