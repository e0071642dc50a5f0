from dataclasses import dataclass
from enum import Enum

STAT_MIN = 0.0
STAT_MAX = 100.0


class Status(str, Enum):
    NORMAL = "normal"
    HAPPY = "happi"
    SLUMBER = "slumber"


@dataclass
class PetState:
    hunger: float = 100.0  # 0 = starving, 100 = full
    happiness: float = 100.0
    sleepiness: float = 0.0  # 0 = wide awake
    status: Status = Status.NORMAL
    is_sleeping: bool = False
    # set by the presentation layer while the pet walks around
    is_moving: bool = False
    last_update: float = 0.0

    def clamp(self) -> None:
        self.hunger = _clamp(self.hunger)
        self.happiness = _clamp(self.happiness)
        self.sleepiness = _clamp(self.sleepiness)


def _clamp(value: float, low: float = STAT_MIN, high: float = STAT_MAX) -> float:
    return max(low, min(high, value))
