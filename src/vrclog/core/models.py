"""Core domain models - dataclasses with no I/O dependencies."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Optional

# Built-in event types
PLAYER_JOIN = "player_join"
PLAYER_LEFT = "player_left"
WORLD_JOIN = "world_join"

EVENT_TYPES = (WORLD_JOIN, PLAYER_JOIN, PLAYER_LEFT)

# Timestamp used when a line carries none (e.g. custom regex events)
NO_TIMESTAMP = datetime.min


def to_local_naive(ts: datetime) -> datetime:
    """Convert an aware datetime to naive local time, as log timestamps are."""
    if ts.tzinfo is None:
        return ts
    return ts.astimezone().replace(tzinfo=None)


@dataclass(frozen=True)
class Event:
    """A single recognized occurrence in a VRChat log."""

    type: str
    timestamp: datetime = NO_TIMESTAMP  # Local time as written in the log
    player_name: Optional[str] = None
    player_id: Optional[str] = None  # usr_xxx
    world_id: Optional[str] = None  # wrld_xxx
    world_name: Optional[str] = None
    instance_id: Optional[str] = None
    raw_line: Optional[str] = None  # Only set when include_raw_line is on
    data: Optional[dict[str, str]] = None  # Named captures from custom parsers

    def __post_init__(self) -> None:
        if not self.type:
            raise ValueError("event type must not be empty")

    def to_dict(self) -> dict[str, Any]:
        """Return the event as a dict, omitting empty optional fields."""
        result: dict[str, Any] = {
            "type": self.type,
            "timestamp": self.timestamp.isoformat(),
        }
        for name in ("player_name", "player_id", "world_id", "world_name", "instance_id", "raw_line"):
            value = getattr(self, name)
            if value:
                result[name] = value
        if self.data:
            result["data"] = dict(self.data)
        return result


@dataclass
class ParseResult:
    """
    Outcome of parsing one line.

    matched=False means the line was not recognized (events is empty).
    matched=True with no events means recognized but intentionally
    producing nothing.
    """

    events: list[Event] = field(default_factory=list)
    matched: bool = False

    def __post_init__(self) -> None:
        if not self.matched and self.events:
            raise ValueError("unmatched result cannot carry events")


class ReplayMode(Enum):
    """How existing log content is handled before tailing."""

    NONE = auto()  # Only new lines (tail -f)
    FROM_START = auto()  # Whole current file
    LAST_N = auto()  # Last N non-empty lines
    SINCE_TIME = auto()  # Events at or after a timestamp


@dataclass(frozen=True)
class ReplayConfig:
    """Replay policy. Only the field matching `mode` is meaningful."""

    mode: ReplayMode = ReplayMode.NONE
    last_n: int = 0
    since: Optional[datetime] = None

    @classmethod
    def none(cls) -> "ReplayConfig":
        return cls()

    @classmethod
    def from_start(cls) -> "ReplayConfig":
        return cls(mode=ReplayMode.FROM_START)

    @classmethod
    def last(cls, n: int) -> "ReplayConfig":
        return cls(mode=ReplayMode.LAST_N, last_n=n)

    @classmethod
    def since_time(cls, since: datetime) -> "ReplayConfig":
        return cls(mode=ReplayMode.SINCE_TIME, since=since)
