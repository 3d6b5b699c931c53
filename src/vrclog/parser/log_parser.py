"""Built-in log line parser - converts raw VRChat lines to typed events."""

from datetime import datetime
from typing import Optional

from vrclog.context import Context
from vrclog.core.models import (
    PLAYER_JOIN,
    PLAYER_LEFT,
    WORLD_JOIN,
    Event,
    ParseResult,
)
from vrclog.parser.patterns import (
    ENTERING_ROOM_PATTERN,
    EXCLUSION_PATTERNS,
    JOINING_PATTERN,
    PLAYER_JOIN_PATTERN,
    PLAYER_LEFT_PATTERN,
    TIMESTAMP_FORMAT,
    TIMESTAMP_PATTERN,
)


def parse_timestamp(line: str) -> Optional[datetime]:
    """Extract the leading timestamp as a naive local datetime, or None."""
    match = TIMESTAMP_PATTERN.match(line)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
    except ValueError:
        return None


def parse_line(line: str) -> Optional[Event]:
    """
    Parse a single VRChat log line into an Event.

    Args:
        line: Raw log line (trailing CR is tolerated)

    Returns:
        Event for player_join, player_left or world_join lines, None for
        anything else (including lines without a timestamp)
    """
    line = line.rstrip("\r")

    if any(pattern in line for pattern in EXCLUSION_PATTERNS):
        return None

    ts = parse_timestamp(line)
    if ts is None:
        return None

    match = PLAYER_JOIN_PATTERN.search(line)
    if match:
        return Event(
            type=PLAYER_JOIN,
            timestamp=ts,
            player_name=match.group("name").strip(),
            player_id=match.group("user_id") or None,
        )

    match = PLAYER_LEFT_PATTERN.search(line)
    if match:
        return Event(
            type=PLAYER_LEFT,
            timestamp=ts,
            player_name=match.group("name").strip(),
        )

    # "Entering Room" carries the world name
    match = ENTERING_ROOM_PATTERN.search(line)
    if match:
        return Event(
            type=WORLD_JOIN,
            timestamp=ts,
            world_name=match.group("world_name").strip(),
        )

    # "Joining" carries world and instance IDs
    match = JOINING_PATTERN.search(line)
    if match:
        return Event(
            type=WORLD_JOIN,
            timestamp=ts,
            world_id=match.group("world_id"),
            instance_id=match.group("instance_id"),
        )

    return None


def parse_lines(lines: list[str]) -> list[Event]:
    """Parse many lines, dropping unrecognized ones."""
    events = [parse_line(line) for line in lines]
    return [e for e in events if e is not None]


def format_event_line(event: Event) -> str:
    """
    Render a built-in event back into VRChat's log line format.

    Raises:
        ValueError: For event types the built-in parser does not produce
    """
    ts = event.timestamp.strftime(TIMESTAMP_FORMAT)
    prefix = f"{ts} Log        -  [Behaviour]"
    if event.type == PLAYER_JOIN:
        if event.player_id:
            return f"{prefix} OnPlayerJoined {event.player_name} ({event.player_id})"
        return f"{prefix} OnPlayerJoined {event.player_name}"
    if event.type == PLAYER_LEFT:
        return f"{prefix} OnPlayerLeft {event.player_name}"
    if event.type == WORLD_JOIN:
        if event.world_name:
            return f"{prefix} Entering Room: {event.world_name}"
        return f"{prefix} Joining {event.world_id}:{event.instance_id}"
    raise ValueError(f"not a built-in event type: {event.type}")


class DefaultParser:
    """Parser for the built-in VRChat events (player_join, player_left, world_join)."""

    def parse_line(self, ctx: Context, line: str) -> ParseResult:
        event = parse_line(line)
        if event is None:
            return ParseResult(matched=False)
        return ParseResult(events=[event], matched=True)

    def __repr__(self) -> str:
        return "DefaultParser()"
