"""Event output formats for the command line."""

from datetime import datetime
from typing import Optional, TextIO

from pydantic import BaseModel

from vrclog.core.models import NO_TIMESTAMP, PLAYER_JOIN, PLAYER_LEFT, WORLD_JOIN, Event

FORMATS = ("jsonl", "pretty")


class EventSchema(BaseModel):
    """JSON shape of an event. Empty fields are left out."""

    type: str
    timestamp: Optional[datetime] = None  # Local time with UTC offset
    player_name: Optional[str] = None
    player_id: Optional[str] = None
    world_id: Optional[str] = None
    world_name: Optional[str] = None
    instance_id: Optional[str] = None
    raw_line: Optional[str] = None
    data: Optional[dict[str, str]] = None

    @classmethod
    def from_event(cls, event: Event) -> "EventSchema":
        timestamp = None
        if event.timestamp != NO_TIMESTAMP:
            timestamp = event.timestamp.astimezone()
        return cls(
            type=event.type,
            timestamp=timestamp,
            player_name=event.player_name or None,
            player_id=event.player_id or None,
            world_id=event.world_id or None,
            world_name=event.world_name or None,
            instance_id=event.instance_id or None,
            raw_line=event.raw_line or None,
            data=dict(event.data) if event.data else None,
        )


def output_json(event: Event, out: TextIO) -> None:
    """Write one event as a JSON line."""
    out.write(EventSchema.from_event(event).model_dump_json(exclude_none=True))
    out.write("\n")


def quote_if_needed(value: str) -> str:
    """
    Quote a value for key=value output.

    Values with spaces, '=', quotes, backslashes or control characters are
    wrapped in double quotes with those characters escaped.
    """
    if value == "":
        return '""'

    if not any(c in ' ="\\' or ord(c) < 0x20 or ord(c) == 0x7F for c in value):
        return value

    parts = ['"']
    for c in value:
        if c == "\\":
            parts.append("\\\\")
        elif c == '"':
            parts.append('\\"')
        elif c == "\n":
            parts.append("\\n")
        elif c == "\r":
            parts.append("\\r")
        elif c == "\t":
            parts.append("\\t")
        elif ord(c) < 0x20 or ord(c) == 0x7F:
            parts.append(f"\\x{ord(c):02x}")
        else:
            parts.append(c)
    parts.append('"')
    return "".join(parts)


def format_data(data: dict[str, str]) -> str:
    """Render data as sorted key=value pairs."""
    return " ".join(
        f"{quote_if_needed(key)}={quote_if_needed(data[key])}" for key in sorted(data)
    )


def format_pretty(event: Event) -> str:
    ts = event.timestamp.strftime("%H:%M:%S")
    if event.type == PLAYER_JOIN:
        return f"[{ts}] + {event.player_name} joined"
    if event.type == PLAYER_LEFT:
        return f"[{ts}] - {event.player_name} left"
    if event.type == WORLD_JOIN:
        if event.world_name:
            return f"[{ts}] > Joined world: {event.world_name}"
        return f"[{ts}] > Joined instance: {event.instance_id}"
    if event.data:
        return f"[{ts}] * {event.type}: {format_data(event.data)}"
    return f"[{ts}] * {event.type}"


def output_pretty(event: Event, out: TextIO) -> None:
    """Write one event as a human-readable line."""
    out.write(format_pretty(event))
    out.write("\n")


def output_event(output_format: str, event: Event, out: TextIO) -> None:
    """
    Write an event in the named format.

    Raises:
        ValueError: For an unknown format
    """
    if output_format == "jsonl":
        output_json(event, out)
    elif output_format == "pretty":
        output_pretty(event, out)
    else:
        raise ValueError(f"unknown format: {output_format}")
