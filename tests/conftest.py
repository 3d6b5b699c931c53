"""Pytest configuration and shared fixtures."""

import os
import time
from datetime import datetime
from pathlib import Path

import pytest

from vrclog.config.paths import ENV_LOG_DIR

BEHAVIOUR = "Log        -  [Behaviour]"

JOIN_LINE = f"2024.01.15 23:59:59 {BEHAVIOUR} OnPlayerJoined TestUser"
JOIN_WITH_ID_LINE = (
    f"2024.01.15 23:59:59 {BEHAVIOUR} OnPlayerJoined TestUser "
    "(usr_12345678-1234-1234-1234-123456789abc)"
)
LEFT_LINE = f"2024.01.16 00:00:05 {BEHAVIOUR} OnPlayerLeft TestUser"
ENTERING_ROOM_LINE = f"2024.01.15 23:58:00 {BEHAVIOUR} Entering Room: Test World"
JOINING_LINE = (
    f"2024.01.15 23:58:01 {BEHAVIOUR} Joining "
    "wrld_12345678-1234-1234-1234-123456789abc:12345~region(jp)"
)
NOISE_LINE = "2024.01.15 23:59:58 Log        -  [Network] Connected to server"


def log_line(ts: datetime, body: str) -> str:
    """Build a VRChat log line with a timestamp."""
    return f"{ts.strftime('%Y.%m.%d %H:%M:%S')} {BEHAVIOUR} {body}"


def write_log(path: Path, lines, newline: str = "\n", trailing: bool = True) -> Path:
    """Write lines to a log file, replacing its content."""
    content = newline.join(lines)
    if trailing and lines:
        content += newline
    path.write_bytes(content.encode("utf-8"))
    return path


def append_log(path: Path, *lines: str) -> None:
    with open(path, "a", encoding="utf-8", newline="") as f:
        for line in lines:
            f.write(line + "\n")
        f.flush()


def set_mtime(path: Path, offset: float) -> None:
    """Shift a file's modification time by offset seconds from now."""
    ts = time.time() + offset
    os.utime(path, (ts, ts))


@pytest.fixture(autouse=True)
def clear_log_dir_env(monkeypatch):
    """Keep the developer's VRCLOG_LOGDIR out of tests."""
    monkeypatch.delenv(ENV_LOG_DIR, raising=False)


@pytest.fixture
def log_dir(tmp_path):
    """Empty VRChat-style log directory."""
    directory = tmp_path / "VRChat"
    directory.mkdir()
    return directory


@pytest.fixture
def log_file(log_dir):
    """Log directory with one log file holding a join and a leave."""
    return write_log(
        log_dir / "output_log_2024-01-15_23-58-00.txt",
        [ENTERING_ROOM_LINE, NOISE_LINE, JOIN_LINE, LEFT_LINE],
    )


@pytest.fixture
def pattern_yaml():
    return (
        "version: 1\n"
        "patterns:\n"
        "  - id: hole_cards\n"
        "    event_type: poker_hole_cards\n"
        "    regex: 'Draw Local Hole Cards: (?P<card1>\\w+), (?P<card2>\\w+)'\n"
        "  - id: winner\n"
        "    event_type: poker_winner\n"
        "    regex: 'player (?P<seat_id>\\d+) won (?P<amount>\\d+)'\n"
    )


@pytest.fixture
def pattern_path(tmp_path, pattern_yaml):
    path = tmp_path / "patterns.yaml"
    path.write_text(pattern_yaml, encoding="utf-8")
    return path
