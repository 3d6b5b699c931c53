"""Watch and parse options."""

import copy as _copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from vrclog.core.models import ReplayConfig, ReplayMode
from vrclog.parser.chain import ChainMode, Parser, ParserChain

# Default seconds between rotation checks (and between checks while waiting for logs)
DEFAULT_POLL_INTERVAL = 2.0

# Default cap on ReplayConfig.last(n)
DEFAULT_MAX_REPLAY_LINES = 10000

# Default byte budgets for last-N replay
DEFAULT_MAX_REPLAY_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_MAX_REPLAY_LINE_BYTES = 512 * 1024  # 512KB

# Longest line accepted by offline parsing
DEFAULT_MAX_LINE_BYTES = 64 * 1024


class TypeFilter:
    """
    Include/exclude filter on event types.

    An empty include set admits every type. Exclude wins over include.
    """

    def __init__(
        self,
        include: Optional[Iterable[str]] = None,
        exclude: Optional[Iterable[str]] = None,
    ) -> None:
        self.include = frozenset(include or ())
        self.exclude = frozenset(exclude or ())

    def allows(self, event_type: str) -> bool:
        if event_type in self.exclude:
            return False
        if self.include and event_type not in self.include:
            return False
        return True

    def __bool__(self) -> bool:
        return bool(self.include or self.exclude)

    def __repr__(self) -> str:
        return f"TypeFilter(include={sorted(self.include)!r}, exclude={sorted(self.exclude)!r})"


def combine_parsers(parsers: Iterable[Optional[Parser]]) -> Parser:
    """Combine several parsers into one ParserChain in ALL mode."""
    return ParserChain(list(parsers), mode=ChainMode.ALL)


@dataclass
class WatchOptions:
    """Configuration for a Watcher. The default value is valid."""

    # Log directory (None: VRCLOG_LOGDIR, then auto-detect)
    log_dir: Optional[str] = None

    # Seconds between rotation checks
    poll_interval: float = DEFAULT_POLL_INTERVAL

    # Copy the source line into Event.raw_line
    include_raw_line: bool = False

    replay: ReplayConfig = field(default_factory=ReplayConfig)

    # Cap on replay.last_n (0: default, -1: unlimited)
    max_replay_lines: int = DEFAULT_MAX_REPLAY_LINES

    # Byte budgets for last-N replay (0: unlimited)
    max_replay_bytes: int = DEFAULT_MAX_REPLAY_BYTES
    max_replay_line_bytes: int = DEFAULT_MAX_REPLAY_LINE_BYTES

    # Keep polling when the log directory has no log files yet
    wait_for_logs: bool = False

    include_types: list[str] = field(default_factory=list)
    exclude_types: list[str] = field(default_factory=list)

    # None: DefaultParser
    parser: Optional[Parser] = None

    # None: discard
    logger: Optional[logging.Logger] = None

    def effective_max_replay_lines(self) -> int:
        """Replay line cap with 0 resolved to the default (-1 means unlimited)."""
        if self.max_replay_lines == 0:
            return DEFAULT_MAX_REPLAY_LINES
        return self.max_replay_lines

    def type_filter(self) -> TypeFilter:
        return TypeFilter(self.include_types, self.exclude_types)

    def validate(self) -> list[str]:
        """
        Validate options.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if self.replay.mode is ReplayMode.LAST_N:
            if self.replay.last_n < 0:
                errors.append(f"replay last_n must be non-negative, got {self.replay.last_n}")
            max_lines = self.effective_max_replay_lines()
            if max_lines > 0 and self.replay.last_n > max_lines:
                errors.append(
                    f"replay last_n ({self.replay.last_n}) exceeds maximum of {max_lines}"
                )

        if self.replay.mode is ReplayMode.SINCE_TIME and self.replay.since is None:
            errors.append("replay since must be set when mode is SINCE_TIME")

        if self.poll_interval <= 0:
            errors.append(f"poll interval must be positive, got {self.poll_interval}")

        if self.max_replay_bytes < 0:
            errors.append(f"max_replay_bytes must be non-negative, got {self.max_replay_bytes}")

        if self.max_replay_line_bytes < 0:
            errors.append(
                f"max_replay_line_bytes must be non-negative, got {self.max_replay_line_bytes}"
            )

        return errors

    def copy(self) -> "WatchOptions":
        """
        Snapshot for a Watcher.

        Lists are copied so later changes by the caller are not seen. The
        parser and logger are shared, not copied.
        """
        snapshot = _copy.copy(self)
        snapshot.include_types = list(self.include_types)
        snapshot.exclude_types = list(self.exclude_types)
        return snapshot


@dataclass
class ParseOptions:
    """Configuration for offline parsing with parse_file/parse_dir."""

    include_types: list[str] = field(default_factory=list)
    exclude_types: list[str] = field(default_factory=list)
    include_raw_line: bool = False

    # Inclusive lower bound on event timestamps
    since: Optional[datetime] = None

    # Exclusive upper bound; reading stops at the first event at or after it
    until: Optional[datetime] = None

    # Raise on the first bad line instead of skipping it
    stop_on_error: bool = False

    parser: Optional[Parser] = None
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
    logger: Optional[logging.Logger] = None

    def type_filter(self) -> TypeFilter:
        return TypeFilter(self.include_types, self.exclude_types)

    def validate(self) -> list[str]:
        errors = []
        if self.max_line_bytes <= 0:
            errors.append(f"max_line_bytes must be positive, got {self.max_line_bytes}")
        if self.since is not None and self.until is not None and self.until <= self.since:
            errors.append("until must be later than since")
        return errors
