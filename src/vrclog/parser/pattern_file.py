"""
YAML pattern files: user-defined event types matched by regular expressions.

Example file:

    version: 1
    patterns:
      - id: poker_hole_cards
        event_type: poker_hole_cards
        regex: '\\[Seat\\]: Draw Local Hole Cards: (?P<card1>\\w+), (?P<card2>\\w+)'
      - id: poker_winner
        event_type: poker_winner
        regex: '\\[PotManager\\]: .* player (?P<seat_id>\\d+) won (?P<amount>\\d+)'
"""

import os
from dataclasses import dataclass, field
from typing import Any, Union

import yaml

from vrclog.config.paths import open_regular
from vrclog.errors import NotRegularFileError, PatternError, PatternValidationError, VRCLogError

# Maximum pattern file size (1MB), guards against huge files
MAX_PATTERN_FILE_SIZE = 1 * 1024 * 1024

# Maximum regex length, limits pathological patterns
MAX_PATTERN_LENGTH = 512

# Maximum number of patterns per file
MAX_PATTERN_COUNT = 1000

SUPPORTED_VERSION = 1


class PatternFileError(VRCLogError):
    """A pattern file could not be read or decoded."""


@dataclass
class Pattern:
    """A single pattern definition."""

    id: str
    event_type: str
    regex: str


@dataclass
class PatternFile:
    """Parsed contents of a pattern file."""

    version: int
    patterns: list[Pattern] = field(default_factory=list)

    def validate(self) -> None:
        """
        Schema-level validation.

        Checks version, pattern count, required fields, unique ids and
        regex length. Regexes are compiled later by RegexParser.

        Raises:
            PatternValidationError: For file-level problems
            PatternError: For a problem with a single pattern
        """
        if self.version != SUPPORTED_VERSION:
            raise PatternValidationError(
                "version",
                f"unsupported version {self.version} (only version {SUPPORTED_VERSION} is supported)",
            )

        if not self.patterns:
            raise PatternValidationError("patterns", "at least one pattern is required")

        if len(self.patterns) > MAX_PATTERN_COUNT:
            raise PatternValidationError(
                "patterns",
                f"too many patterns ({len(self.patterns)}), maximum allowed is {MAX_PATTERN_COUNT}",
            )

        seen_ids: dict[str, int] = {}
        for i, p in enumerate(self.patterns):
            if not p.id:
                raise PatternError(i, "id", "id is required")
            if not p.event_type:
                raise PatternError(i, "event_type", "event_type is required", pattern_id=p.id)
            if not p.regex:
                raise PatternError(i, "regex", "regex is required", pattern_id=p.id)

            if p.id in seen_ids:
                raise PatternError(
                    i,
                    "id",
                    f"duplicate id (previously defined at pattern[{seen_ids[p.id]}])",
                    pattern_id=p.id,
                )
            seen_ids[p.id] = i

            regex_bytes = len(p.regex.encode("utf-8"))
            if regex_bytes > MAX_PATTERN_LENGTH:
                raise PatternError(
                    i,
                    "regex",
                    f"pattern too long: {regex_bytes} bytes (max {MAX_PATTERN_LENGTH})",
                    pattern_id=p.id,
                )


def _sanitize(e: OSError) -> str:
    """Describe an OSError without the file path."""
    return e.strerror or e.__class__.__name__


def load(path: Union[str, os.PathLike]) -> PatternFile:
    """
    Read, parse and validate a pattern file.

    The file is opened first and the open descriptor is stat'ed, so the
    file that is checked is the file that is read. Non-regular files
    (FIFOs, devices, symlinks) are rejected and at most
    MAX_PATTERN_FILE_SIZE + 1 bytes are ever read. Error messages do not
    include the path.

    Raises:
        PatternFileError: If the file cannot be opened, is empty or too large
        PatternValidationError, PatternError: If the contents are invalid
    """
    try:
        f, info = open_regular(path)
    except NotRegularFileError as e:
        raise PatternFileError(
            "pattern file must be a regular file (not FIFO, device, or special file)"
        ) from e
    except OSError as e:
        raise PatternFileError(f"failed to open pattern file: {_sanitize(e)}") from e

    with f:
        if info.st_size == 0:
            raise PatternFileError("pattern file is empty")
        if info.st_size > MAX_PATTERN_FILE_SIZE:
            raise PatternFileError(
                f"pattern file too large: {info.st_size} bytes (max {MAX_PATTERN_FILE_SIZE})"
            )
        try:
            data = f.read(MAX_PATTERN_FILE_SIZE + 1)
        except OSError as e:
            raise PatternFileError(f"failed to read pattern file: {_sanitize(e)}") from e

    # The file may have grown between fstat and read
    if len(data) > MAX_PATTERN_FILE_SIZE:
        raise PatternFileError(
            f"pattern file too large: {len(data)} bytes (max {MAX_PATTERN_FILE_SIZE})"
        )

    return load_bytes(data)


def _field(entry: dict[str, Any], name: str, index: int) -> str:
    value = entry.get(name)
    if value is None:
        return ""
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise PatternError(index, name, f"{name} must be a string")
    return str(value)


def load_bytes(data: Union[bytes, str]) -> PatternFile:
    """
    Parse and validate pattern file contents.

    Raises:
        PatternFileError: If the data is empty, too large or not valid YAML
        PatternValidationError, PatternError: If the contents are invalid
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    if not data:
        raise PatternFileError("pattern file is empty")
    if len(data) > MAX_PATTERN_FILE_SIZE:
        raise PatternFileError(
            f"pattern file too large: {len(data)} bytes (max {MAX_PATTERN_FILE_SIZE})"
        )

    try:
        doc = yaml.safe_load(data)
    except yaml.YAMLError as e:
        raise PatternFileError("failed to parse YAML", underlying=e) from e

    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise PatternValidationError("file", "top level must be a mapping")

    version = doc.get("version", 0)
    if not isinstance(version, int) or isinstance(version, bool):
        raise PatternValidationError("version", f"version must be an integer, got {version!r}")

    raw_patterns = doc.get("patterns") or []
    if not isinstance(raw_patterns, list):
        raise PatternValidationError("patterns", "patterns must be a list")

    patterns = []
    for i, entry in enumerate(raw_patterns):
        if not isinstance(entry, dict):
            raise PatternError(i, "pattern", "pattern must be a mapping")
        patterns.append(
            Pattern(
                id=_field(entry, "id", i),
                event_type=_field(entry, "event_type", i),
                regex=_field(entry, "regex", i),
            )
        )

    pattern_file = PatternFile(version=version, patterns=patterns)
    pattern_file.validate()
    return pattern_file
