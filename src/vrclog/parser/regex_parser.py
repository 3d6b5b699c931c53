"""Parser driven by user-defined patterns from a YAML pattern file."""

import os
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Pattern, Union

from vrclog.context import Context
from vrclog.core.models import NO_TIMESTAMP, Event, ParseResult
from vrclog.errors import PatternError
from vrclog.parser import pattern_file
from vrclog.parser.pattern_file import PatternFile
from vrclog.parser.patterns import TIMESTAMP_FORMAT, TIMESTAMP_LENGTH
from vrclog.parser.regex_cache import RegexCache, shared_cache


@dataclass(frozen=True)
class _CompiledPattern:
    id: str
    event_type: str
    regex: Pattern[str]
    has_named_groups: bool


def extract_timestamp(line: str) -> Optional[datetime]:
    """
    Parse the fixed-width timestamp at the start of a line.

    The 19 leading characters must form a VRChat timestamp and be followed
    by a space, a tab, or the end of the line.
    """
    if len(line) < TIMESTAMP_LENGTH:
        return None
    if len(line) > TIMESTAMP_LENGTH and line[TIMESTAMP_LENGTH] not in (" ", "\t"):
        return None
    try:
        return datetime.strptime(line[:TIMESTAMP_LENGTH], TIMESTAMP_FORMAT)
    except ValueError:
        return None


class RegexParser:
    """
    Matches lines against every pattern of a PatternFile.

    Each matching pattern produces one event, in the order the patterns
    are declared. Named groups (?P<name>...) become the event's `data`;
    patterns without named groups leave `data` as None. Safe to share
    between threads.
    """

    def __init__(self, patterns: PatternFile, cache: Optional[RegexCache] = None) -> None:
        """
        Compile every regex in the pattern file.

        Raises:
            ValueError: If patterns is None
            PatternError: If a regex does not compile
        """
        if patterns is None:
            raise ValueError("pattern file is None")

        cache = cache or shared_cache
        compiled = []
        for i, p in enumerate(patterns.patterns):
            try:
                regex = cache.get(p.regex)
            except (re.error, ValueError) as e:
                raise PatternError(
                    i, "regex", f"invalid regular expression: {e}", pattern_id=p.id
                ) from e
            compiled.append(
                _CompiledPattern(
                    id=p.id,
                    event_type=p.event_type,
                    regex=regex,
                    has_named_groups=bool(regex.groupindex),
                )
            )
        self._patterns = compiled

    @classmethod
    def from_file(cls, path: Union[str, os.PathLike]) -> "RegexParser":
        """Load a pattern file and build a parser from it."""
        return cls(pattern_file.load(path))

    @property
    def pattern_ids(self) -> list[str]:
        return [p.id for p in self._patterns]

    @property
    def event_types(self) -> list[str]:
        """Distinct event types this parser can produce, in declaration order."""
        return list(dict.fromkeys(p.event_type for p in self._patterns))

    def parse_line(self, ctx: Context, line: str) -> ParseResult:
        timestamp = extract_timestamp(line) or NO_TIMESTAMP

        events = []
        for p in self._patterns:
            match = p.regex.search(line)
            if match is None:
                continue
            data = None
            if p.has_named_groups:
                data = {name: value or "" for name, value in match.groupdict().items()}
            events.append(Event(type=p.event_type, timestamp=timestamp, data=data))

        if not events:
            return ParseResult(matched=False)
        return ParseResult(events=events, matched=True)

    def __repr__(self) -> str:
        return f"RegexParser(patterns={self.pattern_ids!r})"
