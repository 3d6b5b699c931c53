"""Offline parsing of complete log files."""

import os
from dataclasses import replace
from pathlib import Path
from typing import BinaryIO, Generator, Iterable, Iterator, Optional, Union

from vrclog.config.logging import DISCARD_LOGGER
from vrclog.config.paths import find_log_dir, list_log_files
from vrclog.config.settings import ParseOptions
from vrclog.context import Context
from vrclog.core.models import Event, to_local_naive
from vrclog.errors import (
    InvalidOptionsError,
    LineTooLongError,
    NoLogFilesError,
    ParseError,
    PartialResultError,
)
from vrclog.parser.log_parser import DefaultParser

PathLike = Union[str, os.PathLike]

# Size of the reads used to skip the rest of an oversized line
_SKIP_CHUNK = 64 * 1024


def _read_lines(f: BinaryIO, max_line_bytes: int) -> Iterator[tuple[int, Optional[bytes], int]]:
    """
    Yield (line_number, raw_line, length) for each line.

    raw_line is None when the line is longer than max_line_bytes; the rest
    of that line is consumed without being kept.
    """
    line_number = 0
    while True:
        chunk = f.readline(max_line_bytes + 1)
        if not chunk:
            return
        line_number += 1

        if chunk.endswith(b"\n"):
            yield line_number, chunk[:-1], len(chunk) - 1
            continue
        if len(chunk) <= max_line_bytes:
            # Last line without a newline
            yield line_number, chunk, len(chunk)
            continue

        length = len(chunk)
        while True:
            rest = f.readline(_SKIP_CHUNK)
            if not rest:
                break
            if rest.endswith(b"\n"):
                length += len(rest) - 1
                break
            length += len(rest)
        yield line_number, None, length


class _FileParser:
    """Runs one set of ParseOptions over one or more files."""

    def __init__(self, options: Optional[ParseOptions], ctx: Optional[Context]) -> None:
        options = options if options is not None else ParseOptions()
        problems = options.validate()
        if problems:
            raise InvalidOptionsError(problems)
        self.options = options
        self.ctx = ctx if ctx is not None else Context()
        self.parser = options.parser if options.parser is not None else DefaultParser()
        self.filter = options.type_filter()
        self.since = to_local_naive(options.since) if options.since is not None else None
        self.until = to_local_naive(options.until) if options.until is not None else None
        self.log = options.logger or DISCARD_LOGGER

    def parse(self, path: PathLike) -> Generator[Event, None, bool]:
        """Yield the events of one file. Returns True once `until` is reached."""
        with open(path, "rb") as f:
            for line_number, raw, length in _read_lines(f, self.options.max_line_bytes):
                err = self.ctx.err()
                if err is not None:
                    raise err

                if raw is None:
                    too_long = LineTooLongError(line_number, length, self.options.max_line_bytes)
                    if self.options.stop_on_error:
                        raise too_long
                    self.log.warning(f"skipping line in {Path(path).name}: {too_long}")
                    continue

                line = raw.rstrip(b"\r").decode("utf-8", errors="replace")
                reached_until = yield from self._parse_line(line, Path(path).name, line_number)
                if reached_until:
                    return True
        return False

    def _parse_line(self, line: str, name: str, line_number: int) -> Generator[Event, None, bool]:
        failure: Optional[BaseException] = None
        try:
            result = self.parser.parse_line(self.ctx, line)
            produced = result.events if result.matched else []
        except PartialResultError as e:
            produced = e.result.events
            failure = e
        except Exception as e:
            produced = []
            failure = e

        for event in produced:
            if self.until is not None and event.timestamp >= self.until:
                return True
            if self.since is not None and event.timestamp < self.since:
                continue
            if not self.filter.allows(event.type):
                continue
            if self.options.include_raw_line:
                event = replace(event, raw_line=line)
            yield event

        if failure is not None:
            parse_error = ParseError(line, failure)
            if self.options.stop_on_error:
                raise parse_error from failure
            self.log.warning(f"skipping line {line_number} in {name}: {parse_error}")
        return False


def parse_file(
    path: PathLike,
    options: Optional[ParseOptions] = None,
    ctx: Optional[Context] = None,
) -> Iterator[Event]:
    """
    Stream the events of a single log file.

    Events at or after `options.until` end the stream; since timestamps
    are assumed to increase through a file, the rest is not read.

    Raises:
        InvalidOptionsError: If the options are invalid (raised immediately)
        LineTooLongError, ParseError: On a bad line when stop_on_error is set
        CancelledError: If ctx is cancelled
        OSError: If the file cannot be read
    """
    runner = _FileParser(options, ctx)
    return runner.parse(path)


def parse_file_all(
    path: PathLike,
    options: Optional[ParseOptions] = None,
    ctx: Optional[Context] = None,
) -> list[Event]:
    """Parse a whole file into a list."""
    return list(parse_file(path, options, ctx))


def parse_dir(
    directory: Optional[PathLike] = None,
    paths: Optional[Iterable[PathLike]] = None,
    options: Optional[ParseOptions] = None,
    ctx: Optional[Context] = None,
) -> Iterator[Event]:
    """
    Stream events from several log files in order.

    With `paths`, those files are read in the given order. Otherwise every
    output_log file in the directory (resolved like the watcher does) is
    read, oldest first. Setup errors are raised immediately.

    Raises:
        InvalidOptionsError: If the options are invalid
        LogDirNotFoundError: If the directory cannot be resolved
        NoLogFilesError: If there is nothing to read
    """
    runner = _FileParser(options, ctx)
    if paths is not None:
        files = [Path(p) for p in paths]
    else:
        files = list_log_files(find_log_dir(directory))
    if not files:
        raise NoLogFilesError()
    return _parse_files(runner, files)


def _parse_files(runner: _FileParser, files: list[Path]) -> Iterator[Event]:
    for path in files:
        runner.log.debug(f"parsing {path}")
        reached_until = yield from runner.parse(path)
        if reached_until:
            return
