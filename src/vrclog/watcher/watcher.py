"""Watcher - follows the active VRChat log file and publishes parsed events."""

import dataclasses
import queue
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from vrclog.channel import Channel, ChannelClosed
from vrclog.config.logging import DISCARD_LOGGER
from vrclog.config.paths import find_latest_log_file, find_log_dir
from vrclog.config.settings import WatchOptions
from vrclog.context import Context
from vrclog.core.models import Event, ReplayMode, to_local_naive
from vrclog.errors import (
    AlreadyWatchingError,
    InvalidOptionsError,
    NoLogFilesError,
    ParseError,
    PartialResultError,
    ReplayLimitExceededError,
    VRCLogError,
    WatchError,
    WatcherClosedError,
    WatchOp,
)
from vrclog.parser.log_parser import DefaultParser
from vrclog.parser.log_tailer import TailSource
from vrclog.parser.replay import read_last_lines

# Buffered errors; further errors are dropped
ERROR_BUFFER = 16

# Events are handed over one at a time so a slow consumer throttles the worker
EVENT_BUFFER = 1

# Longest the worker waits for a line before re-checking timers and sources
_LOOP_WAIT = 0.1


class Watcher:
    """
    Watches the newest VRChat log file in a directory.

    Lifecycle: constructed (no thread), watch() once (one worker thread),
    close() any number of times. A closed watcher cannot be restarted.

    Example:
        with Watcher(WatchOptions(include_types=[PLAYER_JOIN])) as watcher:
            events, errors = watcher.watch()
            for event in events:
                print(event.player_name)
    """

    def __init__(self, options: Optional[WatchOptions] = None) -> None:
        """
        Validate options and resolve the log directory.

        Raises:
            InvalidOptionsError: If the options are invalid
            LogDirNotFoundError: If no log directory can be resolved
        """
        options = options if options is not None else WatchOptions()
        problems = options.validate()
        if problems:
            raise InvalidOptionsError(problems)

        self.log_dir: Path = find_log_dir(options.log_dir)

        self._options = options.copy()
        self._parser = options.parser if options.parser is not None else DefaultParser()
        self._filter = self._options.type_filter()
        self._log = options.logger or DISCARD_LOGGER
        self._since: Optional[datetime] = None
        if self._options.replay.mode is ReplayMode.SINCE_TIME:
            self._since = to_local_naive(self._options.replay.since)

        self._lock = threading.Lock()
        self._closed = False
        self._watching = False
        self._ctx: Optional[Context] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def options(self) -> WatchOptions:
        """Copy of the options this watcher runs with."""
        return self._options.copy()

    def watch(self, ctx: Optional[Context] = None) -> tuple[Channel[Event], Channel[Exception]]:
        """
        Start the worker thread.

        Returns (events, errors). Both channels close when the worker
        exits: after ctx is cancelled, after close(), or after a fatal
        error (which is sent on errors first).

        Raises:
            WatcherClosedError: If close() was already called
            AlreadyWatchingError: If watch() was already called
        """
        with self._lock:
            if self._closed:
                raise WatcherClosedError()
            if self._watching:
                raise AlreadyWatchingError()
            self._watching = True

            self._ctx = ctx.child() if ctx is not None else Context()
            events: Channel[Event] = Channel(EVENT_BUFFER)
            errors: Channel[Exception] = Channel(ERROR_BUFFER)
            self._thread = threading.Thread(
                target=self._run,
                args=(self._ctx, events, errors),
                daemon=True,
                name="vrclog-watcher",
            )
            self._thread.start()
        return events, errors

    def close(self) -> None:
        """
        Stop the worker and wait for it to exit. Later calls do nothing.

        An event the worker queued while close() was running may still be
        read from the events channel before it reports closed.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._ctx is not None:
                self._ctx.cancel()
            thread = self._thread

        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def __enter__(self) -> "Watcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _run(self, ctx: Context, events: Channel[Event], errors: Channel[Exception]) -> None:
        source: Optional[TailSource] = None
        try:
            log_file = self._find_log_file(ctx, errors)
            if log_file is None:
                return
            self._log.debug(f"found latest log file: {log_file}")

            replay = self._options.replay
            from_start = replay.mode in (ReplayMode.FROM_START, ReplayMode.SINCE_TIME)

            if replay.mode is ReplayMode.LAST_N and replay.last_n > 0:
                self._log.debug(f"replaying last {replay.last_n} lines of {log_file}")
                try:
                    self._replay_last_n(ctx, log_file, events, errors)
                except (ReplayLimitExceededError, OSError) as e:
                    self._send_error(errors, WatchError(WatchOp.REPLAY, e, str(log_file)))

            if ctx.cancelled:
                return

            try:
                source = TailSource.start(log_file, from_start=from_start, ctx=ctx, logger=self._log)
            except OSError as e:
                self._send_error(errors, WatchError(WatchOp.TAIL, e, str(log_file)))
                return
            self._log.debug(f"started tailing {log_file} (from_start={from_start})")

            poll_interval = self._options.poll_interval
            next_check = time.monotonic() + poll_interval

            while not ctx.cancelled:
                self._forward_source_errors(source, errors)

                wait = min(max(next_check - time.monotonic(), 0), _LOOP_WAIT)
                try:
                    line = source.lines.get(timeout=wait)
                except queue.Empty:
                    pass
                except ChannelClosed:
                    if not ctx.cancelled:
                        self._send_error(
                            errors,
                            WatchError(WatchOp.TAIL, VRCLogError("line source stopped"), str(source.path)),
                        )
                    return
                else:
                    self._process_line(ctx, line, events, errors)

                if time.monotonic() >= next_check:
                    source = self._check_rotation(ctx, source, events, errors)
                    next_check = time.monotonic() + poll_interval
        finally:
            if source is not None:
                source.stop()
            events.close()
            errors.close()
            # Detach from the caller's context
            ctx.cancel()
            self._log.debug("watcher stopped")

    def _find_log_file(self, ctx: Context, errors: Channel[Exception]) -> Optional[Path]:
        """Resolve the newest log file, waiting for one if configured to."""
        try:
            return find_latest_log_file(self.log_dir)
        except NoLogFilesError as e:
            if not self._options.wait_for_logs:
                self._send_error(errors, WatchError(WatchOp.FIND_LATEST, e))
                return None

        poll_interval = self._options.poll_interval
        self._log.debug(f"no log files found, waiting for logs to appear (poll every {poll_interval}s)")
        while not ctx.wait(poll_interval):
            try:
                log_file = find_latest_log_file(self.log_dir)
            except NoLogFilesError:
                continue
            self._log.debug(f"log file appeared: {log_file}")
            return log_file

        self._send_error(errors, WatchError(WatchOp.FIND_LATEST, ctx.err()))
        return None

    def _replay_last_n(
        self,
        ctx: Context,
        log_file: Path,
        events: Channel[Event],
        errors: Channel[Exception],
    ) -> None:
        lines = read_last_lines(
            log_file,
            self._options.replay.last_n,
            max_bytes=self._options.max_replay_bytes,
            max_line_bytes=self._options.max_replay_line_bytes,
        )
        for line in lines:
            if ctx.cancelled:
                return
            self._process_line(ctx, line, events, errors)

    def _check_rotation(
        self,
        ctx: Context,
        source: TailSource,
        events: Channel[Event],
        errors: Channel[Exception],
    ) -> TailSource:
        """Switch to a newer log file if one appeared. Returns the active source."""
        try:
            latest = find_latest_log_file(self.log_dir)
        except NoLogFilesError as e:
            self._send_error(errors, WatchError(WatchOp.ROTATION, e))
            return source

        if latest == source.path:
            return source

        self._log.debug(f"log rotation detected: {source.path} -> {latest}")
        try:
            new_source = TailSource.start(latest, from_start=True, ctx=ctx, logger=self._log)
        except OSError as e:
            # Keep following the old file
            self._send_error(errors, WatchError(WatchOp.ROTATION, e, str(latest)))
            return source

        source.stop()
        self._forward_source_errors(source, errors)
        for line in source.lines:
            if ctx.cancelled:
                return new_source
            self._process_line(ctx, line, events, errors)

        try:
            remaining = source.remaining_lines()
        except OSError as e:
            self._send_error(errors, WatchError(WatchOp.TAIL, e, str(source.path)))
            remaining = []
        for line in remaining:
            if ctx.cancelled:
                break
            self._process_line(ctx, line, events, errors)
        return new_source

    def _forward_source_errors(self, source: TailSource, errors: Channel[Exception]) -> None:
        while True:
            try:
                err = source.errors.get_nowait()
            except (queue.Empty, ChannelClosed):
                return
            self._send_error(errors, WatchError(WatchOp.TAIL, err, str(source.path)))

    def _process_line(
        self,
        ctx: Context,
        line: str,
        events: Channel[Event],
        errors: Channel[Exception],
    ) -> None:
        try:
            result = self._parser.parse_line(ctx, line)
        except PartialResultError as e:
            # Deliver what the parser produced before it failed
            self._emit(ctx, e.result.events, line, events)
            if not ctx.cancelled:
                self._send_error(errors, ParseError(line, e))
            return
        except Exception as e:
            self._send_error(errors, ParseError(line, e))
            return

        if not result.matched:
            return
        self._emit(ctx, result.events, line, events)

    def _emit(self, ctx: Context, produced: Iterable[Event], line: str, events: Channel[Event]) -> None:
        for event in produced:
            if self._since is not None and event.timestamp < self._since:
                continue
            if not self._filter.allows(event.type):
                continue
            if self._options.include_raw_line:
                event = dataclasses.replace(event, raw_line=line)
            if not events.put(event, ctx):
                return

    def _send_error(self, errors: Channel[Exception], err: Optional[BaseException]) -> None:
        """Non-blocking send; the error is dropped if the buffer is full."""
        if err is None:
            return
        if not errors.put_nowait(err):
            self._log.debug(f"error dropped (buffer full): {err}")


def watch_with_options(
    ctx: Optional[Context] = None,
    options: Optional[WatchOptions] = None,
    **kwargs,
) -> tuple[Watcher, Channel[Event], Channel[Exception]]:
    """
    Build a Watcher and start it in one step.

    Either pass a WatchOptions or WatchOptions fields as keyword arguments.
    The watcher is returned as well so the caller can close() it.

    Raises:
        TypeError: If both options and keyword arguments are given
        InvalidOptionsError, LogDirNotFoundError: See Watcher
    """
    if options is not None and kwargs:
        raise TypeError("pass either options or keyword arguments, not both")
    if options is None:
        options = WatchOptions(**kwargs)
    watcher = Watcher(options)
    events, errors = watcher.watch(ctx)
    return watcher, events, errors
