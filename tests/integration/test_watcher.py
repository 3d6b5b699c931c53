"""Integration tests for the live watcher."""

import queue
import threading
import time
from datetime import datetime

import pytest

from conftest import JOIN_LINE, LEFT_LINE, append_log, log_line, set_mtime, write_log
from vrclog.channel import ChannelClosed
from vrclog.config.settings import WatchOptions
from vrclog.context import Context
from vrclog.core.models import PLAYER_JOIN, PLAYER_LEFT, WORLD_JOIN, ParseResult, ReplayConfig
from vrclog.errors import (
    AlreadyWatchingError,
    ChainError,
    InvalidOptionsError,
    LogDirNotFoundError,
    ParseError,
    WatchError,
    WatcherClosedError,
    WatchOp,
)
from vrclog.parser.chain import ChainMode, ParserChain, ParserFunc
from vrclog.parser.log_parser import DefaultParser
from vrclog.parser.log_tailer import TailSource
from vrclog.watcher.watcher import EVENT_BUFFER, Watcher, watch_with_options

TIMEOUT = 5.0

# Time for the worker to attach to the file before lines are appended
ATTACH_DELAY = 0.5


def _options(log_dir, **kwargs):
    kwargs.setdefault("poll_interval", 0.1)
    return WatchOptions(log_dir=str(log_dir), **kwargs)


def _take(events, count, timeout=TIMEOUT):
    return [events.get(timeout=timeout) for _ in range(count)]


def _drain_closed(channel, timeout=TIMEOUT):
    """Collect remaining items until the channel closes."""
    items = []
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise AssertionError("channel was not closed")
        try:
            items.append(channel.get(timeout=remaining))
        except ChannelClosed:
            return items


class TestWatcherLifecycle:
    """Tests for construction, watch() and close()."""

    def test_invalid_options(self, log_file, log_dir):
        with pytest.raises(InvalidOptionsError):
            Watcher(_options(log_dir, poll_interval=0))

    def test_missing_log_dir(self, tmp_path):
        with pytest.raises(LogDirNotFoundError):
            Watcher(WatchOptions(log_dir=str(tmp_path / "nope")))

    def test_resolves_log_dir(self, log_file, log_dir):
        watcher = Watcher(_options(log_dir))
        assert watcher.log_dir == log_dir.resolve()
        watcher.close()

    def test_close_is_idempotent(self, log_file, log_dir):
        watcher = Watcher(_options(log_dir))
        watcher.watch()
        watcher.close()
        watcher.close()

    def test_close_without_watch(self, log_file, log_dir):
        Watcher(_options(log_dir)).close()

    def test_watch_after_close(self, log_file, log_dir):
        watcher = Watcher(_options(log_dir))
        watcher.close()
        with pytest.raises(WatcherClosedError):
            watcher.watch()

    def test_watch_twice(self, log_file, log_dir):
        with Watcher(_options(log_dir)) as watcher:
            watcher.watch()
            with pytest.raises(AlreadyWatchingError):
                watcher.watch()

    def test_close_closes_channels(self, log_file, log_dir):
        watcher = Watcher(_options(log_dir))
        events, errors = watcher.watch()
        watcher.close()
        assert _drain_closed(events) == []
        _drain_closed(errors)

    def test_context_cancel_closes_channels(self, log_file, log_dir):
        ctx = Context()
        with Watcher(_options(log_dir)) as watcher:
            events, errors = watcher.watch(ctx)
            ctx.cancel()
            _drain_closed(events)
            _drain_closed(errors)

    def test_repeated_watchers_release_caller_context(self, log_file, log_dir):
        ctx = Context()
        for _ in range(5):
            with Watcher(_options(log_dir)) as watcher:
                watcher.watch(ctx)
        assert ctx.pending_callbacks == 0
        assert not ctx.cancelled

    def test_close_with_unread_backlog(self, log_file, log_dir):
        start = datetime(2024, 1, 16, 1, 0, 0)
        append_log(
            log_file,
            *(log_line(start.replace(second=i), f"OnPlayerJoined User{i}") for i in range(50)),
        )
        watcher = Watcher(_options(log_dir, replay=ReplayConfig.from_start()))
        events, errors = watcher.watch()
        # Let the worker fill the event buffer and block on the next put
        time.sleep(ATTACH_DELAY)

        closer = threading.Thread(target=watcher.close)
        closer.start()
        closer.join(timeout=TIMEOUT)
        assert not closer.is_alive()

        # Only what already sat in the buffer is left
        assert len(_drain_closed(events)) <= EVENT_BUFFER
        _drain_closed(errors)

    def test_options_are_snapshot(self, log_file, log_dir):
        options = _options(log_dir, include_types=[PLAYER_JOIN])
        watcher = Watcher(options)
        options.include_types.append(PLAYER_LEFT)
        assert watcher.options.include_types == [PLAYER_JOIN]
        watcher.close()


class TestWatcherEvents:
    """End-to-end event delivery."""

    def test_replay_from_start(self, log_file, log_dir):
        with Watcher(_options(log_dir, replay=ReplayConfig.from_start())) as watcher:
            events, _ = watcher.watch()
            received = _take(events, 3)
        assert [e.type for e in received] == [WORLD_JOIN, PLAYER_JOIN, PLAYER_LEFT]
        assert received[1].player_name == "TestUser"
        assert received[1].timestamp == datetime(2024, 1, 15, 23, 59, 59)

    def test_tail_only_new_lines(self, log_file, log_dir):
        with Watcher(_options(log_dir)) as watcher:
            events, _ = watcher.watch()
            with pytest.raises(queue.Empty):
                events.get(timeout=ATTACH_DELAY)
            append_log(log_file, log_line(datetime(2024, 1, 16, 1, 0, 0), "OnPlayerJoined NewUser"))
            event = events.get(timeout=TIMEOUT)
        assert event.type == PLAYER_JOIN
        assert event.player_name == "NewUser"

    def test_replay_last_n(self, log_file, log_dir):
        with Watcher(_options(log_dir, replay=ReplayConfig.last(2))) as watcher:
            events, _ = watcher.watch()
            received = _take(events, 2)
            with pytest.raises(queue.Empty):
                events.get(timeout=ATTACH_DELAY)
        assert [e.type for e in received] == [PLAYER_JOIN, PLAYER_LEFT]

    def test_replay_since(self, log_file, log_dir):
        replay = ReplayConfig.since_time(datetime(2024, 1, 16, 0, 0, 0))
        with Watcher(_options(log_dir, replay=replay)) as watcher:
            events, _ = watcher.watch()
            received = events.get(timeout=TIMEOUT)
        assert received.type == PLAYER_LEFT

    def test_replay_limit_reported(self, log_file, log_dir):
        options = _options(log_dir, replay=ReplayConfig.last(10), max_replay_line_bytes=10)
        with Watcher(options) as watcher:
            _, errors = watcher.watch()
            err = errors.get(timeout=TIMEOUT)
        assert isinstance(err, WatchError)
        assert err.op is WatchOp.REPLAY

    def test_type_filters(self, log_file, log_dir):
        options = _options(
            log_dir,
            replay=ReplayConfig.from_start(),
            include_types=[PLAYER_JOIN, PLAYER_LEFT],
            exclude_types=[PLAYER_JOIN],
        )
        with Watcher(options) as watcher:
            events, _ = watcher.watch()
            received = events.get(timeout=TIMEOUT)
            with pytest.raises(queue.Empty):
                events.get(timeout=ATTACH_DELAY)
        assert received.type == PLAYER_LEFT

    def test_raw_line(self, log_file, log_dir):
        options = _options(
            log_dir, replay=ReplayConfig.from_start(), include_raw_line=True, include_types=[PLAYER_JOIN]
        )
        with Watcher(options) as watcher:
            events, _ = watcher.watch()
            received = events.get(timeout=TIMEOUT)
        assert received.raw_line == JOIN_LINE

    def test_partial_result_then_error(self, log_file, log_dir):
        def fail_on_join(ctx, line):
            if "OnPlayerJoined" in line:
                raise ValueError("plugin failed")
            return ParseResult()

        parser = ParserChain(
            [ParserFunc(fail_on_join), DefaultParser()], mode=ChainMode.CONTINUE_ON_ERROR
        )
        options = _options(
            log_dir, replay=ReplayConfig.from_start(), parser=parser, include_types=[PLAYER_JOIN]
        )
        with Watcher(options) as watcher:
            events, errors = watcher.watch()
            received = events.get(timeout=TIMEOUT)
            err = errors.get(timeout=TIMEOUT)
        assert received.type == PLAYER_JOIN
        assert isinstance(err, ParseError)
        assert err.line == JOIN_LINE
        assert isinstance(err.underlying, ChainError)

    def test_watch_with_options(self, log_file, log_dir):
        watcher, events, _ = watch_with_options(
            log_dir=str(log_dir), poll_interval=0.1, replay=ReplayConfig.from_start()
        )
        with watcher:
            assert events.get(timeout=TIMEOUT).type == WORLD_JOIN

    def test_watch_with_options_rejects_both(self, log_file, log_dir):
        with pytest.raises(TypeError):
            watch_with_options(options=_options(log_dir), poll_interval=1.0)


class TestWatcherFiles:
    """Rotation and missing files."""

    def test_rotation(self, log_file, log_dir):
        set_mtime(log_file, -60)
        with Watcher(_options(log_dir, replay=ReplayConfig.from_start())) as watcher:
            events, _ = watcher.watch()
            _take(events, 3)

            write_log(
                log_dir / "output_log_2024-01-16_01-00-00.txt",
                [log_line(datetime(2024, 1, 16, 1, 0, 0), "OnPlayerJoined Rotated")],
            )
            received = events.get(timeout=TIMEOUT)
        assert received.player_name == "Rotated"

    def test_rotation_keeps_old_file_lines(self, log_file, log_dir):
        set_mtime(log_file, -60)
        with Watcher(_options(log_dir)) as watcher:
            events, _ = watcher.watch()
            with pytest.raises(queue.Empty):
                events.get(timeout=ATTACH_DELAY)
            append_log(log_file, log_line(datetime(2024, 1, 16, 0, 59, 0), "OnPlayerLeft Last"))
            set_mtime(log_file, -60)
            write_log(
                log_dir / "output_log_2024-01-16_01-00-00.txt",
                [log_line(datetime(2024, 1, 16, 1, 0, 0), "OnPlayerJoined First")],
            )
            received = _take(events, 2)
        assert [e.player_name for e in received] == ["Last", "First"]

    def test_rotation_attach_failure_keeps_old_file(self, log_file, log_dir, monkeypatch):
        original_start = TailSource.start
        attached = []

        def start_first_only(path, *args, **kwargs):
            if attached:
                raise PermissionError("permission denied")
            attached.append(path)
            return original_start(path, *args, **kwargs)

        monkeypatch.setattr(TailSource, "start", start_first_only)
        set_mtime(log_file, -60)
        with Watcher(_options(log_dir)) as watcher:
            events, errors = watcher.watch()
            with pytest.raises(queue.Empty):
                events.get(timeout=ATTACH_DELAY)

            newer = write_log(
                log_dir / "output_log_2024-01-16_01-00-00.txt",
                [log_line(datetime(2024, 1, 16, 1, 0, 0), "OnPlayerJoined Unreachable")],
            )
            err = errors.get(timeout=TIMEOUT)
            assert isinstance(err, WatchError)
            assert err.op is WatchOp.ROTATION
            assert err.path.endswith(newer.name)
            assert isinstance(err.underlying, PermissionError)

            append_log(log_file, log_line(datetime(2024, 1, 16, 0, 59, 0), "OnPlayerLeft StillHere"))
            received = events.get(timeout=TIMEOUT)
            assert not events.closed
            assert not errors.closed
        assert received.player_name == "StillHere"
        assert len(attached) == 1

    def test_no_log_files(self, log_file, log_dir):
        watcher = Watcher(_options(log_dir))
        log_file.unlink()
        with watcher:
            events, errors = watcher.watch()
            reported = _drain_closed(errors)
            _drain_closed(events)
        assert len(reported) == 1
        assert reported[0].op is WatchOp.FIND_LATEST

    def test_wait_for_logs(self, log_file, log_dir):
        watcher = Watcher(_options(log_dir, wait_for_logs=True, replay=ReplayConfig.from_start()))
        log_file.unlink()
        with watcher:
            events, _ = watcher.watch()
            with pytest.raises(queue.Empty):
                events.get(timeout=ATTACH_DELAY)
            write_log(log_dir / "output_log_late.txt", [LEFT_LINE])
            received = events.get(timeout=TIMEOUT)
        assert received.type == PLAYER_LEFT

    def test_wait_for_logs_cancelled(self, log_file, log_dir):
        watcher = Watcher(_options(log_dir, wait_for_logs=True))
        log_file.unlink()
        ctx = Context()
        with watcher:
            events, errors = watcher.watch(ctx)
            ctx.cancel()
            _drain_closed(events)
            _drain_closed(errors)
