"""CLI commands for vrclog."""

import argparse
import logging
import queue
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from vrclog.channel import ChannelClosed
from vrclog.config.logging import get_logger, setup_logging
from vrclog.config.settings import (
    DEFAULT_POLL_INTERVAL,
    ParseOptions,
    WatchOptions,
    combine_parsers,
)
from vrclog.context import Context
from vrclog.core.models import EVENT_TYPES, ReplayConfig
from vrclog.errors import VRCLogError
from vrclog.cli.format import FORMATS, output_event
from vrclog.parser.chain import Parser
from vrclog.parser.log_parser import DefaultParser
from vrclog.parser.regex_parser import RegexParser
from vrclog.watcher.parse import parse_dir
from vrclog.watcher.watcher import Watcher

logger = get_logger("cli")

# How long the output loop waits before checking for shutdown again
_OUTPUT_WAIT = 0.5


def _split_types(values: Optional[list[str]]) -> list[str]:
    """Flatten repeated and comma-separated --types values."""
    types: list[str] = []
    for value in values or []:
        types.extend(t.strip() for t in value.split(",") if t.strip())
    return types


def _parse_rfc3339(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp into naive local time.

    Raises:
        ValueError: If the value is not a valid timestamp
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        return ts
    return ts.astimezone().replace(tzinfo=None)


def build_parser(pattern_files: Optional[list[str]]) -> tuple[Optional[Parser], list[str]]:
    """
    Build the line parser for the given pattern files.

    Returns (parser, known event types). The parser is None when there are
    no pattern files, meaning the default parser. Otherwise the default
    parser and one RegexParser per file are chained in ALL mode.

    Raises:
        VRCLogError: If a pattern file cannot be loaded
    """
    known_types = list(EVENT_TYPES)
    if not pattern_files:
        return None, known_types

    parsers: list[Parser] = [DefaultParser()]
    for i, path in enumerate(pattern_files, start=1):
        try:
            regex_parser = RegexParser.from_file(path)
        except VRCLogError as e:
            raise VRCLogError(f"pattern file {i}", underlying=e) from e
        parsers.append(regex_parser)
        known_types.extend(t for t in regex_parser.event_types if t not in known_types)

    return combine_parsers(parsers), known_types


def _check_types(types: list[str], known_types: list[str]) -> Optional[str]:
    unknown = [t for t in types if t not in known_types]
    if unknown:
        return (
            f"unknown event type(s): {', '.join(unknown)} "
            f"(valid: {', '.join(sorted(known_types))})"
        )
    return None


def _install_signal_handlers(ctx: Context) -> None:
    def signal_handler(sig, frame):
        logger.info("Stopping...")
        ctx.cancel()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def _build_replay(args: argparse.Namespace) -> ReplayConfig:
    """
    Map --replay-last / --replay-since onto a ReplayConfig.

    --replay-last -1 disables replay, 0 replays the whole file.

    Raises:
        ValueError: If --replay-since is not a valid RFC 3339 timestamp
    """
    if args.replay_last is not None and args.replay_last >= 0:
        if args.replay_last == 0:
            return ReplayConfig.from_start()
        return ReplayConfig.last(args.replay_last)
    if args.replay_since:
        return ReplayConfig.since_time(_parse_rfc3339(args.replay_since))
    return ReplayConfig.none()


def cmd_tail(args: argparse.Namespace) -> int:
    """Watch the newest log file and print events as they happen."""
    try:
        parser, known_types = build_parser(args.patterns)
    except VRCLogError as e:
        logger.error(f"Error: {e}")
        return 1

    include_types = _split_types(args.types)
    exclude_types = _split_types(args.exclude_types)
    problem = _check_types(include_types + exclude_types, known_types)
    if problem:
        logger.error(f"Error: {problem}")
        return 1

    try:
        replay = _build_replay(args)
    except ValueError as e:
        logger.error(f"Error: invalid --replay-since format: {e}")
        return 1

    options = WatchOptions(
        log_dir=args.log_dir,
        poll_interval=args.poll_interval,
        include_raw_line=args.raw,
        replay=replay,
        wait_for_logs=args.wait,
        include_types=include_types,
        exclude_types=exclude_types,
        parser=parser,
        logger=get_logger("watcher"),
    )

    try:
        watcher = Watcher(options)
    except VRCLogError as e:
        logger.error(f"Error: {e}")
        return 1

    ctx = Context()
    _install_signal_handlers(ctx)
    logger.info(f"Watching: {watcher.log_dir}")

    last_error: list[BaseException] = []

    def report_errors(errors) -> None:
        for err in errors:
            last_error[:] = [err]
            logger.warning(f"{err}")

    with watcher:
        events, errors = watcher.watch(ctx)
        error_thread = threading.Thread(
            target=report_errors, args=(errors,), daemon=True, name="vrclog-cli-errors"
        )
        error_thread.start()

        while True:
            try:
                event = events.get(timeout=_OUTPUT_WAIT)
            except queue.Empty:
                continue
            except ChannelClosed:
                break
            try:
                output_event(args.format, event, sys.stdout)
                sys.stdout.flush()
            except OSError as e:
                logger.error(f"Output error: {e}")
                ctx.cancel()
                return 1

    error_thread.join()

    # The worker only stops by itself after a fatal error
    if not ctx.cancelled:
        if last_error:
            logger.error(f"Error: {last_error[0]}")
        return 1
    return 0


def cmd_parse(args: argparse.Namespace) -> int:
    """Parse existing log files and print their events."""
    try:
        parser, known_types = build_parser(args.patterns)
    except VRCLogError as e:
        logger.error(f"Error: {e}")
        return 1

    include_types = _split_types(args.types)
    exclude_types = _split_types(args.exclude_types)
    problem = _check_types(include_types + exclude_types, known_types)
    if problem:
        logger.error(f"Error: {problem}")
        return 1

    try:
        since = _parse_rfc3339(args.since) if args.since else None
        until = _parse_rfc3339(args.until) if args.until else None
    except ValueError as e:
        logger.error(f"Error: invalid timestamp: {e}")
        return 1

    options = ParseOptions(
        include_types=include_types,
        exclude_types=exclude_types,
        include_raw_line=args.raw,
        since=since,
        until=until,
        stop_on_error=args.stop_on_error,
        parser=parser,
        logger=get_logger("parse"),
    )

    ctx = Context()
    _install_signal_handlers(ctx)

    count = 0
    try:
        paths = [Path(p) for p in args.files] if args.files else None
        for event in parse_dir(args.log_dir, paths=paths, options=options, ctx=ctx):
            output_event(args.format, event, sys.stdout)
            count += 1
    except VRCLogError as e:
        if ctx.cancelled:
            return 0
        logger.error(f"Error: {e}")
        return 1
    except OSError as e:
        logger.error(f"Error: {e}")
        return 1

    sys.stdout.flush()
    logger.debug(f"Parsed {count} events")
    return 0


def _add_common_arguments(sub: argparse.ArgumentParser) -> None:
    sub.add_argument(
        "-d",
        "--log-dir",
        type=str,
        help="VRChat log directory (auto-detected if not specified)",
    )
    sub.add_argument(
        "-f",
        "--format",
        choices=FORMATS,
        default="jsonl",
        help="Output format (default: jsonl)",
    )
    sub.add_argument(
        "-t",
        "--types",
        action="append",
        help="Event types to show (comma-separated, e.g. player_join,player_left)",
    )
    sub.add_argument(
        "--exclude-types",
        action="append",
        help="Event types to hide (comma-separated)",
    )
    sub.add_argument(
        "--raw",
        action="store_true",
        help="Include raw log lines in output",
    )
    sub.add_argument(
        "--patterns",
        action="append",
        metavar="FILE",
        help="YAML pattern file with custom events (repeatable)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    from vrclog.version import __version__

    parser = argparse.ArgumentParser(
        prog="vrclog",
        description="VRChat log watcher and parser",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug output and warnings",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        help="Also write diagnostic logs to this file",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # tail command
    tail_parser = subparsers.add_parser("tail", help="Monitor VRChat logs and output events")
    _add_common_arguments(tail_parser)
    tail_parser.add_argument(
        "--replay-last",
        type=int,
        default=-1,
        metavar="N",
        help="Replay last N lines before tailing (-1 = disabled, 0 = from start)",
    )
    tail_parser.add_argument(
        "--replay-since",
        type=str,
        metavar="TIMESTAMP",
        help="Replay events since timestamp (RFC 3339, e.g. 2024-01-15T12:00:00Z)",
    )
    tail_parser.add_argument(
        "--wait",
        action="store_true",
        help="Wait for log files to appear instead of failing",
    )
    tail_parser.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help=f"Seconds between log rotation checks (default: {DEFAULT_POLL_INTERVAL})",
    )

    # parse command
    parse_parser = subparsers.add_parser("parse", help="Parse existing log files")
    parse_parser.add_argument(
        "files",
        type=str,
        nargs="*",
        help="Log files to parse (default: every log file in the log directory)",
    )
    _add_common_arguments(parse_parser)
    parse_parser.add_argument(
        "--since",
        type=str,
        help="Only events at or after this time (RFC 3339)",
    )
    parse_parser.add_argument(
        "--until",
        type=str,
        help="Only events before this time (RFC 3339)",
    )
    parse_parser.add_argument(
        "--stop-on-error",
        action="store_true",
        help="Stop at the first malformed line instead of skipping it",
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    # VRCLOG_LOGDIR and friends may come from a .env file
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level=level, log_file=Path(args.log_file) if args.log_file else None)

    if args.command == "tail":
        return cmd_tail(args)
    if args.command == "parse":
        return cmd_parse(args)

    parser.print_help()
    return 1
