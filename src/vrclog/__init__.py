"""VRChat log watcher: parses output_log files into events."""

from vrclog.channel import Channel, ChannelClosed
from vrclog.config.settings import ParseOptions, TypeFilter, WatchOptions
from vrclog.context import Context, background
from vrclog.core.models import (
    PLAYER_JOIN,
    PLAYER_LEFT,
    WORLD_JOIN,
    Event,
    ParseResult,
    ReplayConfig,
    ReplayMode,
)
from vrclog.errors import (
    AlreadyWatchingError,
    ChainCancelledError,
    ChainError,
    InvalidOptionsError,
    LineTooLongError,
    LogDirNotFoundError,
    NoLogFilesError,
    ParseError,
    ReplayLimitExceededError,
    VRCLogError,
    WatchError,
    WatcherClosedError,
    WatchOp,
)
from vrclog.parser.chain import ChainMode, Parser, ParserChain, ParserFunc
from vrclog.parser.log_parser import DefaultParser, parse_line
from vrclog.parser.regex_parser import RegexParser
from vrclog.version import __version__
from vrclog.watcher.parse import parse_dir, parse_file, parse_file_all
from vrclog.watcher.watcher import Watcher, watch_with_options

__all__ = [
    "AlreadyWatchingError",
    "ChainCancelledError",
    "ChainError",
    "ChainMode",
    "Channel",
    "ChannelClosed",
    "Context",
    "DefaultParser",
    "Event",
    "InvalidOptionsError",
    "LineTooLongError",
    "LogDirNotFoundError",
    "NoLogFilesError",
    "PLAYER_JOIN",
    "PLAYER_LEFT",
    "ParseError",
    "ParseOptions",
    "ParseResult",
    "Parser",
    "ParserChain",
    "ParserFunc",
    "RegexParser",
    "ReplayConfig",
    "ReplayLimitExceededError",
    "ReplayMode",
    "TypeFilter",
    "VRCLogError",
    "WORLD_JOIN",
    "WatchError",
    "WatchOp",
    "WatchOptions",
    "Watcher",
    "WatcherClosedError",
    "__version__",
    "background",
    "parse_dir",
    "parse_file",
    "parse_file_all",
    "parse_line",
    "watch_with_options",
]
