"""Exception types raised or delivered by vrclog."""

from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from vrclog.core.models import ParseResult


class VRCLogError(Exception):
    """
    Base exception for vrclog.

    All other exceptions inherit from this. `underlying` keeps the
    original exception when one error wraps another.
    """

    def __init__(self, message: str, *, underlying: Optional[BaseException] = None):
        super().__init__(message)
        self.underlying = underlying
        if underlying is not None:
            self.__cause__ = underlying

    def __str__(self) -> str:
        if self.underlying is not None:
            return f"{self.args[0]}: {self.underlying}"
        return self.args[0]


class LogDirNotFoundError(VRCLogError):
    """Raised when no usable VRChat log directory can be resolved."""

    def __init__(self, message: str = "log directory not found", **kwargs):
        super().__init__(message, **kwargs)


class NoLogFilesError(VRCLogError):
    """Raised when the log directory holds no output_log files."""

    def __init__(self, message: str = "no log files found", **kwargs):
        super().__init__(message, **kwargs)


class WatcherClosedError(VRCLogError):
    """Raised by Watcher.watch() after close()."""

    def __init__(self, message: str = "watcher is closed", **kwargs):
        super().__init__(message, **kwargs)


class AlreadyWatchingError(VRCLogError):
    """Raised by a second Watcher.watch() call."""

    def __init__(self, message: str = "watch already called", **kwargs):
        super().__init__(message, **kwargs)


class ReplayLimitExceededError(VRCLogError):
    """Raised when replay would exceed its byte budgets."""

    def __init__(self, message: str = "replay limit exceeded", **kwargs):
        super().__init__(message, **kwargs)


class NotRegularFileError(VRCLogError):
    """Raised when a path is a symlink, FIFO, device, socket or directory."""

    def __init__(self, message: str = "not a regular file", **kwargs):
        super().__init__(message, **kwargs)


class CancelledError(VRCLogError):
    """The error reported by a cancelled Context."""

    def __init__(self, message: str = "context cancelled", **kwargs):
        super().__init__(message, **kwargs)


class InvalidOptionsError(VRCLogError):
    """Raised when watch or parse options fail validation."""

    def __init__(self, problems: Sequence[str]):
        self.problems = list(problems)
        super().__init__("invalid options: " + "; ".join(self.problems))


class WatchOp(Enum):
    """Phase of the watcher that produced a WatchError."""

    FIND_LATEST = "find_latest"
    TAIL = "tail"
    ROTATION = "rotation"
    REPLAY = "replay"
    PARSE = "parse"


class WatchError(VRCLogError):
    """Runtime error tagged with the watcher phase it came from."""

    def __init__(
        self,
        op: WatchOp,
        underlying: BaseException,
        path: Optional[str] = None,
    ):
        self.op = op
        self.path = path
        if path:
            message = f"watch {op.value} {path}"
        else:
            message = f"watch {op.value}"
        super().__init__(message, underlying=underlying)


class ParseError(VRCLogError):
    """A parser raised while handling a single line."""

    def __init__(self, line: str, underlying: BaseException):
        self.line = line
        super().__init__("parse error", underlying=underlying)


class LineTooLongError(VRCLogError):
    """A line exceeded the offline scanner limit."""

    def __init__(self, line_number: int, length: int, max_length: int):
        self.line_number = line_number
        self.length = length
        self.max_length = max_length
        super().__init__(
            f"line {line_number} too long: {length} bytes (max {max_length})"
        )


class PartialResultError(VRCLogError):
    """
    A parser failure that still carries a usable ParseResult.

    Consumers deliver `result.events` before reporting the error so partial
    success is not lost.
    """

    def __init__(
        self,
        message: str,
        *,
        result: "ParseResult",
        underlying: Optional[BaseException] = None,
    ):
        super().__init__(message, underlying=underlying)
        self.result = result


class ChainError(PartialResultError):
    """Errors collected by a ParserChain in CONTINUE_ON_ERROR mode."""

    def __init__(self, errors: Sequence[BaseException], result: "ParseResult"):
        self.errors = list(errors)
        joined = "; ".join(str(e) for e in self.errors)
        super().__init__(
            f"{len(self.errors)} parser(s) failed: {joined}",
            result=result,
            underlying=self.errors[0] if self.errors else None,
        )

    def __str__(self) -> str:
        return self.args[0]


class ChainCancelledError(PartialResultError):
    """A ParserChain stopped early because its context was cancelled."""

    def __init__(
        self,
        result: "ParseResult",
        cause: BaseException,
        errors: Sequence[BaseException] = (),
    ):
        self.errors = list(errors)
        super().__init__("parser chain cancelled", result=result, underlying=cause)


class PatternValidationError(VRCLogError):
    """A pattern file violates a schema-level requirement."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"validation error: {field}: {message}")


class PatternError(VRCLogError):
    """A single pattern entry is invalid."""

    def __init__(
        self,
        index: int,
        field: str,
        message: str,
        pattern_id: str = "",
        underlying: Optional[BaseException] = None,
    ):
        self.index = index
        self.pattern_id = pattern_id
        self.field = field
        self.message = message
        if pattern_id:
            text = f"pattern {pattern_id!r}: {field}: {message}"
        else:
            text = f"pattern[{index}]: {field}: {message}"
        super().__init__(text, underlying=underlying)

    def __str__(self) -> str:
        return self.args[0]
