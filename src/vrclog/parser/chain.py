"""Parser protocol and ParserChain composition."""

from enum import Enum, auto
from typing import Callable, Iterable, Optional, Protocol, runtime_checkable

from vrclog.context import Context
from vrclog.core.models import Event, ParseResult
from vrclog.errors import ChainCancelledError, ChainError


@runtime_checkable
class Parser(Protocol):
    """
    Converts one raw log line into zero or more events.

    Return ParseResult(matched=False) for lines the parser does not
    recognize. Raise only for unexpected failures; raise a
    PartialResultError subclass to hand back events produced before the
    failure.
    """

    def parse_line(self, ctx: Context, line: str) -> ParseResult:
        ...


class ParserFunc:
    """Adapter that lets a plain callable act as a Parser."""

    def __init__(self, func: Callable[[Context, str], ParseResult]) -> None:
        self._func = func

    def parse_line(self, ctx: Context, line: str) -> ParseResult:
        return self._func(ctx, line)

    def __repr__(self) -> str:
        return f"ParserFunc({getattr(self._func, '__name__', self._func)!r})"


class ChainMode(Enum):
    """How a ParserChain combines its parsers."""

    ALL = auto()  # Run every parser, concatenate events, stop on first error
    FIRST = auto()  # Stop at the first parser that matches
    CONTINUE_ON_ERROR = auto()  # Skip failing parsers, report their errors at the end


class ParserChain:
    """
    Ordered combination of parsers.

    ALL: every parser runs; events are concatenated in declaration order;
        matched if any parser matched. The first exception aborts the
        whole chain and is re-raised as-is (no partial result).
    FIRST: parsers run in order until one reports matched=True; later
        parsers are not invoked.
    CONTINUE_ON_ERROR: every parser runs; failures are collected and
        raised together as ChainError carrying the events from the
        parsers that succeeded.

    The context is checked before each parser. On cancellation the chain
    raises ChainCancelledError holding whatever was accumulated so far;
    callers that need all-or-nothing results should discard it.
    None entries are skipped.
    """

    def __init__(
        self,
        parsers: Optional[Iterable[Optional[Parser]]] = None,
        mode: ChainMode = ChainMode.ALL,
    ) -> None:
        self.parsers: list[Optional[Parser]] = list(parsers or [])
        self.mode = mode

    def parse_line(self, ctx: Context, line: str) -> ParseResult:
        events: list[Event] = []
        errors: list[BaseException] = []
        any_matched = False

        for parser in self.parsers:
            cancelled = ctx.err()
            if cancelled is not None:
                raise ChainCancelledError(
                    ParseResult(events=events, matched=any_matched),
                    cancelled,
                    errors if self.mode is ChainMode.CONTINUE_ON_ERROR else (),
                )

            if parser is None:
                continue

            try:
                result = parser.parse_line(ctx, line)
            except Exception as e:
                if self.mode is ChainMode.CONTINUE_ON_ERROR:
                    errors.append(e)
                    continue
                raise

            if result.matched:
                any_matched = True
                events.extend(result.events)
                if self.mode is ChainMode.FIRST:
                    return ParseResult(events=events, matched=True)

        if errors:
            raise ChainError(errors, ParseResult(events=events, matched=any_matched))

        return ParseResult(events=events, matched=any_matched)

    def __repr__(self) -> str:
        return f"ParserChain(mode={self.mode.name}, parsers={self.parsers!r})"
