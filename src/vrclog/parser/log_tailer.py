"""Log tailer - incremental file reading with position tracking."""

import logging
import os
import threading
from pathlib import Path
from typing import Generator, Optional, Union

from vrclog.channel import Channel
from vrclog.config.logging import DISCARD_LOGGER
from vrclog.context import Context

# How often a TailSource checks the file for new content
TAIL_POLL_INTERVAL = 0.25

# Buffered lines between the tail thread and its consumer
LINE_BUFFER = 64

# Buffered errors; further errors are dropped
ERROR_BUFFER = 16

# Upper bound for a single read so a huge backlog is consumed in steps
MAX_READ_BYTES = 1024 * 1024

# Bytes before the read position re-checked on each read to spot a rewritten file
TAIL_CHECK_BYTES = 64


class LogTailer:
    """
    Read log file incrementally, tracking position.

    Handles:
    - Reading from last position
    - Truncation detection (file shrinks below the read position)
    - Recreation detection (device or inode changes, or the bytes just
      before the read position no longer match)
    - Yielding complete lines only
    """

    def __init__(self, file_path: Union[str, os.PathLike]) -> None:
        self.file_path = Path(file_path)
        self._position: int = 0
        self._file_size: int = 0
        self._partial_line: bytes = b""
        self._file_id: Optional[tuple[int, int]] = None  # (st_dev, st_ino)
        self._tail_bytes: bytes = b""  # File content just before _position

    @property
    def position(self) -> int:
        """Current read position in file."""
        return self._position

    @property
    def file_size(self) -> int:
        """Last known file size."""
        return self._file_size

    def seek_to_end(self) -> None:
        """
        Seek to end of log file.

        Used when only lines written from now on are wanted. A file that
        does not exist yet is later read from its start.
        """
        self._partial_line = b""
        try:
            f = open(self.file_path, "rb")
        except FileNotFoundError:
            return
        with f:
            info = os.fstat(f.fileno())
            self._position = info.st_size
            self._file_size = info.st_size
            self._file_id = (info.st_dev, info.st_ino)
            f.seek(max(info.st_size - TAIL_CHECK_BYTES, 0))
            self._tail_bytes = f.read(TAIL_CHECK_BYTES)

    def file_exists(self) -> bool:
        """Check if the log file exists."""
        try:
            return self.file_path.is_file()
        except OSError:
            return False

    def read_new_lines(self) -> Generator[str, None, None]:
        """
        Read new lines from the log file.

        Yields complete lines only. Partial lines are buffered until a
        newline is received. Lines are decoded as UTF-8 (invalid bytes
        replaced) with the trailing CR removed.

        Raises:
            OSError: If the file exists but cannot be read
        """
        try:
            f = open(self.file_path, "rb")
        except FileNotFoundError:
            return

        with f:
            info = os.fstat(f.fileno())
            file_id = (info.st_dev, info.st_ino)
            current_size = info.st_size

            # Replaced by a new file, truncated, or rewritten in place: start over
            replaced = self._file_id is not None and file_id != self._file_id
            if not replaced and self._tail_bytes and current_size >= self._position:
                f.seek(self._position - len(self._tail_bytes))
                replaced = f.read(len(self._tail_bytes)) != self._tail_bytes
            if replaced or current_size < self._position:
                self._position = 0
                self._partial_line = b""
                self._tail_bytes = b""
            self._file_id = file_id

            self._file_size = current_size
            if current_size <= self._position:
                return

            f.seek(self._position)
            content = f.read(min(current_size - self._position, MAX_READ_BYTES))
            self._position = f.tell()
            self._tail_bytes = (self._tail_bytes + content)[-TAIL_CHECK_BYTES:]

        if not content:
            return

        content = self._partial_line + content
        self._partial_line = b""

        lines = content.split(b"\n")

        # Last element is either empty (content ended with \n) or a partial line
        self._partial_line = lines.pop()

        for line in lines:
            yield line.rstrip(b"\r").decode("utf-8", errors="replace")

    def has_backlog(self) -> bool:
        """True if the last read stopped before the known end of file."""
        return self._position < self._file_size

    def reset(self) -> None:
        """Reset position to start of file."""
        self._position = 0
        self._file_size = 0
        self._partial_line = b""
        self._file_id = None
        self._tail_bytes = b""


class TailSource:
    """
    Background thread that follows one file and publishes its lines.

    `lines` and `errors` are closed together when the thread exits, either
    because stop() was called or the context it was started with was
    cancelled. Read failures are reported on `errors` (dropped when the
    buffer is full) and the thread keeps polling.
    """

    def __init__(
        self,
        tailer: LogTailer,
        ctx: Context,
        poll_interval: float = TAIL_POLL_INTERVAL,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.tailer = tailer
        self.lines: Channel[str] = Channel(LINE_BUFFER)
        self.errors: Channel[Exception] = Channel(ERROR_BUFFER)
        self._ctx = ctx
        self._poll_interval = poll_interval
        self._log = logger or DISCARD_LOGGER
        self._thread: Optional[threading.Thread] = None
        self._stop_lock = threading.Lock()
        self._unsent: list[str] = []

    @property
    def path(self) -> Path:
        return self.tailer.file_path

    @classmethod
    def start(
        cls,
        path: Union[str, os.PathLike],
        from_start: bool = False,
        poll_interval: float = TAIL_POLL_INTERVAL,
        wait_for_file: bool = False,
        ctx: Optional[Context] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "TailSource":
        """
        Attach to a file and start the tail thread.

        Args:
            path: File to follow
            from_start: Read existing content first instead of seeking to the end
            poll_interval: Seconds between checks for new content
            wait_for_file: Tolerate a file that does not exist yet
            ctx: Parent context; cancelling it stops the source

        Raises:
            FileNotFoundError: If the file is missing and wait_for_file is False
            OSError: If the file exists but cannot be opened
        """
        tailer = LogTailer(path)
        if tailer.file_exists():
            # Fail here rather than in the thread if the file is unreadable
            with open(tailer.file_path, "rb"):
                pass
        elif not wait_for_file:
            raise FileNotFoundError(f"log file not found: {tailer.file_path.name}")

        if not from_start:
            tailer.seek_to_end()

        parent = ctx if ctx is not None else Context()
        source = cls(tailer, parent.child(), poll_interval=poll_interval, logger=logger)
        source._thread = threading.Thread(
            target=source._run, daemon=True, name=f"vrclog-tail-{tailer.file_path.name}"
        )
        source._thread.start()
        return source

    def _run(self) -> None:
        try:
            while not self._ctx.cancelled:
                try:
                    lines = list(self.tailer.read_new_lines())
                except OSError as e:
                    self._log.debug(f"tail read failed: {e}")
                    self.errors.put_nowait(e)
                    lines = []

                for i, line in enumerate(lines):
                    if not self.lines.put(line, self._ctx):
                        self._unsent = lines[i:]
                        return

                if not lines and not self.tailer.has_backlog():
                    self._ctx.wait(self._poll_interval)
        finally:
            self.lines.close()
            self.errors.close()

    def stop(self) -> None:
        """Stop the thread and wait for it to exit. Safe to call repeatedly."""
        with self._stop_lock:
            self._ctx.cancel()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def remaining_lines(self) -> list[str]:
        """
        Lines read but never delivered, followed by anything still unread.

        Only valid after stop(). Buffered lines on `lines` come first and
        are not included.

        Raises:
            OSError: If the file cannot be read
        """
        unsent, self._unsent = self._unsent, []
        return unsent + list(self.tailer.read_new_lines())

    def __enter__(self) -> "TailSource":
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
