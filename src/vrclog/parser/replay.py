"""Last-N replay: read the tail of a log file by scanning backward in chunks."""

import os
from typing import Union

from vrclog.errors import ReplayLimitExceededError

CHUNK_SIZE = 4096


def _decode(raw: bytes) -> str:
    return raw.rstrip(b"\r").decode("utf-8", errors="replace")


def read_last_lines(
    path: Union[str, os.PathLike],
    n: int,
    max_bytes: int = 0,
    max_line_bytes: int = 0,
) -> list[str]:
    """
    Return the last n non-empty lines of a file, oldest first.

    The file is read backward in CHUNK_SIZE blocks and reading stops as
    soon as n lines are collected, so only the tail of a large file is
    touched. Trailing CR is stripped and lines that are empty afterwards
    are skipped without counting toward n.

    Args:
        path: File to read
        n: Number of lines wanted (n <= 0 returns nothing)
        max_bytes: Total bytes that may be read (0 = unlimited)
        max_line_bytes: Maximum size of a returned line (0 = unlimited).
            Lines outside the requested window are not checked.

    Raises:
        ReplayLimitExceededError: If either byte budget would be exceeded
        OSError: If the file cannot be opened or read
    """
    if n <= 0:
        return []

    with open(path, "rb") as f:
        offset = os.fstat(f.fileno()).st_size
        if offset == 0:
            return []

        # Newest first while scanning
        found: list[str] = []
        carry = b""
        total = 0

        while len(found) < n and offset > 0:
            read_size = min(CHUNK_SIZE, offset)
            if max_bytes > 0 and total + read_size > max_bytes:
                raise ReplayLimitExceededError(
                    f"replay limit exceeded: reading {total + read_size} bytes (max {max_bytes})"
                )
            offset -= read_size
            f.seek(offset)
            chunk = f.read(read_size)
            if len(chunk) != read_size:
                raise OSError(f"short read at offset {offset}")
            total += read_size

            buf = chunk + carry
            end = len(buf)
            pos = buf.rfind(b"\n", 0, end)
            while pos != -1 and len(found) < n:
                raw = buf[pos + 1:end]
                line = _decode(raw)
                if line:
                    if max_line_bytes > 0 and len(raw) > max_line_bytes:
                        raise ReplayLimitExceededError(
                            f"replay limit exceeded: line of {len(raw)} bytes (max {max_line_bytes})"
                        )
                    found.append(line)
                end = pos
                pos = buf.rfind(b"\n", 0, end)
            carry = buf[:end]

            # The next line back is kept, and it is already too long
            if len(found) < n and max_line_bytes > 0 and len(carry) > max_line_bytes:
                raise ReplayLimitExceededError(
                    f"replay limit exceeded: line of at least {len(carry)} bytes (max {max_line_bytes})"
                )

    # First line of the file has no leading newline
    if offset == 0 and carry and len(found) < n:
        line = _decode(carry)
        if line:
            found.append(line)

    found.reverse()
    return found
