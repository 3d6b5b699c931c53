"""VRChat log directory and log file resolution."""

import os
import stat
from pathlib import Path
from typing import BinaryIO, Optional, Union

from vrclog.errors import LogDirNotFoundError, NoLogFilesError, NotRegularFileError

# Environment variable that overrides auto-detection
ENV_LOG_DIR = "VRCLOG_LOGDIR"

# VRChat writes one output_log file per session
LOG_FILE_GLOB = "output_log_*.txt"

# Directories below LocalLow where VRChat keeps its logs
LOG_RELATIVE_DIRS = [
    Path("VRChat/VRChat"),
    Path("VRChat/vrchat"),
]

PathLike = Union[str, os.PathLike]


def default_log_dirs() -> list[Path]:
    """
    Candidate VRChat log directories in priority order.

    Derived from %LOCALAPPDATA% (or %USERPROFILE%/AppData/Local); VRChat
    writes to the sibling LocalLow directory.
    """
    local_app_data = os.environ.get("LOCALAPPDATA")
    if not local_app_data:
        user_profile = os.environ.get("USERPROFILE")
        if user_profile:
            local_app_data = str(Path(user_profile) / "AppData" / "Local")
    if not local_app_data:
        return []

    local_low = Path(local_app_data).parent / "LocalLow"
    return [local_low / relative for relative in LOG_RELATIVE_DIRS]


def _resolve_log_dir(directory: PathLike) -> Optional[Path]:
    """
    Resolve symlinks and validate a candidate directory.

    Returns the resolved path if it is a directory holding at least one
    log file, None otherwise.
    """
    path = Path(directory)
    try:
        if not path.is_dir():
            return None
        resolved = path.resolve(strict=True)
    except (OSError, RuntimeError):
        return None

    try:
        next(resolved.glob(LOG_FILE_GLOB))
    except StopIteration:
        return None
    except OSError:
        return None
    return resolved


def is_valid_log_dir(directory: PathLike) -> bool:
    """Check whether a directory exists and contains VRChat log files."""
    if not directory:
        return False
    return _resolve_log_dir(directory) is not None


def find_log_dir(explicit: Optional[PathLike] = None) -> Path:
    """
    Return the VRChat log directory.

    Priority:
        1. explicit (if non-empty)
        2. VRCLOG_LOGDIR environment variable
        3. Auto-detect from default_log_dirs()

    Raises:
        LogDirNotFoundError: If no valid directory is found
    """
    if explicit:
        resolved = _resolve_log_dir(explicit)
        if resolved is not None:
            return resolved
        raise LogDirNotFoundError(
            "log directory not found: specified directory is invalid or contains no log files"
        )

    env_dir = os.environ.get(ENV_LOG_DIR)
    if env_dir:
        resolved = _resolve_log_dir(env_dir)
        if resolved is not None:
            return resolved
        raise LogDirNotFoundError(
            f"log directory not found: {ENV_LOG_DIR} environment variable points to invalid directory"
        )

    for candidate in default_log_dirs():
        resolved = _resolve_log_dir(candidate)
        if resolved is not None:
            return resolved

    raise LogDirNotFoundError()


def find_latest_log_file(directory: PathLike) -> Path:
    """
    Return the most recently modified output_log file in a directory.

    Each candidate is stat'ed once and the cached mtime is used for
    sorting, so files deleted mid-scan are skipped rather than raising.
    Symlinks and other non-regular entries are ignored.

    Raises:
        NoLogFilesError: If no log files are found
    """
    candidates: list[tuple[int, Path]] = []
    try:
        matches = list(Path(directory).glob(LOG_FILE_GLOB))
    except OSError as e:
        raise NoLogFilesError(f"globbing log files in {directory}", underlying=e) from e

    for match in matches:
        try:
            info = os.lstat(match)
        except OSError:
            continue
        if not stat.S_ISREG(info.st_mode):
            continue
        candidates.append((info.st_mtime_ns, match))

    if not candidates:
        raise NoLogFilesError()

    candidates.sort(key=lambda c: c[0], reverse=True)
    return candidates[0][1]


def list_log_files(directory: PathLike) -> list[Path]:
    """Return all regular output_log files, oldest first by mtime."""
    candidates: list[tuple[int, Path]] = []
    for match in Path(directory).glob(LOG_FILE_GLOB):
        try:
            info = os.lstat(match)
        except OSError:
            continue
        if stat.S_ISREG(info.st_mode):
            candidates.append((info.st_mtime_ns, match))
    candidates.sort(key=lambda c: c[0])
    return [path for _, path in candidates]


def open_regular(path: PathLike) -> tuple[BinaryIO, os.stat_result]:
    """
    Open a file for binary reading after verifying it is a regular file.

    The path is lstat'ed (rejecting symlinks, FIFOs, devices, sockets and
    directories), then opened, then the descriptor itself is fstat'ed so a
    file swapped in between the two steps is still caught.

    Returns:
        (file object, stat of the open descriptor). Caller closes the file.

    Raises:
        NotRegularFileError: If the path or descriptor is not a regular file
        OSError: If the path cannot be stat'ed or opened
    """
    link_info = os.lstat(path)
    if not stat.S_ISREG(link_info.st_mode):
        raise NotRegularFileError()

    f = open(path, "rb")
    try:
        info = os.fstat(f.fileno())
        if not stat.S_ISREG(info.st_mode):
            raise NotRegularFileError()
    except BaseException:
        f.close()
        raise
    return f, info
