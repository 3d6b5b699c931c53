"""Thread-safe LRU cache of compiled regular expressions."""

import re
import threading
from collections import OrderedDict
from typing import Pattern

from vrclog.parser.pattern_file import MAX_PATTERN_LENGTH

DEFAULT_REGEX_CACHE_SIZE = 100


class RegexCache:
    """
    LRU cache for compiled regexes, shared by parsers across watchers.

    Lookups are lock-free dict reads; inserts take the lock and check
    again before adding, since another thread may have compiled the same
    pattern meanwhile.
    """

    def __init__(self, max_size: int = DEFAULT_REGEX_CACHE_SIZE) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._entries: "OrderedDict[str, Pattern[str]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, pattern: str) -> Pattern[str]:
        """
        Return the compiled regex for pattern, compiling it on a miss.

        Raises:
            ValueError: If the pattern exceeds MAX_PATTERN_LENGTH
            re.error: If the pattern does not compile
        """
        if len(pattern.encode("utf-8")) > MAX_PATTERN_LENGTH:
            raise ValueError("pattern exceeds maximum length")

        compiled = self._entries.get(pattern)
        if compiled is not None:
            with self._lock:
                if pattern in self._entries:
                    self._entries.move_to_end(pattern)
            return compiled

        compiled = re.compile(pattern)

        with self._lock:
            existing = self._entries.get(pattern)
            if existing is not None:
                self._entries.move_to_end(pattern)
                return existing
            if len(self._entries) >= self._max_size:
                self._entries.popitem(last=False)
            self._entries[pattern] = compiled
            return compiled

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# Shared by every RegexParser in the process
shared_cache = RegexCache()
