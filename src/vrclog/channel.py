"""Closeable bounded queue used to hand events and errors between threads."""

import queue
import threading
import time
from collections import deque
from typing import Deque, Generic, Iterator, Optional, TypeVar

from vrclog.context import Context

T = TypeVar("T")

# Upper bound on a single wait so blocked senders notice cancellation.
_CANCEL_CHECK_INTERVAL = 0.05


class ChannelClosed(Exception):
    """Raised by get() when the channel is closed and fully drained."""


class Channel(Generic[T]):
    """
    Bounded FIFO with close semantics.

    Producers block in put() while the channel is full (backpressure) or
    use put_nowait() to drop instead. Consumers iterate until the channel
    is closed and drained. Items already queued when close() is called
    are still delivered.
    """

    def __init__(self, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._items: Deque[T] = deque()
        self._closed = False
        self._cond = threading.Condition()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def put(self, item: T, ctx: Optional[Context] = None) -> bool:
        """
        Enqueue item, blocking while the channel is full.

        Returns False without enqueuing if the channel is closed, or if ctx
        is cancelled while waiting for room. An item that fits right away
        is enqueued even after cancellation.
        """
        with self._cond:
            while len(self._items) >= self._capacity:
                if self._closed or (ctx is not None and ctx.cancelled):
                    return False
                self._cond.wait(_CANCEL_CHECK_INTERVAL)
            if self._closed:
                return False
            self._items.append(item)
            self._cond.notify_all()
            return True

    def put_nowait(self, item: T) -> bool:
        """Enqueue item if there is room. Returns False (dropping it) otherwise."""
        with self._cond:
            if self._closed or len(self._items) >= self._capacity:
                return False
            self._items.append(item)
            self._cond.notify_all()
            return True

    def get(self, timeout: Optional[float] = None) -> T:
        """
        Dequeue the next item.

        Raises ChannelClosed once the channel is closed and empty, and
        queue.Empty if timeout elapses first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._items:
                if self._closed:
                    raise ChannelClosed()
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise queue.Empty()
                self._cond.wait(remaining)
            item = self._items.popleft()
            self._cond.notify_all()
            return item

    def get_nowait(self) -> T:
        return self.get(timeout=0)

    def close(self) -> None:
        """Close the channel. Idempotent."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except ChannelClosed:
                return
