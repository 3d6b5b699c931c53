"""Cancellation token shared by the watcher, tailers and parsers."""

import threading
from typing import Callable, Optional

from vrclog.errors import CancelledError


class Context:
    """
    Cooperative cancellation signal.

    A Context starts live and becomes cancelled once; cancelling a parent
    cancels every child derived from it. Blocking code waits on
    `wait(timeout)` and parsers check `err()` between steps.
    """

    def __init__(self, parent: Optional["Context"] = None) -> None:
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._err: Optional[CancelledError] = None
        self._parent = parent
        if parent is not None:
            parent.add_done_callback(self.cancel)

    @property
    def cancelled(self) -> bool:
        return self._done.is_set()

    def cancel(self) -> None:
        """Cancel this context and its children. Safe to call repeatedly."""
        with self._lock:
            if self._done.is_set():
                return
            self._err = CancelledError()
            self._done.set()
            callbacks, self._callbacks = self._callbacks, []
            parent, self._parent = self._parent, None
        for callback in callbacks:
            callback()
        # A finished child stays registered on its parent no longer
        if parent is not None:
            parent.remove_done_callback(self.cancel)

    def err(self) -> Optional[CancelledError]:
        """Return CancelledError once cancelled, otherwise None."""
        return self._err

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout. Returns True if cancelled."""
        return self._done.wait(timeout)

    def add_done_callback(self, callback: Callable[[], None]) -> None:
        """Run callback on cancellation (immediately if already cancelled)."""
        with self._lock:
            if not self._done.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_done_callback(self, callback: Callable[[], None]) -> None:
        """Forget a callback registered with add_done_callback. Unknown callbacks are ignored."""
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    @property
    def pending_callbacks(self) -> int:
        """Number of callbacks still waiting for cancellation."""
        with self._lock:
            return len(self._callbacks)

    def child(self) -> "Context":
        return Context(parent=self)


def background() -> Context:
    """Return a fresh context that is only cancelled explicitly."""
    return Context()
