"""Cancellation token shared by a turn, its transport, and tool executions."""

from __future__ import annotations

import logging
import threading
from typing import Callable

_log = logging.getLogger(__name__)


def _noop() -> None:
    pass


class OperationCancelled(Exception):
    """Raised inside a cancellable operation once its token is cancelled."""


class CancellationToken:
    """Thread-safe cancellation flag with callbacks and derived child tokens.

    A child token is cancelled whenever its parent is; cancelling a child
    leaves the parent untouched.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self.reason: str | None = None
        self._detach: Callable[[], None] = _noop

    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Only the first call has any effect."""
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks = list(self._callbacks)
        _log.debug("Cancellation requested%s", f" ({reason})" if reason else "")
        for callback in callbacks:
            try:
                callback()
            except Exception:
                _log.exception("Cancellation callback failed")

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run callback on cancellation, or immediately if already cancelled."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        """Forget a callback registered with add_callback. Unknown callbacks are ignored."""
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def wait(self, timeout: float | None = None) -> bool:
        """Block up to timeout seconds. Returns True if cancelled meanwhile."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason or "Operation cancelled")

    def child(self) -> "CancellationToken":
        """Return a token that is cancelled whenever this one is.

        Call ``detach()`` on the child once it is no longer needed so a
        long-lived parent does not keep collecting callbacks.
        """
        token = CancellationToken()

        def propagate() -> None:
            token.cancel(self.reason)

        self.add_callback(propagate)
        token._detach = lambda: self.remove_callback(propagate)
        return token

    def detach(self) -> None:
        """Stop following the parent token. No-op for a root token."""
        self._detach()
        self._detach = _noop

    def cancel_after(self, seconds: float, reason: str = "timeout") -> threading.Timer:
        """Arm a daemon timer that cancels this token after ``seconds``.

        The caller owns the timer and should ``cancel()`` it when done.
        """
        timer = threading.Timer(seconds, self.cancel, kwargs={"reason": reason})
        timer.daemon = True
        timer.start()
        return timer
