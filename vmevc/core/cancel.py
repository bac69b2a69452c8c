from __future__ import annotations

import contextlib
import signal
import threading
import time
from typing import Iterator, Optional


class CancelToken:
    """
    Cancellation signal threaded through the blocking wait.

    Cancelled either explicitly (cancel(), SIGINT via on_sigint()) or by an
    optional deadline. wait() is the only way the workflow sleeps, so a
    cancel wakes it immediately.
    """

    DEADLINE = "deadline"
    INTERRUPT = "interrupt"

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + float(timeout) if timeout else None
        self.timeout = timeout
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if self.reason is None:
            self.reason = reason
        self._event.set()

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel(self.DEADLINE)
            return True
        return False

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; True if cancelled (now or during the sleep)."""
        if self.cancelled:
            return True
        left = self.remaining()
        if left is not None:
            seconds = min(seconds, left)
        self._event.wait(max(0.0, seconds))
        return self.cancelled

    @contextlib.contextmanager
    def on_sigint(self) -> Iterator["CancelToken"]:
        """Turn Ctrl+C into cancel(INTERRUPT) while the block runs."""
        if threading.current_thread() is not threading.main_thread():
            yield self
            return

        def _handler(signum, frame):  # noqa: ARG001
            self.cancel(self.INTERRUPT)

        previous = signal.signal(signal.SIGINT, _handler)
        try:
            yield self
        finally:
            signal.signal(signal.SIGINT, previous)
