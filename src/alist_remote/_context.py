"""Context: cancellation signal propagated from every verb to every remote call."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, TypeVar

from alist_remote._errors import Cancelled

if TYPE_CHECKING:
    from concurrent.futures import Future

T = TypeVar("T")


class Context:
    """A cancellation token with an optional deadline.

    Sleeping on a context, or waiting on a call running elsewhere, returns
    early with :class:`Cancelled` as soon as the context is cancelled or its
    deadline passes.

    :param timeout: Seconds until the context expires, or ``None`` for no deadline.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._waiters: set[threading.Event] = set()
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._reason = ""

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"Context({state})"

    @property
    def deadline(self) -> float | None:
        """Monotonic deadline, or ``None``."""
        return self._deadline

    @property
    def remaining(self) -> float | None:
        """Seconds left before the deadline, ``None`` without one."""
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel this context and wake everything waiting on it."""
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            waiters = list(self._waiters)
        for waiter in waiters:
            waiter.set()

    def check(self) -> None:
        """Raise :class:`Cancelled` if the context is no longer active."""
        if self.cancelled:
            raise Cancelled(f"Operation {self._reason}")

    def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless the context ends first.

        :raises Cancelled: If the context is cancelled before or during the sleep.
        """
        self.check()
        remaining = self.remaining
        if remaining is not None and remaining < seconds:
            self._event.wait(remaining)
            self.cancel("deadline exceeded")
            self.check()
        self._event.wait(seconds)
        self.check()

    def wait(self, future: Future[T]) -> T:
        """Return the result of ``future``, or stop waiting when the context ends.

        The work behind ``future`` is abandoned, not interrupted; its result
        is discarded.

        :raises Cancelled: If the context ends before ``future`` completes.
        """
        self.check()
        done = threading.Event()
        future.add_done_callback(lambda _: done.set())
        with self._lock:
            self._waiters.add(done)
            if self._event.is_set():
                done.set()
        try:
            if not done.wait(self.remaining):
                self.cancel("deadline exceeded")
        finally:
            with self._lock:
                self._waiters.discard(done)
        if not future.done():
            future.cancel()
            self.check()
        return future.result()
