"""Adaptive retry scheduler shared by every remote call of one filesystem."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, TypeVar

from tenacity import Retrying, before_sleep_log, retry_if_exception

from alist_remote._errors import Cancelled, ErrorKind, RemoteStoreError

if TYPE_CHECKING:
    from collections.abc import Callable

    from tenacity import RetryCallState

    from alist_remote._context import Context

T = TypeVar("T")

log = logging.getLogger(__name__)

# HTTP statuses that mark a round trip as worth retrying
RETRY_STATUS_CODES = frozenset({401, 408, 423, 429, 500, 502, 503, 504})

DEFAULT_MIN_SLEEP = 0.01
DEFAULT_MAX_SLEEP = 300.0
DEFAULT_DECAY_CONSTANT = 1


def should_retry(exc: BaseException) -> bool:
    """Return ``True`` if a failed round trip should be attempted again."""
    if isinstance(exc, Cancelled):
        return False
    return isinstance(exc, RemoteStoreError) and exc.kind is ErrorKind.TRANSIENT


class Pacer:
    """Exponential backoff with a decay constant and no attempt limit.

    The sleep interval is shared by all calls made through one pacer: every
    retry grows it towards ``max_sleep`` and every success decays it back
    towards ``min_sleep``. A call only ends with a result, a terminal error or
    the cancellation of its context.

    :param min_sleep: Lower bound of the backoff interval in seconds.
    :param max_sleep: Upper bound of the backoff interval in seconds.
    :param decay_constant: Bigger values decay the interval more slowly.
    :param attack_constant: Bigger values grow the interval more slowly;
        ``0`` jumps straight to ``max_sleep``.
    """

    def __init__(
        self,
        min_sleep: float = DEFAULT_MIN_SLEEP,
        max_sleep: float = DEFAULT_MAX_SLEEP,
        decay_constant: int = DEFAULT_DECAY_CONSTANT,
        attack_constant: int = 1,
    ) -> None:
        if min_sleep < 0 or max_sleep < min_sleep:
            raise ValueError(f"Invalid sleep bounds: min={min_sleep} max={max_sleep}")
        if decay_constant < 0 or attack_constant < 0:
            raise ValueError("decay_constant and attack_constant must be >= 0")
        self.min_sleep = min_sleep
        self.max_sleep = max_sleep
        self.decay_constant = decay_constant
        self.attack_constant = attack_constant
        self._lock = threading.Lock()
        self._sleep = min_sleep

    def __repr__(self) -> str:
        return f"Pacer(min_sleep={self.min_sleep}, max_sleep={self.max_sleep}, current={self.current_sleep})"

    @property
    def current_sleep(self) -> float:
        with self._lock:
            return self._sleep

    def _backoff(self, retry_state: RetryCallState) -> float:
        """Grow the shared interval and return it as the next wait."""
        with self._lock:
            if self.attack_constant == 0:
                self._sleep = self.max_sleep
            else:
                factor = 2**self.attack_constant
                grown = max(self._sleep, self.min_sleep) * factor / (factor - 1)
                self._sleep = min(grown, self.max_sleep)
            return self._sleep

    def _decay(self) -> None:
        with self._lock:
            factor = 2**self.decay_constant
            self._sleep = max(self._sleep * (factor - 1) / factor, self.min_sleep)

    def call(self, operation: Callable[[], T], ctx: Context) -> T:
        """Run ``operation`` until it succeeds or fails terminally.

        ``operation`` performs one round trip and raises a classified
        :class:`RemoteStoreError` on failure.

        :raises Cancelled: If ``ctx`` is cancelled before the first attempt
            or during a backoff sleep.
        """
        ctx.check()
        retrying = Retrying(
            retry=retry_if_exception(should_retry),
            wait=self._backoff,
            sleep=ctx.sleep,
            before_sleep=before_sleep_log(log, logging.INFO),  # type: ignore[arg-type,unused-ignore]
            reraise=True,
        )
        result = retrying(operation)
        self._decay()
        return result
