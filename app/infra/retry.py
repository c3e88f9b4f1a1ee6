# app/infra/retry.py
import random
import threading
import time
import logging
from typing import Callable, TypeVar, Optional

T = TypeVar("T")
logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class CircuitOpenError(Exception):
    """Raised instead of calling out while the breaker is open."""


def _sleep_with_jitter(base: float, factor: float, attempt: int, cap: float) -> float:
    # exponential backoff with jitter
    delay = min(base * (factor ** attempt), cap)
    jitter = random.uniform(0, delay * 0.25)
    return delay + jitter


class CircuitBreaker:
    """
    Process-wide breaker: opens after `threshold` consecutive failures and
    rejects calls for `cooldown` seconds, then lets one trial call through.
    """

    def __init__(self, *, threshold: int = 5, cooldown: float = 60.0, name: str = "default"):
        self.threshold = threshold
        self.cooldown = cooldown
        self.name = name
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        with self._lock:
            if self._opened_at is None:
                return False
            if time.monotonic() - self._opened_at >= self.cooldown:
                # half-open: allow a trial call
                self._opened_at = None
                self._failures = self.threshold - 1
                return False
            return True

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._opened_at = None

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._failures >= self.threshold and self._opened_at is None:
                self._opened_at = time.monotonic()
                logger.warning("circuit %s opened after %s failures", self.name, self._failures)

    def reset(self) -> None:
        self.record_success()


def retry_on(
    fn: Callable[[], T],
    *,
    attempts: int = 3,
    base: float = 1.0,
    factor: float = 2.0,
    cap: float = 10.0,
    is_retryable: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    breaker: Optional[CircuitBreaker] = None,
) -> T:
    if breaker is not None and breaker.is_open:
        raise CircuitOpenError(f"circuit {breaker.name} is open")

    last_exc: Optional[Exception] = None
    for i in range(attempts):
        try:
            result = fn()
        except Exception as e:
            if breaker is not None:
                breaker.record_failure()
            if is_retryable and not is_retryable(e):
                raise
            last_exc = e
            if i == attempts - 1:
                break
            if breaker is not None and breaker.is_open:
                break
            sleep_s = _sleep_with_jitter(base, factor, i, cap)
            if on_retry:
                on_retry(i + 1, e, sleep_s)
            else:
                logger.warning("retry #%s in %.2fs due to %s", i + 1, sleep_s, repr(e))
            time.sleep(sleep_s)
        else:
            if breaker is not None:
                breaker.record_success()
            return result
    assert last_exc is not None
    raise last_exc
