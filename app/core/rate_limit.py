# app/core/rate_limit.py
"""
Sliding-window rate limiting.

Three policy tiers (strict / moderate / lenient) share one window size and
differ only in quota. Counters live in Redis in production; local runs and
tests use an in-process store. On top of that a coarse global per-IP limit
is enforced by slowapi for every route.
"""
from __future__ import annotations

import math
import threading
import time
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass
from functools import lru_cache
from typing import Deque, Dict, Optional, Tuple

import redis
from fastapi import Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings
from app.core.errors import RateLimitError
from app.observability.metrics import rate_limited_counter


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: int  # epoch milliseconds when the oldest hit leaves the window

    def retry_after(self, now_ms: Optional[int] = None) -> int:
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        return max(1, math.ceil((self.reset - now_ms) / 1000))

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


class MemoryStore:
    """
    In-memory sliding window.
    Good enough for local/test; not multi-worker safe.
    """

    sweep_every = 1000

    def __init__(self):
        self.hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._calls = 0

    def hit(self, key: str, limit: int, window: float, now: float) -> Tuple[bool, int, float]:
        with self._lock:
            self._calls += 1
            if self._calls % self.sweep_every == 0:
                self._sweep(now, window)

            q = self.hits[key]

            # drop old
            while q and q[0] <= now - window:
                q.popleft()

            if len(q) >= limit:
                return False, len(q), q[0]

            q.append(now)
            return True, len(q), q[0]

    def _sweep(self, now: float, window: float) -> None:
        # identifiers whose newest hit already left the window
        stale = [k for k, q in self.hits.items() if not q or q[-1] <= now - window]
        for k in stale:
            del self.hits[k]

    def reset(self) -> None:
        with self._lock:
            self.hits.clear()
            self._calls = 0


class RedisStore:
    """
    Sliding window over a sorted set of hit timestamps per key.

    The count and the insert run in one WATCH/MULTI transaction; a concurrent
    write to the same key aborts the EXEC and the attempt is replayed.
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    def hit(self, key: str, limit: int, window: float, now: float) -> Tuple[bool, int, float]:
        floor = now - window
        member = f"{now}:{uuid.uuid4().hex[:8]}"

        def _attempt(pipe) -> Tuple[bool, int, float]:
            # immediate mode until multi(): reads see the watched state
            live = pipe.zrangebyscore(key, f"({floor}", "+inf", start=0, num=1, withscores=True)
            count = pipe.zcount(key, f"({floor}", "+inf")
            oldest = live[0][1] if live else now

            pipe.multi()
            pipe.zremrangebyscore(key, 0, floor)
            if count >= limit:
                return False, count, oldest
            pipe.zadd(key, {member: now})
            pipe.pexpire(key, int(window * 1000))
            return True, count + 1, oldest

        return self.client.transaction(_attempt, key, value_from_callable=True)

    def reset(self) -> None:
        keys = self.client.keys("@ratelimit/*")
        if keys:
            self.client.delete(*keys)


class SlidingWindowLimiter:
    def __init__(self, store, *, limit: int, window_seconds: float, prefix: str):
        self.store = store
        self.max_requests = limit
        self.window = window_seconds
        self.prefix = prefix

    def limit(self, identifier: str) -> RateLimitResult:
        now = time.time()
        allowed, count, oldest = self.store.hit(
            f"{self.prefix}:{identifier}", self.max_requests, self.window, now
        )
        remaining = max(0, self.max_requests - count) if allowed else 0
        reset_ms = int(math.ceil((oldest + self.window) * 1000))
        return RateLimitResult(
            success=allowed,
            limit=self.max_requests,
            remaining=remaining,
            reset=reset_ms,
        )


@dataclass
class RateLimiters:
    strict: SlidingWindowLimiter
    moderate: SlidingWindowLimiter
    lenient: SlidingWindowLimiter
    store: object


def _build_store():
    if settings.rate_limit_backend == "redis":
        return RedisStore(redis.Redis.from_url(settings.redis_url, decode_responses=True))
    return MemoryStore()


@lru_cache(maxsize=1)
def get_rate_limiters() -> RateLimiters:
    store = _build_store()
    window = settings.rate_limit_window_seconds
    return RateLimiters(
        strict=SlidingWindowLimiter(
            store, limit=settings.rate_limit_strict, window_seconds=window, prefix="@ratelimit/strict"
        ),
        moderate=SlidingWindowLimiter(
            store, limit=settings.rate_limit_moderate, window_seconds=window, prefix="@ratelimit/moderate"
        ),
        lenient=SlidingWindowLimiter(
            store, limit=settings.rate_limit_lenient, window_seconds=window, prefix="@ratelimit/lenient"
        ),
        store=store,
    )


def get_rate_limit_identifier(request: Request, user_id: Optional[str] = None) -> str:
    """User id when authenticated, else the client IP (proxy headers first)."""
    if user_id:
        return f"user:{user_id}"

    forwarded = request.headers.get("x-forwarded-for")
    real_ip = request.headers.get("x-real-ip")
    ip = (forwarded.split(",")[0].strip() if forwarded else None) or real_ip
    if not ip:
        ip = request.client.host if request.client else "unknown"
    return f"ip:{ip}"


def enforce_rate_limit(
    tier: str,
    identifier: str,
    response: Optional[Response] = None,
    message: str = "Rate limit exceeded. Please try again later.",
) -> RateLimitResult:
    """Consume one hit; raise RateLimitError (429) when the window is full."""
    limiter: SlidingWindowLimiter = getattr(get_rate_limiters(), tier)
    result = limiter.limit(identifier)

    if not result.success:
        rate_limited_counter.labels(tier=tier).inc()
        raise RateLimitError(
            message,
            retry_after=result.retry_after(),
            headers=result.headers(),
        )

    if response is not None:
        response.headers.update(result.headers())
    return result


# Global per-IP limit for the whole app (slowapi)
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit_global],
    storage_uri=settings.redis_url if settings.rate_limit_backend == "redis" else "memory://",
)

exempt = limiter.exempt


def rate_limit_by_ip(tier: str):
    """Route dependency: consume one hit for the client IP before the body is validated."""

    def _dependency(request: Request, response: Response) -> RateLimitResult:
        return enforce_rate_limit(tier, get_rate_limit_identifier(request), response)

    return _dependency
