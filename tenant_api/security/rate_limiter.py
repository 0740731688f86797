"""Sliding window rate limiters guarding the login endpoint."""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from collections import deque
from threading import Lock
from typing import Callable, Deque, Final, Protocol

from redis import Redis
from redis.exceptions import RedisError, ResponseError

from ..config import Settings

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    def allow(self, key: str) -> bool: ...


def login_rate_key(email: str) -> str:
    """Key login attempts by a digest of the normalised email, never the raw address."""
    digest = hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()[:16]
    return f"login:{digest}"


class SlidingWindowRateLimiter:
    """Thread-safe in-process sliding window limiter.

    Keys whose attempts have all left the window are forgotten, so memory is
    bounded by the keys seen during the last window.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = max_requests
        self._window = float(window_seconds)
        self._clock = clock
        self._attempts: dict[str, Deque[float]] = {}
        self._lock = Lock()
        self._next_sweep = clock() + self._window

    def allow(self, key: str) -> bool:
        """Record an attempt for ``key`` and report whether it fits in the window."""
        now = self._clock()
        cutoff = now - self._window
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(cutoff)
                self._next_sweep = now + self._window

            attempts = self._attempts.setdefault(key, deque())
            while attempts and attempts[0] <= cutoff:
                attempts.popleft()
            if len(attempts) >= self._limit:
                return False
            attempts.append(now)
            return True

    def _sweep(self, cutoff: float) -> None:
        stale = [key for key, attempts in self._attempts.items() if not attempts or attempts[-1] <= cutoff]
        for key in stale:
            del self._attempts[key]


class RedisSlidingWindowRateLimiter:
    """Limiter shared across processes: one sorted set of attempt times per key."""

    # KEYS[1] attempts set; ARGV: now_ms, window_ms, limit, member
    _ADMIT: Final[str] = """
    local cutoff = tonumber(ARGV[1]) - tonumber(ARGV[2])
    redis.call('ZREMRANGEBYSCORE', KEYS[1], '-inf', cutoff)
    if redis.call('ZCARD', KEYS[1]) < tonumber(ARGV[3]) then
        redis.call('ZADD', KEYS[1], ARGV[1], ARGV[4])
        redis.call('PEXPIRE', KEYS[1], ARGV[2])
        return 1
    end
    return 0
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "tenant-api:rate",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._limit = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._clock = clock
        self._admit = client.register_script(self._ADMIT)

    def allow(self, key: str) -> bool:
        redis_key = f"{self._key_prefix}:{key}"
        now_ms = int(self._clock() * 1000)
        member = uuid.uuid4().hex
        try:
            admitted = self._admit(
                keys=[redis_key], args=[now_ms, self._window_ms, self._limit, member]
            )
        except ResponseError as exc:
            # Servers without scripting support (some managed or emulated Redis).
            if "unknown command" not in str(exc).lower():
                raise
            return self._allow_with_pipeline(redis_key, now_ms, member)
        return int(admitted) == 1

    def _allow_with_pipeline(self, redis_key: str, now_ms: int, member: str) -> bool:
        """Non-atomic equivalent of the admit script; concurrent callers may overshoot."""
        with self._client.pipeline() as pipe:
            pipe.zremrangebyscore(redis_key, "-inf", now_ms - self._window_ms)
            pipe.zcard(redis_key)
            _, current = pipe.execute()
        if current >= self._limit:
            return False
        with self._client.pipeline() as pipe:
            pipe.zadd(redis_key, {member: now_ms})
            pipe.pexpire(redis_key, self._window_ms)
            pipe.execute()
        return True


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """Instantiate the configured backend, falling back to memory when Redis is unreachable."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        client = Redis.from_url(settings.redis_url)
        try:
            client.ping()
        except RedisError as exc:
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)
        else:
            logger.info("rate limiter configured for redis backend")
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
