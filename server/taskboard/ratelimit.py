"""
Per-client request ceiling over a sliding window.

Supports an in-memory limiter for single-process runs and tests, and a
Redis-backed limiter so several API workers share one budget per client.
"""

from __future__ import annotations

import logging
import math
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int = 0


class RateLimiter(Protocol):
    """Counts one request for ``key`` and reports whether it is within the ceiling."""

    def hit(self, key: str) -> RateLimitResult:
        ...


@dataclass
class InMemoryRateLimiter:
    """Sliding window kept as a deque of request times per client."""

    max_requests: int = 100
    window_seconds: float = 15 * 60
    clock: Callable[[], float] = time.monotonic
    _hits: Dict[str, Deque[float]] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _last_sweep: float = field(default=float("-inf"), init=False)

    def hit(self, key: str) -> RateLimitResult:
        now = self.clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.max_requests:
                retry_after = math.ceil(hits[0] + self.window_seconds - now)
                return RateLimitResult(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    retry_after=max(retry_after, 1),
                )
            hits.append(now)
            return RateLimitResult(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - len(hits),
            )

    def _sweep(self, cutoff: float) -> None:
        """Drop clients whose newest request has left the window."""
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


@dataclass
class RedisRateLimiter:
    """Redis-backed sliding window using one sorted set of request times per client."""

    url: str
    max_requests: int = 100
    window_seconds: float = 15 * 60
    key_prefix: str = "taskboard:ratelimit"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def hit(self, key: str) -> RateLimitResult:
        redis_key = f"{self.key_prefix}:{key}"
        now = time.time()
        member = f"{now}:{uuid.uuid4().hex}"
        try:
            pipe = self.client.pipeline()
            pipe.zremrangebyscore(redis_key, 0, now - self.window_seconds)
            pipe.zadd(redis_key, {member: now})
            pipe.zcard(redis_key)
            pipe.expire(redis_key, math.ceil(self.window_seconds))
            _, _, count, _ = pipe.execute()
            if count <= self.max_requests:
                return RateLimitResult(
                    allowed=True,
                    limit=self.max_requests,
                    remaining=self.max_requests - count,
                )
            # Over the ceiling: rejected requests do not consume budget.
            self.client.zrem(redis_key, member)
            oldest = self.client.zrange(redis_key, 0, 0, withscores=True)
            retry_after = 1
            if oldest:
                retry_after = max(
                    math.ceil(oldest[0][1] + self.window_seconds - now), 1
                )
            return RateLimitResult(
                allowed=False,
                limit=self.max_requests,
                remaining=0,
                retry_after=retry_after,
            )
        except redis_exceptions.RedisError as exc:
            # Fail open and reconnect for the next request.
            logger.warning("Rate limiter Redis call failed (%s); allowing request", exc)
            self.client = redis.Redis.from_url(self.url)
            return RateLimitResult(
                allowed=True, limit=self.max_requests, remaining=self.max_requests
            )
