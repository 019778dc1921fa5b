"""
Sliding-window rate limiting

Each subject (user id or IP, optionally per endpoint) keeps a sorted set of
request timestamps. A check prunes entries older than the window, counts
what is left and records the request only when it is admitted. Subjects can
also be blocked for a while, manually or automatically once they exceed a
limit that carries ``block_duration_ms``.

The limiter fails open: when Redis cannot be reached every request is
allowed.
"""

from __future__ import annotations

import logging
import math
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Lock
from typing import Dict, List, Optional

import redis
from django.conf import settings
from rest_framework.throttling import BaseThrottle

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit"

HIT_SCRIPT = """
redis.call('ZREMRANGEBYSCORE', KEYS[1], 0, ARGV[1])
local count = redis.call('ZCARD', KEYS[1])
if count < tonumber(ARGV[3]) then
    redis.call('ZADD', KEYS[1], ARGV[2], ARGV[4])
end
redis.call('PEXPIRE', KEYS[1], ARGV[5])
return count
"""


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_ms: int
    block_duration_ms: Optional[int] = None


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: int  # epoch milliseconds


def user_key(user_id: str, endpoint: Optional[str] = None) -> str:
    return f"{KEY_PREFIX}:user:{user_id}:{endpoint}" if endpoint else f"{KEY_PREFIX}:user:{user_id}"


def ip_key(ip: str, endpoint: Optional[str] = None) -> str:
    return f"{KEY_PREFIX}:ip:{ip}:{endpoint}" if endpoint else f"{KEY_PREFIX}:ip:{ip}"


def blocked_user_key(user_id: str) -> str:
    return f"{KEY_PREFIX}:blocked:user:{user_id}"


def blocked_ip_key(ip: str) -> str:
    return f"{KEY_PREFIX}:blocked:ip:{ip}"


class AbstractRateLimitStore(ABC):
    @abstractmethod
    def hit(self, key: str, now_ms: int, window_ms: int, max_requests: int) -> int:
        """Prune, count and record if under ``max_requests``; return the count before this request."""

    @abstractmethod
    def count(self, key: str, now_ms: int, window_ms: int) -> int:
        pass

    @abstractmethod
    def block(self, key: str, duration_ms: int, now_ms: int) -> None:
        pass

    @abstractmethod
    def is_blocked(self, key: str, now_ms: int) -> bool:
        pass

    @abstractmethod
    def clear(self, key: str) -> None:
        pass


class RedisRateLimitStore(AbstractRateLimitStore):
    def __init__(self, client: redis.Redis):
        self._redis = client
        self._hit = client.register_script(HIT_SCRIPT)

    @classmethod
    def from_url(cls, url: str) -> "RedisRateLimitStore":
        return cls(redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        ))

    def hit(self, key, now_ms, window_ms, max_requests):
        member = f"{now_ms}-{uuid.uuid4().hex[:8]}"
        return int(self._hit(
            keys=[key],
            args=[now_ms - window_ms, now_ms, max_requests, member, window_ms],
        ))

    def count(self, key, now_ms, window_ms):
        return int(self._redis.zcount(key, f"({now_ms - window_ms}", "+inf"))

    def block(self, key, duration_ms, now_ms):
        self._redis.set(key, "1", px=duration_ms)

    def is_blocked(self, key, now_ms):
        return self._redis.exists(key) > 0

    def clear(self, key):
        self._redis.delete(key)


class LocalRateLimitStore(AbstractRateLimitStore):
    """
    Process-local store for development, tests and single-instance deployments.

    Keys whose window has passed and expired blocks are swept at most once
    per ``sweep_interval_ms``, so idle subjects do not accumulate.
    """

    def __init__(self, sweep_interval_ms: int = 60_000):
        self.sweep_interval_ms = sweep_interval_ms
        self._lock = Lock()
        self._hits: Dict[str, List[int]] = {}
        self._expires: Dict[str, int] = {}
        self._blocks: Dict[str, int] = {}
        self._next_sweep_ms = 0

    def __len__(self):
        with self._lock:
            return len(set(self._hits) | set(self._blocks))

    def _sweep(self, now_ms):
        if now_ms < self._next_sweep_ms:
            return
        self._next_sweep_ms = now_ms + self.sweep_interval_ms
        for key in [key for key, until in self._expires.items() if until <= now_ms]:
            del self._expires[key]
            self._hits.pop(key, None)
        for key in [key for key, until in self._blocks.items() if until <= now_ms]:
            del self._blocks[key]

    def hit(self, key, now_ms, window_ms, max_requests):
        with self._lock:
            self._sweep(now_ms)
            hits = [stamp for stamp in self._hits.get(key, []) if stamp > now_ms - window_ms]
            count = len(hits)
            if count < max_requests:
                hits.append(now_ms)
            if hits:
                self._hits[key] = hits
                self._expires[key] = hits[-1] + window_ms
            else:
                self._hits.pop(key, None)
                self._expires.pop(key, None)
            return count

    def count(self, key, now_ms, window_ms):
        with self._lock:
            return sum(1 for stamp in self._hits.get(key, []) if stamp > now_ms - window_ms)

    def block(self, key, duration_ms, now_ms):
        with self._lock:
            self._sweep(now_ms)
            self._blocks[key] = now_ms + duration_ms

    def is_blocked(self, key, now_ms):
        with self._lock:
            until = self._blocks.get(key)
            if until is None:
                return False
            if until <= now_ms:
                del self._blocks[key]
                return False
            return True

    def clear(self, key):
        with self._lock:
            self._hits.pop(key, None)
            self._expires.pop(key, None)
            self._blocks.pop(key, None)


class RateLimiter:
    def __init__(self, store: AbstractRateLimitStore, clock):
        self.store = store
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock.now().timestamp() * 1000)

    def check(self, key: str, config: RateLimitConfig, block_key: Optional[str] = None) -> RateLimitResult:
        """
        Admit or deny one request for ``key``.

        ``block_key`` names the subject's block entry; a blocked subject is
        denied regardless of its window, and a denied request blocks the
        subject when ``config.block_duration_ms`` is set.
        """
        now_ms = self._now_ms()
        reset_time = now_ms + config.window_ms
        try:
            if block_key and self.store.is_blocked(block_key, now_ms):
                return RateLimitResult(allowed=False, remaining=0, reset_time=reset_time)

            count = self.store.hit(key, now_ms, config.window_ms, config.max_requests)
            allowed = count < config.max_requests
            if not allowed and block_key and config.block_duration_ms:
                self.store.block(block_key, config.block_duration_ms, now_ms)
                logger.warning(f"Rate limit exceeded for {key}; blocked for {config.block_duration_ms}ms")
        except redis.RedisError as e:
            logger.warning(f"Rate limit store unavailable, allowing request: {e}")
            return RateLimitResult(allowed=True, remaining=config.max_requests, reset_time=0)

        remaining = max(0, config.max_requests - count - 1)
        return RateLimitResult(allowed=allowed, remaining=remaining, reset_time=reset_time)

    def remaining(self, key: str, config: RateLimitConfig) -> int:
        try:
            count = self.store.count(key, self._now_ms(), config.window_ms)
        except redis.RedisError as e:
            logger.warning(f"Rate limit store unavailable: {e}")
            return config.max_requests
        return max(0, config.max_requests - count)

    def block_user(self, user_id: str, duration_ms: int) -> None:
        self._block(blocked_user_key(user_id), duration_ms)

    def block_ip(self, ip: str, duration_ms: int) -> None:
        self._block(blocked_ip_key(ip), duration_ms)

    def is_user_blocked(self, user_id: str) -> bool:
        return self._is_blocked(blocked_user_key(user_id))

    def is_ip_blocked(self, ip: str) -> bool:
        return self._is_blocked(blocked_ip_key(ip))

    def clear(self, key: str) -> None:
        try:
            self.store.clear(key)
        except redis.RedisError as e:
            logger.warning(f"Rate limit store unavailable, {key} not cleared: {e}")

    def _block(self, key: str, duration_ms: int) -> None:
        try:
            self.store.block(key, duration_ms, self._now_ms())
        except redis.RedisError as e:
            logger.warning(f"Rate limit store unavailable, {key} not blocked: {e}")

    def _is_blocked(self, key: str) -> bool:
        try:
            return self.store.is_blocked(key, self._now_ms())
        except redis.RedisError as e:
            logger.warning(f"Rate limit store unavailable: {e}")
            return False


class SlidingWindowThrottle(BaseThrottle):
    """
    DRF throttle on top of :class:`RateLimiter`.

    Limits come from ``settings.RATE_LIMITS[view.throttle_scope]`` as
    ``{"max_requests": ..., "window_ms": ..., "block_duration_ms": ...}``.
    """

    def __init__(self):
        self._result: Optional[RateLimitResult] = None

    def allow_request(self, request, view):
        scope = getattr(view, "throttle_scope", None)
        limits = getattr(settings, "RATE_LIMITS", {}).get(scope)
        if not limits:
            return True

        from .container import get_container

        limiter = get_container().rate_limiter
        config = RateLimitConfig(**limits)
        user = getattr(request, "user", None)
        if user is not None and user.is_authenticated:
            key = user_key(str(user.pk), scope)
            block_key = blocked_user_key(str(user.pk))
        else:
            ident = self.get_ident(request)
            key = ip_key(ident, scope)
            block_key = blocked_ip_key(ident)

        self._result = limiter.check(key, config, block_key=block_key)
        return self._result.allowed

    def wait(self):
        if self._result is None or not self._result.reset_time:
            return None
        return max(0, math.ceil((self._result.reset_time - time.time() * 1000) / 1000))
