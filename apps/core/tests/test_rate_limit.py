import redis

from apps.core.rate_limit import (
    LocalRateLimitStore,
    RateLimitConfig,
    RateLimiter,
    blocked_ip_key,
    ip_key,
    user_key,
)


class UnavailableStore(LocalRateLimitStore):
    def hit(self, key, now_ms, window_ms, max_requests):
        raise redis.ConnectionError("connection refused")

    def is_blocked(self, key, now_ms):
        raise redis.ConnectionError("connection refused")


def test_sliding_window_admits_up_to_the_limit(clock):
    limiter = RateLimiter(LocalRateLimitStore(), clock)
    config = RateLimitConfig(max_requests=5, window_ms=60_000)
    key = user_key("u-1", "bookings")

    results = [limiter.check(key, config) for _ in range(6)]

    assert [r.allowed for r in results] == [True] * 5 + [False]
    assert [r.remaining for r in results[:5]] == [4, 3, 2, 1, 0]
    assert limiter.remaining(key, config) == 0

    clock.advance(milliseconds=60_001)
    assert limiter.check(key, config).allowed is True


def test_denied_requests_are_not_counted(clock):
    limiter = RateLimiter(LocalRateLimitStore(), clock)
    config = RateLimitConfig(max_requests=2, window_ms=10_000)
    key = ip_key("10.0.0.1")

    limiter.check(key, config)
    clock.advance(seconds=5)
    limiter.check(key, config)
    limiter.check(key, config)

    # only the first request has left the window
    clock.advance(milliseconds=5_001)
    assert limiter.check(key, config).allowed is True
    assert limiter.check(key, config).allowed is False


def test_exceeding_a_blocking_limit_blocks_the_subject(clock):
    limiter = RateLimiter(LocalRateLimitStore(), clock)
    config = RateLimitConfig(max_requests=1, window_ms=1_000, block_duration_ms=60_000)
    key, block = ip_key("10.0.0.2", "auth"), blocked_ip_key("10.0.0.2")

    assert limiter.check(key, config, block_key=block).allowed is True
    assert limiter.check(key, config, block_key=block).allowed is False
    assert limiter.is_ip_blocked("10.0.0.2")

    clock.advance(seconds=2)
    assert limiter.check(key, config, block_key=block).allowed is False

    clock.advance(seconds=60)
    assert not limiter.is_ip_blocked("10.0.0.2")
    assert limiter.check(key, config, block_key=block).allowed is True


def test_manual_block_and_clear(clock):
    limiter = RateLimiter(LocalRateLimitStore(), clock)
    limiter.block_user("u-1", 5_000)
    assert limiter.is_user_blocked("u-1")
    assert not limiter.is_user_blocked("u-2")

    config = RateLimitConfig(max_requests=1, window_ms=60_000)
    key = user_key("u-1")
    limiter.check(key, config)
    limiter.clear(key)
    assert limiter.check(key, config).allowed is True


def test_store_outage_fails_open(clock):
    limiter = RateLimiter(UnavailableStore(), clock)
    config = RateLimitConfig(max_requests=1, window_ms=60_000)

    result = limiter.check(user_key("u-1"), config, block_key="ratelimit:blocked:user:u-1")

    assert result.allowed is True
    assert result.remaining == 1


def test_idle_subjects_are_dropped_from_the_local_store(clock):
    store = LocalRateLimitStore()
    limiter = RateLimiter(store, clock)
    config = RateLimitConfig(max_requests=10, window_ms=60_000)
    for n in range(1000):
        limiter.check(ip_key(f"10.0.{n // 256}.{n % 256}"), config)
    limiter.block_ip("10.9.9.9", 5_000)
    assert len(store) == 1001

    clock.advance(hours=1)
    limiter.check(ip_key("10.1.0.1"), config)

    assert len(store) == 1
    assert limiter.remaining(ip_key("10.0.0.1"), config) == 10


def test_exhausted_limit_keeps_no_empty_entry(clock):
    store = LocalRateLimitStore()
    limiter = RateLimiter(store, clock)

    assert limiter.check(user_key("u-1"), RateLimitConfig(max_requests=0, window_ms=1_000)).allowed is False
    assert len(store) == 0
