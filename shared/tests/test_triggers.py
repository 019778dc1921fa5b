from unittest import mock

import pytest
from celery.schedules import crontab
from django.core.cache import cache
from redis.exceptions import LockError

from shared.exceptions import ConfigurationError, DuplicateBindingError, MissingBindingError
from shared.scheduling import triggers
from shared.scheduling.triggers import LOCK_PREFIX, TriggerRegistry


def test_declared_triggers_must_be_bound():
    registry = TriggerRegistry()
    registry.every("sweep", minutes=5)
    registry.cron("nightly", minute="0", hour="2")

    registry.bind("sweep", lambda: {"queued": 0})
    with pytest.raises(MissingBindingError):
        registry.validate()

    registry.bind("nightly", lambda: None)
    registry.validate()
    assert registry.names == ["sweep", "nightly"]


def test_duplicate_declarations_and_bindings_are_rejected():
    registry = TriggerRegistry()
    registry.every("sweep", minutes=5)

    with pytest.raises(DuplicateBindingError):
        registry.every("sweep", minutes=1)
    registry.bind("sweep", lambda: None)
    with pytest.raises(DuplicateBindingError):
        registry.bind("sweep", lambda: None)
    with pytest.raises(ConfigurationError):
        registry.bind("unknown", lambda: None)
    with pytest.raises(ConfigurationError):
        registry.every("never", seconds=0)


def test_failing_handler_only_aborts_that_tick():
    registry = TriggerRegistry()
    registry.every("sweep", minutes=5)
    ticks = []

    def handler():
        ticks.append(len(ticks))
        if len(ticks) == 1:
            raise RuntimeError("database unavailable")
        return {"queued": 2}

    registry.bind("sweep", handler)

    assert registry.fire("sweep") is None
    assert registry.fire("sweep") == {"queued": 2}
    assert ticks == [0, 1]


def test_exclusive_trigger_skips_while_locked():
    registry = TriggerRegistry()
    registry.cron("ratings", minute="0", exclusive=True)
    calls = []
    registry.bind("ratings", lambda: calls.append(1) or "done")

    cache.add(f"{LOCK_PREFIX}:ratings", "1", 60)
    assert registry.fire("ratings") is None
    assert calls == []

    cache.delete(f"{LOCK_PREFIX}:ratings")
    assert registry.fire("ratings") == "done"
    assert cache.get(f"{LOCK_PREFIX}:ratings") is None


def test_exclusive_trigger_leaves_a_lock_taken_over_by_another_instance():
    registry = TriggerRegistry()
    registry.cron("ratings", minute="0", exclusive=True)
    key = f"{LOCK_PREFIX}:ratings"

    def slow_tick():
        # Our lock expired mid-tick and another instance took it.
        cache.set(key, "other-instance", 60)
        return "done"

    registry.bind("ratings", slow_tick)

    assert registry.fire("ratings") == "done"
    assert cache.get(key) == "other-instance"


def test_exclusive_trigger_uses_the_redis_lock_when_available(monkeypatch):
    redis_cache = mock.MagicMock()
    lock = redis_cache.lock.return_value
    lock.acquire.return_value = True
    lock.release.side_effect = LockError("Cannot release a lock that's no longer owned")
    monkeypatch.setattr(triggers, "cache", redis_cache)
    registry = TriggerRegistry()
    registry.cron("ratings", minute="0", exclusive=True, lock_timeout=120)
    registry.bind("ratings", lambda: "done")

    assert registry.fire("ratings") == "done"
    redis_cache.lock.assert_called_once_with(f"{LOCK_PREFIX}:ratings", timeout=120)
    lock.acquire.assert_called_once_with(blocking=False)
    lock.release.assert_called_once_with()
    redis_cache.delete.assert_not_called()

    lock.acquire.return_value = False
    assert registry.fire("ratings") is None


def test_unknown_trigger_fire_is_logged_not_raised():
    assert TriggerRegistry().fire("missing") is None


def test_beat_schedule_fires_each_trigger_by_name():
    registry = TriggerRegistry()
    registry.every("flush", minutes=1, expires=50)
    registry.cron("retention", minute="0", hour="3", day_of_week="0")

    schedule = registry.beat_schedule("scheduling.fire_trigger")

    assert schedule["flush"]["task"] == "scheduling.fire_trigger"
    assert schedule["flush"]["args"] == ("flush",)
    assert schedule["flush"]["options"] == {"expires": 50}
    assert schedule["flush"]["schedule"].run_every.total_seconds() == 60
    assert isinstance(schedule["retention"]["schedule"], crontab)
    assert "options" not in schedule["retention"]
