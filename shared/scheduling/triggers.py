"""
Periodic trigger table.

Schedules are declared once, by name, and Celery beat is configured from
the same table. Handlers are bound to those names when the process
container is built, so the schedule can be imported before Django is
ready while the handlers still get their collaborators injected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Union
from uuid import uuid4

from celery.schedules import crontab, schedule as interval_schedule  # type: ignore
from django.core.cache import cache
from redis.exceptions import LockError

from shared.exceptions import ConfigurationError, DuplicateBindingError, MissingBindingError

logger = logging.getLogger(__name__)

Schedule = Union[interval_schedule, crontab]
Handler = Callable[[], Any]

LOCK_PREFIX = "triggers:lock"


class TriggerLock:
    """
    Exclusive tick lock that only its holder can release.

    With django-redis behind the cache this is a token-checked Redis lock;
    other backends store a per-holder token and delete the key only while
    it still carries that token.
    """

    def __init__(self, key: str, timeout: int):
        self.key = key
        self.timeout = timeout
        self.token = uuid4().hex
        self._lock = None

    def acquire(self) -> bool:
        if hasattr(cache, "lock"):
            self._lock = cache.lock(self.key, timeout=self.timeout)
            return bool(self._lock.acquire(blocking=False))
        return cache.add(self.key, self.token, self.timeout)

    def release(self) -> None:
        if self._lock is not None:
            try:
                self._lock.release()
            except LockError:
                logger.warning(f"Trigger lock {self.key} expired before release")
            return
        if cache.get(self.key) == self.token:
            cache.delete(self.key)


@dataclass(frozen=True)
class Trigger:
    """A named periodic schedule."""

    name: str
    schedule: Schedule
    expires: Optional[float] = None
    exclusive: bool = False
    lock_timeout: int = 300
    description: str = ""


class TriggerRegistry:
    """Explicit registration table for periodic sweeps."""

    def __init__(self) -> None:
        self._triggers: Dict[str, Trigger] = {}
        self._handlers: Dict[str, Handler] = {}

    # ----- declaration -----------------------------------------------------

    def add(self, trigger: Trigger) -> Trigger:
        if trigger.name in self._triggers:
            raise DuplicateBindingError(f"Trigger '{trigger.name}' is already declared")
        self._triggers[trigger.name] = trigger
        return trigger

    def every(self, name: str, *, seconds: float = 0, minutes: float = 0, hours: float = 0,
              **options: Any) -> Trigger:
        run_every = timedelta(seconds=seconds, minutes=minutes, hours=hours)
        if run_every <= timedelta(0):
            raise ConfigurationError(f"Trigger '{name}' needs a positive interval")
        return self.add(Trigger(name=name, schedule=interval_schedule(run_every=run_every), **options))

    def cron(self, name: str, *, minute: str = "*", hour: str = "*", day_of_week: str = "*",
             day_of_month: str = "*", **options: Any) -> Trigger:
        schedule = crontab(
            minute=minute,
            hour=hour,
            day_of_week=day_of_week,
            day_of_month=day_of_month,
        )
        return self.add(Trigger(name=name, schedule=schedule, **options))

    # ----- binding ---------------------------------------------------------

    def bind(self, name: str, handler: Handler) -> None:
        if name not in self._triggers:
            raise ConfigurationError(f"Cannot bind handler: trigger '{name}' is not declared")
        if name in self._handlers:
            raise DuplicateBindingError(f"Trigger '{name}' already has a handler")
        self._handlers[name] = handler

    def validate(self) -> None:
        unbound = sorted(set(self._triggers) - set(self._handlers))
        if unbound:
            raise MissingBindingError(f"Triggers without handlers: {', '.join(unbound)}")

    @property
    def names(self) -> list[str]:
        return list(self._triggers)

    def get(self, name: str) -> Trigger:
        return self._triggers[name]

    # ----- execution -------------------------------------------------------

    def fire(self, name: str) -> Any:
        """
        Run one tick of a trigger.

        A failing sweep only aborts this tick: the error is logged and
        ``None`` is returned so the next tick proceeds normally. Exclusive
        triggers skip the tick when another instance still holds the lock.
        """
        trigger = self._triggers.get(name)
        handler = self._handlers.get(name)
        if trigger is None or handler is None:
            logger.error(f"Trigger '{name}' fired but is not registered")
            return None

        lock = TriggerLock(f"{LOCK_PREFIX}:{name}", trigger.lock_timeout) if trigger.exclusive else None
        if lock is not None and not lock.acquire():
            logger.info(f"Trigger '{name}' skipped: previous tick still running")
            return None

        try:
            result = handler()
            logger.debug(f"Trigger '{name}' finished: {result}")
            return result
        except Exception as e:
            logger.error(f"Trigger '{name}' failed: {e}", exc_info=True)
            return None
        finally:
            if lock is not None:
                lock.release()

    def beat_schedule(self, task_name: str) -> Dict[str, dict]:
        """Build a Celery ``beat_schedule`` mapping that fires ``task_name(name)``."""
        entries: Dict[str, dict] = {}
        for trigger in self._triggers.values():
            entry: dict = {
                "task": task_name,
                "schedule": trigger.schedule,
                "args": (trigger.name,),
            }
            if trigger.expires is not None:
                entry["options"] = {"expires": trigger.expires}
            entries[trigger.name] = entry
        return entries
