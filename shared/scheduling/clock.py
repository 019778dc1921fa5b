"""Time sources for the scheduling core."""

from __future__ import annotations

from datetime import datetime, timedelta
from threading import Lock

from django.utils import timezone


class SystemClock:
    """Wall clock backed by Django's timezone-aware ``now``."""

    def now(self) -> datetime:
        return timezone.now()


class ManualClock:
    """Clock that only moves when told to. Used by tests and dry runs."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or timezone.now()
        self._lock = Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        step = delta if delta is not None else timedelta(**kwargs)
        with self._lock:
            self._now = self._now + step
            return self._now

    def set(self, moment: datetime) -> None:
        with self._lock:
            self._now = moment
