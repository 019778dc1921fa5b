"""
Per-queue job counts

Celery keeps no per-queue totals, so the job queue records every state
change as a counter in the Django cache. With django-redis behind the cache
every web and worker process reads the same numbers.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Dict

from django.core.cache import caches

from .job import Job, JobStatus

logger = logging.getLogger(__name__)

KEY_PREFIX = "jobs:counts"


@dataclass(frozen=True)
class QueueCounts:
    waiting: int = 0
    delayed: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class JobStats:
    def __init__(self, cache_alias: str = "default"):
        self.cache_alias = cache_alias

    @property
    def cache(self):
        return caches[self.cache_alias]

    def enqueued(self, job: Job) -> None:
        self._bump(job.queue_name, JobStatus.DELAYED if job.delay_ms else JobStatus.WAITING, 1)

    def started(self, job: Job) -> None:
        self._bump(job.queue_name, JobStatus.DELAYED if job.was_delayed else JobStatus.WAITING, -1)
        self._bump(job.queue_name, JobStatus.ACTIVE, 1)

    def retrying(self, job: Job) -> None:
        self._bump(job.queue_name, JobStatus.ACTIVE, -1)
        self._bump(job.queue_name, JobStatus.DELAYED, 1)

    def finished(self, job: Job) -> None:
        self._bump(job.queue_name, JobStatus.ACTIVE, -1)
        self._bump(job.queue_name, job.status, 1)

    def counts(self, queue_name: str) -> QueueCounts:
        keys = {status: _key(queue_name, status) for status in JobStatus}
        values = self.cache.get_many(list(keys.values()))
        return QueueCounts(**{
            status.value: max(0, int(values.get(key) or 0)) for status, key in keys.items()
        })

    def _bump(self, queue_name: str, status: JobStatus, delta: int) -> None:
        key = _key(queue_name, status)
        try:
            self.cache.add(key, 0, timeout=None)
            self.cache.incr(key, delta)
        except Exception as e:
            logger.warning(f"Could not update {status.value} count for queue {queue_name}: {e}")


def _key(queue_name: str, status: JobStatus) -> str:
    return f"{KEY_PREFIX}:{queue_name}:{status.value}"
