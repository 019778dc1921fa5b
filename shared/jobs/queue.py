"""
Job Queue

Named work queues carried by Celery. Producers call :meth:`JobQueue.enqueue`,
which publishes one message of the job-running task to the Celery queue of
the same name and returns immediately. The worker side of that task hands
the message back to :meth:`JobQueue.run`, which invokes the single handler
bound to the job's ``(queue, type)`` pair and decides between success, a
retry with backoff and a terminal failure.

Delivery is at-least-once: the task acknowledges late, so a message taken
by a worker that dies is handed out again once the broker's visibility
timeout passes.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from django.core.cache import caches
from kombu.exceptions import OperationalError  # type: ignore

from shared.exceptions import ConfigurationError, DuplicateBindingError, MissingBindingError

from .backoff import BackoffPolicy, should_retry
from .job import Job, JobStatus, encode_payload
from .stats import JobStats, QueueCounts

logger = logging.getLogger(__name__)

Handler = Callable[[Job], Any]
Hook = Callable[[Job], None]

DEDUP_PREFIX = "jobs:dedup"


class RetryJob(Exception):
    """A failed job that should run again after ``delay_ms``."""

    def __init__(self, job: Job, delay_ms: int, error: Exception):
        super().__init__(f"Job {job.id} retrying in {delay_ms}ms: {error}")
        self.job = job
        self.delay_ms = delay_ms
        self.error = error


def broker_reachable(app, timeout: float = 2.0) -> bool:
    """Whether the Celery broker behind ``app`` accepts a connection."""
    try:
        with app.connection_for_read() as connection:
            connection.ensure_connection(max_retries=1, timeout=timeout)
    except (OperationalError, OSError) as e:
        logger.warning(f"Job broker unreachable: {e}")
        return False
    return True


class JobQueue:
    """
    One queue service per process

    The instance is built by the process bootstrap and handed to every
    producer that needs it. ``task`` is the Celery task that carries jobs to
    workers; its ``apply_async`` is the only way a job leaves the process.
    """

    def __init__(self, task, clock, backoff: Optional[BackoffPolicy] = None,
                 default_max_attempts: int = 3, stats: Optional[JobStats] = None,
                 dedup_timeout: int = 3600, ping: Optional[Callable[[], bool]] = None,
                 cache_alias: str = "default"):
        if default_max_attempts < 1:
            raise ConfigurationError("default_max_attempts must be >= 1")
        self.task = task
        self.clock = clock
        self.backoff = backoff or BackoffPolicy()
        self.default_max_attempts = default_max_attempts
        self.stats = stats or JobStats(cache_alias)
        self.dedup_timeout = dedup_timeout
        self.cache_alias = cache_alias
        self._ping = ping or (lambda: broker_reachable(task.app))
        self._handlers: Dict[Tuple[str, str], Handler] = {}
        self._queues: List[str] = []
        self._frozen = False
        self._hooks: Dict[str, List[Hook]] = {"active": [], "completed": [], "failed": []}

    # ----- registration ----------------------------------------------------

    def declare(self, queue_name: str) -> None:
        if queue_name not in self._queues:
            self._queues.append(queue_name)

    def register_handler(self, queue_name: str, job_type: str, handler: Handler) -> None:
        """Bind ``handler`` to ``(queue_name, job_type)``; one handler per pair."""
        key = (queue_name, job_type)
        if key in self._handlers:
            raise DuplicateBindingError(
                f"Handler for job type '{job_type}' on queue '{queue_name}' is already registered"
            )
        self.declare(queue_name)
        self._handlers[key] = handler

    def has_handler(self, queue_name: str, job_type: str) -> bool:
        return (queue_name, job_type) in self._handlers

    def freeze(self, required: Iterable[Tuple[str, str]] = ()) -> None:
        """Check required bindings and reject unbound job types from now on."""
        missing = sorted(f"{q}:{t}" for q, t in required if (q, t) not in self._handlers)
        if missing:
            raise MissingBindingError(f"Missing job handlers: {', '.join(missing)}")
        self._frozen = True

    @property
    def queue_names(self) -> List[str]:
        return list(self._queues)

    # ----- observation hooks -----------------------------------------------

    def on_active(self, hook: Hook) -> None:
        self._hooks["active"].append(hook)

    def on_completed(self, hook: Hook) -> None:
        self._hooks["completed"].append(hook)

    def on_failed(self, hook: Hook) -> None:
        self._hooks["failed"].append(hook)

    def _observe(self, kind: str, job: Job) -> None:
        for hook in self._hooks[kind]:
            try:
                hook(job)
            except Exception as e:
                logger.error(f"Job {kind} hook failed for {job.id}: {e}", exc_info=True)

    # ----- producer side ---------------------------------------------------

    def enqueue(self, queue_name: str, job_type: str, payload: Optional[Dict[str, Any]] = None, *,
                delay_ms: int = 0, max_attempts: Optional[int] = None,
                dedup_key: Optional[str] = None) -> str:
        """
        Publish a job and return its id.

        With ``delay_ms > 0`` the job becomes eligible only once that offset
        has elapsed. When ``dedup_key`` matches a job still waiting, delayed
        or running on the same queue, the existing job's id is returned and
        nothing is published.
        """
        if delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        attempts = self.default_max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self._frozen and not self.has_handler(queue_name, job_type):
            raise ConfigurationError(f"No handler for job type '{job_type}' on queue '{queue_name}'")

        job = Job(
            queue_name=queue_name,
            job_type=job_type,
            payload=encode_payload(payload or {}),
            created_at=self.clock.now(),
            max_attempts=attempts,
            delay_ms=delay_ms,
            status=JobStatus.DELAYED if delay_ms > 0 else JobStatus.WAITING,
            dedup_key=dedup_key,
        )
        if dedup_key:
            owner = self._claim(job)
            if owner != job.id:
                logger.debug(f"Job {job_type} on {queue_name} deduplicated onto {owner} (key {dedup_key})")
                return owner

        try:
            self.task.apply_async(
                args=[job.to_message()],
                task_id=job.id,
                queue=queue_name,
                countdown=delay_ms / 1000 if delay_ms else None,
            )
        except Exception:
            self._release(job)
            raise
        self.stats.enqueued(job)
        logger.debug(f"Enqueued {job_type} on {queue_name} as {job.id} (delay {delay_ms}ms)")
        return job.id

    # ----- consumer side ---------------------------------------------------

    def run(self, message: Dict[str, Any], retries: int = 0) -> Any:
        """
        Run one delivered job and return its handler's result.

        ``retries`` is how many times the message was already retried. A
        failing handler raises :class:`RetryJob` while attempts remain;
        once they are exhausted the job is recorded as failed and the
        handler's exception propagates.
        """
        job = Job.from_message(message, attempts=retries)
        job.status = JobStatus.ACTIVE
        job.started_at = self.clock.now()
        self.stats.started(job)
        self._observe("active", job)

        handler = self._handlers.get((job.queue_name, job.job_type))
        if handler is None:
            job.attempts += 1
            error = f"No handler registered for job type '{job.job_type}'"
            self._fail(job, error)
            raise ConfigurationError(error)

        try:
            result = handler(job)
        except Exception as e:
            job.attempts += 1
            job.last_error = f"{type(e).__name__}: {e}"
            if should_retry(job.attempts, job.max_attempts):
                delay = self.backoff.delay_ms(job.attempts)
                job.status = JobStatus.DELAYED
                self.stats.retrying(job)
                self._hold(job, delay)
                logger.warning(
                    f"Job {job.job_type} ({job.id}) on {job.queue_name} failed "
                    f"attempt {job.attempts}/{job.max_attempts}, retrying in {delay}ms: {e}"
                )
                raise RetryJob(job, delay, e) from e
            self._fail(job, job.last_error)
            raise

        job.status = JobStatus.COMPLETED
        job.finished_at = self.clock.now()
        self._release(job)
        self.stats.finished(job)
        self._observe("completed", job)
        return result

    def _fail(self, job: Job, error: str) -> None:
        job.status = JobStatus.FAILED
        job.last_error = error
        job.finished_at = self.clock.now()
        self._release(job)
        self.stats.finished(job)
        logger.error(
            f"Job {job.job_type} ({job.id}) on {job.queue_name} failed permanently "
            f"after {job.attempts} attempt(s): {error}; payload={job.payload}"
        )
        self._observe("failed", job)

    # ----- duplicate suppression -------------------------------------------

    @property
    def cache(self):
        return caches[self.cache_alias]

    def _claim(self, job: Job) -> str:
        """Take ``job.dedup_key`` for ``job`` or return the id that holds it."""
        key = _dedup_key(job)
        timeout = self.dedup_timeout + job.delay_ms // 1000
        if self.cache.add(key, job.id, timeout):
            return job.id
        owner = self.cache.get(key)
        if owner:
            return owner
        # The holder finished between the two calls.
        self.cache.set(key, job.id, timeout)
        return job.id

    def _hold(self, job: Job, delay_ms: int) -> None:
        if job.dedup_key:
            self.cache.set(_dedup_key(job), job.id, self.dedup_timeout + delay_ms // 1000)

    def _release(self, job: Job) -> None:
        if job.dedup_key:
            key = _dedup_key(job)
            if self.cache.get(key) == job.id:
                self.cache.delete(key)

    # ----- operational surface ---------------------------------------------

    def is_ready(self, queue_name: str) -> bool:
        return queue_name in self._queues and self._ping()

    def counts(self, queue_name: str) -> QueueCounts:
        return self.stats.counts(queue_name)


def _dedup_key(job: Job) -> str:
    return f"{DEDUP_PREFIX}:{job.queue_name}:{job.dedup_key}"
