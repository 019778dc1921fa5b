"""
Process bootstrap

:func:`build_container` constructs the one queue, bus, clock and trigger
table a process uses and wires every collaborator to them explicitly. All
bindings are validated before the container is returned, so a wiring
mistake stops the process at startup rather than at the first trigger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Optional

from django.conf import settings

from apps.bookings.lifecycle import BookingLifecycle, LifecyclePolicy
from apps.bookings.repository import DjangoBookingStore
from apps.bookings.sweeps import BookingSweeps
from apps.listings.indexer import SearchIndexer
from apps.notifications.directory import AdminAudience, CachePresence, RecipientDirectory
from apps.notifications.dispatch import NotificationDispatcher
from apps.notifications.flush import ScheduledNotificationFlush
from apps.notifications.jobs import NotificationJobs
from apps.notifications.providers import EmailProvider, InAppProvider, PushProvider, SMSProvider
from apps.notifications.types import Channel
from apps.reviews.ratings import RatingAggregator
from shared.application.message_bus import MessageBus
from shared.jobs.backoff import BackoffPolicy
from shared.jobs.queue import JobQueue
from shared.scheduling.clock import SystemClock
from shared.scheduling.triggers import TriggerRegistry

from . import events, queues
from .health import QueueHealthProbe
from .listeners import EventListeners
from .metrics import observe_jobs
from .rate_limit import AbstractRateLimitStore, LocalRateLimitStore, RateLimiter, RedisRateLimitStore
from .retention import DataRetention
from .schedule import bind_handlers, build_schedule

logger = logging.getLogger(__name__)


@dataclass
class Container:
    clock: object
    queue: JobQueue
    bus: MessageBus
    triggers: TriggerRegistry
    dispatcher: NotificationDispatcher
    lifecycle: BookingLifecycle
    booking_sweeps: BookingSweeps
    notification_jobs: NotificationJobs
    notification_flush: ScheduledNotificationFlush
    indexer: SearchIndexer
    listeners: EventListeners
    ratings: RatingAggregator
    retention: DataRetention
    health_probe: QueueHealthProbe
    rate_limiter: RateLimiter


def rate_limit_store_from_settings() -> AbstractRateLimitStore:
    url = getattr(settings, "RATE_LIMIT_REDIS_URL", "")
    if not url:
        return LocalRateLimitStore()
    return RedisRateLimitStore.from_url(url)


def _log_job_activity(queue: JobQueue) -> None:
    queue.on_active(lambda job: logger.debug(f"Processing job {job.id} of type {job.job_type} on {job.queue_name}"))
    queue.on_completed(lambda job: logger.debug(f"Job {job.id} completed"))


def build_container(clock=None, task=None, ping: Optional[Callable[[], bool]] = None,
                    rate_limit_store: Optional[AbstractRateLimitStore] = None) -> Container:
    """
    Build and validate a process container.

    ``task`` is the Celery task that carries jobs (the ``jobs.run`` task by
    default) and ``ping`` replaces the broker reachability check.
    """
    if task is None:
        from .tasks import run_job
        task = run_job
    clock = clock or SystemClock()
    queue = JobQueue(
        task,
        clock,
        BackoffPolicy(
            base_delay_ms=settings.JOB_QUEUE_BACKOFF_BASE_MS,
            max_delay_ms=settings.JOB_QUEUE_BACKOFF_MAX_MS,
        ),
        default_max_attempts=settings.JOB_QUEUE_DEFAULT_MAX_ATTEMPTS,
        dedup_timeout=settings.JOB_QUEUE_VISIBILITY_TIMEOUT,
        ping=ping,
    )
    for name in queues.ALL_QUEUES:
        queue.declare(name)
    _log_job_activity(queue)
    observe_jobs(queue)

    bus = MessageBus()
    dispatcher = NotificationDispatcher(
        {
            Channel.EMAIL: EmailProvider(),
            Channel.PUSH: PushProvider(),
            Channel.SMS: SMSProvider(),
            Channel.IN_APP: InAppProvider(bus),
        },
        RecipientDirectory(timeout=settings.RECIPIENT_CACHE_TIMEOUT),
    )
    policy = LifecyclePolicy.from_settings()
    store = DjangoBookingStore()

    lifecycle = BookingLifecycle(store, queue, dispatcher, bus, clock, policy)
    notification_jobs = NotificationJobs(dispatcher, bus, clock)
    indexer = SearchIndexer()
    lifecycle.register(queue)
    notification_jobs.register(queue)
    indexer.register(queue)
    queue.freeze(queues.REQUIRED_BINDINGS)

    listeners = EventListeners(
        queue, AdminAudience(), CachePresence(ttl=settings.PRESENCE_TTL_SECONDS), clock, policy,
    )
    listeners.register(bus)
    bus.validate(events.EXPECTED_EVENTS)

    container = Container(
        clock=clock,
        queue=queue,
        bus=bus,
        triggers=build_schedule(),
        dispatcher=dispatcher,
        lifecycle=lifecycle,
        booking_sweeps=BookingSweeps(store, queue, clock, policy),
        notification_jobs=notification_jobs,
        notification_flush=ScheduledNotificationFlush(
            queue, clock, batch_size=settings.NOTIFICATION_FLUSH_BATCH_SIZE,
        ),
        indexer=indexer,
        listeners=listeners,
        ratings=RatingAggregator(),
        retention=DataRetention(
            clock,
            notification_days=settings.RETENTION_NOTIFICATIONS_DAYS,
            session_days=settings.RETENTION_SESSIONS_DAYS,
            audit_log_days=settings.RETENTION_AUDIT_LOG_DAYS,
        ),
        health_probe=QueueHealthProbe(queue),
        rate_limiter=RateLimiter(rate_limit_store or rate_limit_store_from_settings(), clock),
    )
    bind_handlers(container.triggers, container)
    container.triggers.validate()
    return container


_container: Optional[Container] = None
_container_lock = Lock()


def get_container() -> Container:
    """Return this process's container, building it on first use."""
    global _container
    with _container_lock:
        if _container is None:
            _container = build_container()
            logger.info(f"Scheduling core ready: queues {', '.join(_container.queue.queue_names)}")
        return _container
