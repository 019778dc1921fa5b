"""
Periodic trigger table

Declared without touching the ORM so ``config.celery`` can build the beat
schedule at import time. Handlers are bound by :func:`bind_handlers` once
the process container exists.
"""

from __future__ import annotations

from shared.scheduling.triggers import TriggerRegistry

from . import queues

FIRE_TRIGGER_TASK = "scheduling.fire_trigger"

EXPIRE_PENDING = "bookings.expire-pending"
UPCOMING_REMINDERS = "bookings.upcoming-reminders"
RETURN_REMINDERS = "bookings.return-reminders"
AUTO_COMPLETE = "bookings.auto-complete"
FLUSH_SCHEDULED_NOTIFICATIONS = "notifications.flush-scheduled"
RECOMPUTE_RATINGS = "reviews.recompute-ratings"
REINDEX_SEARCH = "search.reindex"
DATA_RETENTION = "core.data-retention"
QUEUE_HEALTH = "core.queue-health"


def build_schedule() -> TriggerRegistry:
    registry = TriggerRegistry()
    registry.every(
        EXPIRE_PENDING, minutes=5, expires=240,
        description="Re-enqueue expiration checks for bookings past the payment window",
    )
    registry.cron(UPCOMING_REMINDERS, minute="0", description="Upcoming booking reminders")
    registry.cron(RETURN_REMINDERS, minute="0", hour="*/6", description="Return-due reminders")
    registry.cron(AUTO_COMPLETE, minute="0", description="Auto-complete inspected bookings")
    registry.every(
        FLUSH_SCHEDULED_NOTIFICATIONS, minutes=1, expires=50,
        description="Enqueue due scheduled notifications",
    )
    registry.cron(
        RECOMPUTE_RATINGS, minute="0", hour="*/6", exclusive=True, lock_timeout=3600,
        description="Reconcile rating totals with reviews",
    )
    registry.cron(REINDEX_SEARCH, minute="0", hour="2", description="Daily search reindex")
    registry.cron(
        DATA_RETENTION, minute="0", hour="3", day_of_week="0", exclusive=True, lock_timeout=3600,
        description="Weekly data retention cleanup",
    )
    registry.every(QUEUE_HEALTH, seconds=30, expires=25, description="Queue health probe")
    return registry


def bind_handlers(registry: TriggerRegistry, container) -> None:
    registry.bind(EXPIRE_PENDING, container.booking_sweeps.expire_pending)
    registry.bind(UPCOMING_REMINDERS, container.booking_sweeps.upcoming_reminders)
    registry.bind(RETURN_REMINDERS, container.booking_sweeps.return_reminders)
    registry.bind(AUTO_COMPLETE, container.booking_sweeps.auto_complete)
    registry.bind(FLUSH_SCHEDULED_NOTIFICATIONS, container.notification_flush.flush)
    registry.bind(RECOMPUTE_RATINGS, container.ratings.recompute_all)
    registry.bind(REINDEX_SEARCH, lambda: {
        "job_id": container.queue.enqueue(queues.SEARCH_INDEXING, queues.REINDEX_ALL, {"batch_size": 500}),
    })
    registry.bind(DATA_RETENTION, container.retention.run)
    registry.bind(QUEUE_HEALTH, container.health_probe.check)
