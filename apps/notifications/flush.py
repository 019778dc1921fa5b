"""
Scheduled notification flush

Every tick picks up to ``batch_size`` due SCHEDULED notifications, claims
each one by flipping it to PENDING with a conditional update, and only
then enqueues its delivery job. A row claimed by an overlapping tick is
skipped, so no row is enqueued twice. Delivery itself stays at-least-once.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Optional

from django.conf import settings

from apps.core import queues

from .models import Notification
from .types import NotificationRequest

logger = logging.getLogger(__name__)


def schedule_notification(request: NotificationRequest, send_at: datetime) -> Notification:
    """Store ``request`` for delivery by the flush sweep at ``send_at``."""
    return Notification.objects.create(
        user_id=request.user_id,
        type=request.type,
        title=request.title,
        message=request.message,
        data=request.data,
        channels=list(request.channels),
        priority=request.priority or "",
        status=Notification.Status.SCHEDULED,
        scheduled_for=send_at,
    )


class ScheduledNotificationFlush:
    def __init__(self, queue, clock, batch_size: Optional[int] = None):
        self.queue = queue
        self.clock = clock
        self.batch_size = batch_size or getattr(settings, "NOTIFICATION_FLUSH_BATCH_SIZE", 100)

    def flush(self) -> Dict[str, int]:
        now = self.clock.now()
        due = list(
            Notification.objects.filter(
                status=Notification.Status.SCHEDULED,
                scheduled_for__lte=now,
            )
            .order_by("scheduled_for", "created_at")
            .values_list("pk", flat=True)[: self.batch_size]
        )

        queued = 0
        for notification_id in due:
            claimed = Notification.objects.filter(
                pk=notification_id,
                status=Notification.Status.SCHEDULED,
            ).update(status=Notification.Status.PENDING)
            if not claimed:
                continue
            try:
                self.queue.enqueue(
                    queues.NOTIFICATIONS,
                    queues.SCHEDULED,
                    {"notification_id": str(notification_id)},
                    dedup_key=f"scheduled:{notification_id}",
                )
                queued += 1
            except Exception as e:
                # Hand the row back so the next tick selects it again.
                Notification.objects.filter(
                    pk=notification_id,
                    status=Notification.Status.PENDING,
                ).update(status=Notification.Status.SCHEDULED)
                logger.error(f"Error queueing scheduled notification {notification_id}: {e}", exc_info=True)

        if queued:
            logger.info(f"Processed {queued} scheduled notifications")
        return {"queued": queued}
