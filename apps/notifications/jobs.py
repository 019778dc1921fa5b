"""Handlers for the ``notifications`` queue."""

from __future__ import annotations

import logging
from typing import Dict

from apps.core import queues
from shared.jobs.job import Job

from .dispatch import NotificationDispatcher
from .models import Notification
from .providers import NOTIFICATION_CREATED
from .types import Channel, NotificationRequest, as_requests

logger = logging.getLogger(__name__)


class NotificationJobs:
    def __init__(self, dispatcher: NotificationDispatcher, bus, clock):
        self.dispatcher = dispatcher
        self.bus = bus
        self.clock = clock

    def register(self, queue) -> None:
        queue.register_handler(queues.NOTIFICATIONS, queues.SEND, self.send)
        queue.register_handler(queues.NOTIFICATIONS, queues.SEND_BATCH, self.send_batch)
        queue.register_handler(queues.NOTIFICATIONS, queues.SCHEDULED, self.scheduled)

    def send(self, job: Job) -> Dict[str, dict]:
        request = NotificationRequest.from_dict(job.payload)
        return self.dispatcher.send(request)

    def send_batch(self, job: Job) -> Dict[str, int]:
        return self.dispatcher.send_batch(as_requests(job.payload.get("notifications", [])))

    def scheduled(self, job: Job) -> bool:
        """
        Deliver a stored notification claimed by the flush sweep.

        Only a PENDING row is delivered; it is moved to SENT before the
        providers are called so a redelivered job finds nothing to do.
        """
        notification_id = job.payload["notification_id"]
        claimed = Notification.objects.filter(
            pk=notification_id,
            status=Notification.Status.PENDING,
        ).update(status=Notification.Status.SENT, sent_at=self.clock.now())
        if not claimed:
            logger.debug(f"Scheduled notification {notification_id} is not pending; skipping")
            return False

        notification = Notification.objects.get(pk=notification_id)
        request = NotificationRequest(
            user_id=notification.user_id,
            type=notification.type,
            title=notification.title,
            message=notification.message,
            data=notification.data or {},
            channels=tuple(notification.channels or ()),
            priority=notification.priority or None,
        )
        try:
            # The stored row already is the in-app inbox entry.
            results = self.dispatcher.send(request, skip_channels=[Channel.IN_APP])
        except Exception:
            Notification.objects.filter(pk=notification_id).update(
                status=Notification.Status.PENDING,
                sent_at=None,
            )
            raise

        if Channel.IN_APP in request.channels:
            self.bus.emit(NOTIFICATION_CREATED, {
                "notification_id": str(notification.pk),
                "user_id": notification.user_id,
                "type": notification.type,
                "title": notification.title,
            })
        elif results and not any(result.get("success") for result in results.values()):
            Notification.objects.filter(pk=notification_id).update(status=Notification.Status.FAILED)
            logger.warning(f"Scheduled notification {notification_id} failed on every channel")
            return False

        logger.info(f"Scheduled notification sent to user {notification.user_id}")
        return True
