"""
Periodic booking sweeps

Each sweep selects bookings matching a time condition and enqueues one
follow-on job per booking. Sweeps never mutate bookings themselves, and a
failure on one booking is logged without stopping the rest. Rows that were
not handled are selected again on the next tick.

The expiration sweep deliberately overlaps the delayed ``check-expiration``
job scheduled at booking creation: it is the safety net for delayed jobs
lost by the broker. Dedup keys keep the two from stacking up duplicates
while the original job is still queued.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from django.db.models import Q  # type: ignore

from apps.core import queues

from .domain import states
from .lifecycle import (
    LifecyclePolicy,
    auto_complete_key,
    expiration_key,
    reminder_key,
)
from .models import BookingReminder
from .repository import AbstractBookingStore

logger = logging.getLogger(__name__)


class BookingSweeps:
    def __init__(self, store: AbstractBookingStore, queue, clock,
                 policy: Optional[LifecyclePolicy] = None):
        self.store = store
        self.queue = queue
        self.clock = clock
        self.policy = policy or LifecyclePolicy()

    def expire_pending(self) -> Dict[str, int]:
        """Re-enqueue expiration checks for pending bookings past their payment window."""
        now = self.clock.now()
        window = self.policy.payment_window
        bookings = self.store.find_bookings_where(
            Q(status__in=states.PENDING_STATES) & Q(created_at__lte=now - window)
        )

        queued = 0
        for booking in bookings:
            try:
                self.queue.enqueue(
                    queues.BOOKINGS,
                    queues.CHECK_EXPIRATION,
                    {
                        "booking_id": str(booking.pk),
                        "expires_at": (booking.created_at + window).isoformat(),
                    },
                    dedup_key=expiration_key(booking.pk),
                )
                queued += 1
            except Exception as e:
                logger.error(f"Error queueing expiration check for booking {booking.pk}: {e}", exc_info=True)

        if queued:
            logger.info(f"Queued {queued} expired bookings for processing")
        return {"queued": queued}

    def upcoming_reminders(self) -> Dict[str, int]:
        """Queue UPCOMING reminders for confirmed bookings starting within the lead time."""
        now = self.clock.now()
        predicate = (
            Q(status=states.CONFIRMED)
            & Q(start_date__gt=now)
            & Q(start_date__lte=now + self.policy.reminder_lead)
            & ~Q(reminders__kind=BookingReminder.Kind.UPCOMING)
        )
        return self._queue_reminders(predicate, BookingReminder.Kind.UPCOMING)

    def return_reminders(self) -> Dict[str, int]:
        """Queue RETURN_DUE reminders for rentals ending within the lead time."""
        now = self.clock.now()
        predicate = (
            Q(status=states.IN_PROGRESS)
            & Q(end_date__gte=now)
            & Q(end_date__lt=now + self.policy.reminder_lead)
            & ~Q(reminders__kind=BookingReminder.Kind.RETURN_DUE)
        )
        return self._queue_reminders(predicate, BookingReminder.Kind.RETURN_DUE)

    def auto_complete(self) -> Dict[str, int]:
        """Queue auto-completion for bookings awaiting inspection past the grace period."""
        now = self.clock.now()
        bookings = self.store.find_bookings_where(
            Q(status=states.AWAITING_RETURN_INSPECTION)
            & Q(end_date__lt=now - self.policy.auto_complete_after)
        )

        queued = 0
        for booking in bookings:
            try:
                self.queue.enqueue(
                    queues.BOOKINGS,
                    queues.AUTO_COMPLETE,
                    {"booking_id": str(booking.pk)},
                    dedup_key=auto_complete_key(booking.pk),
                )
                queued += 1
            except Exception as e:
                logger.error(f"Error queueing auto-complete for booking {booking.pk}: {e}", exc_info=True)

        if queued:
            logger.info(f"Queued {queued} bookings for auto-completion")
        return {"queued": queued}

    def _queue_reminders(self, predicate: Q, kind: str) -> Dict[str, int]:
        queued = 0
        for booking in self.store.find_bookings_where(predicate):
            try:
                self.queue.enqueue(
                    queues.BOOKINGS,
                    queues.SEND_REMINDER,
                    {"booking_id": str(booking.pk), "type": kind},
                    dedup_key=reminder_key(booking.pk, kind),
                )
                queued += 1
            except Exception as e:
                logger.error(f"Error queueing {kind} reminder for booking {booking.pk}: {e}", exc_info=True)

        if queued:
            logger.info(f"Queued {queued} {kind} reminders")
        return {"queued": queued}
