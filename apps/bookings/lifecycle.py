"""
Booking lifecycle job handlers

Every handler re-reads the booking and treats a status that no longer
matches its precondition as a successful no-op. State writes are
conditional on the status observed, so duplicate or overlapping
deliveries of the same job cannot apply a transition twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from django.conf import settings  # type: ignore
from django.utils.dateparse import parse_datetime  # type: ignore

from apps.core import queues
from apps.notifications.types import Channel, NotificationRequest, NotificationType
from shared.jobs.job import Job

from .domain import states
from .domain.events import (
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    BOOKING_CONFIRMED,
    BookingStatusChanged,
)
from .models import Booking, BookingReminder
from .repository import AbstractBookingStore

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Expired - Payment not received within time limit"

STATUS_EVENTS = {
    states.CONFIRMED: BOOKING_CONFIRMED,
    states.CANCELLED: BOOKING_CANCELLED,
    states.COMPLETED: BOOKING_COMPLETED,
}

# Status a booking must still be in for each reminder kind.
REMINDER_STATES = {
    BookingReminder.Kind.UPCOMING: states.CONFIRMED,
    BookingReminder.Kind.ONGOING: states.IN_PROGRESS,
    BookingReminder.Kind.RETURN_DUE: states.IN_PROGRESS,
}

REMINDER_COPY = {
    BookingReminder.Kind.UPCOMING: (
        "Booking Starting Soon",
        'Your booking for "{title}" starts in 24 hours. Please review pickup instructions.',
    ),
    BookingReminder.Kind.ONGOING: (
        "Active Booking Reminder",
        'Your rental of "{title}" is currently active. Enjoy!',
    ),
    BookingReminder.Kind.RETURN_DUE: (
        "Return Reminder",
        'Your rental of "{title}" is due for return soon. Please arrange for return.',
    ),
}


@dataclass(frozen=True)
class LifecyclePolicy:
    """Time limits applied by the lifecycle jobs and sweeps."""

    payment_window: timedelta = timedelta(minutes=30)
    reminder_lead: timedelta = timedelta(hours=24)
    auto_complete_after: timedelta = timedelta(hours=48)
    payment_release_delay_ms: int = 1000

    @classmethod
    def from_settings(cls) -> "LifecyclePolicy":
        return cls(
            payment_window=timedelta(minutes=settings.BOOKING_PAYMENT_WINDOW_MINUTES),
            reminder_lead=timedelta(hours=settings.BOOKING_REMINDER_LEAD_HOURS),
            auto_complete_after=timedelta(hours=settings.BOOKING_AUTO_COMPLETE_AFTER_HOURS),
            payment_release_delay_ms=settings.BOOKING_PAYMENT_RELEASE_DELAY_MS,
        )


def expiration_key(booking_id: Any) -> str:
    return f"check-expiration:{booking_id}"


def reminder_key(booking_id: Any, kind: str) -> str:
    return f"send-reminder:{booking_id}:{kind}"


def auto_complete_key(booking_id: Any) -> str:
    return f"auto-complete:{booking_id}"


def release_key(booking_id: Any) -> str:
    return f"release-payment:{booking_id}"


class BookingLifecycle:
    """
    Handlers for the ``bookings`` queue.

    Collaborators are passed in by the process bootstrap: the booking
    store, the job queue for follow-on jobs, the notification dispatcher,
    the message bus and the clock.
    """

    def __init__(self, store: AbstractBookingStore, queue, notifier, bus, clock,
                 policy: Optional[LifecyclePolicy] = None):
        self.store = store
        self.queue = queue
        self.notifier = notifier
        self.bus = bus
        self.clock = clock
        self.policy = policy or LifecyclePolicy()

    def register(self, queue) -> None:
        queue.register_handler(queues.BOOKINGS, queues.CHECK_EXPIRATION, self.check_expiration)
        queue.register_handler(queues.BOOKINGS, queues.SEND_REMINDER, self.send_reminder)
        queue.register_handler(queues.BOOKINGS, queues.AUTO_COMPLETE, self.auto_complete)
        queue.register_handler(queues.BOOKINGS, queues.UPDATE_STATUS, self.update_status)
        queue.register_handler(queues.BOOKINGS, queues.RELEASE_PAYMENT, self.release_payment)

    # ----- check-expiration ------------------------------------------------

    def check_expiration(self, job: Job) -> bool:
        """
        Cancel a booking still pending once its payment window has passed.

        Returns ``True`` only for the invocation that performed the
        cancellation.
        """
        booking_id = job.payload["booking_id"]
        booking = self.store.find_booking(booking_id)
        if booking is None:
            logger.warning(f"Booking {booking_id} not found for expiration check")
            return False
        if booking.status not in states.PENDING_STATES:
            return False

        expires_at = _parse_moment(job.payload.get("expires_at")) or (
            booking.created_at + self.policy.payment_window
        )
        now = self.clock.now()
        if now < expires_at:
            return False

        cancelled = self.store.transition(
            booking.pk,
            expected=states.PENDING_STATES,
            target=states.CANCELLED,
            cancelled_at=now,
            cancellation_reason=EXPIRED_REASON,
        )
        if not cancelled:
            # Another delivery or a payment landed between read and write.
            return False

        self.store.record_audit(
            "booking.expired",
            booking.pk,
            {"previous_status": booking.status, "expires_at": expires_at.isoformat()},
        )
        self.notifier.send(NotificationRequest(
            user_id=booking.renter_id,
            type=NotificationType.BOOKING_CANCELLED,
            title="Booking Expired",
            message=f'Your booking for "{booking.listing_title}" has expired due to non-payment.',
            data={"booking_id": str(booking.pk)},
            channels=(Channel.EMAIL, Channel.IN_APP),
        ))
        logger.info(f"Booking {booking.pk} expired and cancelled")
        return True

    # ----- send-reminder ---------------------------------------------------

    def send_reminder(self, job: Job) -> bool:
        booking_id = job.payload["booking_id"]
        kind = job.payload["type"]
        if kind not in REMINDER_STATES:
            raise ValueError(f"Unknown reminder type: {kind}")

        booking = self.store.find_booking(booking_id)
        if booking is None or booking.status != REMINDER_STATES[kind]:
            return False
        if not self.store.mark_reminder_sent(booking.pk, kind, self.clock.now()):
            logger.debug(f"{kind} reminder for booking {booking.pk} already sent")
            return False

        title, template = REMINDER_COPY[kind]
        try:
            self.notifier.send(NotificationRequest(
                user_id=booking.renter_id,
                type=NotificationType.BOOKING_REMINDER,
                title=title,
                message=template.format(title=booking.listing_title),
                data={"booking_id": str(booking.pk), "type": kind},
                channels=(Channel.EMAIL, Channel.PUSH, Channel.IN_APP),
            ))
        except Exception:
            self.store.release_reminder(booking.pk, kind)
            raise

        logger.info(f"Sent {kind} reminder for booking {booking.pk}")
        return True

    # ----- auto-complete ---------------------------------------------------

    def auto_complete(self, job: Job) -> bool:
        booking_id = job.payload["booking_id"]
        booking = self.store.find_booking(booking_id)
        if booking is None or booking.status != states.AWAITING_RETURN_INSPECTION:
            return False

        now = self.clock.now()
        if booking.end_date > now - self.policy.auto_complete_after:
            return False

        report = self.store.completed_return_report(booking.pk)
        if report is None:
            logger.info(f"Booking {booking.pk} has no completed return report; not auto-completing")
            return False
        if self.store.has_severe_damage(report):
            logger.info(f"Booking {booking.pk} has severe damage reported; left for manual review")
            return False

        completed = self.store.transition(
            booking.pk,
            expected=[states.AWAITING_RETURN_INSPECTION],
            target=states.COMPLETED,
            completed_at=now,
        )
        if not completed:
            return False

        self.store.record_audit(
            "booking.auto_completed",
            booking.pk,
            {"previous_status": booking.status, "report_id": report.pk},
        )
        # The short delay lets the status commit land before payout runs.
        self.queue.enqueue(
            queues.BOOKINGS,
            queues.RELEASE_PAYMENT,
            {"booking_id": str(booking.pk)},
            delay_ms=self.policy.payment_release_delay_ms,
            dedup_key=release_key(booking.pk),
        )
        self._publish(booking, states.COMPLETED)
        logger.info(f"Auto-completed booking {booking.pk}")
        return True

    # ----- update-status ---------------------------------------------------

    def update_status(self, job: Job) -> bool:
        booking_id = job.payload["booking_id"]
        target = job.payload["status"]
        reason = job.payload.get("reason")
        if target not in states.TRANSITIONS:
            raise ValueError(f"Unknown booking status: {target}")

        booking = self.store.find_booking(booking_id)
        if booking is None:
            logger.warning(f"Booking {booking_id} not found for status update")
            return False
        if booking.status == target:
            return False
        if not states.can_transition(booking.status, target):
            logger.warning(
                f"Ignoring status update for booking {booking.pk}: "
                f"{booking.status} -> {target} is not allowed"
            )
            return False

        now = self.clock.now()
        fields: Dict[str, Any] = {}
        if reason:
            fields["cancellation_reason"] = reason
        if target == states.CANCELLED:
            fields["cancelled_at"] = now
        if target == states.COMPLETED:
            fields["completed_at"] = now

        if not self.store.transition(booking.pk, expected=[booking.status], target=target, **fields):
            return False

        self.store.record_audit(
            "booking.status_updated",
            booking.pk,
            {"previous_status": booking.status, "new_status": target, "reason": reason},
        )
        self._publish(booking, target, reason=reason)
        logger.info(f"Updated booking {booking.pk} to status {target}")
        return True

    # ----- release-payment -------------------------------------------------

    def release_payment(self, job: Job) -> bool:
        booking_id = job.payload["booking_id"]
        booking = self.store.find_booking(booking_id)
        if booking is None or booking.status != states.COMPLETED:
            logger.warning(f"Payment release skipped: booking {booking_id} is not completed")
            return False
        if not self.store.record_payment_release(booking.pk, self.clock.now()):
            return False
        self.store.record_audit("booking.payment_release_requested", booking.pk, {})
        logger.info(f"Payment release requested for booking {booking.pk}")
        return True

    # ----- helpers ---------------------------------------------------------

    def _publish(self, booking: Booking, new_status: str, reason: Optional[str] = None) -> None:
        event_name = STATUS_EVENTS.get(new_status)
        if event_name is None:
            return
        self.bus.emit(event_name, BookingStatusChanged(
            booking_id=str(booking.pk),
            previous_status=booking.status,
            new_status=new_status,
            renter_id=booking.renter_id,
            owner_id=booking.owner_id,
            changed_by="system",
            reason=reason,
            start_date=booking.start_date,
        ))


def _parse_moment(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return parse_datetime(value)
