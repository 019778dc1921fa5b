"""
Event listener table

Every reaction to a domain event is declared in :meth:`EventListeners.table`
and registered on the message bus in one pass at startup. Listeners only
enqueue jobs; the work itself happens on the queues.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Callable, List, Optional, Tuple

from apps.bookings.domain.events import (
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    BOOKING_CONFIRMED,
    BOOKING_CREATED,
)
from apps.bookings.lifecycle import LifecyclePolicy, expiration_key, reminder_key
from apps.bookings.models import BookingReminder
from apps.notifications.types import Channel, NotificationRequest, NotificationType, Priority
from shared.domain.base import DomainEvent

from . import events, queues

logger = logging.getLogger(__name__)

EMAIL_IN_APP = (Channel.EMAIL, Channel.IN_APP)
ALL_BUT_SMS = (Channel.EMAIL, Channel.PUSH, Channel.IN_APP)


class EventListeners:
    def __init__(self, queue, audience, presence, clock, policy: Optional[LifecyclePolicy] = None):
        self.queue = queue
        self.audience = audience
        self.presence = presence
        self.clock = clock
        self.policy = policy or LifecyclePolicy()

    def table(self) -> List[Tuple[str, Callable[[DomainEvent], None]]]:
        return [
            (BOOKING_CREATED, self.on_booking_created),
            (BOOKING_CONFIRMED, self.on_booking_confirmed),
            (BOOKING_CANCELLED, self.on_booking_cancelled),
            (BOOKING_COMPLETED, self.on_booking_completed),
            (events.PAYMENT_SUCCEEDED, self.on_payment_succeeded),
            (events.PAYMENT_FAILED, self.on_payment_failed),
            (events.PAYMENT_REFUNDED, self.on_payment_refunded),
            (events.LISTING_CREATED, self.on_listing_created),
            (events.LISTING_UPDATED, self.on_listing_updated),
            (events.LISTING_DELETED, self.on_listing_deleted),
            (events.REVIEW_CREATED, self.on_review_created),
            (events.DISPUTE_CREATED, self.on_dispute_created),
            (events.MESSAGE_SENT, self.on_message_sent),
            (events.USER_REGISTERED, self.on_user_registered),
            (events.USER_VERIFIED_EMAIL, self.on_email_verified),
        ]

    def register(self, bus) -> None:
        for event_name, listener in self.table():
            bus.on(event_name, listener)

    # ----- helpers ---------------------------------------------------------

    def _notify(self, request: NotificationRequest) -> str:
        return self.queue.enqueue(queues.NOTIFICATIONS, queues.SEND, request.to_dict())

    def _notify_batch(self, requests: List[NotificationRequest]) -> str:
        return self.queue.enqueue(
            queues.NOTIFICATIONS,
            queues.SEND_BATCH,
            {"notifications": [request.to_dict() for request in requests]},
        )

    def _index(self, listing_id: str, operation: str) -> str:
        return self.queue.enqueue(
            queues.SEARCH_INDEXING,
            queues.INDEX_LISTING,
            {"listing_id": listing_id, "operation": operation},
        )

    # ----- booking events --------------------------------------------------

    def on_booking_created(self, event: DomainEvent) -> None:
        payload = event.payload
        logger.info(f"Booking created: {payload.booking_id}")

        self._notify(NotificationRequest(
            user_id=payload.owner_id,
            type=NotificationType.BOOKING_REQUEST,
            title="New Booking Request",
            message="You have a new booking request for your listing.",
            data={"booking_id": payload.booking_id},
            channels=ALL_BUT_SMS,
        ))

        window = self.policy.payment_window
        self.queue.enqueue(
            queues.BOOKINGS,
            queues.CHECK_EXPIRATION,
            {
                "booking_id": payload.booking_id,
                "expires_at": (self.clock.now() + window).isoformat(),
            },
            delay_ms=int(window.total_seconds() * 1000),
            dedup_key=expiration_key(payload.booking_id),
        )

    def on_booking_confirmed(self, event: DomainEvent) -> None:
        payload = event.payload
        logger.info(f"Booking confirmed: {payload.booking_id}")

        self._notify(NotificationRequest(
            user_id=payload.renter_id,
            type=NotificationType.BOOKING_CONFIRMED,
            title="Booking Confirmed",
            message="Your booking has been confirmed!",
            data={"booking_id": payload.booking_id},
            channels=ALL_BUT_SMS,
            priority=Priority.HIGH,
        ))

        if payload.start_date is not None:
            remind_at = payload.start_date - self.policy.reminder_lead
            delay = max(remind_at - self.clock.now(), timedelta(0))
        else:
            delay = self.policy.reminder_lead
        self.queue.enqueue(
            queues.BOOKINGS,
            queues.SEND_REMINDER,
            {"booking_id": payload.booking_id, "type": BookingReminder.Kind.UPCOMING},
            delay_ms=int(delay.total_seconds() * 1000),
            dedup_key=reminder_key(payload.booking_id, BookingReminder.Kind.UPCOMING),
        )

    def on_booking_cancelled(self, event: DomainEvent) -> None:
        payload = event.payload
        logger.info(f"Booking cancelled: {payload.booking_id}")

        for user_id, message in (
            (payload.renter_id, "Your booking has been cancelled."),
            (payload.owner_id, "A booking for your listing has been cancelled."),
        ):
            self._notify(NotificationRequest(
                user_id=user_id,
                type=NotificationType.BOOKING_CANCELLED,
                title="Booking Cancelled",
                message=message,
                data={"booking_id": payload.booking_id, "reason": payload.reason},
                channels=EMAIL_IN_APP,
            ))

    def on_booking_completed(self, event: DomainEvent) -> None:
        payload = event.payload
        logger.info(f"Booking completed: {payload.booking_id}")

        for user_id, message in (
            (payload.renter_id, "How was your rental experience? Leave a review!"),
            (payload.owner_id, "Rate your renter to help the community."),
        ):
            self._notify(NotificationRequest(
                user_id=user_id,
                type=NotificationType.REVIEW_REQUEST,
                title="Review Request",
                message=message,
                data={"booking_id": payload.booking_id},
                channels=EMAIL_IN_APP,
            ))

    # ----- payment events --------------------------------------------------

    def on_payment_succeeded(self, event: DomainEvent) -> None:
        payload = event.payload
        logger.info(f"Payment succeeded: {payload.payment_id}")

        self._notify_batch([
            NotificationRequest(
                user_id=payload.renter_id,
                type=NotificationType.PAYOUT_PROCESSED,
                title="Payment Successful",
                message=f"Your payment of {payload.amount} {payload.currency} has been processed.",
                data={"payment_id": payload.payment_id, "booking_id": payload.booking_id},
                channels=EMAIL_IN_APP,
            ),
            NotificationRequest(
                user_id=payload.owner_id,
                type=NotificationType.PAYOUT_PROCESSED,
                title="Payment Received",
                message=f"You received a payment of {payload.amount} {payload.currency}.",
                data={"payment_id": payload.payment_id, "booking_id": payload.booking_id},
                channels=EMAIL_IN_APP,
            ),
        ])

    def on_payment_failed(self, event: DomainEvent) -> None:
        payload = event.payload
        logger.info(f"Payment failed: {payload.payment_id}")

        self._notify(NotificationRequest(
            user_id=payload.renter_id,
            type=NotificationType.PAYMENT_FAILED,
            title="Payment Failed",
            message="Your payment could not be processed. Please update your payment method.",
            data={"payment_id": payload.payment_id, "booking_id": payload.booking_id},
            channels=ALL_BUT_SMS,
            priority=Priority.HIGH,
        ))

    def on_payment_refunded(self, event: DomainEvent) -> None:
        payload = event.payload
        logger.info(f"Payment refunded: {payload.payment_id}")

        self._notify(NotificationRequest(
            user_id=payload.renter_id,
            type=NotificationType.PAYOUT_PROCESSED,
            title="Refund Processed",
            message=f"A refund of {payload.amount} {payload.currency} has been issued to your account.",
            data={"payment_id": payload.payment_id, "booking_id": payload.booking_id},
            channels=EMAIL_IN_APP,
        ))

    # ----- listing events --------------------------------------------------

    def on_listing_created(self, event: DomainEvent) -> None:
        payload = event.payload
        logger.info(f"Listing created: {payload.listing_id}")

        self._index(payload.listing_id, "index")
        self._notify(NotificationRequest(
            user_id=payload.owner_id,
            type=NotificationType.LISTING_APPROVED,
            title="Listing Created",
            message="Your listing has been created and is pending review.",
            data={"listing_id": payload.listing_id},
            channels=(Channel.IN_APP,),
        ))

    def on_listing_updated(self, event: DomainEvent) -> None:
        logger.info(f"Listing updated: {event.payload.listing_id}")
        self._index(event.payload.listing_id, "update")

    def on_listing_deleted(self, event: DomainEvent) -> None:
        logger.info(f"Listing deleted: {event.payload.listing_id}")
        self._index(event.payload.listing_id, "delete")

    # ----- review events ---------------------------------------------------

    def on_review_created(self, event: DomainEvent) -> None:
        payload = event.payload
        logger.info(f"Review created: {payload.review_id}")

        self._notify(NotificationRequest(
            user_id=payload.reviewee_id,
            type=NotificationType.REVIEW_RECEIVED,
            title="New Review",
            message="You received a new review!",
            data={"review_id": payload.review_id, "booking_id": payload.booking_id},
            channels=EMAIL_IN_APP,
        ))
        if payload.listing_id:
            self._index(payload.listing_id, "update")

    # ----- dispute events --------------------------------------------------

    def on_dispute_created(self, event: DomainEvent) -> None:
        payload = event.payload
        logger.info(f"Dispute created: {payload.dispute_id}")

        admins = self.audience.user_ids()
        if not admins:
            logger.warning(f"No admin recipients for dispute {payload.dispute_id}")
            return
        self._notify_batch([
            NotificationRequest(
                user_id=admin_id,
                type=NotificationType.DISPUTE_OPENED,
                title="New Dispute",
                message=f"A new {payload.type} dispute has been created.",
                data={"dispute_id": payload.dispute_id, "booking_id": payload.booking_id},
                channels=EMAIL_IN_APP,
                priority=Priority.HIGH,
            )
            for admin_id in admins
        ])

    # ----- message events --------------------------------------------------

    def on_message_sent(self, event: DomainEvent) -> None:
        payload = event.payload
        for recipient_id in payload.recipient_ids:
            if recipient_id == payload.sender_id or self.presence.is_online(recipient_id):
                continue
            self._notify(NotificationRequest(
                user_id=recipient_id,
                type=NotificationType.MESSAGE_RECEIVED,
                title="New Message",
                message="You have a new message",
                data={"message_id": payload.message_id, "conversation_id": payload.conversation_id},
                channels=(Channel.PUSH,),
            ))

    # ----- user events -----------------------------------------------------

    def on_user_registered(self, event: DomainEvent) -> None:
        logger.info(f"User registered: {event.payload.user_id}")
        self._notify(NotificationRequest(
            user_id=event.payload.user_id,
            type=NotificationType.SYSTEM_ANNOUNCEMENT,
            title="Welcome to Rental Portal!",
            message="Thank you for joining our community.",
            channels=(Channel.EMAIL,),
        ))

    def on_email_verified(self, event: DomainEvent) -> None:
        logger.info(f"Email verified: {event.payload.user_id}")
        self._notify(NotificationRequest(
            user_id=event.payload.user_id,
            type=NotificationType.VERIFICATION_COMPLETE,
            title="Email Verified",
            message="Your email has been successfully verified!",
            channels=(Channel.IN_APP,),
        ))
