"""
Cross-module domain events

Names and payloads of the events the HTTP layer publishes into the message
bus. Booking events live in :mod:`apps.bookings.domain.events`.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Tuple

from apps.bookings.domain.events import (
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    BOOKING_CONFIRMED,
    BOOKING_CREATED,
)
from shared.domain.base import EventPayload

PAYMENT_SUCCEEDED = "payment.succeeded"
PAYMENT_FAILED = "payment.failed"
PAYMENT_REFUNDED = "payment.refunded"
LISTING_CREATED = "listing.created"
LISTING_UPDATED = "listing.updated"
LISTING_DELETED = "listing.deleted"
REVIEW_CREATED = "review.created"
DISPUTE_CREATED = "dispute.created"
MESSAGE_SENT = "message.sent"
USER_REGISTERED = "user.registered"
USER_VERIFIED_EMAIL = "user.verified.email"

# Every event the platform emits must have at least one listener.
EXPECTED_EVENTS = (
    BOOKING_CREATED,
    BOOKING_CONFIRMED,
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    PAYMENT_SUCCEEDED,
    PAYMENT_FAILED,
    PAYMENT_REFUNDED,
    LISTING_CREATED,
    LISTING_UPDATED,
    LISTING_DELETED,
    REVIEW_CREATED,
    DISPUTE_CREATED,
    MESSAGE_SENT,
    USER_REGISTERED,
    USER_VERIFIED_EMAIL,
)


@dataclass(frozen=True)
class PaymentProcessed(EventPayload):
    payment_id: str
    booking_id: str
    amount: Decimal
    renter_id: str
    owner_id: str
    currency: str = "USD"
    reason: Optional[str] = None


@dataclass(frozen=True)
class ListingChanged(EventPayload):
    listing_id: str
    owner_id: str
    title: str = ""


@dataclass(frozen=True)
class ReviewCreated(EventPayload):
    review_id: str
    reviewer_id: str
    reviewee_id: str
    booking_id: str
    rating: int
    listing_id: Optional[str] = None


@dataclass(frozen=True)
class DisputeCreated(EventPayload):
    dispute_id: str
    booking_id: str
    reported_by: str
    type: str


@dataclass(frozen=True)
class MessageSent(EventPayload):
    message_id: str
    conversation_id: str
    sender_id: str
    recipient_ids: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class UserEvent(EventPayload):
    user_id: str
    email: str = ""
