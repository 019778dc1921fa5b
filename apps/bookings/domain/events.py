"""
Booking Domain Events

Facts emitted once a booking write has committed. Listeners receive a
:class:`shared.domain.base.DomainEvent` whose ``payload`` is one of the
dataclasses below.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from shared.domain.base import EventPayload

BOOKING_CREATED = "booking.created"
BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_COMPLETED = "booking.completed"


@dataclass(frozen=True)
class BookingCreated(EventPayload):
    """
    Event: A new booking was created

    Triggers:
    - Notify listing owner of the request
    - Schedule the payment-window expiration check
    """
    booking_id: str
    renter_id: str
    owner_id: str
    listing_id: str
    start_date: datetime
    end_date: datetime
    total_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class BookingStatusChanged(EventPayload):
    """
    Event: A booking moved to another lifecycle state

    Emitted as ``booking.confirmed``, ``booking.cancelled`` or
    ``booking.completed`` depending on the new status.
    """
    booking_id: str
    previous_status: str
    new_status: str
    renter_id: str
    owner_id: str
    changed_by: Optional[str] = None
    reason: Optional[str] = None
    start_date: Optional[datetime] = None
