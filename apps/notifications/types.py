"""Notification kinds, channels and the delivery request passed between jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from django.db import models  # type: ignore


class NotificationType(models.TextChoices):
    BOOKING_REQUEST = "BOOKING_REQUEST"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_REMINDER = "BOOKING_REMINDER"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAYOUT_PROCESSED = "PAYOUT_PROCESSED"
    REVIEW_RECEIVED = "REVIEW_RECEIVED"
    REVIEW_REQUEST = "REVIEW_REQUEST"
    LISTING_APPROVED = "LISTING_APPROVED"
    DISPUTE_OPENED = "DISPUTE_OPENED"
    MESSAGE_RECEIVED = "MESSAGE_RECEIVED"
    SYSTEM_ANNOUNCEMENT = "SYSTEM_ANNOUNCEMENT"
    VERIFICATION_COMPLETE = "VERIFICATION_COMPLETE"


class Channel(models.TextChoices):
    EMAIL = "EMAIL"
    PUSH = "PUSH"
    IN_APP = "IN_APP"
    SMS = "SMS"


class Priority(models.TextChoices):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


_HIGH = (Channel.EMAIL, Channel.PUSH, Channel.IN_APP)
_MEDIUM = (Channel.PUSH, Channel.IN_APP)
_LOW = (Channel.IN_APP,)

DEFAULT_CHANNELS: Dict[str, Tuple[str, ...]] = {
    NotificationType.BOOKING_CONFIRMED: _HIGH,
    NotificationType.PAYOUT_PROCESSED: _HIGH,
    NotificationType.DISPUTE_OPENED: _HIGH,
    NotificationType.BOOKING_REQUEST: _MEDIUM,
    NotificationType.MESSAGE_RECEIVED: _MEDIUM,
    NotificationType.REVIEW_RECEIVED: _MEDIUM,
}


def default_channels(notification_type: str) -> Tuple[str, ...]:
    return tuple(str(channel) for channel in DEFAULT_CHANNELS.get(notification_type, _LOW))


@dataclass(frozen=True)
class NotificationRequest:
    """
    A delivery intent for one user.

    ``channels`` falls back to the type's default set when omitted and is
    never empty afterwards.
    """
    user_id: str
    type: str
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    channels: Tuple[str, ...] = ()
    priority: Optional[str] = None

    def __post_init__(self) -> None:
        if self.type not in NotificationType.values:
            raise ValueError(f"Unknown notification type: {self.type}")
        channels = tuple(str(channel) for channel in self.channels) or default_channels(self.type)
        unknown = [channel for channel in channels if channel not in Channel.values]
        if unknown:
            raise ValueError(f"Unknown notification channel(s): {', '.join(unknown)}")
        if self.priority is not None and self.priority not in Priority.values:
            raise ValueError(f"Unknown notification priority: {self.priority}")
        object.__setattr__(self, "channels", channels)
        object.__setattr__(self, "type", str(self.type))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": dict(self.data),
            "channels": list(self.channels),
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationRequest":
        return cls(
            user_id=str(data["user_id"]),
            type=data["type"],
            title=data["title"],
            message=data["message"],
            data=data.get("data") or {},
            channels=tuple(data.get("channels") or ()),
            priority=data.get("priority"),
        )


def as_requests(items: Iterable[Dict[str, Any]]) -> list[NotificationRequest]:
    return [NotificationRequest.from_dict(item) for item in items]
