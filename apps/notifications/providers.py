# Delivery provider adapters, one per channel.

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests
from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone
from twilio.rest import Client

from .directory import Recipient
from .models import Notification
from .types import Channel, NotificationRequest

logger = logging.getLogger(__name__)

NOTIFICATION_CREATED = "notification.created"

Result = Dict[str, Any]


class BaseProvider(ABC):
    """Base class for channel providers"""

    channel: str = ""

    @abstractmethod
    def send(self, recipient: Optional[Recipient], request: NotificationRequest) -> Result:
        pass


class EmailProvider(BaseProvider):
    """Delivery via Django mail"""

    channel = Channel.EMAIL

    def send(self, recipient, request):
        if recipient is None or not recipient.email:
            return {"success": False, "error": "No email"}

        send_mail(
            subject=request.title,
            message=request.message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient.email],
            fail_silently=False,
        )
        return {"success": True, "message": "Sent via Email"}


class PushProvider(BaseProvider):
    """Delivery via the push gateway HTTP API"""

    channel = Channel.PUSH

    def __init__(self, gateway_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.gateway_url = gateway_url if gateway_url is not None else settings.PUSH_GATEWAY_URL
        self.token = token if token is not None else settings.PUSH_GATEWAY_TOKEN
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, recipient, request):
        if not self.gateway_url:
            return {"success": False, "error": "Push gateway not configured"}
        if recipient is None or not recipient.push_token:
            return {"success": False, "error": "No push token"}

        response = self.session.post(
            self.gateway_url,
            json={
                "to": recipient.push_token,
                "title": request.title,
                "body": request.message,
                "data": request.data,
                "priority": (request.priority or "NORMAL").lower(),
            },
            headers={"Authorization": f"Bearer {self.token}"} if self.token else {},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return {"success": True, "message": "Sent via Push", "status_code": response.status_code}


class SMSProvider(BaseProvider):
    """Delivery via Twilio"""

    channel = Channel.SMS

    def __init__(self, account_sid: Optional[str] = None, auth_token: Optional[str] = None,
                 from_number: Optional[str] = None, client: Optional[Client] = None):
        self.account_sid = account_sid if account_sid is not None else settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token if auth_token is not None else settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number if from_number is not None else settings.TWILIO_FROM_NUMBER
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def send(self, recipient, request):
        if not (self.account_sid and self.auth_token and self.from_number) and self._client is None:
            return {"success": False, "error": "SMS provider not configured"}
        if recipient is None or not recipient.phone_number:
            return {"success": False, "error": "No phone number"}

        message = self.client.messages.create(
            body=f"{request.title}: {request.message}",
            from_=self.from_number,
            to=recipient.phone_number,
        )
        return {"success": True, "message": "Sent via SMS", "sid": message.sid}


class InAppProvider(BaseProvider):
    """
    Delivery into the in-app inbox

    Stores a ``Notification`` row and emits ``notification.created`` so the
    real-time layer can push it to connected clients.
    """

    channel = Channel.IN_APP

    def __init__(self, bus):
        self.bus = bus

    def send(self, recipient, request):
        notification = Notification.objects.create(
            user_id=request.user_id,
            type=request.type,
            title=request.title,
            message=request.message,
            data=request.data,
            channels=list(request.channels),
            priority=request.priority or "",
            status=Notification.Status.SENT,
            sent_at=timezone.now(),
        )
        self.bus.emit(NOTIFICATION_CREATED, {
            "notification_id": str(notification.pk),
            "user_id": notification.user_id,
            "type": notification.type,
            "title": notification.title,
        })
        return {"success": True, "message": "Stored in-app", "notification_id": str(notification.pk)}
