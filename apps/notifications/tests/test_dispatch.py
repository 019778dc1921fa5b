from unittest.mock import MagicMock

import pytest
import requests
from django.core import mail

from apps.notifications.directory import Recipient, RecipientDirectory
from apps.notifications.dispatch import NotificationDispatcher
from apps.notifications.models import Notification, RecipientProfile
from apps.notifications.providers import (
    NOTIFICATION_CREATED,
    EmailProvider,
    InAppProvider,
    PushProvider,
    SMSProvider,
)
from apps.notifications.types import Channel, NotificationRequest, NotificationType
from shared.application.message_bus import MessageBus


class StaticDirectory:
    def __init__(self, recipient=None, error=None):
        self.recipient = recipient
        self.error = error

    def lookup(self, user_id):
        if self.error:
            raise self.error
        return self.recipient


class StubProvider:
    def __init__(self, result=None, error=None):
        self.result = result or {"success": True}
        self.error = error
        self.calls = 0

    def send(self, recipient, request):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


def _request(**overrides):
    fields = dict(
        user_id="u-1",
        type=NotificationType.BOOKING_CONFIRMED,
        title="Booking Confirmed",
        message="Your booking has been confirmed!",
    )
    fields.update(overrides)
    return NotificationRequest(**fields)


def test_request_falls_back_to_default_channels():
    assert _request().channels == ("EMAIL", "PUSH", "IN_APP")
    assert _request(type=NotificationType.SYSTEM_ANNOUNCEMENT).channels == ("IN_APP",)
    assert _request(channels=[Channel.SMS]).channels == ("SMS",)


def test_request_rejects_unknown_values():
    with pytest.raises(ValueError):
        _request(type="NEWSLETTER")
    with pytest.raises(ValueError):
        _request(channels=("FAX",))
    with pytest.raises(ValueError):
        _request(priority="CRITICAL")


def test_failing_channel_does_not_block_the_others():
    email, push, in_app = StubProvider(), StubProvider(error=requests.ConnectionError("gateway down")), StubProvider()
    dispatcher = NotificationDispatcher(
        {Channel.EMAIL: email, Channel.PUSH: push, Channel.IN_APP: in_app},
        StaticDirectory(Recipient(user_id="u-1", email="u1@example.com")),
    )

    results = dispatcher.send(_request())

    assert results["EMAIL"]["success"] is True
    assert results["PUSH"] == {"success": False, "error": "gateway down"}
    assert results["IN_APP"]["success"] is True
    assert (email.calls, push.calls, in_app.calls) == (1, 1, 1)


def test_skipped_and_unconfigured_channels():
    email = StubProvider()
    dispatcher = NotificationDispatcher({Channel.EMAIL: email}, StaticDirectory())

    results = dispatcher.send(_request(channels=(Channel.EMAIL, Channel.SMS)), skip_channels=[Channel.EMAIL])

    assert email.calls == 0
    assert results == {"SMS": {"success": False, "error": "No provider for channel SMS"}}


def test_batch_counts_each_request_independently():
    class FlakyDirectory:
        def lookup(self, user_id):
            if user_id == "u-2":
                raise ConnectionError("directory unavailable")
            return None

    dispatcher = NotificationDispatcher({Channel.IN_APP: StubProvider()}, FlakyDirectory())
    requests_ = [_request(user_id=user_id, channels=(Channel.IN_APP,)) for user_id in ("u-1", "u-2", "u-3")]

    assert dispatcher.send_batch(requests_) == {"successful": 2, "failed": 1}


@pytest.mark.django_db
def test_in_app_provider_stores_and_announces_the_notification():
    bus = MessageBus()
    created = []
    bus.on(NOTIFICATION_CREATED, created.append)

    result = InAppProvider(bus).send(None, _request(channels=(Channel.IN_APP,)))

    notification = Notification.objects.get()
    assert result["notification_id"] == str(notification.pk)
    assert notification.status == Notification.Status.SENT
    assert notification.sent_at is not None
    assert created[0].payload["user_id"] == "u-1"


def test_email_provider_needs_an_address():
    provider = EmailProvider()
    assert provider.send(None, _request())["success"] is False

    result = provider.send(Recipient(user_id="u-1", email="u1@example.com"), _request())
    assert result["success"] is True
    assert mail.outbox[-1].to == ["u1@example.com"]
    assert mail.outbox[-1].subject == "Booking Confirmed"


def test_push_provider_posts_to_the_gateway():
    session = MagicMock()
    session.post.return_value.status_code = 200
    provider = PushProvider(gateway_url="https://push.example.com/send", token="secret", session=session)

    result = provider.send(Recipient(user_id="u-1", push_token="device-1"), _request(priority="HIGH"))

    assert result["success"] is True
    kwargs = session.post.call_args.kwargs
    assert kwargs["json"]["to"] == "device-1"
    assert kwargs["json"]["priority"] == "high"
    assert kwargs["headers"] == {"Authorization": "Bearer secret"}
    session.post.return_value.raise_for_status.assert_called_once()


def test_push_provider_reports_missing_gateway():
    provider = PushProvider(gateway_url="", session=MagicMock())
    assert provider.send(Recipient(user_id="u-1", push_token="d"), _request()) == {
        "success": False,
        "error": "Push gateway not configured",
    }


def test_sms_provider_sends_through_twilio_client():
    client = MagicMock()
    client.messages.create.return_value.sid = "SM123"
    provider = SMSProvider(account_sid="AC1", auth_token="tok", from_number="+15550000000", client=client)

    result = provider.send(Recipient(user_id="u-1", phone_number="+15551112222"), _request())

    assert result == {"success": True, "message": "Sent via SMS", "sid": "SM123"}
    client.messages.create.assert_called_once_with(
        body="Booking Confirmed: Your booking has been confirmed!",
        from_="+15550000000",
        to="+15551112222",
    )


@pytest.mark.django_db
def test_recipient_directory_caches_until_the_profile_changes():
    profile = RecipientProfile.objects.create(user_id="u-1", email="old@example.com")
    directory = RecipientDirectory(timeout=60)

    assert directory.lookup("u-1").email == "old@example.com"
    RecipientProfile.objects.filter(pk=profile.pk).update(email="bypass@example.com")
    assert directory.lookup("u-1").email == "old@example.com"

    profile.email = "new@example.com"
    profile.save()
    assert directory.lookup("u-1").email == "new@example.com"
    assert directory.lookup("missing") is None
