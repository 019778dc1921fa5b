from datetime import timedelta

import pytest

from apps.bookings.domain.events import BookingCreated
from apps.bookings.models import Booking
from apps.bookings.tests.factories import create_booking
from apps.core import queues, schedule
from apps.core.container import build_container
from apps.core.rate_limit import LocalRateLimitStore
from apps.notifications.models import Notification
from shared.exceptions import ConfigurationError


@pytest.fixture
def container(clock, outbox):
    return build_container(
        clock=clock,
        task=outbox,
        ping=lambda: True,
        rate_limit_store=LocalRateLimitStore(),
    )


def test_container_wires_every_queue_and_trigger(container):
    assert container.queue.queue_names == list(queues.ALL_QUEUES)
    for queue_name, job_type in queues.REQUIRED_BINDINGS:
        assert container.queue.has_handler(queue_name, job_type)
    assert set(container.triggers.names) == {
        schedule.EXPIRE_PENDING,
        schedule.UPCOMING_REMINDERS,
        schedule.RETURN_REMINDERS,
        schedule.AUTO_COMPLETE,
        schedule.FLUSH_SCHEDULED_NOTIFICATIONS,
        schedule.RECOMPUTE_RATINGS,
        schedule.REINDEX_SEARCH,
        schedule.DATA_RETENTION,
        schedule.QUEUE_HEALTH,
    }


def test_unbound_job_types_are_rejected_after_startup(container):
    with pytest.raises(ConfigurationError):
        container.queue.enqueue(queues.BOOKINGS, "archive")


def test_queue_health_trigger_reports_each_queue(container):
    report = container.triggers.fire(schedule.QUEUE_HEALTH)

    assert set(report) == set(queues.ALL_QUEUES)
    assert all(entry["ready"] for entry in report.values())
    assert report[queues.BOOKINGS]["waiting"] == 0


def test_reindex_trigger_enqueues_a_search_job(container, outbox):
    result = container.triggers.fire(schedule.REINDEX_SEARCH)

    [entry] = [e for e in outbox.pending(queues.SEARCH_INDEXING) if e["task_id"] == result["job_id"]]
    message = entry["message"]
    assert message["job_type"] == queues.REINDEX_ALL
    assert message["payload"] == {"batch_size": 500}


@pytest.mark.django_db
def test_unpaid_booking_expires_end_to_end(container, outbox):
    clock = container.clock
    booking = create_booking(now=clock.now())
    container.bus.emit("booking.created", BookingCreated(
        booking_id=str(booking.pk),
        renter_id=booking.renter_id,
        owner_id=booking.owner_id,
        listing_id=booking.listing_id,
        start_date=booking.start_date,
        end_date=booking.end_date,
    ))

    outbox.drain(container.queue)
    booking.refresh_from_db()
    assert booking.status == Booking.Status.PENDING_PAYMENT
    assert Notification.objects.filter(user_id="owner-1", type="BOOKING_REQUEST").exists()

    clock.advance(minutes=31)
    # The periodic sweep overlaps the delayed job without duplicating it.
    container.triggers.fire(schedule.EXPIRE_PENDING)
    counts = container.queue.counts(queues.BOOKINGS)
    assert counts.waiting + counts.delayed == 1

    outbox.drain(container.queue)
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CANCELLED
    assert Notification.objects.filter(user_id="renter-1", type="BOOKING_CANCELLED").count() == 1
    assert container.queue.counts(queues.BOOKINGS).completed == 1
    assert outbox.errors == []


@pytest.mark.django_db
def test_confirmed_booking_is_not_expired_by_the_sweep(container):
    clock = container.clock
    booking = create_booking(status=Booking.Status.CONFIRMED, now=clock.now())
    Booking.objects.filter(pk=booking.pk).update(created_at=clock.now() - timedelta(hours=1))

    assert container.triggers.fire(schedule.EXPIRE_PENDING) == {"queued": 0}
