from datetime import timedelta

import pytest

from apps.bookings.lifecycle import expiration_key
from apps.bookings.models import Booking, BookingReminder
from apps.bookings.repository import DjangoBookingStore
from apps.bookings.sweeps import BookingSweeps
from apps.core import queues

from .factories import backdate, create_booking


@pytest.fixture
def sweeps(recording_queue, clock):
    return BookingSweeps(DjangoBookingStore(), recording_queue, clock)


@pytest.mark.django_db
class TestExpirePending:
    def test_queues_checks_for_both_pending_states_past_the_window(self, sweeps, recording_queue, clock):
        overdue = backdate(create_booking(now=clock.now()), clock.now() - timedelta(minutes=45))
        awaiting_owner = backdate(
            create_booking(status=Booking.Status.PENDING_OWNER_APPROVAL, now=clock.now()),
            clock.now() - timedelta(hours=2),
        )
        backdate(create_booking(now=clock.now()), clock.now() - timedelta(minutes=5))
        backdate(
            create_booking(status=Booking.Status.CONFIRMED, now=clock.now()),
            clock.now() - timedelta(hours=2),
        )

        assert sweeps.expire_pending() == {"queued": 2}

        jobs = recording_queue.of_type(queues.CHECK_EXPIRATION)
        assert {job["payload"]["booking_id"] for job in jobs} == {str(overdue.pk), str(awaiting_owner.pk)}
        assert all(job["dedup_key"] == expiration_key(job["payload"]["booking_id"]) for job in jobs)

    def test_overlapping_sweeps_do_not_stack_duplicates(self, queue, clock):
        sweeps = BookingSweeps(DjangoBookingStore(), queue, clock)
        booking = backdate(create_booking(now=clock.now()), clock.now() - timedelta(hours=1))
        # The delayed job scheduled when the booking was created is still queued.
        queue.enqueue(
            queues.BOOKINGS,
            queues.CHECK_EXPIRATION,
            {"booking_id": str(booking.pk)},
            delay_ms=60_000,
            dedup_key=expiration_key(booking.pk),
        )

        sweeps.expire_pending()
        sweeps.expire_pending()

        counts = queue.counts(queues.BOOKINGS)
        assert counts.waiting + counts.delayed == 1

    def test_one_bad_booking_does_not_stop_the_sweep(self, sweeps, recording_queue, clock):
        first = backdate(create_booking(now=clock.now()), clock.now() - timedelta(hours=2))
        second = backdate(create_booking(now=clock.now()), clock.now() - timedelta(hours=1))
        original = recording_queue.enqueue

        def flaky(queue_name, job_type, payload=None, **options):
            if payload["booking_id"] == str(first.pk):
                raise ConnectionError("broker down")
            return original(queue_name, job_type, payload, **options)

        recording_queue.enqueue = flaky

        assert sweeps.expire_pending() == {"queued": 1}
        assert recording_queue.jobs[0]["payload"]["booking_id"] == str(second.pk)


@pytest.mark.django_db
class TestReminderSweeps:
    def test_upcoming_reminders_cover_the_next_lead_window(self, sweeps, recording_queue, clock):
        soon = create_booking(status=Booking.Status.CONFIRMED, start_in=timedelta(hours=12), now=clock.now())
        create_booking(status=Booking.Status.CONFIRMED, start_in=timedelta(hours=30), now=clock.now())
        create_booking(status=Booking.Status.PENDING_PAYMENT, start_in=timedelta(hours=12), now=clock.now())
        reminded = create_booking(status=Booking.Status.CONFIRMED, start_in=timedelta(hours=6), now=clock.now())
        BookingReminder.objects.create(booking=reminded, kind=BookingReminder.Kind.UPCOMING, sent_at=clock.now())

        assert sweeps.upcoming_reminders() == {"queued": 1}

        job = recording_queue.jobs[0]
        assert job["type"] == queues.SEND_REMINDER
        assert job["payload"] == {"booking_id": str(soon.pk), "type": BookingReminder.Kind.UPCOMING}

    def test_return_reminders_for_rentals_ending_soon(self, sweeps, recording_queue, clock):
        ending = create_booking(
            status=Booking.Status.IN_PROGRESS,
            start_in=-timedelta(days=2),
            length=timedelta(days=2, hours=5),
            now=clock.now(),
        )
        create_booking(
            status=Booking.Status.IN_PROGRESS,
            start_in=-timedelta(days=1),
            length=timedelta(days=5),
            now=clock.now(),
        )
        # A different reminder kind does not count as a return reminder.
        BookingReminder.objects.create(booking=ending, kind=BookingReminder.Kind.ONGOING, sent_at=clock.now())

        assert sweeps.return_reminders() == {"queued": 1}
        assert recording_queue.jobs[0]["payload"]["type"] == BookingReminder.Kind.RETURN_DUE


@pytest.mark.django_db
def test_auto_complete_sweep_selects_bookings_past_the_grace_period(sweeps, recording_queue, clock):
    due = create_booking(
        status=Booking.Status.AWAITING_RETURN_INSPECTION,
        start_in=-timedelta(days=5),
        length=timedelta(days=2),
        now=clock.now(),
    )
    create_booking(
        status=Booking.Status.AWAITING_RETURN_INSPECTION,
        start_in=-timedelta(days=2),
        length=timedelta(days=1),
        now=clock.now(),
    )

    assert sweeps.auto_complete() == {"queued": 1}
    assert recording_queue.jobs[0]["payload"] == {"booking_id": str(due.pk)}
    assert recording_queue.jobs[0]["type"] == queues.AUTO_COMPLETE
