from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.core.cache import caches

from shared.jobs.backoff import BackoffPolicy
from shared.jobs.job import Job
from shared.jobs.queue import JobQueue, RetryJob
from shared.scheduling.clock import ManualClock


class RecordingNotifier:
    """Stands in for the notification dispatcher."""

    def __init__(self):
        self.sent = []

    def send(self, request, skip_channels=()):
        self.sent.append(request)
        return {channel: {"success": True} for channel in request.channels}


class RecordingQueue:
    """Captures enqueue calls instead of storing jobs."""

    def __init__(self):
        self.jobs = []

    def enqueue(self, queue_name, job_type, payload=None, **options):
        self.jobs.append({"queue": queue_name, "type": job_type, "payload": payload or {}, **options})
        return f"job-{len(self.jobs)}"

    def of_type(self, job_type):
        return [job for job in self.jobs if job["type"] == job_type]


class TaskOutbox:
    """
    Stands in for the job-running Celery task.

    Published messages are kept with the moment they become due on the
    manual clock; :meth:`run_due` delivers them the way a worker would,
    republishing on retry with the requested countdown.
    """

    def __init__(self, clock):
        self.clock = clock
        self.sent = []
        self.errors = []

    def apply_async(self, args=None, kwargs=None, task_id=None, queue=None, countdown=None, **options):
        self._publish(args[0], queue, countdown or 0, retries=0, task_id=task_id)

    def _publish(self, message, queue, countdown, retries, task_id):
        self.sent.append({
            "message": message,
            "queue": queue,
            "task_id": task_id,
            "countdown": countdown,
            "retries": retries,
            "eta": self.clock.now() + timedelta(seconds=countdown),
        })

    def pending(self, queue_name=None):
        return [entry for entry in self.sent if queue_name in (None, entry["queue"])]

    def due(self, queue_name=None):
        now = self.clock.now()
        return sorted(
            (entry for entry in self.pending(queue_name) if entry["eta"] <= now),
            key=lambda entry: entry["eta"],
        )

    def run_due(self, job_queue, queue_name=None):
        """Deliver every due message once; return how many ran."""
        batch = self.due(queue_name)
        for entry in batch:
            self.sent.remove(entry)
            try:
                job_queue.run(entry["message"], retries=entry["retries"])
            except RetryJob as retry:
                self._publish(
                    entry["message"], entry["queue"], retry.delay_ms / 1000,
                    retries=entry["retries"] + 1, task_id=entry["task_id"],
                )
            except Exception as e:
                self.errors.append(e)
        return len(batch)

    def drain(self, job_queue, queue_name=None):
        """Deliver due messages until none are left, including ones they publish."""
        total = 0
        while True:
            ran = self.run_due(job_queue, queue_name)
            if not ran:
                return total
            total += ran


@pytest.fixture(autouse=True)
def clear_cache():
    caches["default"].clear()
    yield
    caches["default"].clear()


@pytest.fixture
def clock():
    return ManualClock(datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc))


@pytest.fixture
def outbox(clock):
    return TaskOutbox(clock)


@pytest.fixture
def queue(outbox, clock):
    return JobQueue(outbox, clock, BackoffPolicy(base_delay_ms=1000, max_delay_ms=60_000), ping=lambda: True)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def recording_queue():
    return RecordingQueue()


@pytest.fixture
def make_job(clock):
    def factory(payload, queue_name="bookings", job_type="test"):
        return Job(
            queue_name=queue_name,
            job_type=job_type,
            payload=payload,
            created_at=clock.now(),
            max_attempts=3,
        )
    return factory
