from io import StringIO
from types import SimpleNamespace
from unittest import mock

import pytest
from django.core.management import CommandError, call_command

from apps.core import container as container_module
from apps.core import queues
from apps.core.tasks import run_job
from shared.jobs.job import Job, JobStatus


@pytest.fixture
def installed(monkeypatch, queue):
    monkeypatch.setattr(container_module, "_container", SimpleNamespace(queue=queue))
    return queue


def _message(clock, job_type, max_attempts=3):
    return Job("work", job_type, {"id": 1}, clock.now(), max_attempts=max_attempts).to_message()


def test_run_job_retries_through_celery_until_the_handler_succeeds(installed, clock):
    calls = []

    def flaky(job):
        calls.append(job.attempts)
        if len(calls) < 3:
            raise ConnectionError("downstream unavailable")
        return "done"

    installed.register_handler("work", "flaky", flaky)

    result = run_job.apply(args=[_message(clock, "flaky")])

    assert result.successful()
    assert calls == [0, 1, 2]
    assert installed.counts("work").completed == 1


def test_run_job_stops_after_max_attempts(installed, clock):
    failed = []
    installed.on_failed(failed.append)
    calls = []

    def broken(job):
        calls.append(job.attempts)
        raise ValueError("bad payload")

    installed.register_handler("work", "broken", broken)

    result = run_job.apply(args=[_message(clock, "broken", max_attempts=2)])

    assert result.state == "FAILURE"
    assert isinstance(result.result, ValueError)
    assert calls == [0, 1]
    [job] = failed
    assert job.status == JobStatus.FAILED
    assert job.attempts == 2


def test_run_job_acknowledges_late():
    assert run_job.acks_late is True
    assert run_job.reject_on_worker_lost is True
    assert run_job.name == queues.RUN_JOB_TASK


@mock.patch("apps.core.management.commands.run_queue_worker.celery_app")
def test_worker_command_consumes_the_named_queues(celery_app, settings):
    settings.JOB_QUEUE_CONCURRENCY = {queues.BOOKINGS: 5, queues.NOTIFICATIONS: 10}

    call_command("run_queue_worker", queues.BOOKINGS, queues.NOTIFICATIONS, stdout=StringIO())

    [argv] = celery_app.worker_main.call_args.args
    assert argv[0] == "worker"
    assert argv[argv.index("--queues") + 1] == "bookings,notifications"
    assert argv[argv.index("--concurrency") + 1] == "15"


@mock.patch("apps.core.management.commands.run_queue_worker.celery_app")
def test_worker_command_rejects_unknown_queues(celery_app):
    with pytest.raises(CommandError):
        call_command("run_queue_worker", "emails", stdout=StringIO())
    celery_app.worker_main.assert_not_called()
