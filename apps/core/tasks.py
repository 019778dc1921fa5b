"""Celery entry points: periodic trigger ticks and job execution."""

from __future__ import annotations

from celery import shared_task  # type: ignore

from shared.jobs.queue import RetryJob

from .container import get_container
from .queues import RUN_JOB_TASK
from .schedule import FIRE_TRIGGER_TASK


@shared_task(name=FIRE_TRIGGER_TASK)
def fire_trigger(name: str):
    """
    Run one tick of the named trigger.

    Celery beat sends one of these per schedule entry. Failures are logged
    by the trigger table and never reach Celery, so beat keeps ticking.
    """
    return get_container().triggers.fire(name)


@shared_task(bind=True, name=RUN_JOB_TASK, acks_late=True, reject_on_worker_lost=True, ignore_result=True)
def run_job(self, message: dict):
    """
    Run one job published by the job queue.

    The job queue picks the handler and the backoff; a retry goes back to
    the same Celery queue with the computed countdown.
    """
    try:
        return get_container().queue.run(message, retries=self.request.retries)
    except RetryJob as retry:
        raise self.retry(
            exc=retry.error,
            countdown=retry.delay_ms / 1000,
            max_retries=retry.job.max_attempts - 1,
        )
