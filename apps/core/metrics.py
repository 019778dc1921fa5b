"""
Job metrics

Exported next to the django-prometheus request and database metrics on
``/metrics``. Labels are the queue, the job type and, for finished jobs,
the outcome (``completed`` or ``failed``).
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

from shared.jobs.job import Job
from shared.jobs.queue import JobQueue

JOBS_STARTED = Counter(
    "scheduler_jobs_started_total",
    "Job runs picked up by a worker",
    ["queue", "job_type"],
)
JOBS_FINISHED = Counter(
    "scheduler_jobs_finished_total",
    "Jobs that reached a final state",
    ["queue", "job_type", "outcome"],
)
JOB_DURATION = Histogram(
    "scheduler_job_duration_seconds",
    "Time from the start of the last attempt to the final state",
    ["queue", "job_type"],
)


def _started(job: Job) -> None:
    JOBS_STARTED.labels(job.queue_name, job.job_type).inc()


def _finished(job: Job) -> None:
    JOBS_FINISHED.labels(job.queue_name, job.job_type, job.status.value).inc()
    if job.started_at and job.finished_at:
        elapsed = (job.finished_at - job.started_at).total_seconds()
        JOB_DURATION.labels(job.queue_name, job.job_type).observe(max(0.0, elapsed))


def observe_jobs(queue: JobQueue) -> None:
    queue.on_active(_started)
    queue.on_completed(_finished)
    queue.on_failed(_finished)
