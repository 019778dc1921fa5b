from .backoff import BackoffPolicy
from .job import Job, JobStatus
from .queue import JobQueue, RetryJob
from .stats import JobStats, QueueCounts

__all__ = [
    "BackoffPolicy",
    "Job",
    "JobQueue",
    "JobStats",
    "JobStatus",
    "QueueCounts",
    "RetryJob",
]
