"""
Job model

A job is a durable unit of asynchronous work: a queue name, a job type
selecting the handler, a JSON payload and retry bookkeeping. It travels to
workers as the single argument of the Celery task that runs jobs.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from django.core.serializers.json import DjangoJSONEncoder
from django.utils.dateparse import parse_datetime


class JobStatus(Enum):
    """
    Job lifecycle

    - WAITING -> ACTIVE (picked up by a worker)
    - DELAYED -> ACTIVE (countdown elapsed)
    - ACTIVE -> COMPLETED
    - ACTIVE -> DELAYED (failed, retry scheduled with backoff)
    - ACTIVE -> FAILED (attempts exhausted)
    """
    WAITING = 'waiting'
    DELAYED = 'delayed'
    ACTIVE = 'active'
    COMPLETED = 'completed'
    FAILED = 'failed'


@dataclass
class Job:
    queue_name: str
    job_type: str
    payload: Dict[str, Any]
    created_at: datetime
    max_attempts: int
    delay_ms: int = 0
    attempts: int = 0
    id: str = field(default_factory=lambda: uuid4().hex)
    status: JobStatus = JobStatus.WAITING
    dedup_key: Optional[str] = None
    last_error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def was_delayed(self) -> bool:
        """Whether the worker received this job through a countdown."""
        return self.delay_ms > 0 or self.attempts > 0

    def to_message(self) -> Dict[str, Any]:
        """The task argument: only what a worker needs to run the job."""
        return json.loads(json.dumps({
            'id': self.id,
            'queue_name': self.queue_name,
            'job_type': self.job_type,
            'payload': self.payload,
            'created_at': self.created_at,
            'max_attempts': self.max_attempts,
            'delay_ms': self.delay_ms,
            'dedup_key': self.dedup_key,
        }, cls=DjangoJSONEncoder))

    @classmethod
    def from_message(cls, message: Dict[str, Any], attempts: int = 0) -> 'Job':
        """Rebuild a job on the worker; ``attempts`` is the number of earlier failed runs."""
        return cls(
            id=message['id'],
            queue_name=message['queue_name'],
            job_type=message['job_type'],
            payload=message.get('payload') or {},
            created_at=_parse(message['created_at']),
            max_attempts=int(message['max_attempts']),
            delay_ms=int(message.get('delay_ms') or 0),
            attempts=attempts,
            status=JobStatus.DELAYED if attempts else JobStatus.WAITING,
            dedup_key=message.get('dedup_key'),
        )


def encode_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Round-trip a payload through JSON so producers fail at enqueue time."""
    return json.loads(json.dumps(payload or {}, cls=DjangoJSONEncoder))


def _parse(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return parse_datetime(value)
