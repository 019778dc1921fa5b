"""
Base Domain Classes

Building blocks shared by every bounded context:
- DomainEvent: an immutable fact that something already happened
- EventPayload: base for the typed payload carried by an event
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict
from uuid import UUID, uuid4

from django.utils import timezone


@dataclass(frozen=True)
class EventPayload:
    """
    Base class for typed event payloads

    Payloads are plain frozen dataclasses so listeners can read attributes
    and job producers can turn them into JSON-safe dicts.
    """

    def to_dict(self) -> Dict[str, Any]:
        return {key: _json_safe(value) for key, value in asdict(self).items()}


@dataclass(frozen=True)
class DomainEvent:
    """
    Domain event envelope

    Created and consumed inside a single dispatch cycle. The core never
    persists events; an audit collaborator may.
    """
    name: str
    payload: Any
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=timezone.now)

    def to_dict(self) -> dict:
        """Convert event to dictionary for serialization"""
        payload = self.payload.to_dict() if hasattr(self.payload, 'to_dict') else self.payload
        return {
            'event_id': str(self.event_id),
            'name': self.name,
            'occurred_at': self.occurred_at.isoformat(),
            'payload': payload,
        }


def _json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    return value
