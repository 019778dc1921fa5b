"""
Booking storage collaborator

Lifecycle handlers never keep a booking between invocations: every job
re-reads through this interface, and every state write is conditional on
the status the handler observed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from django.db import IntegrityError, transaction  # type: ignore
from django.db.models import Q  # type: ignore
from django.utils import timezone  # type: ignore

from apps.core.models import AuditLog

from .models import Booking, BookingReminder, ConditionReport, DamageEntry, PaymentRelease


class AbstractBookingStore(ABC):
    """Narrow storage contract used by the booking lifecycle."""

    @abstractmethod
    def find_booking(self, booking_id: str) -> Optional[Booking]:
        pass

    @abstractmethod
    def update_booking(self, booking_id: str, **patch: Any) -> Booking:
        pass

    @abstractmethod
    def find_bookings_where(self, predicate: Q, limit: Optional[int] = None) -> List[Booking]:
        pass

    @abstractmethod
    def transition(self, booking_id: str, expected: Iterable[str], target: str, **fields: Any) -> bool:
        """Set ``status=target`` only while the status is one of ``expected``."""

    @abstractmethod
    def completed_return_report(self, booking_id: str) -> Optional[ConditionReport]:
        pass

    @abstractmethod
    def has_severe_damage(self, report: ConditionReport) -> bool:
        pass

    @abstractmethod
    def mark_reminder_sent(self, booking_id: str, kind: str, sent_at: datetime) -> bool:
        """Record a reminder; return ``False`` if one was already recorded."""

    @abstractmethod
    def release_reminder(self, booking_id: str, kind: str) -> None:
        """Forget a recorded reminder so a retried delivery can claim it again."""

    @abstractmethod
    def record_payment_release(self, booking_id: str, requested_at: datetime) -> bool:
        """Record a payout release; return ``False`` if one already exists."""

    @abstractmethod
    def record_audit(self, action: str, booking_id: str, data: Dict[str, Any]) -> None:
        pass


class DjangoBookingStore(AbstractBookingStore):
    """ORM implementation of the booking storage collaborator."""

    def find_booking(self, booking_id: str) -> Optional[Booking]:
        return Booking.objects.filter(pk=booking_id).first()

    def update_booking(self, booking_id: str, **patch: Any) -> Booking:
        booking = Booking.objects.get(pk=booking_id)
        for field, value in patch.items():
            setattr(booking, field, value)
        booking.save(update_fields=[*patch.keys(), "updated_at"])
        return booking

    def find_bookings_where(self, predicate: Q, limit: Optional[int] = None) -> List[Booking]:
        queryset = Booking.objects.filter(predicate).order_by("created_at")
        if limit is not None:
            queryset = queryset[:limit]
        return list(queryset)

    def transition(self, booking_id: str, expected: Iterable[str], target: str, **fields: Any) -> bool:
        # QuerySet.update() skips auto_now.
        fields.setdefault("updated_at", timezone.now())
        updated = Booking.objects.filter(pk=booking_id, status__in=list(expected)).update(
            status=target,
            **fields,
        )
        return updated == 1

    def completed_return_report(self, booking_id: str) -> Optional[ConditionReport]:
        return (
            ConditionReport.objects.filter(
                booking_id=booking_id,
                report_type=ConditionReport.ReportType.RETURN,
                status=ConditionReport.Status.COMPLETED,
            )
            .order_by("-created_at")
            .first()
        )

    def has_severe_damage(self, report: ConditionReport) -> bool:
        return DamageEntry.objects.filter(
            report=report,
            severity=DamageEntry.Severity.SEVERE,
        ).exists()

    def mark_reminder_sent(self, booking_id: str, kind: str, sent_at: datetime) -> bool:
        try:
            with transaction.atomic():
                BookingReminder.objects.create(booking_id=booking_id, kind=kind, sent_at=sent_at)
        except IntegrityError:
            return False
        return True

    def release_reminder(self, booking_id: str, kind: str) -> None:
        BookingReminder.objects.filter(booking_id=booking_id, kind=kind).delete()

    def record_payment_release(self, booking_id: str, requested_at: datetime) -> bool:
        _, created = PaymentRelease.objects.get_or_create(
            booking_id=booking_id,
            defaults={"requested_at": requested_at},
        )
        return created

    def record_audit(self, action: str, booking_id: str, data: Dict[str, Any]) -> None:
        AuditLog.objects.create(
            action=action,
            entity_type="booking",
            entity_id=str(booking_id),
            data=data,
        )
