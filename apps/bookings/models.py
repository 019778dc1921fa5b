"""Booking domain models for the rental lifecycle."""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from .domain import states


class Booking(models.Model):
    """Rental booking driven through its lifecycle by the scheduler."""

    class Status(models.TextChoices):
        PENDING_OWNER_APPROVAL = states.PENDING_OWNER_APPROVAL, _("Awaiting owner approval")
        PENDING_PAYMENT = states.PENDING_PAYMENT, _("Awaiting payment")
        CONFIRMED = states.CONFIRMED, _("Confirmed")
        IN_PROGRESS = states.IN_PROGRESS, _("In progress")
        AWAITING_RETURN_INSPECTION = states.AWAITING_RETURN_INSPECTION, _("Awaiting return inspection")
        COMPLETED = states.COMPLETED, _("Completed")
        CANCELLED = states.CANCELLED, _("Cancelled")
        DISPUTED = states.DISPUTED, _("Disputed")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    renter_id = models.CharField(max_length=64, db_index=True)
    owner_id = models.CharField(max_length=64, db_index=True)
    listing_id = models.CharField(max_length=64, db_index=True)
    listing_title = models.CharField(max_length=255, blank=True)
    status = models.CharField(
        max_length=32,
        choices=Status.choices,
        default=Status.PENDING_PAYMENT,
    )
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    cancellation_reason = models.CharField(max_length=255, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["status", "start_date"]),
            models.Index(fields=["status", "end_date"]),
        ]

    def __str__(self) -> str:  # pragma: no cover - human readable
        return f"Booking {self.pk} [{self.status}]"


class ConditionReport(models.Model):
    """Check-in or return inspection of the rented item."""

    class ReportType(models.TextChoices):
        CHECK_IN = "CHECK_IN", _("Check-in")
        RETURN = "RETURN", _("Return")

    class Status(models.TextChoices):
        DRAFT = "DRAFT", _("Draft")
        COMPLETED = "COMPLETED", _("Completed")

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="condition_reports")
    report_type = models.CharField(max_length=16, choices=ReportType.choices)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.DRAFT)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]


class DamageEntry(models.Model):
    class Severity(models.TextChoices):
        MINOR = "MINOR", _("Minor")
        MODERATE = "MODERATE", _("Moderate")
        SEVERE = "SEVERE", _("Severe")

    report = models.ForeignKey(ConditionReport, on_delete=models.CASCADE, related_name="damages")
    severity = models.CharField(max_length=16, choices=Severity.choices)
    description = models.TextField(blank=True)


class BookingReminder(models.Model):
    """A reminder that has been delivered; one per booking and kind."""

    class Kind(models.TextChoices):
        UPCOMING = "UPCOMING", _("Upcoming")
        ONGOING = "ONGOING", _("Ongoing")
        RETURN_DUE = "RETURN_DUE", _("Return due")

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="reminders")
    kind = models.CharField(max_length=16, choices=Kind.choices)
    sent_at = models.DateTimeField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["booking", "kind"], name="unique_booking_reminder_kind"),
        ]


class PaymentRelease(models.Model):
    """Owner payout release requested after completion; one per booking."""

    booking = models.OneToOneField(Booking, on_delete=models.CASCADE, related_name="payment_release")
    requested_at = models.DateTimeField()
