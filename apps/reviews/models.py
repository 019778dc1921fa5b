"""Models for the review domain.

``Review`` is feedback left after a booking by either party. Ratings are
aggregated per subject (a user or a listing) into ``RatingSummary``,
which keeps a running sum and count updated alongside each review.
"""

from __future__ import annotations

import uuid

from django.core.validators import MaxValueValidator, MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Review(models.Model):
    """A rating left by one party of a booking for the other."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking = models.ForeignKey(
        'bookings.Booking',
        on_delete=models.CASCADE,
        related_name='reviews',
    )
    reviewer_id = models.CharField(max_length=64)
    reviewee_id = models.CharField(max_length=64, db_index=True)
    listing_id = models.CharField(
        max_length=64,
        blank=True,
        db_index=True,
        help_text=_('Set when the review rates the listing as well as its owner'),
    )
    rating = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(5)],
        help_text='Rating from 1 to 5'
    )
    comment = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['booking', 'reviewer_id'], name='unique_review_per_booking'),
        ]

    def __str__(self) -> str:
        return f"Review {self.rating}/5 for {self.reviewee_id}"


class RatingSummary(models.Model):
    """Running rating totals for one subject."""

    class SubjectType(models.TextChoices):
        USER = 'USER', _('User')
        LISTING = 'LISTING', _('Listing')

    subject_type = models.CharField(max_length=16, choices=SubjectType.choices)
    subject_id = models.CharField(max_length=64)
    rating_sum = models.PositiveIntegerField(default=0)
    rating_count = models.PositiveIntegerField(default=0)
    average_rating = models.FloatField(default=0.0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['subject_type', 'subject_id'], name='unique_rating_subject'),
        ]

    def __str__(self) -> str:
        return f"{self.subject_type}:{self.subject_id} {self.average_rating:.2f} ({self.rating_count})"
