"""Notification models.

``Notification`` is both the in-app inbox row and the store for
notifications scheduled for later delivery. ``RecipientProfile`` holds the
contact points delivery providers need; the user accounts themselves live
outside this service.
"""

from __future__ import annotations

import uuid

from django.db import models  # type: ignore

from .types import NotificationType, Priority


class Notification(models.Model):
    """A message for a user, delivered in-app or scheduled for delivery."""

    class Status(models.TextChoices):
        SCHEDULED = 'SCHEDULED'
        PENDING = 'PENDING'
        SENT = 'SENT'
        FAILED = 'FAILED'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    type = models.CharField(max_length=32, choices=NotificationType.choices)
    title = models.CharField(max_length=255)
    message = models.TextField()
    data = models.JSONField(default=dict, blank=True)
    channels = models.JSONField(default=list, blank=True)
    priority = models.CharField(max_length=16, choices=Priority.choices, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.SENT)
    scheduled_for = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'scheduled_for']),
        ]

    def __str__(self) -> str:
        return f"Notification to {self.user_id}: {self.title}"


class RecipientProfile(models.Model):
    """Contact points for a user."""

    user_id = models.CharField(max_length=64, unique=True)
    email = models.EmailField(blank=True)
    phone_number = models.CharField(max_length=32, blank=True)
    push_token = models.CharField(max_length=255, blank=True)
    is_admin = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Recipient {self.user_id}"
