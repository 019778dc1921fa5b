"""Weekly data retention sweep."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict

from django.contrib.sessions.models import Session

from apps.notifications.models import Notification

from .models import AuditLog

logger = logging.getLogger(__name__)


class DataRetention:
    """
    Deletes data past its retention period:

    - read notifications older than 90 days
    - sessions expired more than 30 days ago
    - audit log rows older than one year
    """

    def __init__(self, clock, notification_days: int = 90, session_days: int = 30,
                 audit_log_days: int = 365):
        self.clock = clock
        self.notification_days = notification_days
        self.session_days = session_days
        self.audit_log_days = audit_log_days

    def run(self) -> Dict[str, int]:
        now = self.clock.now()
        deleted: Dict[str, int] = {}

        deleted["notifications"], _ = Notification.objects.filter(
            created_at__lt=now - timedelta(days=self.notification_days),
            read_at__isnull=False,
        ).delete()
        logger.info(f"Deleted {deleted['notifications']} old notifications")

        deleted["sessions"], _ = Session.objects.filter(
            expire_date__lt=now - timedelta(days=self.session_days),
        ).delete()
        logger.info(f"Deleted {deleted['sessions']} expired sessions")

        deleted["audit_logs"], _ = AuditLog.objects.filter(
            created_at__lt=now - timedelta(days=self.audit_log_days),
        ).delete()
        logger.info(f"Deleted {deleted['audit_logs']} old audit logs")

        return deleted
