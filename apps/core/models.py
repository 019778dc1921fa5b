"""Cross-cutting models for the scheduling core."""

from django.db import models  # type: ignore


class AuditLog(models.Model):
    """Record of a state change made by the system rather than a user."""

    actor = models.CharField(max_length=64, default="system")
    action = models.CharField(max_length=64)
    entity_type = models.CharField(max_length=64)
    entity_id = models.CharField(max_length=64, db_index=True)
    data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:  # pragma: no cover - human readable
        return f"{self.action} {self.entity_type}:{self.entity_id}"
