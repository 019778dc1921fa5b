"""Model signal handlers for recipient cache invalidation."""

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .directory import invalidate_recipient
from .models import RecipientProfile


@receiver([post_save, post_delete], sender=RecipientProfile)
def recipient_cache_invalidator(sender, instance, **_: object) -> None:
    """Invalidate cached contact points whenever a profile changes."""
    invalidate_recipient(instance.user_id)
