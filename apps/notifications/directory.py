"""Recipient lookups for delivery providers, fronted by a short-lived cache."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import List, Optional

from django.conf import settings
from django.core.cache import cache

from .models import RecipientProfile

CACHE_PREFIX = "recipients"


@dataclass(frozen=True)
class Recipient:
    user_id: str
    email: str = ""
    phone_number: str = ""
    push_token: str = ""
    is_admin: bool = False


def _cache_key(user_id: str) -> str:
    return f"{CACHE_PREFIX}:{user_id}"


def invalidate_recipient(user_id: str) -> None:
    """Drop the cached contact points of ``user_id``."""
    cache.delete(_cache_key(user_id))


class RecipientDirectory:
    """Read-through cache over ``RecipientProfile``; writes invalidate via signals."""

    def __init__(self, timeout: Optional[int] = None):
        self.timeout = timeout if timeout is not None else getattr(settings, "RECIPIENT_CACHE_TIMEOUT", 900)

    def lookup(self, user_id: str) -> Optional[Recipient]:
        key = _cache_key(user_id)
        cached = cache.get(key)
        if cached is not None:
            return Recipient(**cached)

        profile = RecipientProfile.objects.filter(user_id=user_id, is_active=True).first()
        if profile is None:
            return None

        recipient = Recipient(
            user_id=profile.user_id,
            email=profile.email,
            phone_number=profile.phone_number,
            push_token=profile.push_token,
            is_admin=profile.is_admin,
        )
        cache.set(key, asdict(recipient), self.timeout)
        return recipient


class AdminAudience:
    """Resolves who receives notifications addressed to the admin team."""

    def user_ids(self) -> List[str]:
        return list(
            RecipientProfile.objects.filter(is_admin=True, is_active=True)
            .order_by("user_id")
            .values_list("user_id", flat=True)
        )


class CachePresence:
    """
    Online status kept in the cache by the real-time layer.

    The WebSocket gateway calls :meth:`mark_online` on connect/heartbeat
    and :meth:`mark_offline` on disconnect.
    """

    prefix = "presence"

    def __init__(self, ttl: int = 120):
        self.ttl = ttl

    def mark_online(self, user_id: str) -> None:
        cache.set(f"{self.prefix}:{user_id}", True, self.ttl)

    def mark_offline(self, user_id: str) -> None:
        cache.delete(f"{self.prefix}:{user_id}")

    def is_online(self, user_id: str) -> bool:
        return bool(cache.get(f"{self.prefix}:{user_id}"))
