"""Retry and backoff policy for failed jobs."""

from __future__ import annotations

from dataclasses import dataclass

from celery.utils.time import get_exponential_backoff_interval  # type: ignore


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff: ``base_delay_ms * 2 ** attempts``, capped."""

    base_delay_ms: int = 1000
    max_delay_ms: int = 15 * 60 * 1000

    def __post_init__(self) -> None:
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be >= 0.")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms.")

    def delay_ms(self, attempts: int) -> int:
        """Return the delay before the next attempt after ``attempts`` failures."""
        if attempts <= 0:
            raise ValueError("attempts must be >= 1.")
        return get_exponential_backoff_interval(self.base_delay_ms, attempts, self.max_delay_ms)


def should_retry(attempts: int, max_attempts: int) -> bool:
    """Return whether another attempt is permitted."""
    return int(attempts) < int(max_attempts)
