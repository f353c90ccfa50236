"""Capped exponential backoff for failed mutations."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from .models import PendingMutation


class RetryPolicy:
    """Decide when a failed mutation may be attempted again.

    After the n-th failure a mutation waits
    ``min(base_seconds * 2 ** (n - 1), cap_seconds)`` seconds, counted
    from ``last_attempt_at``.  Once ``retry_count`` reaches
    ``max_retries`` it is exhausted and must be surfaced to the user.

    Args:
        max_retries: Failed attempts allowed before giving up.
        base_seconds: Delay after the first failure.
        cap_seconds: Upper bound for any delay.
    """

    def __init__(
        self,
        max_retries: int = 5,
        base_seconds: float = 2.0,
        cap_seconds: float = 300.0,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if base_seconds < 0 or cap_seconds < base_seconds:
            raise ValueError("Backoff requires 0 <= base_seconds <= cap_seconds")
        self.max_retries = max_retries
        self.base_seconds = base_seconds
        self.cap_seconds = cap_seconds

    def delay_for(self, retry_count: int) -> float:
        """Seconds to wait after *retry_count* failures (0 for none)."""
        if retry_count <= 0:
            return 0.0
        return min(self.base_seconds * 2 ** (retry_count - 1), self.cap_seconds)

    def is_ready(
        self, mutation: PendingMutation, now: datetime | None = None
    ) -> bool:
        """True if *mutation* is outside its backoff window."""
        if mutation.retry_count == 0 or mutation.last_attempt_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        last = datetime.fromisoformat(mutation.last_attempt_at)
        wait = timedelta(seconds=self.delay_for(mutation.retry_count))
        return now >= last + wait

    def is_exhausted(self, mutation: PendingMutation) -> bool:
        return mutation.retry_count >= self.max_retries
