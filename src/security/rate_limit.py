"""
Attempt Rate Limiter
====================

Sliding-window lockout over recorded MFA verification failures. Nothing is
stored by the limiter itself: the window is evaluated against the attempt
log held by the persistence collaborator.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog

from src.security.mfa_types import LockStatus, MfaStore

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AttemptRateLimiter:
    """
    Lock a user out once ``max_failures`` failures fall inside the trailing
    ``window_minutes``.
    """

    def __init__(self, store: MfaStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or utc_now

    def check_locked(self, user_id: str, max_failures: int, window_minutes: int) -> LockStatus:
        now = self.clock()
        window = timedelta(minutes=window_minutes)
        since = now - window

        failures = self.store.count_recent_failures(user_id, since)
        if failures < max_failures:
            return LockStatus(locked=False)

        oldest = self.store.oldest_recent_failure(user_id, since)
        if oldest is None:
            remaining_minutes = window_minutes
        else:
            # Lockout lifts when the oldest counted failure leaves the window
            seconds_left = (oldest + window - now).total_seconds()
            remaining_minutes = max(1, math.ceil(seconds_left / 60))

        logger.info(
            "mfa_rate_limit_exceeded",
            user_id=user_id,
            failures=failures,
            limit=max_failures,
            remaining_minutes=remaining_minutes,
        )
        return LockStatus(locked=True, remaining_minutes=remaining_minutes)
