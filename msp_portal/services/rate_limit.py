from __future__ import annotations

from collections import deque
from datetime import datetime, timedelta

from msp_portal.utils.time import utc_now


class LoginRateLimiter:
    """Sliding-window limit on sign-in attempts, keyed by client IP or email.

    A successful sign-in clears the key so legitimate users are not locked out
    by their own earlier typos.
    """

    def __init__(self, max_attempts: int, window_seconds: int) -> None:
        self.max_attempts = max_attempts
        self.window = timedelta(seconds=window_seconds)
        self.attempts: dict[str, deque[datetime]] = {}

    def _recent(self, key: str, now: datetime) -> deque[datetime]:
        bucket = self.attempts.setdefault(key, deque())
        while bucket and now - bucket[0] > self.window:
            bucket.popleft()
        return bucket

    def allow(self, key: str) -> bool:
        now = utc_now()
        bucket = self._recent(key, now)
        if len(bucket) >= self.max_attempts:
            return False
        bucket.append(now)
        return True

    def reset(self, key: str) -> None:
        self.attempts.pop(key, None)
