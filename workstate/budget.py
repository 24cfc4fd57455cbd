"""Daily token budget shared by the router and the pipeline."""

from __future__ import annotations

import threading
from datetime import date, datetime

from .models import utcnow


class TokenBudget:
    """Lock-guarded daily token counter that resets when the UTC day changes."""

    def __init__(self, daily_limit: int, *, today: date | None = None) -> None:
        self.daily_limit = daily_limit
        self._lock = threading.RLock()
        self._day = today or utcnow().date()
        self._used = 0

    @property
    def lock(self) -> threading.RLock:
        """Held by the router while it decides whether a batch may escalate."""
        return self._lock

    def refresh(self, now: datetime | None = None) -> bool:
        """Reset the counter on a new day; returns True when a reset happened."""
        current = (now or utcnow()).date()
        with self._lock:
            if current != self._day:
                self._day = current
                self._used = 0
                return True
            return False

    def set_used(self, tokens: int, now: datetime | None = None) -> None:
        """Rebuild today's counter, typically from persisted cost rows."""
        with self._lock:
            self._day = (now or utcnow()).date()
            self._used = max(0, tokens)

    def record(self, tokens: int, now: datetime | None = None) -> int:
        self.refresh(now)
        with self._lock:
            self._used += max(0, tokens)
            return self._used

    def has_capacity(self, now: datetime | None = None) -> bool:
        self.refresh(now)
        with self._lock:
            return self._used < self.daily_limit

    @property
    def used(self) -> int:
        with self._lock:
            return self._used

    @property
    def remaining(self) -> int:
        with self._lock:
            return max(0, self.daily_limit - self._used)


__all__ = ["TokenBudget"]
