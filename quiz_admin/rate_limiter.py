"""Fixed-window rate limiter.

Counts attempts per key in discrete windows that reset wholesale. State is
in-process only: a restart clears every limit. This is a UX throttle, not a
security boundary; the edge interceptor is the real gate.
"""

import math
import time
from dataclasses import dataclass, field
from threading import Lock

from quiz_admin.config import settings


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiter."""

    max_attempts: int
    window_seconds: float = 60.0


@dataclass
class RateLimitEntry:
    """Attempts seen for one key in its current window."""

    count: int
    window_reset_at: float


@dataclass
class RateLimiter:
    """Thread-safe fixed window rate limiter.

    Example:
        limiter = RateLimiter(RateLimiterConfig(max_attempts=5, window_seconds=900.0))
        if limiter.is_allowed(email):
            # Attempt sign-in
        else:
            wait = limiter.get_remaining_time(email)
    """

    config: RateLimiterConfig
    _entries: dict[str, RateLimitEntry] = field(default_factory=dict)
    _lock: Lock = field(default_factory=Lock)

    def is_allowed(self, key: str, now: float | None = None) -> bool:
        """Check if an attempt is allowed and count it if so.

        Args:
            key: Identifier for the rate limit bucket (e.g., an email)
            now: Current timestamp (defaults to time.time(), injectable for testing)

        Returns:
            True if the attempt is allowed, False if rate limited
        """
        if now is None:
            now = time.time()

        with self._lock:
            entry = self._entries.get(key)

            # Expired windows are replaced, not incremented
            if entry is None or now > entry.window_reset_at:
                self._entries[key] = RateLimitEntry(
                    count=1, window_reset_at=now + self.config.window_seconds
                )
                return True

            if entry.count >= self.config.max_attempts:
                return False

            entry.count += 1
            return True

    def get_remaining_time(self, key: str, now: float | None = None) -> int:
        """Get whole seconds until the key's window resets.

        Returns:
            Seconds remaining (rounded up), 0 if the key has no entry
        """
        if now is None:
            now = time.time()

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return 0
            return max(0, math.ceil(entry.window_reset_at - now))

    def attempts(self, key: str, now: float | None = None) -> int:
        """Get attempts counted in the key's live window."""
        if now is None:
            now = time.time()

        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now > entry.window_reset_at:
                return 0
            return entry.count

    def reset(self, key: str) -> None:
        """Reset rate limit for a specific key."""
        with self._lock:
            self._entries.pop(key, None)

    def reset_all(self) -> None:
        """Reset all rate limits."""
        with self._lock:
            self._entries.clear()


@dataclass
class RateLimiters:
    """Independent budgets for login attempts, searches and generic API calls."""

    login: RateLimiter
    search: RateLimiter
    api: RateLimiter

    @classmethod
    def from_settings(cls) -> "RateLimiters":
        return cls(
            login=RateLimiter(
                RateLimiterConfig(settings.login_max_attempts, settings.login_window_seconds)
            ),
            search=RateLimiter(
                RateLimiterConfig(settings.search_max_attempts, settings.search_window_seconds)
            ),
            api=RateLimiter(
                RateLimiterConfig(settings.api_max_attempts, settings.api_window_seconds)
            ),
        )
