"""Rate limiting for login attempts - TraderShark"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

logger = logging.getLogger(__name__)

LOGIN_MAX_ATTEMPTS = 5
LOGIN_WINDOW_MINUTES = 15

class RateLimiter:
    def __init__(self):
        # In-memory sliding window per key, reset on process restart
        self.attempts = {}

    async def check_rate_limit(
        self,
        key: str,
        max_attempts: int,
        window_minutes: int
    ) -> tuple[bool, Optional[str]]:
        """
        Record an attempt for key and report whether it is allowed.

        Returns:
            (allowed: bool, error_message: Optional[str])
        """
        now = datetime.now(timezone.utc)

        # Drop attempts outside the window
        self.attempts[key] = [
            timestamp for timestamp in self.attempts.get(key, [])
            if now - timestamp < timedelta(minutes=window_minutes)
        ]

        if len(self.attempts[key]) >= max_attempts:
            oldest = min(self.attempts[key])
            wait_until = oldest + timedelta(minutes=window_minutes)
            wait_seconds = int((wait_until - now).total_seconds())
            logger.warning("Rate limit exceeded for %s", key)
            return False, f"Rate limit exceeded. Try again in {wait_seconds} seconds"

        self.attempts[key].append(now)
        return True, None

    def reset(self, key: str) -> None:
        """Forget attempts for key (after a successful login)."""
        self.attempts.pop(key, None)

rate_limiter = RateLimiter()
