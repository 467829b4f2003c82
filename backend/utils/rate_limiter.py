"""Per-user rate limiting for credit-consuming and email actions."""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "მოთხოვნების ლიმიტი ამოიწურა. სცადეთ {seconds} წამში"


class RateLimiter:
    def __init__(self):
        # In-memory sliding window per key; one process only
        self.attempts = {}

    async def check_rate_limit(
        self,
        key: str,
        max_attempts: int,
        window_minutes: int = 1
    ) -> tuple[bool, Optional[str]]:
        """
        Check if rate limit is exceeded and record the attempt when it is not.

        Returns:
            (allowed: bool, error_message: Optional[str])
        """
        now = datetime.now(timezone.utc)
        window = timedelta(minutes=window_minutes)

        self.attempts[key] = [
            timestamp for timestamp in self.attempts.get(key, [])
            if now - timestamp < window
        ]

        if len(self.attempts[key]) >= max_attempts:
            oldest = min(self.attempts[key])
            wait_seconds = max(1, int((oldest + window - now).total_seconds()))
            logger.warning(f"Rate limit hit for {key} ({max_attempts}/{window_minutes}m)")
            return False, RATE_LIMIT_MESSAGE.format(seconds=wait_seconds)

        self.attempts[key].append(now)
        return True, None

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self.attempts.clear()
        else:
            self.attempts.pop(key, None)


rate_limiter = RateLimiter()
