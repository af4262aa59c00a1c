"""Sliding-window rate limiting for sign-in link requests.

State is per process. Several uvicorn workers each keep their own window.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(self):
        self.attempts: Dict[str, List[datetime]] = {}

    async def check_rate_limit(
        self,
        key: str,
        max_attempts: int,
        window_minutes: int,
    ) -> Tuple[bool, Optional[str]]:
        """Record an attempt for key unless the window is full.

        Returns:
            (allowed, error_message)
        """
        now = datetime.now(timezone.utc)
        window = timedelta(minutes=window_minutes)

        self._evict_stale(now, window)
        recent = self.attempts.get(key, [])
        if len(recent) >= max_attempts:
            wait_seconds = int((min(recent) + window - now).total_seconds())
            logger.warning(f"Rate limit hit for {key}")
            return False, f"Rate limit exceeded. Try again in {wait_seconds} seconds"

        recent.append(now)
        self.attempts[key] = recent
        return True, None

    def _evict_stale(self, now: datetime, window: timedelta):
        """Prune expired timestamps and drop keys left with none."""
        for key in list(self.attempts):
            recent = [ts for ts in self.attempts[key] if now - ts < window]
            if recent:
                self.attempts[key] = recent
            else:
                del self.attempts[key]

    def reset(self, key: Optional[str] = None):
        if key is None:
            self.attempts.clear()
        else:
            self.attempts.pop(key, None)


rate_limiter = RateLimiter()
