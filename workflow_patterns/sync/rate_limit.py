"""Client-side view of the registry's push quota.

The registry reports ``{remaining, resetAt}`` on every push and on a 429.
RateLimitTracker remembers the latest report so a caller can skip a
request that is known to be rejected.

Usage:
    tracker = RateLimitTracker()

    should_wait, wait_seconds = tracker.should_delay()
    if not should_wait:
        response = await client.push(...)
        tracker.record(response.rate_limit.remaining, response.rate_limit.reset_at)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass
class RateLimitTracker:
    """Last known quota window reported by the registry.

    Attributes:
        remaining: Pushes left in the current window, None when unknown.
        reset_at: When the window resets, None when unknown.
    """

    remaining: Optional[int] = None
    reset_at: Optional[datetime] = None

    def record(self, remaining: Optional[int], reset_at: Optional[datetime]) -> None:
        """Store the quota from the latest registry response."""
        self.remaining = remaining
        self.reset_at = reset_at

    def should_delay(self, now: Optional[datetime] = None) -> tuple[bool, float]:
        """Check if the next push is known to be rejected.

        Returns:
            A tuple of (should_delay, seconds_until_reset).

            Only an exhausted quota with a reset time still in the future
            delays; anything unknown lets the request through and leaves
            the decision to the registry.
        """
        if self.remaining is None or self.remaining > 0 or self.reset_at is None:
            return (False, 0.0)

        now = now or datetime.now(timezone.utc)
        wait = (self.reset_at - now).total_seconds()
        if wait <= 0:
            self.clear()
            return (False, 0.0)
        return (True, wait)

    def clear(self) -> None:
        self.remaining = None
        self.reset_at = None
