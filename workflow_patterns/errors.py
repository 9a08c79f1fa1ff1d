"""
Error classification for the pattern registry client.

This module provides:
- RegistryErrorType enum for categorizing failures
- classify_status for mapping HTTP status codes onto error types
- Exception classes carrying the classification and retry hints
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Optional


class RegistryErrorType(Enum):
    """
    Classification of registry failures.

    Used to decide whether a request is retried, surfaced, or reported
    to the user with a wait time.
    """

    # Quota exhausted - never retried, caller waits for reset
    RATE_LIMITED = auto()

    # Terminal client-side failures
    CLIENT_ERROR = auto()       # Other 4xx
    NOT_FOUND = auto()          # 404

    # Transient - retried with backoff
    SERVER_ERROR = auto()       # 5xx
    TIMEOUT = auto()            # Request timed out
    NETWORK = auto()            # Connection failed

    INVALID_RESPONSE = auto()   # Body not valid JSON / unexpected shape
    UNKNOWN = auto()


def classify_status(status_code: int) -> RegistryErrorType:
    """Map an HTTP status code onto a RegistryErrorType."""
    if status_code == 429:
        return RegistryErrorType.RATE_LIMITED
    if status_code == 404:
        return RegistryErrorType.NOT_FOUND
    if 400 <= status_code < 500:
        return RegistryErrorType.CLIENT_ERROR
    if status_code >= 500:
        return RegistryErrorType.SERVER_ERROR
    return RegistryErrorType.UNKNOWN


class RegistryError(Exception):
    """
    Base exception for registry client errors.

    The server's message is preserved in ``str(error)`` and the raw body
    in ``body``.
    """

    def __init__(
        self,
        message: str,
        error_type: RegistryErrorType = RegistryErrorType.UNKNOWN,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.status_code = status_code
        self.body = body
        self.recoverable = recoverable

    @property
    def should_retry(self) -> bool:
        """Check if this error is worth retrying."""
        return self.error_type in (
            RegistryErrorType.SERVER_ERROR,
            RegistryErrorType.TIMEOUT,
            RegistryErrorType.NETWORK,
        )


class RegistryTransportError(RegistryError):
    """Raised when the request never produced a response (timeout or network)."""

    def __init__(self, message: str, timed_out: bool = False) -> None:
        super().__init__(
            message,
            error_type=RegistryErrorType.TIMEOUT if timed_out else RegistryErrorType.NETWORK,
            recoverable=True,
        )


class RateLimitedError(RegistryError):
    """Raised when the registry answers 429. Never retried automatically."""

    def __init__(
        self,
        message: str,
        reset_at: Optional[datetime] = None,
        remaining: int = 0,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            error_type=RegistryErrorType.RATE_LIMITED,
            status_code=429,
            body=body,
            recoverable=True,
        )
        self.reset_at = reset_at
        self.remaining = remaining

    def seconds_until_reset(self, now: Optional[datetime] = None) -> float:
        """Seconds left until the quota window resets (0 when unknown or past)."""
        if self.reset_at is None:
            return 0.0
        now = now or datetime.now(timezone.utc)
        return max(0.0, (self.reset_at - now).total_seconds())

    def time_until_reset(self, now: Optional[datetime] = None) -> str:
        """Human readable wait, e.g. "now", "1 minute", "3 hours"."""
        if self.reset_at is None:
            return "unknown"
        return format_wait(self.seconds_until_reset(now))


def format_wait(seconds: float) -> str:
    """Render a wait duration the way users read it."""
    if seconds <= 0:
        return "now"
    minutes = math.ceil(seconds / 60)
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    hours = math.ceil(minutes / 60)
    return f"{hours} hour{'s' if hours != 1 else ''}"
