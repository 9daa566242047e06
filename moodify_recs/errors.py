"""
Error Types
===========

Exceptions raised across the Moodify Recs pipeline.

Only ConfigurationError, AuthError and InvalidRequestError ever reach the
caller. UpstreamError is raised by the catalog and tag clients so the retry
helper can classify HTTP failures; it is absorbed before leaving a fetch.
"""

from typing import Optional


class MoodifyError(Exception):
    """Base class for all Moodify Recs errors."""


class ConfigurationError(MoodifyError):
    """Catalog credentials are missing from the environment."""


class AuthError(MoodifyError):
    """The catalog rejected the application credentials."""


class InvalidRequestError(MoodifyError):
    """The request cannot be resolved to a mood."""


class UpstreamError(MoodifyError):
    """
    Non-2xx response from an external service.

    Attributes:
        status: HTTP status code
        retry_after: Server-supplied wait hint in seconds (rate limits only)
    """

    def __init__(self, status: int, message: str = "", retry_after: Optional[float] = None):
        super().__init__(message or f"upstream returned HTTP {status}")
        self.status = status
        self.retry_after = retry_after

    @property
    def is_rate_limit(self) -> bool:
        return self.status == 429

    @property
    def is_transient(self) -> bool:
        return self.status == 429 or 500 <= self.status < 600


def parse_retry_after(value) -> Optional[float]:
    """Parse a Retry-After header value given in seconds."""
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None
