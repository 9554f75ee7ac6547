# src/cryptotracker/domain/errors.py
"""
Error taxonomy for the market data layer.

Only `TokenNotFound` (and its `TokenUnavailable` refinement) and
`HistoryUnavailable` ever reach API callers. Upstream failures are otherwise
recovered by serving cached data, and cache write rejections are handled
inside the service layer.
"""

from typing import Optional


class CryptoTrackerError(Exception):
    """Base class for all domain errors."""


class InvalidTokenRecord(CryptoTrackerError, ValueError):
    """A token record violates a domain invariant (negative price, high < low, ...)."""


class CacheWriteRejected(CryptoTrackerError):
    """The cache store refused a write and left the stored record unchanged."""

    def __init__(self, token_id: str, reason: str):
        super().__init__(f"Write for '{token_id}' rejected: {reason}")
        self.token_id = token_id
        self.reason = reason


class InvalidWriteRejected(CacheWriteRejected):
    """The incoming record failed validation."""


class StaleWriteRejected(CacheWriteRejected):
    """The incoming record is older than the stored one."""


class TokenNotFound(CryptoTrackerError, LookupError):
    """No data exists for the token, neither cached nor from upstream."""

    def __init__(self, token_id: str, message: Optional[str] = None):
        super().__init__(message or f"Token '{token_id}' not found")
        self.token_id = token_id


class TokenUnavailable(TokenNotFound):
    """
    Nothing cached for the token and the upstream cannot be asked right now
    (rate limited, unreachable, returned garbage, or the call window is closed).
    """

    def __init__(self, token_id: str, retry_after: float, reason: str = "upstream unavailable"):
        super().__init__(token_id, f"Token '{token_id}' temporarily unavailable: {reason}")
        self.retry_after = retry_after
        self.reason = reason


class HistoryUnavailable(CryptoTrackerError):
    """Price history is neither cached nor fetchable right now."""

    def __init__(self, token_id: str, retry_after: float):
        super().__init__(f"Historical data for '{token_id}' temporarily unavailable")
        self.token_id = token_id
        self.retry_after = retry_after
