# src/cryptotracker/domain/__init__.py
"""
Domain layer: plain dataclasses and the error taxonomy. No I/O lives here.
"""

from .entities import TokenRecord, PricePoint, PriceHistory, TokenStats, utcnow, as_utc
from .errors import (
    CryptoTrackerError,
    InvalidTokenRecord,
    CacheWriteRejected,
    InvalidWriteRejected,
    StaleWriteRejected,
    TokenNotFound,
    TokenUnavailable,
    HistoryUnavailable,
)

__all__ = [
    "TokenRecord",
    "PricePoint",
    "PriceHistory",
    "TokenStats",
    "utcnow",
    "as_utc",
    "CryptoTrackerError",
    "InvalidTokenRecord",
    "CacheWriteRejected",
    "InvalidWriteRejected",
    "StaleWriteRejected",
    "TokenNotFound",
    "TokenUnavailable",
    "HistoryUnavailable",
]
