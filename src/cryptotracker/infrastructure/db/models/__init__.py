# src/cryptotracker/infrastructure/db/models/__init__.py
"""
Makes every ORM model importable from one place so `Base.metadata` (and
alembic) sees all tables.
"""

from .base import Base
from .token import Token, PriceHistoryRow
from .types import ExactDecimal

__all__ = [
    "Base",
    "Token",
    "PriceHistoryRow",
    "ExactDecimal",
]
