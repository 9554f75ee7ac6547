# src/cryptotracker/domain/entities.py
"""
Core domain types: the cached token snapshot and its price history.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, List

from .errors import InvalidTokenRecord


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Returns `value` as an aware UTC datetime (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class TokenRecord:
    """
    A point-in-time market snapshot for a single token, keyed by its
    CoinGecko identifier.
    """
    token_id: str
    symbol: str
    name: str
    current_price: Decimal
    last_updated: datetime
    market_cap: Decimal = Decimal("0")
    volume_24h: Decimal = Decimal("0")
    price_change_24h: Decimal = Decimal("0")
    price_change_percentage_24h: float = 0.0
    high_24h: Optional[Decimal] = None
    low_24h: Optional[Decimal] = None
    circulating_supply: Optional[Decimal] = None
    total_supply: Optional[Decimal] = None
    ath: Optional[Decimal] = None
    ath_change_percentage: Optional[float] = None
    atl: Optional[Decimal] = None
    atl_change_percentage: Optional[float] = None
    image: Optional[str] = None
    is_favorite: bool = False

    def validate(self) -> "TokenRecord":
        if not self.token_id:
            raise InvalidTokenRecord("token_id must be a non-empty string")
        if self.current_price is None or self.current_price < 0:
            raise InvalidTokenRecord(f"{self.token_id}: current_price must be >= 0, got {self.current_price}")
        if self.high_24h is not None and self.low_24h is not None and self.high_24h < self.low_24h:
            raise InvalidTokenRecord(
                f"{self.token_id}: high_24h ({self.high_24h}) is below low_24h ({self.low_24h})"
            )
        if self.last_updated is None:
            raise InvalidTokenRecord(f"{self.token_id}: last_updated is required")
        return self

    def age(self, now: datetime) -> timedelta:
        return as_utc(now) - as_utc(self.last_updated)

    def with_favorite(self, is_favorite: bool) -> "TokenRecord":
        return replace(self, is_favorite=is_favorite)


@dataclass(frozen=True)
class PricePoint:
    timestamp_ms: int
    value: Decimal


@dataclass
class PriceHistory:
    token_id: str
    days: int
    fetched_at: datetime
    prices: List[PricePoint] = field(default_factory=list)
    market_caps: List[PricePoint] = field(default_factory=list)
    total_volumes: List[PricePoint] = field(default_factory=list)


@dataclass
class TokenStats:
    """Aggregate projection over the cached token set."""
    total_tokens: int = 0
    total_market_cap: Decimal = Decimal("0")
    total_volume_24h: Decimal = Decimal("0")
    avg_price_change_24h: float = 0.0
    biggest_gainer: Optional[TokenRecord] = None
    biggest_loser: Optional[TokenRecord] = None
