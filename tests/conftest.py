# tests/conftest.py
"""
Fixtures and test setup for the Pytest suite.
"""

import os

# Set test environment variables BEFORE any application code is imported.
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["BACKGROUND_REFRESH_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict

import pytest

from cryptotracker.domain.entities import TokenRecord
from cryptotracker.infrastructure.db import TokenCacheStore, create_db_engine, create_tables, make_session_factory
from cryptotracker.infrastructure.pricing.governor import RateLimitGovernor

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """A manually advanced UTC clock shared by the governor, client and mediator."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def set(self, when: datetime) -> None:
        self.now = when


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def governor(clock: FakeClock) -> RateLimitGovernor:
    return RateLimitGovernor(min_interval_seconds=2, backoff_seconds=60, clock=clock)


@pytest.fixture
def db_engine(tmp_path):
    """A throwaway SQLite database file per test."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'cache.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(db_engine) -> TokenCacheStore:
    return TokenCacheStore(make_session_factory(db_engine))


@pytest.fixture
def make_record():
    """Factory for valid TokenRecords with overridable fields."""
    def _make(token_id: str = "bitcoin", price: Any = "60000", last_updated: datetime = T0, **overrides) -> TokenRecord:
        fields: Dict[str, Any] = dict(
            token_id=token_id,
            symbol=overrides.pop("symbol", token_id[:3]),
            name=overrides.pop("name", token_id.capitalize()),
            current_price=Decimal(str(price)),
            last_updated=last_updated,
            market_cap=Decimal("1000000"),
            volume_24h=Decimal("50000"),
            price_change_24h=Decimal("10"),
            price_change_percentage_24h=1.5,
            high_24h=Decimal(str(price)) * 2,
            low_24h=Decimal("0"),
        )
        fields.update(overrides)
        return TokenRecord(**fields)
    return _make


@pytest.fixture
def market_entry():
    """Factory for one CoinGecko `/coins/markets` JSON entry."""
    def _entry(token_id: str = "bitcoin", price: Any = 60000, **overrides) -> Dict[str, Any]:
        entry = {
            "id": token_id,
            "symbol": overrides.pop("symbol", token_id[:3]),
            "name": overrides.pop("name", token_id.capitalize()),
            "image": f"https://assets.coingecko.com/coins/images/1/large/{token_id}.png",
            "current_price": price,
            "market_cap": 1_200_000_000_000,
            "market_cap_rank": 1,
            "total_volume": 30_000_000_000,
            "high_24h": 61000,
            "low_24h": 59000,
            "price_change_24h": 500.5,
            "price_change_percentage_24h": 0.84,
            "circulating_supply": 19_600_000,
            "total_supply": 21_000_000,
            "max_supply": 21_000_000,
            "ath": 73738,
            "ath_change_percentage": -18.6,
            "ath_date": "2024-03-14T07:10:36.635Z",
            "atl": 67.81,
            "atl_change_percentage": 88378.2,
            "atl_date": "2013-07-06T00:00:00.000Z",
            "last_updated": "2026-01-01T11:59:30.000Z",
        }
        entry.update(overrides)
        return entry
    return _entry
