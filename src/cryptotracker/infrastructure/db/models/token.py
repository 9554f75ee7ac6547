# src/cryptotracker/infrastructure/db/models/token.py
"""
SQLAlchemy ORM models for the token cache: one row per CoinGecko id holding
the last known good snapshot, plus one cached history series per token.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Float, JSON, func, false
)
from .base import Base
from .types import ExactDecimal


class Token(Base):
    __tablename__ = 'tokens'
    id = Column(Integer, primary_key=True, autoincrement=True)
    token_id = Column(String(128), unique=True, nullable=False, index=True)
    symbol = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    current_price = Column(ExactDecimal(), nullable=False)
    market_cap = Column(ExactDecimal(), nullable=False, default=0)
    volume_24h = Column(ExactDecimal(), nullable=False, default=0)
    price_change_24h = Column(ExactDecimal(), nullable=False, default=0)
    price_change_percentage_24h = Column(Float, nullable=False, default=0.0)
    high_24h = Column(ExactDecimal(), nullable=True)
    low_24h = Column(ExactDecimal(), nullable=True)
    circulating_supply = Column(ExactDecimal(), nullable=True)
    total_supply = Column(ExactDecimal(), nullable=True)
    ath = Column(ExactDecimal(), nullable=True)
    ath_change_percentage = Column(Float, nullable=True)
    atl = Column(ExactDecimal(), nullable=True)
    atl_change_percentage = Column(Float, nullable=True)
    image = Column(String(512), nullable=True)

    last_updated = Column(DateTime(timezone=True), nullable=False)
    is_favorite = Column(Boolean, default=False, server_default=false(), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Token(token_id='{self.token_id}', price={self.current_price}, last_updated={self.last_updated})>"


class PriceHistoryRow(Base):
    __tablename__ = 'price_history'
    id = Column(Integer, primary_key=True, autoincrement=True)
    token_id = Column(String(128), unique=True, nullable=False, index=True)
    days = Column(Integer, nullable=False)
    # Series are stored as [[timestamp_ms, "decimal"], ...]
    prices = Column(JSON, nullable=False)
    market_caps = Column(JSON, nullable=False)
    total_volumes = Column(JSON, nullable=False)
    fetched_at = Column(DateTime(timezone=True), nullable=False)
