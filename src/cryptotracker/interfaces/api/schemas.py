# --- START OF FILE: src/cryptotracker/interfaces/api/schemas.py ---
from __future__ import annotations
from typing import List, Any, Optional
from pydantic import BaseModel, ConfigDict, field_validator
from datetime import datetime

def _to_float(v: Any) -> float | None:
    if v is None: return None
    return float(v)

class TokenOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    token_id: str
    symbol: str
    name: str
    current_price: float
    market_cap: float
    volume_24h: float
    price_change_24h: float
    price_change_percentage_24h: float
    high_24h: float | None = None
    low_24h: float | None = None
    circulating_supply: float | None = None
    total_supply: float | None = None
    ath: float | None = None
    ath_change_percentage: float | None = None
    atl: float | None = None
    atl_change_percentage: float | None = None
    image: str | None = None
    last_updated: datetime
    is_favorite: bool = False

    @field_validator(
        "current_price", "market_cap", "volume_24h", "price_change_24h",
        "high_24h", "low_24h", "circulating_supply", "total_supply", "ath", "atl",
        mode="before",
    )
    def _v_decimal(cls, v): return _to_float(v)

class FavoriteIn(BaseModel):
    token_id: str
    # Omitted -> toggle the current flag.
    is_favorite: Optional[bool] = None

class StatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    total_tokens: int
    total_market_cap: float
    total_volume_24h: float
    avg_price_change_24h: float
    biggest_gainer: TokenOut | None = None
    biggest_loser: TokenOut | None = None

    @field_validator("total_market_cap", "total_volume_24h", mode="before")
    def _v_decimal(cls, v): return _to_float(v)

class HistoryOut(BaseModel):
    token_id: str
    days: int
    fetched_at: datetime
    prices: List[List[float]]
    market_caps: List[List[float]]
    total_volumes: List[List[float]]

    @classmethod
    def from_history(cls, history) -> "HistoryOut":
        def _series(points): return [[float(p.timestamp_ms), float(p.value)] for p in points]
        return cls(
            token_id=history.token_id,
            days=history.days,
            fetched_at=history.fetched_at,
            prices=_series(history.prices),
            market_caps=_series(history.market_caps),
            total_volumes=_series(history.total_volumes),
        )
# --- END OF FILE ---
