# File: src/cryptotracker/infrastructure/db/repository.py
"""
Repositories translating between ORM rows and domain entities.

All reads pass through `_to_entity`, which normalizes timestamps to aware UTC
(SQLite hands back naive datetimes) so the rest of the system compares like
with like.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Float, cast, func, or_
from sqlalchemy.orm import Session

from cryptotracker.domain.entities import TokenRecord, PriceHistory, PricePoint, as_utc
from cryptotracker.domain.errors import InvalidTokenRecord, InvalidWriteRejected, StaleWriteRejected
from .models import Token, PriceHistoryRow

logger = logging.getLogger(__name__)

_MARKET_FIELDS = (
    "symbol", "name", "current_price", "market_cap", "volume_24h",
    "price_change_24h", "price_change_percentage_24h", "high_24h", "low_24h",
    "circulating_supply", "total_supply", "ath", "ath_change_percentage",
    "atl", "atl_change_percentage", "image",
)


# Largest market cap first. The cast keeps the order numeric whatever the column storage is.
_RANKING = (cast(Token.market_cap, Float).desc(), Token.token_id)


def _dec(value) -> Optional[Decimal]:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


# ==========================================================
# TOKEN REPOSITORY
# ==========================================================
class TokenRepository:
    """Repository for cached token snapshots."""
    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _to_entity(row: Token) -> TokenRecord:
        return TokenRecord(
            token_id=row.token_id,
            symbol=row.symbol,
            name=row.name,
            current_price=_dec(row.current_price),
            last_updated=as_utc(row.last_updated),
            market_cap=_dec(row.market_cap) or Decimal("0"),
            volume_24h=_dec(row.volume_24h) or Decimal("0"),
            price_change_24h=_dec(row.price_change_24h) or Decimal("0"),
            price_change_percentage_24h=row.price_change_percentage_24h or 0.0,
            high_24h=_dec(row.high_24h),
            low_24h=_dec(row.low_24h),
            circulating_supply=_dec(row.circulating_supply),
            total_supply=_dec(row.total_supply),
            ath=_dec(row.ath),
            ath_change_percentage=row.ath_change_percentage,
            atl=_dec(row.atl),
            atl_change_percentage=row.atl_change_percentage,
            image=row.image,
            is_favorite=bool(row.is_favorite),
        )

    def _find_row(self, token_id: str) -> Optional[Token]:
        return self.session.query(Token).filter(Token.token_id == token_id).one_or_none()

    def find_by_token_id(self, token_id: str) -> Optional[TokenRecord]:
        row = self._find_row(token_id)
        return self._to_entity(row) if row else None

    def list_all(self) -> List[TokenRecord]:
        """All cached tokens, largest market cap first."""
        rows = self.session.query(Token).order_by(*_RANKING).all()
        return [self._to_entity(r) for r in rows]

    def list_favorites(self) -> List[TokenRecord]:
        rows = (
            self.session.query(Token)
            .filter(Token.is_favorite == True)  # noqa: E712
            .order_by(*_RANKING)
            .all()
        )
        return [self._to_entity(r) for r in rows]

    def search(self, query: str) -> List[TokenRecord]:
        """Case-insensitive substring match on name, symbol or id."""
        needle = query.strip().lower()
        rows = (
            self.session.query(Token)
            .filter(or_(
                func.lower(Token.name).contains(needle, autoescape=True),
                func.lower(Token.symbol).contains(needle, autoescape=True),
                func.lower(Token.token_id).contains(needle, autoescape=True),
            ))
            .order_by(*_RANKING)
            .all()
        )
        return [self._to_entity(r) for r in rows]

    def upsert(self, record: TokenRecord) -> TokenRecord:
        """
        Inserts or fully replaces the market data for `record.token_id`.
        The stored favourite flag is kept; new rows start un-favourited.
        Raises a CacheWriteRejected subclass and leaves the row untouched if
        the record is invalid or older than what is stored.
        """
        try:
            record.validate()
        except InvalidTokenRecord as e:
            raise InvalidWriteRejected(record.token_id, str(e)) from e

        incoming_ts = as_utc(record.last_updated)
        row = self._find_row(record.token_id)
        if row is not None and incoming_ts < as_utc(row.last_updated):
            raise StaleWriteRejected(
                record.token_id,
                f"last_updated {incoming_ts.isoformat()} is older than stored {as_utc(row.last_updated).isoformat()}",
            )

        if row is None:
            row = Token(token_id=record.token_id, is_favorite=False)
            self.session.add(row)
        for name in _MARKET_FIELDS:
            setattr(row, name, getattr(record, name))
        row.last_updated = incoming_ts
        self.session.flush()
        # Hand back what was stored, not what was passed in.
        self.session.refresh(row)
        return self._to_entity(row)

    def set_favorite(self, token_id: str, is_favorite: bool) -> Optional[TokenRecord]:
        row = self._find_row(token_id)
        if row is None:
            return None
        row.is_favorite = is_favorite
        self.session.flush()
        return self._to_entity(row)


# ==========================================================
# PRICE HISTORY REPOSITORY
# ==========================================================
class PriceHistoryRepository:
    """Repository for the last fetched history series per token."""
    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _points(raw) -> List[PricePoint]:
        return [PricePoint(timestamp_ms=int(ts), value=Decimal(str(v))) for ts, v in (raw or [])]

    @staticmethod
    def _raw(points: List[PricePoint]) -> list:
        return [[p.timestamp_ms, p.value] for p in points]

    def find_by_token_id(self, token_id: str) -> Optional[PriceHistory]:
        row = self.session.query(PriceHistoryRow).filter(PriceHistoryRow.token_id == token_id).one_or_none()
        if row is None:
            return None
        return PriceHistory(
            token_id=row.token_id,
            days=row.days,
            fetched_at=as_utc(row.fetched_at),
            prices=self._points(row.prices),
            market_caps=self._points(row.market_caps),
            total_volumes=self._points(row.total_volumes),
        )

    def save(self, history: PriceHistory) -> None:
        row = self.session.query(PriceHistoryRow).filter(PriceHistoryRow.token_id == history.token_id).one_or_none()
        if row is None:
            row = PriceHistoryRow(token_id=history.token_id)
            self.session.add(row)
        row.days = history.days
        row.prices = self._raw(history.prices)
        row.market_caps = self._raw(history.market_caps)
        row.total_volumes = self._raw(history.total_volumes)
        row.fetched_at = as_utc(history.fetched_at)
        self.session.flush()
