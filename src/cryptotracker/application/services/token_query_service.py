# src/cryptotracker/application/services/token_query_service.py
"""
Read-side projections over the token cache: favourites, search and aggregate
stats. None of these ever talk to the upstream; they only see what the
mediator has cached.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional
import logging

from cryptotracker.domain.entities import TokenRecord, TokenStats
from cryptotracker.domain.errors import TokenNotFound
from cryptotracker.infrastructure.db.token_store import TokenCacheStore

log = logging.getLogger(__name__)


@dataclass
class TokenQueryService:
    store: TokenCacheStore

    def search(self, query: str) -> List[TokenRecord]:
        """Case-insensitive substring search on name, symbol and id."""
        if query is None or not query.strip():
            raise ValueError("Search query is required")
        return self.store.search(query)

    def list_favorites(self) -> List[TokenRecord]:
        return self.store.list_favorites()

    def set_favorite(self, token_id: str, is_favorite: bool) -> TokenRecord:
        updated = self.store.set_favorite(token_id, is_favorite)
        if updated is None:
            raise TokenNotFound(token_id)
        log.info(f"Token '{token_id}' favorite={is_favorite}")
        return updated

    def toggle_favorite(self, token_id: str) -> TokenRecord:
        current = self.store.get(token_id)
        if current is None:
            raise TokenNotFound(token_id)
        return self.set_favorite(token_id, not current.is_favorite)

    def stats(self) -> TokenStats:
        tokens = self.store.get_all()
        if not tokens:
            return TokenStats()

        total_market_cap = sum((t.market_cap for t in tokens), Decimal("0"))
        total_volume = sum((t.volume_24h for t in tokens), Decimal("0"))
        avg_change = sum(t.price_change_percentage_24h for t in tokens) / len(tokens)
        gainer: Optional[TokenRecord] = max(tokens, key=lambda t: t.price_change_percentage_24h)
        loser: Optional[TokenRecord] = min(tokens, key=lambda t: t.price_change_percentage_24h)

        return TokenStats(
            total_tokens=len(tokens),
            total_market_cap=total_market_cap,
            total_volume_24h=total_volume,
            avg_price_change_24h=avg_change,
            biggest_gainer=gainer,
            biggest_loser=loser,
        )
