# src/cryptotracker/infrastructure/db/token_store.py
"""
Durable key-value cache of token snapshots.

Each call runs in its own short transaction, so the store can be shared by
request handlers, the mediator and the background refresher without any
session bookkeeping on their side. Entries never expire here; whether a
record is too old to serve is the mediator's call.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import sessionmaker

from cryptotracker.domain.entities import TokenRecord, PriceHistory
from cryptotracker.domain.errors import CacheWriteRejected
from .repository import TokenRepository, PriceHistoryRepository
from .uow import session_scope

log = logging.getLogger(__name__)


class TokenCacheStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, token_id: str) -> Optional[TokenRecord]:
        with session_scope(self._session_factory) as session:
            return TokenRepository(session).find_by_token_id(token_id)

    def get_all(self) -> List[TokenRecord]:
        with session_scope(self._session_factory) as session:
            return TokenRepository(session).list_all()

    def list_favorites(self) -> List[TokenRecord]:
        with session_scope(self._session_factory) as session:
            return TokenRepository(session).list_favorites()

    def search(self, query: str) -> List[TokenRecord]:
        with session_scope(self._session_factory) as session:
            return TokenRepository(session).search(query)

    def upsert(self, record: TokenRecord) -> TokenRecord:
        """Raises CacheWriteRejected when the write would clobber better data."""
        with session_scope(self._session_factory) as session:
            return TokenRepository(session).upsert(record)

    def upsert_many(self, records: Iterable[TokenRecord]) -> int:
        """Writes every acceptable record in one transaction; returns how many were written."""
        written = 0
        with session_scope(self._session_factory) as session:
            repo = TokenRepository(session)
            for record in records:
                try:
                    repo.upsert(record)
                    written += 1
                except CacheWriteRejected as e:
                    log.warning(f"Skipping cache write: {e}")
        return written

    def set_favorite(self, token_id: str, is_favorite: bool) -> Optional[TokenRecord]:
        with session_scope(self._session_factory) as session:
            return TokenRepository(session).set_favorite(token_id, is_favorite)

    def get_history(self, token_id: str) -> Optional[PriceHistory]:
        with session_scope(self._session_factory) as session:
            return PriceHistoryRepository(session).find_by_token_id(token_id)

    def save_history(self, history: PriceHistory) -> None:
        with session_scope(self._session_factory) as session:
            PriceHistoryRepository(session).save(history)
