# File: src/cryptotracker/application/services/__init__.py

from .market_data_service import MarketDataService
from .token_query_service import TokenQueryService

__all__ = [
    "MarketDataService",
    "TokenQueryService",
]
