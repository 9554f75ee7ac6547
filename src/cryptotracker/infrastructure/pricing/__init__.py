from .governor import RateLimitGovernor, GovernorState
from .coingecko_client import CoinGeckoClient, Classification, FetchResult

__all__ = [
    "RateLimitGovernor",
    "GovernorState",
    "CoinGeckoClient",
    "Classification",
    "FetchResult",
]
