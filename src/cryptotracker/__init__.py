"""CryptoTracker: a rate-limit aware caching mediator in front of CoinGecko."""

__version__ = "1.0.0"
