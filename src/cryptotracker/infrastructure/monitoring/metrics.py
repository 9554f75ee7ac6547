# src/cryptotracker/infrastructure/monitoring/metrics.py
"""
Prometheus instruments shared by the upstream client and the market data service.
Exposed over HTTP by `interfaces/api/metrics.py`.
"""

from prometheus_client import Counter, Gauge, Histogram

UPSTREAM_CALLS = Counter(
    "ct_upstream_calls_total",
    "Upstream market data calls by endpoint and outcome",
    ["endpoint", "classification"],
)
UPSTREAM_LATENCY = Histogram("ct_upstream_latency_seconds", "Upstream call latency", ["endpoint"])
CACHE_FALLBACKS = Counter(
    "ct_cache_fallbacks_total",
    "Reads served from cache because a refresh failed or was not permitted",
    ["reason"],
)
REFRESH_DEDUPED = Counter("ct_refresh_deduplicated_total", "Readers that joined an in-flight refresh")
CACHED_TOKENS = Gauge("ct_cached_tokens", "Tokens currently held in the durable cache")
GOVERNOR_WAIT = Gauge("ct_governor_wait_seconds", "Seconds until the governor permits the next upstream call")
