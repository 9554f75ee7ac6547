# File: src/cryptotracker/boot.py
"""
Service wiring. Every component that shares state (the governor, the cache
store, the mediator's in-flight map) is created exactly once here and passed
by reference to whoever needs it.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import httpx

from cryptotracker.config import Settings, settings as default_settings
from cryptotracker.domain.entities import utcnow
from cryptotracker.application.services import MarketDataService, TokenQueryService
from cryptotracker.infrastructure.db import (
    TokenCacheStore,
    create_db_engine,
    create_tables,
    make_session_factory,
)
from cryptotracker.infrastructure.pricing import CoinGeckoClient, RateLimitGovernor
from cryptotracker.infrastructure.sched.token_refresher import TokenRefresher

log = logging.getLogger(__name__)


def build_services(
    config: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Dict[str, Any]:
    """Build and wire all application services and dependencies."""
    config = config or default_settings
    log.info("Building application services...")
    services: Dict[str, Any] = {}

    try:
        engine = create_db_engine(config.DATABASE_URL)
        create_tables(engine)
        services["engine"] = engine

        store = TokenCacheStore(make_session_factory(engine))
        governor = RateLimitGovernor(
            min_interval_seconds=config.MIN_CALL_INTERVAL_SECONDS,
            backoff_seconds=config.RATE_LIMIT_BACKOFF_SECONDS,
            clock=clock,
        )
        client = CoinGeckoClient(
            governor=governor,
            base_url=config.COINGECKO_API_URL,
            timeout=config.HTTP_TIMEOUT_SECONDS,
            api_key=config.COINGECKO_API_KEY,
            user_agent=config.USER_AGENT,
            transport=transport,
            clock=clock,
        )
        market_data_service = MarketDataService(
            store=store,
            client=client,
            governor=governor,
            staleness_threshold_seconds=config.STALENESS_THRESHOLD_SECONDS,
            refresh_wait_timeout_seconds=config.REFRESH_WAIT_TIMEOUT_SECONDS,
            tracked_token_limit=config.TRACKED_TOKEN_LIMIT,
            clock=clock,
        )

        services["token_store"] = store
        services["governor"] = governor
        services["coingecko_client"] = client
        services["market_data_service"] = market_data_service
        services["token_query_service"] = TokenQueryService(store=store)
        services["token_refresher"] = TokenRefresher(
            market_data_service, interval_seconds=config.REFRESH_INTERVAL_SECONDS
        )

        log.info("✅ All services built and wired successfully.")
        return services

    except Exception as e:
        log.critical(f"❌ Service building failed: {e}", exc_info=True)
        raise
