# src/cryptotracker/infrastructure/sched/token_refresher.py
"""
Periodic "refresh all tracked tokens" sweep.

Runs next to request-driven refreshes and goes through the same mediator
entry point, so it shares the governor and the in-flight deduplication.
"""

import asyncio
import logging
from typing import Optional

from cryptotracker.application.services.market_data_service import MarketDataService

log = logging.getLogger(__name__)


class TokenRefresher:
    def __init__(self, market_data_service: MarketDataService, interval_seconds: float = 60.0):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.market_data_service = market_data_service
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if self._running:
            return
        self._running = True
        if loop:
            self._task = loop.create_task(self._run(), name="token-refresher")
        else:
            self._task = asyncio.create_task(self._run(), name="token-refresher")
        log.info(f"TokenRefresher started (every {self.interval_seconds:.0f}s).")

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        log.info("TokenRefresher stopped.")

    async def run_once(self) -> bool:
        try:
            refreshed = await self.market_data_service.refresh_if_stale()
            if refreshed:
                log.debug("Background sweep refreshed the token cache.")
            return refreshed
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error(f"Background refresh failed: {e}", exc_info=True)
            return False

    async def _run(self) -> None:
        while self._running:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)
