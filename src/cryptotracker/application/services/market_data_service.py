# src/cryptotracker/application/services/market_data_service.py
"""
The market data mediator.

For every read it picks one of: serve the cached record, refresh it from
CoinGecko first, or serve the (stale) cached record because the upstream is
rate limited, down, or returned garbage. Freshness is best effort; as long as
a token was fetched successfully once, readers always get data.

Refreshes are deduplicated per key (a token id, the full-list sweep, or a
history series): concurrent readers share one `asyncio.Task`. Readers that
have a cached fallback wait for it at most `refresh_wait_timeout_seconds`
and then get the cached value while the refresh carries on in the background.
A running sweep covers every tracked id, so single-token readers join it
instead of fetching, and a sweep lets in-flight token refreshes finish first.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from cryptotracker.domain.entities import TokenRecord, PriceHistory, utcnow, as_utc
from cryptotracker.domain.errors import (
    CacheWriteRejected,
    StaleWriteRejected,
    TokenNotFound,
    TokenUnavailable,
    HistoryUnavailable,
)
from cryptotracker.infrastructure.db.token_store import TokenCacheStore
from cryptotracker.infrastructure.monitoring.metrics import CACHE_FALLBACKS, REFRESH_DEDUPED
from cryptotracker.infrastructure.pricing.coingecko_client import CoinGeckoClient, Classification, FetchResult
from cryptotracker.infrastructure.pricing.governor import RateLimitGovernor

log = logging.getLogger(__name__)

SWEEP_KEY = "__sweep__"
HISTORY_KEY_PREFIX = "history:"


class MarketDataService:
    def __init__(
        self,
        store: TokenCacheStore,
        client: CoinGeckoClient,
        governor: RateLimitGovernor,
        staleness_threshold_seconds: float = 60.0,
        refresh_wait_timeout_seconds: float = 5.0,
        tracked_token_limit: int = 100,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.client = client
        self.governor = governor
        self._threshold = timedelta(seconds=staleness_threshold_seconds)
        self._wait_timeout = refresh_wait_timeout_seconds
        self._limit = tracked_token_limit
        self._clock = clock
        # Mutated only from the event loop thread with no await between the
        # lookup and the insert, so no lock is needed.
        self._inflight: Dict[str, asyncio.Task] = {}
        self._last_sweep_at: Optional[datetime] = None

    # --- Staleness policy ---

    def is_stale(self, record: TokenRecord) -> bool:
        return record.age(self._clock()) > self._threshold

    def sweep_is_stale(self) -> bool:
        if self._last_sweep_at is None:
            return True
        return as_utc(self._clock()) - self._last_sweep_at > self._threshold

    @property
    def last_sweep_at(self) -> Optional[datetime]:
        return self._last_sweep_at

    def inflight_ids(self) -> List[str]:
        return sorted(self._inflight)

    # --- Single token ---

    async def get_token(self, token_id: str) -> TokenRecord:
        """
        Returns the freshest permissible record for `token_id`.
        Raises TokenUnavailable (a TokenNotFound) when nothing is cached and
        the upstream can't be asked or failed, TokenNotFound when the
        upstream doesn't know the id.
        """
        cached = self.store.get(token_id)
        if cached is not None and not self.is_stale(cached):
            return cached

        task = self._inflight.get(token_id)
        sweep = self._inflight.get(SWEEP_KEY)
        if task is None and sweep is not None:
            # The running sweep fetches every tracked id; asking for this one
            # separately would be a second upstream call for the same token.
            REFRESH_DEDUPED.inc()
            log.debug(f"Joining in-flight sweep for '{token_id}'")
            await self._await_refresh(sweep, has_fallback=cached is not None)
            swept = self.store.get(token_id)
            if swept is not None and (not sweep.done() or not self.is_stale(swept)):
                return swept
            # Not part of the tracked set (or the sweep failed): decide as usual.
            cached = swept
            task = self._inflight.get(token_id)

        if task is not None:
            REFRESH_DEDUPED.inc()
            log.debug(f"Joining in-flight refresh for '{token_id}'")
        elif self.governor.can_call_now():
            task = self._start_refresh(token_id, lambda: self._refresh_token(token_id))
        elif cached is not None:
            CACHE_FALLBACKS.labels(reason="governor").inc()
            log.debug(f"Serving stale '{token_id}': upstream call window closed")
            return cached
        else:
            raise TokenUnavailable(
                token_id, retry_after=self.governor.seconds_until_callable(), reason="call window closed"
            )

        outcome = await self._await_refresh(task, has_fallback=cached is not None)
        if outcome is not None and outcome.ok and outcome.data is not None:
            return outcome.data

        fallback = self.store.get(token_id)
        if fallback is not None:
            reason = outcome.classification.value if outcome is not None else "refresh_pending"
            CACHE_FALLBACKS.labels(reason=reason).inc()
            log.info(f"Serving cached '{token_id}' ({reason})")
            return fallback

        if outcome is not None and outcome.classification is Classification.NOT_FOUND:
            raise TokenNotFound(token_id)
        raise TokenUnavailable(
            token_id,
            retry_after=self.governor.seconds_until_callable(),
            reason=outcome.classification.value if outcome is not None else "refresh_pending",
        )

    async def _refresh_token(self, token_id: str) -> FetchResult[TokenRecord]:
        result = await self.client.fetch_token(token_id)
        if not result.ok:
            log.warning(f"Refresh of '{token_id}' failed: {result.classification.value} {result.detail}")
            return result
        try:
            stored = self.store.upsert(result.data)
        except StaleWriteRejected as e:
            # Someone wrote a newer snapshot while we were fetching; that one wins.
            log.info(str(e))
            return FetchResult(Classification.SUCCESS, data=self.store.get(token_id))
        except CacheWriteRejected as e:
            log.error(f"Refusing to cache '{token_id}': {e}")
            return FetchResult(Classification.MALFORMED_RESPONSE, detail=str(e))
        log.info(f"Refreshed '{token_id}' at price {stored.current_price}")
        return FetchResult(Classification.SUCCESS, data=stored)

    # --- Full list ---

    async def get_all_tokens(self) -> List[TokenRecord]:
        """
        All cached tokens (largest market cap first), refreshing the tracked
        set first when the last sweep is stale and the governor allows it.
        Never raises for upstream problems; an empty list means nothing has
        ever been fetched.
        """
        cached = self.store.get_all()
        if cached and not self.sweep_is_stale():
            return cached

        task = self._inflight.get(SWEEP_KEY)
        if task is not None:
            REFRESH_DEDUPED.inc()
        elif self.governor.can_call_now():
            task = self._start_refresh(SWEEP_KEY, self._refresh_all)
        else:
            if cached:
                CACHE_FALLBACKS.labels(reason="governor").inc()
            return cached

        outcome = await self._await_refresh(task, has_fallback=bool(cached))
        if cached and (outcome is None or not outcome.ok):
            CACHE_FALLBACKS.labels(reason=outcome.classification.value if outcome else "refresh_pending").inc()
        return self.store.get_all()

    async def refresh_if_stale(self) -> bool:
        """
        Background entry point: runs (or joins) the full-list sweep when it is
        stale and the governor allows a call. Returns True if a sweep succeeded.
        """
        if not self.sweep_is_stale():
            return False
        task = self._inflight.get(SWEEP_KEY)
        if task is None:
            if not self.governor.can_call_now():
                log.debug("Skipping background refresh: upstream call window closed")
                return False
            task = self._start_refresh(SWEEP_KEY, self._refresh_all)
        outcome = await asyncio.shield(task)
        return outcome.ok

    async def _refresh_all(self) -> FetchResult[List[TokenRecord]]:
        # Let single-token refreshes that started before the sweep land first,
        # so no id is ever being fetched twice at once.
        pending = [
            task for key, task in self._inflight.items()
            if key != SWEEP_KEY and not key.startswith(HISTORY_KEY_PREFIX)
        ]
        if pending:
            log.debug(f"Sweep waiting for {len(pending)} token refresh(es) in flight")
            await asyncio.wait(pending)
        result = await self.client.fetch_all(self._limit)
        if not result.ok:
            log.warning(f"Token sweep failed: {result.classification.value} {result.detail}")
            return result
        written = self.store.upsert_many(result.data)
        self._last_sweep_at = as_utc(self._clock())
        log.info(f"Token sweep cached {written}/{len(result.data)} tokens")
        return result

    # --- History ---

    async def get_history(self, token_id: str, days: int) -> PriceHistory:
        """
        Price history follows the same policy as tokens: a fresh cached series
        for the same window is served as-is, otherwise a refresh is attempted
        and any cached series (even for another window) is the fallback.
        """
        if days < 1:
            raise ValueError("days must be >= 1")
        cached = self.store.get_history(token_id)
        if (
            cached is not None
            and cached.days == days
            and as_utc(self._clock()) - cached.fetched_at <= self._threshold
        ):
            return cached

        key = f"{HISTORY_KEY_PREFIX}{token_id}:{days}"
        task = self._inflight.get(key)
        if task is None:
            if not self.governor.can_call_now():
                if cached is not None:
                    CACHE_FALLBACKS.labels(reason="governor").inc()
                    log.info(f"Returning cached historical data for {token_id}")
                    return cached
                raise HistoryUnavailable(token_id, retry_after=self.governor.seconds_until_callable())
            task = self._start_refresh(key, lambda: self._refresh_history(token_id, days))
        else:
            REFRESH_DEDUPED.inc()

        outcome = await self._await_refresh(task, has_fallback=cached is not None)
        if outcome is not None and outcome.ok:
            return outcome.data
        if cached is not None:
            CACHE_FALLBACKS.labels(reason=outcome.classification.value if outcome else "refresh_pending").inc()
            return cached
        raise HistoryUnavailable(token_id, retry_after=self.governor.seconds_until_callable())

    async def _refresh_history(self, token_id: str, days: int) -> FetchResult[PriceHistory]:
        result = await self.client.fetch_history(token_id, days)
        if result.ok:
            self.store.save_history(result.data)
        else:
            log.warning(f"History refresh for '{token_id}' failed: {result.classification.value}")
        return result

    # --- In-flight bookkeeping ---

    def _start_refresh(self, key: str, factory: Callable[[], Awaitable[FetchResult]]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._guarded(key, factory), name=f"refresh:{key}")
        self._inflight[key] = task
        task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return task

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _guarded(self, key: str, factory: Callable[[], Awaitable[FetchResult]]) -> FetchResult:
        try:
            return await factory()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # The cache and governor must outlive any failure in a refresh.
            log.error(f"Refresh '{key}' crashed: {e}", exc_info=True)
            return FetchResult(Classification.UPSTREAM_UNAVAILABLE, detail=str(e))

    async def _await_refresh(self, task: asyncio.Task, has_fallback: bool) -> Optional[FetchResult]:
        """
        Waits for a shared refresh. Returns None if the caller has a fallback
        and the refresh did not finish within the wait budget.
        """
        if not has_fallback:
            return await asyncio.shield(task)
        if self._wait_timeout <= 0:
            return task.result() if task.done() and not task.cancelled() else None
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self._wait_timeout)
        except asyncio.TimeoutError:
            log.info(f"Refresh {task.get_name()} still running; serving cached data")
            return None
