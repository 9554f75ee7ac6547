# src/cryptotracker/infrastructure/pricing/coingecko_client.py
"""
CoinGecko client that never sleeps and never raises.

Every call asks the shared `RateLimitGovernor` for a slot first, then returns
a `FetchResult` classifying the outcome. Records are decoded and validated
here, once; nothing malformed is ever handed to the cache.
"""

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

import httpx

from cryptotracker.domain.entities import TokenRecord, PriceHistory, PricePoint, utcnow
from cryptotracker.domain.errors import InvalidTokenRecord
from cryptotracker.infrastructure.monitoring.metrics import UPSTREAM_CALLS, UPSTREAM_LATENCY
from .governor import RateLimitGovernor

log = logging.getLogger(__name__)

T = TypeVar("T")


class Classification(str, Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    MALFORMED_RESPONSE = "malformed_response"
    NOT_FOUND = "not_found"
    # The governor closed the window before the request went out; no I/O happened.
    DEFERRED = "deferred"


@dataclass
class FetchResult(Generic[T]):
    classification: Classification
    data: Optional[T] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.classification is Classification.SUCCESS


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidTokenRecord(f"expected a number, got {value!r}")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidTokenRecord(f"expected a number, got {value!r}") from e
    if not result.is_finite():
        raise InvalidTokenRecord(f"expected a finite number, got {value!r}")
    return result


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidTokenRecord(f"expected a number, got {value!r}")
    try:
        result = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidTokenRecord(f"expected a number, got {value!r}") from e
    if not math.isfinite(result):
        raise InvalidTokenRecord(f"expected a finite number, got {value!r}")
    return result


def _require_str(market: Dict[str, Any], key: str) -> str:
    value = market.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidTokenRecord(f"missing required field '{key}'")
    return value


def decode_market(market: Any, fetched_at: datetime) -> TokenRecord:
    """
    Turns one `/coins/markets` entry into a validated TokenRecord.
    Raises InvalidTokenRecord on any schema problem.
    """
    if not isinstance(market, dict):
        raise InvalidTokenRecord(f"market entry must be an object, got {type(market).__name__}")

    token_id = _require_str(market, "id")
    price = _to_decimal(market.get("current_price"))
    if price is None:
        raise InvalidTokenRecord(f"{token_id}: current_price is null")

    image = market.get("image")
    record = TokenRecord(
        token_id=token_id,
        symbol=_require_str(market, "symbol"),
        name=_require_str(market, "name"),
        current_price=price,
        last_updated=fetched_at,
        market_cap=_to_decimal(market.get("market_cap")) or Decimal("0"),
        volume_24h=_to_decimal(market.get("total_volume")) or Decimal("0"),
        price_change_24h=_to_decimal(market.get("price_change_24h")) or Decimal("0"),
        price_change_percentage_24h=_to_float(market.get("price_change_percentage_24h")) or 0.0,
        high_24h=_to_decimal(market.get("high_24h")),
        low_24h=_to_decimal(market.get("low_24h")),
        circulating_supply=_to_decimal(market.get("circulating_supply")),
        total_supply=_to_decimal(market.get("total_supply")),
        ath=_to_decimal(market.get("ath")),
        ath_change_percentage=_to_float(market.get("ath_change_percentage")),
        atl=_to_decimal(market.get("atl")),
        atl_change_percentage=_to_float(market.get("atl_change_percentage")),
        image=image if isinstance(image, str) else None,
    )
    return record.validate()


def _decode_series(raw: Any, name: str) -> List[PricePoint]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise InvalidTokenRecord(f"'{name}' must be a list")
    points = []
    for pair in raw:
        if not isinstance(pair, (list, tuple)) or len(pair) < 2 or pair[1] is None:
            raise InvalidTokenRecord(f"'{name}' contains a malformed point: {pair!r}")
        points.append(PricePoint(timestamp_ms=int(pair[0]), value=_to_decimal(pair[1])))
    return points


class CoinGeckoClient:
    BASE_URL = "https://api.coingecko.com/api/v3"

    def __init__(
        self,
        governor: RateLimitGovernor,
        base_url: str = BASE_URL,
        timeout: float = 10.0,
        api_key: Optional[str] = None,
        user_agent: str = "CryptoTracker/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.governor = governor
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._clock = clock
        self._headers = {"User-Agent": user_agent, "Accept": "application/json"}
        if api_key:
            self._headers["x-cg-demo-api-key"] = api_key

    async def _get(self, endpoint: str, path: str, params: Dict[str, Any]) -> FetchResult[Any]:
        """Issues one governed GET and classifies the transport outcome."""
        if not self.governor.try_acquire():
            log.debug(f"CoinGecko call to {path} deferred: governor window closed")
            return self._finish(endpoint, FetchResult(Classification.DEFERRED, detail="call window closed"))

        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._headers,
                transport=self._transport,
            ) as client:
                response = await client.get(path, params=params)
        except httpx.TimeoutException as e:
            log.error(f"CoinGecko request to {path} timed out: {e}")
            return self._finish(endpoint, FetchResult(Classification.UPSTREAM_UNAVAILABLE, detail="timeout"))
        except httpx.HTTPError as e:
            log.error(f"CoinGecko request to {path} failed: {e}")
            return self._finish(endpoint, FetchResult(Classification.UPSTREAM_UNAVAILABLE, detail=str(e)))
        finally:
            UPSTREAM_LATENCY.labels(endpoint=endpoint).observe(time.perf_counter() - started)

        if response.status_code == 429:
            log.warning(f"CoinGecko 429 (Too Many Requests) for {path}.")
            self.governor.record_rate_limited()
            return self._finish(endpoint, FetchResult(Classification.RATE_LIMITED, detail="HTTP 429"))
        if response.status_code == 404:
            return self._finish(endpoint, FetchResult(Classification.NOT_FOUND, detail="HTTP 404"))
        if not response.is_success:
            log.error(f"CoinGecko HTTP error for {path}: {response.status_code}")
            return self._finish(
                endpoint,
                FetchResult(Classification.UPSTREAM_UNAVAILABLE, detail=f"HTTP {response.status_code}"),
            )

        self.governor.record_success()
        try:
            payload = response.json()
        except ValueError as e:
            log.error(f"CoinGecko returned undecodable JSON for {path}: {e}")
            return self._finish(endpoint, FetchResult(Classification.MALFORMED_RESPONSE, detail="invalid JSON"))
        return FetchResult(Classification.SUCCESS, data=payload)

    @staticmethod
    def _finish(endpoint: str, result: FetchResult) -> FetchResult:
        UPSTREAM_CALLS.labels(endpoint=endpoint, classification=result.classification.value).inc()
        return result

    async def fetch_all(self, limit: int = 100) -> FetchResult[List[TokenRecord]]:
        """Fetches the top `limit` tokens by market cap."""
        params = {
            "vs_currency": "usd",
            "order": "market_cap_desc",
            "per_page": limit,
            "page": 1,
            "sparkline": "false",
            "price_change_percentage": "24h",
        }
        raw = await self._get("markets", "/coins/markets", params)
        if not raw.ok:
            return raw
        if not isinstance(raw.data, list):
            log.error("CoinGecko /coins/markets returned a non-list payload")
            return self._finish("markets", FetchResult(Classification.MALFORMED_RESPONSE, detail="expected a list"))
        if not raw.data:
            log.warning("CoinGecko returned an empty market list")
            return self._finish("markets", FetchResult(Classification.MALFORMED_RESPONSE, detail="empty result"))

        fetched_at = self._clock()
        tokens: List[TokenRecord] = []
        for entry in raw.data:
            try:
                tokens.append(decode_market(entry, fetched_at))
            except InvalidTokenRecord as e:
                log.warning(f"Dropping malformed CoinGecko market entry: {e}")

        if not tokens:
            return self._finish("markets", FetchResult(Classification.MALFORMED_RESPONSE, detail="no valid entries"))
        log.info(f"Fetched {len(tokens)} tokens from CoinGecko ({len(raw.data) - len(tokens)} dropped).")
        return self._finish("markets", FetchResult(Classification.SUCCESS, data=tokens))

    async def fetch_token(self, token_id: str) -> FetchResult[TokenRecord]:
        params = {
            "vs_currency": "usd",
            "ids": token_id,
            "order": "market_cap_desc",
            "sparkline": "false",
            "price_change_percentage": "24h",
        }
        raw = await self._get("market", "/coins/markets", params)
        if not raw.ok:
            return raw
        if not isinstance(raw.data, list):
            return self._finish("market", FetchResult(Classification.MALFORMED_RESPONSE, detail="expected a list"))

        entry = next((m for m in raw.data if isinstance(m, dict) and m.get("id") == token_id), None)
        if entry is None:
            if raw.data:
                log.warning(f"CoinGecko response for '{token_id}' did not contain that id")
            return self._finish("market", FetchResult(Classification.NOT_FOUND, detail="unknown id"))

        try:
            record = decode_market(entry, self._clock())
        except InvalidTokenRecord as e:
            log.warning(f"Malformed CoinGecko data for '{token_id}': {e}")
            return self._finish("market", FetchResult(Classification.MALFORMED_RESPONSE, detail=str(e)))
        return self._finish("market", FetchResult(Classification.SUCCESS, data=record))

    async def fetch_history(self, token_id: str, days: int) -> FetchResult[PriceHistory]:
        raw = await self._get("market_chart", f"/coins/{token_id}/market_chart", {"vs_currency": "usd", "days": days})
        if not raw.ok:
            return raw
        data = raw.data
        try:
            if not isinstance(data, dict) or "prices" not in data:
                raise InvalidTokenRecord("market_chart payload missing 'prices'")
            history = PriceHistory(
                token_id=token_id,
                days=days,
                fetched_at=self._clock(),
                prices=_decode_series(data.get("prices"), "prices"),
                market_caps=_decode_series(data.get("market_caps"), "market_caps"),
                total_volumes=_decode_series(data.get("total_volumes"), "total_volumes"),
            )
        except (InvalidTokenRecord, TypeError, ValueError) as e:
            log.warning(f"Malformed CoinGecko history for '{token_id}': {e}")
            return self._finish("market_chart", FetchResult(Classification.MALFORMED_RESPONSE, detail=str(e)))
        return self._finish("market_chart", FetchResult(Classification.SUCCESS, data=history))
