# File: src/cryptotracker/interfaces/api/routers/tokens.py
"""
Token endpoints. Thin projections over the mediator and the query service;
the only logic here is mapping domain errors onto HTTP statuses.
"""

import logging
import math
from typing import List

from fastapi import APIRouter, Depends, Path, Query
from fastapi.responses import JSONResponse

from cryptotracker.application.services.market_data_service import MarketDataService
from cryptotracker.application.services.token_query_service import TokenQueryService
from cryptotracker.domain.errors import TokenNotFound, TokenUnavailable, HistoryUnavailable
from cryptotracker.interfaces.api.deps import get_market_data_service, get_token_query_service
from cryptotracker.interfaces.api.schemas import TokenOut, FavoriteIn, StatsOut, HistoryOut

log = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Tokens"])

TOKENS_RETRY_AFTER = 60
HISTORY_RETRY_AFTER = 30


def _retry_after(seconds: float) -> int:
    return max(1, math.ceil(seconds))


def _unavailable(message: str, retry_after: int) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": message, "retry_after": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


def _not_found() -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Token not found"})


@router.get("/tokens", response_model=List[TokenOut])
async def get_tokens(mds: MarketDataService = Depends(get_market_data_service)):
    tokens = await mds.get_all_tokens()
    if not tokens:
        return _unavailable("Data temporarily unavailable. Please try again in a moment.", TOKENS_RETRY_AFTER)
    return [TokenOut.model_validate(t) for t in tokens]


@router.post("/tokens/favorite", response_model=TokenOut)
def toggle_favorite(body: FavoriteIn, queries: TokenQueryService = Depends(get_token_query_service)):
    try:
        if body.is_favorite is None:
            token = queries.toggle_favorite(body.token_id)
        else:
            token = queries.set_favorite(body.token_id, body.is_favorite)
    except TokenNotFound:
        return _not_found()
    return TokenOut.model_validate(token)


@router.get("/tokens/{token_id}", response_model=TokenOut)
async def get_token(token_id: str, mds: MarketDataService = Depends(get_market_data_service)):
    try:
        token = await mds.get_token(token_id)
    except TokenUnavailable as e:
        log.info(f"Token '{token_id}' unavailable: {e.reason}")
        return _unavailable("Data temporarily unavailable. Please try again in a moment.", _retry_after(e.retry_after))
    except TokenNotFound:
        return _not_found()
    return TokenOut.model_validate(token)


@router.get("/favorites", response_model=List[TokenOut])
def get_favorites(queries: TokenQueryService = Depends(get_token_query_service)):
    return [TokenOut.model_validate(t) for t in queries.list_favorites()]


@router.get("/search", response_model=List[TokenOut])
def search_tokens(q: str = Query(default=""), queries: TokenQueryService = Depends(get_token_query_service)):
    try:
        results = queries.search(q)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    return [TokenOut.model_validate(t) for t in results]


@router.get("/stats", response_model=StatsOut)
def get_stats(queries: TokenQueryService = Depends(get_token_query_service)):
    return StatsOut.model_validate(queries.stats(), from_attributes=True)


@router.get("/history/{token_id}/{days}", response_model=HistoryOut)
async def get_historical_data(
    token_id: str,
    days: int = Path(..., ge=1, le=365),
    mds: MarketDataService = Depends(get_market_data_service),
):
    try:
        history = await mds.get_history(token_id, days)
    except HistoryUnavailable as e:
        log.info(f"History for '{token_id}' unavailable (upstream callable in {e.retry_after:.0f}s)")
        return _unavailable(
            "Historical data temporarily unavailable. Please try again shortly.",
            max(HISTORY_RETRY_AFTER, _retry_after(e.retry_after)),
        )
    return HistoryOut.from_history(history)
