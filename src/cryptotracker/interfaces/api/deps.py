# src/cryptotracker/interfaces/api/deps.py

from __future__ import annotations
from fastapi import HTTPException, Request

from cryptotracker.application.services.market_data_service import MarketDataService
from cryptotracker.application.services.token_query_service import TokenQueryService

# --- Service Dependencies ---

def _get_service(request: Request, name: str):
    services = request.app.state.services or {}
    service = services.get(name)
    if not service:
        raise HTTPException(status_code=503, detail=f"{name} is currently unavailable.")
    return service

def get_market_data_service(request: Request) -> MarketDataService:
    """Dependency to get the MarketDataService (the cache mediator) from the app state."""
    return _get_service(request, "market_data_service")

def get_token_query_service(request: Request) -> TokenQueryService:
    """Dependency to get the TokenQueryService instance from the app state."""
    return _get_service(request, "token_query_service")
