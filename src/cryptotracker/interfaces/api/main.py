# --- START OF FILE: src/cryptotracker/interfaces/api/main.py ---
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cryptotracker import __version__
from cryptotracker.config import Settings, settings as default_settings
from cryptotracker.boot import build_services
from cryptotracker.logging_conf import setup_logging
from cryptotracker.interfaces.api.routers import tokens as tokens_router
from cryptotracker.interfaces.api.metrics import router as metrics_router

log = logging.getLogger(__name__)


def create_app(config: Optional[Settings] = None, services: Optional[Dict[str, Any]] = None) -> FastAPI:
    """
    Builds the API. `services` lets callers (tests, embedding apps) supply a
    pre-wired service dict; otherwise services are built on startup.
    """
    config = config or default_settings

    app = FastAPI(title="CryptoTracker API", version=__version__)
    app.state.config = config
    app.state.services = services

    origins = [o.strip() for o in config.CORS_ORIGINS.split(",") if o.strip()] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def on_startup():
        setup_logging(config.ENV)
        log.info("🚀 Application startup sequence initiated...")
        if app.state.services is None:
            app.state.services = build_services(config)

        if config.BACKGROUND_REFRESH_ENABLED:
            refresher = app.state.services.get("token_refresher")
            if refresher:
                refresher.start()
        log.info("🚀 Application startup complete.")

    @app.on_event("shutdown")
    async def on_shutdown():
        services = app.state.services or {}
        refresher = services.get("token_refresher")
        if refresher:
            await refresher.stop()
        engine = services.get("engine")
        if engine is not None:
            engine.dispose()

    @app.get("/")
    def root(): return {"message": "CryptoTracker API Running"}

    @app.get("/health")
    def health_check():
        services = app.state.services or {}
        governor = services.get("governor")
        mds = services.get("market_data_service")
        body: Dict[str, Any] = {"status": "ok"}
        if governor is not None:
            state = governor.snapshot()
            body["governor"] = {
                "can_call_now": governor.can_call_now(),
                "next_allowed_call_at": state.next_allowed_call_at.isoformat() if state.next_allowed_call_at else None,
                "backoff_until": state.backoff_until.isoformat() if state.backoff_until else None,
            }
        if mds is not None:
            body["last_sweep_at"] = mds.last_sweep_at.isoformat() if mds.last_sweep_at else None
            body["inflight"] = mds.inflight_ids()
        return body

    app.include_router(tokens_router.router)
    if config.METRICS_ENABLED:
        app.include_router(metrics_router)
    return app


app = create_app()
# --- END OF FILE ---
