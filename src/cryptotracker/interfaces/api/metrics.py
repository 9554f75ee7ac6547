from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Request, Response

from cryptotracker.infrastructure.monitoring.metrics import CACHED_TOKENS, GOVERNOR_WAIT

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("")
def metrics(request: Request):
    # Point-in-time gauges are sampled on scrape rather than on every write.
    services = request.app.state.services or {}
    store = services.get("token_store")
    governor = services.get("governor")
    if store is not None:
        CACHED_TOKENS.set(len(store.get_all()))
    if governor is not None:
        GOVERNOR_WAIT.set(governor.seconds_until_callable())
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
