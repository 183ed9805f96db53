"""
Health, status and metrics endpoints - no authentication required
"""

from fastapi import APIRouter, Request, Response

from .. import config
from ..services.prometheus_metrics import prometheus_metrics

router = APIRouter(tags=["system"])


@router.get("/healthz", include_in_schema=False)
async def healthz():
    return {"status": "ok"}


@router.get("/status")
def get_status(request: Request):
    """Served database generation and refresher state"""
    store = request.app.state.store_holder.current()
    refresher = request.app.state.refresher
    return {
        "status": "ok",
        "version": config.API_VERSION,
        "database": {
            "path": store.path,
            "generation": store.generation,
            "opened_at": store.opened_at,
            **store.metadata(),
        },
        "refresh": refresher.status(),
    }


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    # lookup, refresh and generation collectors in exposition format
    return Response(content=prometheus_metrics.get_metrics(),
                    media_type=prometheus_metrics.get_content_type())
