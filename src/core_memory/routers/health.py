from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..dependencies import get_metrics
from ..metrics import MetricsRegistry

router = APIRouter(tags=["health"])


@router.get("/healthz")
def health_check() -> dict[str, str]:
    """Simple health check endpoint.

    ライブネス/レディネス確認用の簡易エンドポイント。
    """
    return {"status": "ok"}


@router.get("/metrics")
def metrics_snapshot(registry: MetricsRegistry = Depends(get_metrics)) -> JSONResponse:
    """Per-path latency (p95) and error counters, plus review rating counters."""
    return JSONResponse(registry.snapshot())
