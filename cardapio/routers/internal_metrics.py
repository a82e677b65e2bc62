from __future__ import annotations

from fastapi import APIRouter

from cardapio.core.metrics import request_metrics

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("")
def endpoint_metrics():
    return {"endpoints": request_metrics.snapshot()}


@router.get("/establishments")
def establishment_metrics():
    return {"establishments": request_metrics.snapshot_per_establishment()}
