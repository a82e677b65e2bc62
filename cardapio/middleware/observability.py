from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from cardapio.core.metrics import request_metrics
from cardapio.core.request_context import clear_request_context, set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
ESTABLISHMENT_HEADER = "X-Establishment-ID"


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Request id, log estruturado e métricas de cada requisição."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        set_request_context(request_id=request_id, establishment_id=_establishment_from(request))
        started = time.perf_counter()

        response = None
        try:
            response = await call_next(request)
        finally:
            status_code = response.status_code if response is not None else 500
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            route = _route_template(request)
            establishment_id = _establishment_from(request)

            request_metrics.observe(
                endpoint=route,
                method=request.method,
                status_code=status_code,
                duration_ms=elapsed_ms,
                establishment_id=establishment_id,
            )
            logger.info(
                "%s %s -> %s",
                request.method,
                route,
                status_code,
                extra={
                    "endpoint": route,
                    "method": request.method,
                    "status_code": status_code,
                    "duration_ms": elapsed_ms,
                    "establishment_id": establishment_id,
                },
            )
            clear_request_context()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _route_template(request: Request) -> str:
    # /api/orders/{order_id} em vez de um caminho por pedido
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _establishment_from(request: Request) -> str | None:
    for source in (request.scope.get("path_params") or {}, request.query_params):
        value = source.get("establishment_id")
        if value:
            return str(value)
    return request.headers.get(ESTABLISHMENT_HEADER) or None
