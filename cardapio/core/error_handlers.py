from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cardapio.services.order_errors import (
    VALIDATION_ERRORS,
    Conflict,
    InvalidTransition,
    NotFound,
    OrderError,
    Unavailable,
)

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 1


def status_code_for(exc: OrderError) -> int:
    if isinstance(exc, VALIDATION_ERRORS):
        return 422
    if isinstance(exc, (InvalidTransition, Conflict)):
        return 409
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, Unavailable):
        return 503
    return 400


async def order_error_handler(request: Request, exc: OrderError) -> JSONResponse:
    status_code = status_code_for(exc)
    logger.info(
        "order error code=%s status_code=%s path=%s",
        exc.code,
        status_code,
        request.url.path,
    )
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code, "retryable": exc.retryable},
        headers=headers,
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderError, order_error_handler)
