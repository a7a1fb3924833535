from __future__ import annotations

import logging
from typing import Callable

from fastapi import FastAPI, Request, Response

from api.observability import (
    configure_logging,
    monotonic_ms,
    new_request_id,
    request_log_fields,
    reset_request_id,
    set_request_id,
)
from api.routes import router
from core.config import get_settings

logger = logging.getLogger(__name__)

MAX_REQUEST_ID_LENGTH = 128


def _incoming_request_id(request: Request, header_name: str) -> str:
    supplied = (request.headers.get(header_name) or "").strip()
    return supplied[:MAX_REQUEST_ID_LENGTH] or new_request_id()


def _log_request(request: Request, status_code: int, started_ms: float, *, failed: bool = False) -> None:
    fields = request_log_fields(
        method=request.method,
        path=request.url.path,
        status_code=status_code,
        duration_ms=monotonic_ms() - started_ms,
        client_ip=request.client.host if request.client else None,
    )
    if failed:
        logger.exception("http_request_error", extra=fields)
    elif status_code >= 500:
        logger.error("http_request", extra=fields)
    else:
        logger.info("http_request", extra=fields)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    header_name = settings.request_id_header_name or "X-Request-ID"

    app = FastAPI(title="Run Plan Schedule API", version="1.0.0")
    app.include_router(router)

    @app.middleware("http")
    async def bind_request_id(request: Request, call_next: Callable) -> Response:
        request_id = _incoming_request_id(request, header_name)
        token = set_request_id(request_id)
        started_ms = monotonic_ms()
        try:
            try:
                response = await call_next(request)
            except Exception:
                _log_request(request, 500, started_ms, failed=True)
                raise
            response.headers[header_name] = request_id
            _log_request(request, response.status_code, started_ms)
            return response
        finally:
            reset_request_id(token)

    return app


app = create_app()
