"""HTTP middleware: request correlation, access logging and response headers."""

import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from booking_core.config import get_settings
from booking_core.utils.logging import get_logger, log_error, log_request, set_request_id

logger = get_logger("middleware")

REQUEST_ID_HEADER = "X-Request-ID"
# Requests slower than this are logged at WARNING (lock contention shows up here first)
SLOW_REQUEST_MS = 1000.0


def _client_ip(request: Request):
    return request.client.host if request.client else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tag the request with an ID, time it and write one access log line.

    The ID is taken from `X-Request-ID` when the caller sends one so a
    checkout can be followed across services. Exceptions escaping the
    handlers are logged with that ID and re-raised.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        set_request_id(request_id)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            log_error(
                e,
                context={
                    "method": request.method,
                    "path": request.url.path,
                    "client_ip": _client_ip(request),
                },
            )
            raise
        duration_ms = (time.perf_counter() - started) * 1000

        log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
            client_ip=_client_ip(request),
        )
        if duration_ms > SLOW_REQUEST_MS:
            logger.warning(f"Slow request: {request.method} {request.url.path} took {duration_ms:.0f}ms")

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"
        return response


class ResponseHeadersMiddleware(BaseHTTPMiddleware):
    """Security headers everywhere; API responses are never cacheable."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Remaining capacity and lock state go stale within seconds
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"
        if get_settings().is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def setup_cors_middleware(app: FastAPI) -> None:
    cors = get_settings().cors
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors.origins,
        allow_credentials=cors.allow_credentials,
        allow_methods=cors.allow_methods,
        allow_headers=cors.allow_headers,
        expose_headers=[REQUEST_ID_HEADER],
        max_age=cors.max_age,
    )
    logger.info(f"CORS middleware configured: origins={cors.origins}")


def setup_middleware(app: FastAPI) -> None:
    """Register middleware. The last one added is the outermost."""
    setup_cors_middleware(app)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ResponseHeadersMiddleware)
    logger.info("Middleware configured: CORS, RequestContext, ResponseHeaders")
