"""HTTP middleware and exception handlers.

- ``RequestTrackingMiddleware``: X-Request-ID (echoed or generated),
  X-Process-Time, one access log line per request, 500 for anything unhandled
- ``SecurityHeadersMiddleware``: fixed response hardening headers
- ``setup_exception_handlers``: every error body is
  ``{"detail", "error", "request_id"}``
"""

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import get_settings
from core.exceptions import FlowlineException, InternalError
from core.logging_config import bind_request_context
from core.utils import get_client_ip

logger = logging.getLogger(__name__)

# Health checks hit these every few seconds
UNLOGGED_PATHS = frozenset({"/api/health", "/api/v1/health", "/api/health/ready"})

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store",
}
HSTS = "max-age=31536000; includeSubDomains"


def error_body(request: Request, detail, error: str) -> dict:
    return {
        "detail": detail,
        "error": error,
        "request_id": getattr(request.state, "request_id", None),
    }


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and time it.

    The id is bound into the logging context, so log lines from the route,
    the services and any run dispatched by the request all carry it.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        bind_request_context(request_id, path=request.url.path)
        started = time.monotonic()

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            detail = InternalError().message if get_settings().is_production else (
                str(exc) or InternalError().message
            )
            response = JSONResponse(
                status_code=500, content=error_body(request, detail, InternalError.error_code)
            )

        elapsed_ms = (time.monotonic() - started) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed_ms:.2f}ms"

        if request.url.path not in UNLOGGED_PATHS:
            logger.log(
                logging.WARNING if response.status_code >= 400 else logging.INFO,
                "%s %s -> %d (%.0fms) from %s",
                request.method,
                request.url.path,
                response.status_code,
                elapsed_ms,
                get_client_ip(request.headers),
            )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        if get_settings().is_production:
            response.headers["Strict-Transport-Security"] = HSTS
        return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(FlowlineException)
    async def flowline_exception_handler(request: Request, exc: FlowlineException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(request, exc.message, exc.error_code),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_body(request, jsonable_encoder(exc.errors()), "validation_error"),
        )
