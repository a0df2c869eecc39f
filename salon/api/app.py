"""
FastAPI application factory.

Routes raise domain errors from ``salon.errors``; the handlers here render
them (and request validation failures) as ``{"success": false, ...}``
bodies with the mapped status code. Every request runs under a correlation
ID taken from ``X-Request-ID`` or freshly generated, and echoed back, and
is counted against the per-client limit in ``salon.api.rate_limit``.
"""

import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from salon.api import bookings, payments, services
from salon.api.rate_limit import GENERAL_SCOPE, RequestThrottle
from salon.container import Container, build_container
from salon.errors import RateLimitedError, SalonError
from salon.logging_context import (
    get_request_logger,
    new_request_id,
    reset_request_id,
    set_request_id,
)

logger = get_request_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _field_errors(exc: RequestValidationError) -> list[dict]:
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(location) or "body", "message": error.get("msg", "Invalid value")})
    return errors


def _error_response(exc: SalonError) -> JSONResponse:
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimitedError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def create_app(container: Optional[Container] = None) -> FastAPI:
    """Build the API around ``container``, or one built from environment settings."""
    if container is None:
        from salon.config import settings

        container = build_container(settings)

    app = FastAPI(title=f"{container.config.business.name} Booking API")
    app.state.container = container
    app.state.started_at = time.monotonic()
    app.state.throttle = throttle = RequestThrottle(container.config.rate_limit)

    origins = [o.strip() for o in container.config.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization", REQUEST_ID_HEADER],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        token = set_request_id(request_id)
        started = time.perf_counter()
        try:
            if not throttle.exempt(request.url.path):
                client = throttle.client_key(request)
                await run_in_threadpool(throttle.check, GENERAL_SCOPE, client)
            response = await call_next(request)
        except RateLimitedError as exc:
            response = _error_response(exc)
        finally:
            reset_request_id(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "%s %s -> %d (%.1f ms) [%s]",
            request.method, request.url.path, response.status_code,
            (time.perf_counter() - started) * 1000, request_id,
        )
        return response

    @app.exception_handler(SalonError)
    async def salon_error_handler(request: Request, exc: SalonError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        body = {
            "success": False,
            "code": "validation_failed",
            "message": "Validation failed",
            "errors": _field_errors(exc),
        }
        return JSONResponse(status_code=400, content=body)

    @app.get("/health")
    def health():
        return {
            "status": "OK",
            "uptime_seconds": round(time.monotonic() - app.state.started_at, 1),
            "storage": container.store.backend,
        }

    app.include_router(services.router)
    app.include_router(bookings.router)
    app.include_router(payments.router)
    return app
