"""
FastAPI application entry point for the Taskboard API.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskboard.config import Settings, get_settings
from taskboard.db import DbClient
from taskboard.dependencies import build_auth_service, build_db_client, build_rate_limiter
from taskboard.errors import ApiError, RateLimited
from taskboard.logging_setup import configure_logging
from taskboard.ratelimit import RateLimiter
from taskboard.routes import router

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


def _error_body(message: str, errors: Optional[list] = None, **extra) -> dict:
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    body.update(extra)
    return body


def _field_errors(exc: RequestValidationError) -> list[dict]:
    errors = []
    for error in exc.errors():
        loc = [
            str(part)
            for part in error.get("loc", ())
            if part not in ("body", "query", "path")
        ]
        errors.append(
            {"field": ".".join(loc) or "body", "message": error.get("msg", "Invalid value")}
        )
    return errors


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _unexpected_error_response(
    request: Request, exc: Exception, settings: Settings
) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    extra = {"error": str(exc)} if settings.is_development else {}
    return JSONResponse(
        status_code=500,
        content=_error_body("Internal server error", **extra),
    )


def security_headers(settings: Settings) -> dict[str, str]:
    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "SAMEORIGIN",
        "Referrer-Policy": "no-referrer",
    }
    if not settings.is_development:
        headers["Strict-Transport-Security"] = "max-age=15552000; includeSubDomains"
    return headers


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        headers = None
        if isinstance(exc, RateLimited):
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.message, exc.errors),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=_error_body("Validation failed", _field_errors(exc)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        return _unexpected_error_response(request, exc, settings)


def install_middleware(app: FastAPI, settings: Settings) -> None:
    # Innermost: unexpected errors become a response here, so the CORS and
    # security headers below are still applied to it.
    @app.middleware("http")
    async def catch_unexpected(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            return _unexpected_error_response(request, exc, settings)

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if not request.url.path.startswith(settings.api_prefix):
            return await call_next(request)
        limiter: RateLimiter = request.app.state.rate_limiter
        result = await run_in_threadpool(limiter.hit, _client_key(request))
        headers = {
            "RateLimit-Limit": str(result.limit),
            "RateLimit-Remaining": str(result.remaining),
        }
        if not result.allowed:
            logger.warning("Rate limit exceeded for %s", _client_key(request))
            exc = RateLimited(result.retry_after)
            headers["Retry-After"] = str(result.retry_after)
            return JSONResponse(
                status_code=exc.status_code,
                content=_error_body(exc.message),
                headers=headers,
            )
        response = await call_next(request)
        response.headers.update(headers)
        return response

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s %s %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in security_headers(settings).items():
            response.headers.setdefault(name, value)
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    db: Optional[DbClient] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Taskboard API",
        version=API_VERSION,
        docs_url="/api-docs",
    )
    app.state.settings = settings
    app.state.db = db if db is not None else build_db_client(settings)
    app.state.auth = build_auth_service(settings, app.state.db)
    app.state.rate_limiter = (
        rate_limiter if rate_limiter is not None else build_rate_limiter(settings)
    )

    install_middleware(app, settings)
    register_exception_handlers(app, settings)

    @app.get("/")
    def index():
        return {
            "success": True,
            "message": "Task Management API is running",
            "version": API_VERSION,
            "endpoints": {
                "documentation": "/api-docs",
                "auth": f"{settings.api_prefix}/auth",
                "tasks": f"{settings.api_prefix}/tasks",
                "users": f"{settings.api_prefix}/users",
            },
        }

    @app.get("/health")
    def health():
        return {
            "success": True,
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
