"""
Dependency wiring for the FastAPI app.

Long-lived resources (database client, auth service, rate limiter) are built
once by the app factory and kept on ``app.state``; request handlers receive
them through the ``get_*`` dependencies below.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from taskboard.config import Settings
from taskboard.db import DbClient, InMemoryDbClient, SqlDbClient
from taskboard.errors import InvalidToken
from taskboard.policy import Principal, require_admin
from taskboard.ratelimit import InMemoryRateLimiter, RateLimiter, RedisRateLimiter
from taskboard.security import AuthService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def build_db_client(settings: Settings) -> DbClient:
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info("Using in-memory database")
        return InMemoryDbClient()
    return SqlDbClient(settings.database_url)


def build_auth_service(settings: Settings, db: DbClient) -> AuthService:
    if settings.jwt_secret == "change-me":
        logger.warning("JWT_SECRET is not set; using the insecure default secret")
    return AuthService(
        db,
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        token_ttl=timedelta(hours=settings.jwt_expires_hours),
        bcrypt_rounds=settings.bcrypt_rounds,
    )


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.redis_url and not settings.use_in_memory_backends:
        return RedisRateLimiter(
            url=settings.redis_url,
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
            key_prefix=settings.redis_key_prefix,
        )
    return InMemoryRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


def get_db_client(request: Request) -> DbClient:
    return request.app.state.db


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth


def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth: AuthService = Depends(get_auth_service),
) -> Principal:
    if credentials is None:
        raise InvalidToken("Access denied. No token provided.")
    return auth.verify(credentials.credentials)


def get_admin_principal(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    require_admin(principal)
    return principal
