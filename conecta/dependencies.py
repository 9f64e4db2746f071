"""
Dependency wiring for the FastAPI app.

Services are built once per application in ``create_app`` and stored on
``app.state``; the providers below hand them to route handlers.
"""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, Request

from conecta.cache import InMemoryQueryCache, QueryCache, RedisQueryCache, RequestBatcher
from conecta.config import Settings
from conecta.db import DbClient, InMemoryDbClient, SqlDbClient, UserRecord
from conecta.errors import AuthenticationError, AuthorizationError
from conecta.realtime import RealtimeHub
from conecta.security import TokenService, extract_bearer_token, parse_duration


def build_db_client(settings: Settings) -> DbClient:
    if settings.use_in_memory_backends or not settings.database_url:
        return InMemoryDbClient()
    return SqlDbClient(settings.database_url)


def build_query_cache(settings: Settings) -> QueryCache:
    if settings.redis_url and not settings.use_in_memory_backends:
        return RedisQueryCache(
            url=settings.redis_url,
            key_prefix=settings.redis_key_prefix,
            default_ttl=settings.cache_ttl_seconds,
        )
    return InMemoryQueryCache(default_ttl=settings.cache_ttl_seconds)


def build_token_service(settings: Settings) -> TokenService:
    return TokenService(
        secret=settings.jwt_secret,
        expires_in=parse_duration(settings.jwt_expires_in),
    )


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_db_client(request: Request) -> DbClient:
    return request.app.state.db


def get_query_cache(request: Request) -> QueryCache:
    return request.app.state.cache


def get_batcher(request: Request) -> RequestBatcher:
    return request.app.state.batcher


def get_hub(request: Request) -> RealtimeHub:
    return request.app.state.hub


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def _resolve_user(request: Request, token: str) -> UserRecord:
    user_id = request.app.state.token_service.decode_access_token(token)
    user = request.app.state.db.get_user(user_id)
    if user is None:
        raise AuthenticationError("Not authorized, user not found")
    request.state.user = user
    return user


def get_current_user(request: Request) -> UserRecord:
    """Bearer-token gate: 401 unless the token is valid and its user exists."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        raise AuthenticationError("Not authorized, no token")
    return _resolve_user(request, token)


def get_optional_user(request: Request) -> Optional[UserRecord]:
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        return None
    try:
        return _resolve_user(request, token)
    except AuthenticationError:
        return None


def require_role(role: str) -> Callable[..., UserRecord]:
    """Build a dependency that only admits users with ``role``."""

    def dependency(user: UserRecord = Depends(get_current_user)) -> UserRecord:
        if user.role != role:
            raise AuthorizationError(f"Not authorized as an {role}")
        return user

    return dependency


require_admin = require_role("admin")
