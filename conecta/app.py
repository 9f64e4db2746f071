"""
FastAPI application entry point for the Conecta backend.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from conecta.cache import RequestBatcher, run_sweeper
from conecta.config import Settings, get_settings
from conecta.dependencies import build_db_client, build_query_cache, build_token_service
from conecta.errors import install_exception_handlers
from conecta.ratelimit import FixedWindowLimiter, RateLimitMiddleware
from conecta.realtime import RealtimeHub
from conecta.realtime import router as realtime_router
from conecta.routes import health, router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.hub.bind(asyncio.get_running_loop())
    sweeper = asyncio.create_task(
        run_sweeper(app.state.cache, app.state.settings.cache_sweep_interval_seconds)
    )
    logger.info("Conecta API started (%s)", app.state.settings.environment)
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        logger.info("Conecta API stopped")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Conecta Alicante API", version="1.0.0", lifespan=lifespan)

    app.state.settings = settings
    app.state.db = build_db_client(settings)
    app.state.cache = build_query_cache(settings)
    app.state.batcher = RequestBatcher(window_ms=settings.batch_window_ms)
    app.state.hub = RealtimeHub()
    app.state.token_service = build_token_service(settings)

    if settings.rate_limit_max_requests:
        app.add_middleware(
            RateLimitMiddleware,
            limiter=FixedWindowLimiter(
                settings.rate_limit_max_requests,
                settings.rate_limit_window_ms / 1000.0,
            ),
            path_prefix=settings.api_prefix,
        )
    # Outermost: 429 responses also need CORS headers.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_exception_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(realtime_router)
    app.add_api_route("/", health.health, methods=["GET"], include_in_schema=False)
    return app
