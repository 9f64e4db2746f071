"""
Fixed-window request limiter keyed by client address.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."


class FixedWindowLimiter:
    """Counts hits per key inside windows of ``window_seconds``."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> tuple[bool, float]:
        """Record a request; returns (allowed, seconds until the window resets)."""
        now = self.clock()
        with self._lock:
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
            # Drop stale windows so idle clients do not accumulate.
            if len(self._windows) > 10_000:
                self._windows = {
                    k: v for k, v in self._windows.items() if now - v[0] < self.window_seconds
                }
        retry_after = max(0.0, started + self.window_seconds - now)
        return count <= self.max_requests, retry_after


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, limiter: FixedWindowLimiter, path_prefix: str = "/api"):
        super().__init__(app)
        self.limiter = limiter
        self.path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)
        client = request.client.host if request.client else "unknown"
        allowed, retry_after = self.limiter.hit(client)
        if not allowed:
            logger.warning("Rate limit exceeded for %s on %s", client, request.url.path)
            return JSONResponse(
                status_code=429,
                content={"message": RATE_LIMIT_MESSAGE},
                headers={"Retry-After": str(math.ceil(retry_after))},
            )
        return await call_next(request)
