"""
Global middleware.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)


def register_middleware(app: FastAPI) -> None:
    """Attach timing and cache-control middleware."""

    @app.middleware("http")
    async def request_timer(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        # Responses may carry tokens or profiles; keep them out of shared caches.
        response.headers.setdefault("Cache-Control", "no-store")
        logger.debug(
            "%s %s → %d in %.3fs",
            request.method,
            request.url.path,
            response.status_code,
            elapsed,
        )
        return response
