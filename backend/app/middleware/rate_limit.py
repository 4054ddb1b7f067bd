"""
EngageSphere Backend - Rate Limiting Middleware
================================================

What:  Per-client sliding window limiter in front of every ledger and
       gateway route.
How:   A deque of request timestamps per client address. Expired entries
       fall off the left; a full window answers 429 with Retry-After.

Limits come from settings (RATE_LIMIT_REQUESTS per RATE_LIMIT_WINDOW
seconds) and are read on every request. State is per process, so each
worker keeps its own windows.
"""

import logging
import time
from collections import deque
from typing import Deque, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import settings
from app.exceptions import RateLimitExceededError
from app.middleware.request_id import client_address, request_id_var

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({"/health", "/docs", "/openapi.json", "/redoc"})

# Idle clients are swept once this many are tracked
SWEEP_THRESHOLD = 10_000


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory sliding window log keyed by client address."""

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._windows: Dict[str, Deque[float]] = {}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        now = time.monotonic()
        window = settings.rate_limit_window
        client = client_address(request)

        hits = self._windows.setdefault(client, deque())
        while hits and hits[0] <= now - window:
            hits.popleft()

        if len(hits) >= settings.rate_limit_requests:
            exc = RateLimitExceededError(retry_after=int(hits[0] + window - now) + 1)
            logger.warning(
                "Rate limit exceeded for %s on %s %s (%d requests in %ds)",
                client,
                request.method,
                request.url.path,
                len(hits),
                window,
            )
            # Raised exceptions never reach the app's handlers from here
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": exc.message,
                    "code": exc.code,
                    "details": {"retry_after": exc.retry_after},
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(exc.retry_after)},
            )

        hits.append(now)
        if len(self._windows) > SWEEP_THRESHOLD:
            self._sweep(now - window)
        return await call_next(request)

    def _sweep(self, cutoff: float) -> None:
        idle = [c for c, hits in self._windows.items() if not hits or hits[-1] <= cutoff]
        for c in idle:
            del self._windows[c]
        if idle:
            logger.debug("Dropped %d idle rate limit windows", len(idle))
