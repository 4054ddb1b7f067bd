"""
EngageSphere Backend - Access Log Middleware
=============================================

What:  One access line per request, plus a slow-request warning for the
       routes that wait on PayPal.
How:   Times the downstream call; level follows the status class.

Request bodies are never logged: they carry user ids, amounts and payer data.

Gateway-bound routes make two PayPal round-trips (token + order/capture):
    POST /payment/create     usually 0.5-2s
    POST /payment/capture    usually 0.5-3s
Anything slower than GATEWAY_SLOW_MS is logged at WARNING even on success,
so a degrading PayPal sandbox shows up before requests start timing out.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import client_address, request_id_var

logger = logging.getLogger("engagesphere.access")

GATEWAY_ROUTES = frozenset({"/payment/create", "/payment/capture"})
GATEWAY_SLOW_MS = 5000.0
QUIET_PATHS = frozenset({"/health"})


def _level_for(status: int, path: str, duration_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    if path in GATEWAY_ROUTES and duration_ms > GATEWAY_SLOW_MS:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access logging for every path except the health probe."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        rid = request_id_var.get("")
        logger.log(
            _level_for(response.status_code, path, duration_ms),
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            response.status_code,
            duration_ms,
            rid,
            client_address(request),
            extra={
                "request_id": rid,
                "route": path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "gateway_bound": path in GATEWAY_ROUTES,
            },
        )
        return response
