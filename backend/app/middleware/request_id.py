"""
EngageSphere Backend - Request ID Middleware
=============================================

What:  Correlation id per request, shared by access logs, service logs and
       error envelopes.
How:   Accepts a well-formed X-Request-ID from the caller (frontend, proxy),
       otherwise mints one. The id lives in a ContextVar for the duration
       of the request and is echoed in the response header.

A support ticket quoting `request_id` from an error envelope can be matched
to the gateway and ledger log lines of that request.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# Caller ids end up in log lines; anything else is replaced
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


def client_address(request: Request) -> str:
    """Peer address of the connection (the proxy's when behind one)."""
    return request.client.host if request.client else "unknown"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Binds `request_id_var` and sets the X-Request-ID response header."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        supplied = request.headers.get(REQUEST_ID_HEADER, "")
        rid = supplied if _VALID_REQUEST_ID.match(supplied) else new_request_id()

        # Not reset afterwards: the outermost error handler still reads it
        request_id_var.set(rid)
        request.state.request_id = rid
        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
