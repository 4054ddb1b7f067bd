"""
EngageSphere Backend - Custom Exception Hierarchy
==================================================

What:  Application-specific exceptions for the payment subsystem.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return the JSON error envelope with the matching HTTP status code.
Who:   Raised by services, the gateway client, and middleware.

Exception Hierarchy:
    EngageSphereError (base)
    ├── ValidationError          → 400 Bad Request (missing input, unapproved order)
    ├── InvalidUserError         → 400 Bad Request (unknown userId at order creation)
    ├── NotFoundError            → 404 Not Found
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── GatewayError             → 500 Internal Server Error
    │   └── AuthError            → 500 (gateway rejected our client credentials)
    └── StoreError               → 500 Internal Server Error

`context` is logged server-side only. `details` (ValidationError,
GatewayError) is returned to the client: for capture validation failures it
holds PayPal's raw error payload.
"""

from typing import Any, Dict, Optional


class EngageSphereError(Exception):
    """
    Base exception for all EngageSphere application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(EngageSphereError):
    """
    Raised when client input fails validation, or when the gateway reports
    that an order is not in a capturable state.

    HTTP:    400 Bad Request

    Example response:
        {
            "success": false,
            "error": "Order cannot be captured. Ensure it is approved by the buyer.",
            "code": "validation_error",
            "details": {"name": "UNPROCESSABLE_ENTITY", "details": [...]}
        }
    """

    code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field
        self.details = details


class InvalidUserError(EngageSphereError):
    """Raised when an order is requested for a userId the user store does not know."""

    code = "invalid_user"

    def __init__(
        self,
        user_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if user_id:
            ctx["user_id"] = user_id
        super().__init__(message="Invalid userId", context=ctx)
        self.user_id = user_id


class NotFoundError(EngageSphereError):
    """
    Raised when a requested resource does not exist.

    HTTP:    404 Not Found

    SQLAlchemy returns None for missing rows; the service layer converts
    that None into this exception.
    """

    code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource.capitalize()} not found"
        if resource_id:
            message = f"{resource.capitalize()} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class GatewayError(EngageSphereError):
    """
    Raised when the payment gateway returns a non-success response or
    cannot be reached.

    HTTP:    500 Internal Server Error

    Attributes:
        status_code: HTTP status returned by the gateway (None on transport failure)
        details:     Parsed gateway error body, when one was returned
    """

    code = "gateway_error"

    def __init__(
        self,
        message: str = "Payment gateway request failed",
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["gateway_status"] = status_code
        super().__init__(message=message, context=ctx)
        self.status_code = status_code
        self.details = details


class AuthError(GatewayError):
    """Raised when the gateway rejects the configured client credentials."""

    code = "gateway_auth_error"

    def __init__(
        self,
        message: str = "Payment gateway authentication failed",
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            details=details,
            context=context,
        )


class StoreError(EngageSphereError):
    """
    Raised when a ledger read or write fails unexpectedly.

    HTTP:    500 Internal Server Error

    The client always receives a generic message; the SQL error, constraint
    name, etc. stay in the server log.
    """

    code = "store_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(EngageSphereError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests
    """

    code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
