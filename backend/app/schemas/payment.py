"""
EngageSphere Backend - Pydantic Request/Response Schemas
=========================================================

What:  Pydantic models defining the payment API contract.
How:   FastAPI validates request bodies against the request models and
       serializes responses through the response models (by alias).
Who:   Route handlers and PaymentService.

Wire format:
    Payment JSON uses camelCase keys (paymentId, orderId, packageFeatures, ...)
    generated from the snake_case attribute names. Both spellings are accepted
    on input.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model emitting camelCase keys and reading ORM attributes."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class CreateOrderRequest(CamelModel):
    """Body of POST /payment/create."""

    amount: Decimal = Field(description="Order amount, e.g. \"25.00\"")
    package_name: str = Field(min_length=1, description="Purchased package name")
    package_features: List[str] = Field(default_factory=list, description="Package feature list")
    user_id: str = Field(min_length=1, description="Public id of the paying user")


class CaptureOrderRequest(BaseModel):
    """
    Body of POST /payment/capture.

    The PayPal JS SDK posts `orderID`; other clients post `orderId`.
    Both are accepted and `orderID` wins when both are present.
    """

    order_id_sdk: Optional[str] = Field(default=None, alias="orderID")
    order_id: Optional[str] = Field(default=None, alias="orderId")

    model_config = {"populate_by_name": True}

    @property
    def resolved_order_id(self) -> Optional[str]:
        return self.order_id_sdk or self.order_id


class GetPaymentRequest(CamelModel):
    """Body of POST /payment/get."""

    payment_id: Optional[str] = Field(default=None, description="Internal payment id")


class UpdateStatusRequest(CamelModel):
    """Body of PUT /admin/payments/status."""

    payment_id: str = Field(min_length=1)
    status: str = Field(min_length=1, description="CREATED, APPROVED, CAPTURED, VOIDED or FAILED")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class PaymentResponse(CamelModel):
    """Full representation of a ledger payment record."""

    payment_id: str
    order_id: str
    transaction_id: str = ""
    user_id: str
    user_name: str
    status: str
    payer_email: str = ""
    payer_name: str = ""
    package_name: str
    package_features: List[str] = Field(default_factory=list)
    amount: float
    currency: str
    create_time: datetime
    capture_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("amount", mode="before")
    @classmethod
    def decimal_to_float(cls, v: Any) -> Any:
        """Numeric columns load as Decimal; the API reports plain numbers."""
        if isinstance(v, Decimal):
            return float(v)
        return v

    @field_validator("status", mode="before")
    @classmethod
    def enum_to_value(cls, v: Any) -> Any:
        return getattr(v, "value", v)


class CreateOrderResponse(CamelModel):
    """Returned by POST /payment/create."""

    payment: PaymentResponse
    approve_link: str = Field(description="PayPal URL the payer must visit to approve")


class CaptureOrderResponse(CamelModel):
    """
    Returned by POST /payment/capture.

    `payment` is null when PayPal captured an order the ledger has no
    record of. Callers must check for it.
    """

    message: str = "Payment captured & updated"
    payment: Optional[PaymentResponse] = None


class PaymentDetailResponse(CamelModel):
    """Returned by POST /payment/get."""

    payment: PaymentResponse


class PaymentListResponse(CamelModel):
    """Admin list envelope: GET /payment/all and GET /admin/payments/user/{id}."""

    success: bool = True
    data: List[PaymentResponse]
    total: int


class PaymentStats(CamelModel):
    """
    Ledger aggregates.

    Every status has a count and amount bucket, so the buckets always add
    up to totalPayments / totalAmount.
    """

    total_payments: int = 0
    total_amount: float = 0.0
    created_payments: int = 0
    created_amount: float = 0.0
    approved_payments: int = 0
    approved_amount: float = 0.0
    captured_payments: int = 0
    captured_amount: float = 0.0
    voided_payments: int = 0
    voided_amount: float = 0.0
    failed_payments: int = 0
    failed_amount: float = 0.0


class PaymentStatsResponse(CamelModel):
    success: bool = True
    data: PaymentStats


class StatusUpdateResponse(CamelModel):
    success: bool = True
    message: str = "Payment status updated successfully"
    data: PaymentResponse


class MessageResponse(CamelModel):
    success: bool = True
    message: str


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error envelope for all API errors.

    Example:
        {
            "success": false,
            "error": "Invalid userId",
            "code": "invalid_user",
            "request_id": "550e8400"
        }
    """

    success: bool = False
    error: str = Field(description="Human-readable error description")
    code: str = Field(description="Machine-readable error code")
    details: Optional[dict] = Field(default=None, description="Provider detail payload, when available")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(CamelModel):
    """Health check response showing service and dependency status."""

    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    gateway: str = Field(description="PayPal status: available, unavailable")
    uptime_seconds: float = Field(description="Seconds since service started")
