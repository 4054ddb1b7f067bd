"""
EngageSphere Backend - Payment Ledger Model
============================================

What:  ORM model for the `payments` table plus the PaymentStatus state machine.
How:   Inherits from SQLAlchemy's DeclarativeBase; Alembic reads this for migrations.
Who:   Used by PaymentService for every ledger read and write.

Record lifecycle:
    1. Inserted once, at order creation (status CREATED, orderId from PayPal)
    2. Updated at capture (transactionId, payer fields, status, capture_time)
    3. Optionally updated by an admin (status)
    4. Deleted only by explicit admin action

The ledger mirrors PayPal; it is not authoritative over it.
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy import JSON, DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.database import Base
from app.exceptions import GatewayError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentStatus(str, enum.Enum):
    """
    Ledger payment states.

    State machine:
        CREATED → APPROVED → CAPTURED
        CREATED | APPROVED → VOIDED | FAILED

    CAPTURED, VOIDED and FAILED are terminal.
    """

    CREATED = "CREATED"
    APPROVED = "APPROVED"
    CAPTURED = "CAPTURED"
    VOIDED = "VOIDED"
    FAILED = "FAILED"

    @classmethod
    def from_gateway(cls, value: Optional[str]) -> "PaymentStatus":
        """
        Map a PayPal order or capture status onto the ledger enum.

        PayPal reports a completed capture as COMPLETED and a capture under
        review as PENDING. Unknown values raise GatewayError.
        """
        normalized = (value or "").strip().upper()
        if normalized in _GATEWAY_STATUS_MAP:
            return _GATEWAY_STATUS_MAP[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise GatewayError(
                message=f"Payment gateway reported an unknown status '{value}'",
                context={"gateway_status_value": value},
            )

    @classmethod
    def parse(cls, value: str) -> "PaymentStatus":
        """Strict parse of a client-supplied status name; raises ValueError."""
        return cls((value or "").strip().upper())


_GATEWAY_STATUS_MAP: Dict[str, PaymentStatus] = {
    "COMPLETED": PaymentStatus.CAPTURED,
    "PENDING": PaymentStatus.APPROVED,
    "DECLINED": PaymentStatus.FAILED,
    "DENIED": PaymentStatus.FAILED,
}

_ALLOWED_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.CREATED: frozenset(
        {PaymentStatus.APPROVED, PaymentStatus.CAPTURED, PaymentStatus.VOIDED, PaymentStatus.FAILED}
    ),
    PaymentStatus.APPROVED: frozenset(
        {PaymentStatus.CAPTURED, PaymentStatus.VOIDED, PaymentStatus.FAILED}
    ),
    PaymentStatus.CAPTURED: frozenset(),
    PaymentStatus.VOIDED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    """
    Whether moving a payment from `current` to `target` follows the state machine.

    Re-asserting the current state is always allowed. CREATED → CAPTURED is
    legal because PayPal approval happens on PayPal's side and the ledger
    only learns about it at capture.
    """
    if current == target:
        return True
    return target in _ALLOWED_TRANSITIONS[current]


class Payment(Base):
    """
    A single payment in the local ledger.

    Uniqueness:
        payment_id  - primary key, uuid4 generated locally
        order_id    - PayPal order id, unique index

    Query Patterns:
        - Admin list: ORDER BY created_at DESC (idx_payments_created_at)
        - Capture: WHERE order_id = :id (unique index)
        - By user: WHERE user_id = :id (idx_payments_user_id)
    """

    __tablename__ = "payments"

    payment_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Internal payment identifier (uuid4)",
    )

    order_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
        comment="PayPal order id assigned at order creation",
    )

    # Empty until capture
    transaction_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="",
        index=True,
        comment="PayPal capture id assigned at capture",
    )

    # No foreign key: users are validated once, at order creation
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=PaymentStatus.CREATED.value,
        comment="CREATED, APPROVED, CAPTURED, VOIDED or FAILED",
    )

    # Filled on capture
    payer_email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    payer_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    package_name: Mapped[str] = mapped_column(String(255), nullable=False)
    package_features: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Order creation time; never overwritten by capture
    create_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    # PayPal capture timestamp
    capture_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )

    # ── Audit Timestamps ──────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        Index("idx_payments_created_at", "created_at"),
        Index("idx_payments_user_id", "user_id"),
    )

    @validates("currency")
    def _uppercase_currency(self, key: str, value: str) -> str:
        return value.upper() if value else value

    @property
    def payment_status(self) -> PaymentStatus:
        return PaymentStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<Payment(payment_id={self.payment_id}, order_id='{self.order_id}', "
            f"status='{self.status}', amount={self.amount})>"
        )
