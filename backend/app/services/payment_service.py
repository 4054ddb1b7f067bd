"""
EngageSphere Backend - Payment Service (Ledger Orchestrator)
=============================================================

What:  Orchestrates PayPal order creation/capture and keeps the local
       payment ledger in step with what the gateway reports.
How:   Composes the PayPal client and database operations.
Who:   Called by the payment and admin route handlers.

Order creation (POST /payment/create):
    ┌──────────┐    ┌─────────────┐    ┌──────────────┐    ┌──────────┐
    │ Validate │───▶│ Lookup user │───▶│ PayPal order │───▶│ Insert   │
    │ amount   │    │ (users)     │    │ (create)     │    │ ledger   │
    └──────────┘    └─────────────┘    └──────────────┘    └──────────┘

Capture (POST /payment/capture):
    ┌──────────┐    ┌──────────────┐    ┌──────────────────────────┐
    │ Require  │───▶│ PayPal       │───▶│ Update ledger row by     │
    │ order id │    │ capture      │    │ order id (no-op if none) │
    └──────────┘    └──────────────┘    └──────────────────────────┘

Known gap:
    The remote order and the ledger insert are not atomic. If the insert
    fails after PayPal created the order, the order is orphaned on PayPal's
    side (unapproved orders expire; the Orders API has no void for them).
    The order id is logged at ERROR for reconciliation.

PaymentService is stateless: each call receives its database session.
Gateway errors propagate unchanged; unexpected database errors are wrapped
in StoreError.
"""

import logging
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Union

from sqlalchemy import case, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import (
    EngageSphereError,
    GatewayError,
    InvalidUserError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from app.models.payment import Payment, PaymentStatus, can_transition
from app.models.user import User
from app.schemas.payment import (
    CaptureOrderResponse,
    CreateOrderResponse,
    MessageResponse,
    PaymentListResponse,
    PaymentResponse,
    PaymentStats,
    StatusUpdateResponse,
)
from app.services.gateway_base import CaptureResult
from app.services.paypal_client import paypal_client

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class PaymentService:
    """
    Business logic for the payment ledger.

    Responsibilities:
        - create_order() / capture_order(): gateway round-trips + ledger writes
        - get_payment(), list_payments(), list_payments_by_user(): reads
        - compute_stats(): aggregate reporting for the admin dashboard
        - update_status(), delete_payment(): admin ledger maintenance

    Args:
        enforce_transitions: Reject admin status updates that break the
            PaymentStatus state machine. Defaults to the
            ENFORCE_STATUS_TRANSITIONS setting.
    """

    def __init__(self, enforce_transitions: Optional[bool] = None):
        if enforce_transitions is None:
            enforce_transitions = settings.enforce_status_transitions
        self.enforce_transitions = enforce_transitions

    # ── Order Lifecycle ───────────────────────────────────────────────────

    async def create_order(
        self,
        db: AsyncSession,
        amount: Union[Decimal, str, float],
        package_name: str,
        package_features: Optional[List[str]],
        user_id: str,
    ) -> CreateOrderResponse:
        """
        Create a PayPal order and record it in the ledger as CREATED.

        Workflow Steps:
            1. Validate the amount (positive, two decimals)
            2. Resolve the user; unknown ids fail before any gateway call
            3. Create the remote order (capture intent)
            4. Insert the ledger row with the returned order id

        Raises:
            ValidationError: Non-positive or unparseable amount
            InvalidUserError: userId not in the user store
            GatewayError / AuthError: PayPal refused or was unreachable
            StoreError: Ledger write failed (remote order is orphaned)
        """
        value = self._parse_amount(amount)
        user = await self._find_user(db, user_id)

        remote = await paypal_client.create_remote_order(
            amount=value,
            description=f"{package_name} – {settings.brand_name} Package",
            return_url=settings.checkout_return_url,
            cancel_url=settings.checkout_cancel_url,
            currency=settings.default_currency,
            custom_id=f"pkg_{int(time.time() * 1000)}",
        )

        payment = Payment(
            order_id=remote.order_id,
            user_id=user_id,
            user_name=user.display_name,
            status=PaymentStatus.CREATED.value,
            package_name=package_name,
            package_features=list(package_features or []),
            amount=value,
            currency=settings.default_currency,
            create_time=datetime.now(timezone.utc),
        )
        try:
            db.add(payment)
            await db.flush()
        except Exception as e:
            logger.error(
                "Orphaned PayPal order %s: ledger insert failed (%s)",
                remote.order_id,
                type(e).__name__,
                exc_info=True,
            )
            raise StoreError(
                message="Order creation failed",
                context={"order_id": remote.order_id, "original_error": type(e).__name__},
            )

        logger.info(
            "Payment %s created for order %s (user=%s, amount=%s %s)",
            payment.payment_id,
            payment.order_id,
            user_id,
            value,
            payment.currency,
        )
        return CreateOrderResponse(
            payment=PaymentResponse.model_validate(payment),
            approve_link=remote.approve_link,
        )

    async def capture_order(self, db: AsyncSession, order_id: Optional[str]) -> CaptureOrderResponse:
        """
        Capture an approved PayPal order and update its ledger row.

        The row is located by the order id PayPal echoes back. When no row
        matches, nothing is written and the response carries payment=None.

        Raises:
            ValidationError: Missing order id (no gateway call made), or
                PayPal reports the order is not approved (details attached)
            GatewayError: Any other gateway failure
            StoreError: Ledger update failed
        """
        if not order_id or not order_id.strip():
            raise ValidationError(message="orderId (or orderID) is required", field="orderId")
        order_id = order_id.strip()

        capture = await paypal_client.capture_remote_order(order_id)
        # Funds have moved from here on; nothing below may skip the ledger write
        status = self._captured_status(capture)

        try:
            result = await db.execute(select(Payment).where(Payment.order_id == capture.order_id))
            payment = result.scalar_one_or_none()

            if payment is None:
                logger.warning(
                    "PayPal captured order %s (transaction %s) but no ledger record exists",
                    capture.order_id,
                    capture.transaction_id,
                )
                return CaptureOrderResponse(message="Payment captured & updated", payment=None)

            current = PaymentStatus(payment.status)
            if not can_transition(current, status):
                logger.warning(
                    "Gateway reported %s for payment %s currently %s; recording as reported",
                    status.value,
                    payment.payment_id,
                    current.value,
                )

            payment.transaction_id = capture.transaction_id
            payment.status = status.value
            payment.payer_email = capture.payer_email
            payment.payer_name = capture.payer_name
            payment.capture_time = capture.create_time or datetime.now(timezone.utc)
            await db.flush()

        except EngageSphereError:
            raise
        except Exception as e:
            logger.error("Ledger update failed for captured order %s: %s", capture.order_id, str(e), exc_info=True)
            raise StoreError(
                message="Payment capture failed",
                context={"order_id": capture.order_id, "transaction_id": capture.transaction_id},
            )

        logger.info(
            "Payment %s captured: transaction=%s status=%s",
            payment.payment_id,
            payment.transaction_id,
            payment.status,
        )
        return CaptureOrderResponse(
            message="Payment captured & updated",
            payment=PaymentResponse.model_validate(payment),
        )

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_payment(self, db: AsyncSession, payment_id: Optional[str]) -> PaymentResponse:
        """
        Retrieve a single payment by its internal id.

        Raises:
            ValidationError: paymentId missing
            NotFoundError: No such payment (→ 404)
        """
        if not payment_id:
            raise ValidationError(message="paymentId is required", field="paymentId")
        payment = await self._get_or_404(db, payment_id)
        return PaymentResponse.model_validate(payment)

    async def list_payments(self, db: AsyncSession) -> PaymentListResponse:
        """All payments, newest first by created_at. Full scan, no pagination."""
        payments = await self._list(db, select(Payment))
        return PaymentListResponse(data=payments, total=len(payments))

    async def list_payments_by_user(self, db: AsyncSession, user_id: str) -> PaymentListResponse:
        """Payments of one user, newest first."""
        payments = await self._list(db, select(Payment).where(Payment.user_id == user_id))
        return PaymentListResponse(data=payments, total=len(payments))

    async def compute_stats(self, db: AsyncSession) -> PaymentStats:
        """
        Count and amount overall and per status.

        Query plan:
            SELECT count(*), sum(amount),
                   sum(CASE WHEN status = 'CREATED' THEN 1 ELSE 0 END),
                   sum(CASE WHEN status = 'CREATED' THEN amount ELSE 0 END),
                   ... one pair per status ...
            FROM payments
        """
        columns = [
            func.count(Payment.payment_id),
            func.coalesce(func.sum(Payment.amount), 0),
        ]
        for status in PaymentStatus:
            matches = Payment.status == status.value
            columns.append(func.coalesce(func.sum(case((matches, 1), else_=0)), 0))
            columns.append(func.coalesce(func.sum(case((matches, Payment.amount), else_=0)), 0))

        try:
            row = (await db.execute(select(*columns))).one()
        except Exception as e:
            logger.error("Database error computing payment stats: %s", str(e), exc_info=True)
            raise StoreError(
                message="Failed to fetch payment statistics",
                context={"error_type": type(e).__name__},
            )

        stats = {"total_payments": int(row[0] or 0), "total_amount": float(row[1] or 0)}
        for index, status in enumerate(PaymentStatus):
            prefix = status.value.lower()
            stats[f"{prefix}_payments"] = int(row[2 + 2 * index] or 0)
            stats[f"{prefix}_amount"] = float(row[3 + 2 * index] or 0)
        return PaymentStats(**stats)

    # ── Admin Maintenance ─────────────────────────────────────────────────

    async def update_status(self, db: AsyncSession, payment_id: str, status: str) -> StatusUpdateResponse:
        """
        Set a payment's status by admin action.

        Unknown status names are rejected. Transitions that break the state
        machine are logged, and rejected only when enforce_transitions is set.

        Raises:
            ValidationError: Unknown status, or illegal transition under enforcement
            NotFoundError: No such payment
        """
        try:
            target = PaymentStatus.parse(status)
        except ValueError:
            raise ValidationError(
                message=f"Invalid status '{status}'. Must be one of: {', '.join(s.value for s in PaymentStatus)}",
                field="status",
            )

        payment = await self._get_or_404(db, payment_id)
        current = PaymentStatus(payment.status)
        if not can_transition(current, target):
            if self.enforce_transitions:
                raise ValidationError(
                    message=f"Cannot change payment status from {current.value} to {target.value}",
                    field="status",
                    context={"payment_id": payment_id},
                )
            logger.warning(
                "Admin status change %s → %s on payment %s breaks the payment state machine",
                current.value,
                target.value,
                payment_id,
            )

        try:
            payment.status = target.value
            await db.flush()
        except Exception as e:
            logger.error("Database error updating payment %s: %s", payment_id, str(e), exc_info=True)
            raise StoreError(
                message="Failed to update payment status",
                context={"payment_id": payment_id},
            )

        logger.info("Payment %s status set to %s", payment_id, target.value)
        return StatusUpdateResponse(data=PaymentResponse.model_validate(payment))

    async def delete_payment(self, db: AsyncSession, payment_id: str) -> MessageResponse:
        """
        Remove a payment from the ledger.

        Raises:
            NotFoundError: No such payment (→ 404, not a crash)
        """
        payment = await self._get_or_404(db, payment_id)
        try:
            await db.delete(payment)
            await db.flush()
        except Exception as e:
            logger.error("Database error deleting payment %s: %s", payment_id, str(e), exc_info=True)
            raise StoreError(
                message="Failed to delete payment",
                context={"payment_id": payment_id},
            )

        logger.info("Payment %s deleted (order %s)", payment_id, payment.order_id)
        return MessageResponse(message="Payment deleted successfully")

    # ── Helpers ───────────────────────────────────────────────────────────

    @staticmethod
    def _parse_amount(amount: Union[Decimal, str, float]) -> Decimal:
        """Positive amount rounded to cents."""
        try:
            value = Decimal(str(amount)).quantize(CENTS)
        except (InvalidOperation, ValueError):
            raise ValidationError(message=f"Invalid amount '{amount}'", field="amount")
        if not value.is_finite() or value <= 0:
            raise ValidationError(message="amount must be greater than zero", field="amount")
        return value

    @staticmethod
    def _captured_status(capture: CaptureResult) -> PaymentStatus:
        """
        Ledger status for a capture PayPal accepted.

        A status outside the known mapping is recorded as APPROVED and
        logged for reconciliation against the PayPal dashboard.
        """
        try:
            return PaymentStatus.from_gateway(capture.status)
        except GatewayError:
            logger.warning(
                "Reconcile: PayPal reported unknown capture status %r for order %s "
                "(transaction %s); recording as %s",
                capture.status,
                capture.order_id,
                capture.transaction_id,
                PaymentStatus.APPROVED.value,
            )
            return PaymentStatus.APPROVED

    async def _find_user(self, db: AsyncSession, user_id: str) -> User:
        try:
            result = await db.execute(select(User).where(User.user_id == user_id))
            user = result.scalar_one_or_none()
        except Exception as e:
            logger.error("Database error looking up user %s: %s", user_id, str(e), exc_info=True)
            raise StoreError(
                message="Order creation failed",
                context={"user_id": user_id},
            )
        if user is None:
            logger.warning("Order rejected: unknown userId %s", user_id)
            raise InvalidUserError(user_id=user_id)
        return user

    async def _get_or_404(self, db: AsyncSession, payment_id: str) -> Payment:
        try:
            result = await db.execute(select(Payment).where(Payment.payment_id == payment_id))
            payment = result.scalar_one_or_none()
        except Exception as e:
            logger.error("Database error fetching payment %s: %s", payment_id, str(e), exc_info=True)
            raise StoreError(
                message="Could not retrieve payment details",
                context={"payment_id": payment_id},
            )
        if payment is None:
            raise NotFoundError(resource="payment", resource_id=payment_id)
        return payment

    async def _list(self, db: AsyncSession, query) -> List[PaymentResponse]:
        try:
            result = await db.execute(query.order_by(desc(Payment.created_at)))
            return [PaymentResponse.model_validate(p) for p in result.scalars().all()]
        except Exception as e:
            logger.error("Database error listing payments: %s", str(e), exc_info=True)
            raise StoreError(
                message="Failed to fetch payments",
                context={"error_type": type(e).__name__},
            )


# ── Singleton Instance ────────────────────────────────────────────────────
payment_service = PaymentService()
