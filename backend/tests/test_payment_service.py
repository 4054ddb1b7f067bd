"""
EngageSphere Backend - Payment Service Unit Tests
==================================================

What:  Tests for PaymentService business logic (create, capture, reads,
       stats, admin maintenance).
How:   Real SQLAlchemy sessions on in-memory SQLite; PayPal client mocked.

What we test:
    ✅ Order creation records a CREATED payment and returns the approve link
    ✅ Invalid user / amount / order id fail before any gateway call
    ✅ Capture updates the matching ledger row, keeps create_time
    ✅ Capture with no ledger row returns payment=None
    ✅ Stats, newest-first listing, status updates, deletes
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from app.database import Base
from app.exceptions import (
    GatewayError,
    InvalidUserError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from app.models.payment import Payment, PaymentStatus
from app.models.user import User
from app.services.gateway_base import CaptureResult
from app.services.payment_service import PaymentService

CAPTURED_AT = datetime(2024, 1, 15, 12, 30, tzinfo=timezone.utc)


def capture_result(order_id: str, status: str = "COMPLETED") -> CaptureResult:
    return CaptureResult(
        order_id=order_id,
        transaction_id="3C679366HH908993F",
        status=status,
        create_time=CAPTURED_AT,
        payer_email="customer@example.com",
        payer_name="John Doe",
    )


class TestCreateOrder:
    """Tests for the create_order workflow."""

    def setup_method(self):
        self.service = PaymentService(enforce_transitions=False)

    @pytest.mark.asyncio
    async def test_create_order_records_created_payment(self, db_session, seeded_user, mock_gateway, remote_order):
        """Successful creation returns the ledger record and PayPal's approve link."""
        result = await self.service.create_order(
            db=db_session,
            amount="25.00",
            package_name="Pro",
            package_features=["Priority support"],
            user_id="user-100",
        )

        assert result.payment.amount == 25.0
        assert result.payment.status == PaymentStatus.CREATED.value
        assert result.payment.order_id == remote_order.order_id
        assert result.payment.user_name == "Ada Lovelace"
        assert result.payment.transaction_id == ""
        assert result.payment.package_features == ["Priority support"]
        assert result.approve_link == remote_order.approve_link

        mock_gateway.create_remote_order.assert_awaited_once()
        kwargs = mock_gateway.create_remote_order.await_args.kwargs
        assert kwargs["amount"] == Decimal("25.00")
        assert kwargs["description"] == "Pro – EngageSphere Package"
        assert kwargs["custom_id"].startswith("pkg_")

        stored = (await db_session.execute(select(Payment))).scalars().all()
        assert len(stored) == 1
        assert stored[0].payment_id == result.payment.payment_id

    @pytest.mark.asyncio
    async def test_user_name_falls_back_to_username(self, db_session, mock_gateway):
        db_session.add(User(user_id="user-200", name="", username="grace"))
        await db_session.flush()

        result = await self.service.create_order(
            db=db_session, amount=10, package_name="Basic", package_features=None, user_id="user-200"
        )

        assert result.payment.user_name == "grace"
        assert result.payment.package_features == []

    @pytest.mark.asyncio
    async def test_unknown_user_rejected_before_gateway(self, db_session, mock_gateway):
        with pytest.raises(InvalidUserError) as exc_info:
            await self.service.create_order(
                db=db_session, amount="25.00", package_name="Pro", package_features=[], user_id="ghost"
            )

        assert exc_info.value.message == "Invalid userId"
        mock_gateway.create_remote_order.assert_not_awaited()
        assert (await db_session.execute(select(Payment))).scalars().all() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-5.00", "abc"])
    async def test_invalid_amount_rejected_before_gateway(self, db_session, seeded_user, mock_gateway, amount):
        with pytest.raises(ValidationError):
            await self.service.create_order(
                db=db_session, amount=amount, package_name="Pro", package_features=[], user_id="user-100"
            )

        mock_gateway.create_remote_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gateway_error_leaves_ledger_untouched(self, db_session, seeded_user, mock_gateway):
        mock_gateway.create_remote_order.side_effect = GatewayError(message="Order creation failed", status_code=500)

        with pytest.raises(GatewayError):
            await self.service.create_order(
                db=db_session, amount="25.00", package_name="Pro", package_features=[], user_id="user-100"
            )

        assert (await db_session.execute(select(Payment))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_ledger_failure_after_remote_order_raises_store_error(self, mock_db_session, mock_gateway, remote_order):
        """The remote order exists but the insert fails: StoreError names the orphan."""
        user_result = MagicMock()
        user_result.scalar_one_or_none.return_value = User(user_id="user-100", name="Ada", username="ada")
        mock_db_session.execute = AsyncMock(return_value=user_result)
        mock_db_session.flush = AsyncMock(side_effect=RuntimeError("disk full"))

        with pytest.raises(StoreError) as exc_info:
            await self.service.create_order(
                db=mock_db_session, amount="25.00", package_name="Pro", package_features=[], user_id="user-100"
            )

        assert exc_info.value.message == "Order creation failed"
        assert exc_info.value.context["order_id"] == remote_order.order_id


class TestCaptureOrder:
    """Tests for the capture_order workflow."""

    def setup_method(self):
        self.service = PaymentService(enforce_transitions=False)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("order_id", [None, "", "   "])
    async def test_missing_order_id_rejected_before_gateway(self, db_session, mock_gateway, order_id):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.capture_order(db=db_session, order_id=order_id)

        assert exc_info.value.message == "orderId (or orderID) is required"
        mock_gateway.capture_remote_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_capture_updates_matching_record(self, db_session, make_payment, mock_gateway):
        payment = await make_payment(order_id="ORDER-CAP")
        mock_gateway.capture_remote_order.return_value = capture_result("ORDER-CAP")

        result = await self.service.capture_order(db=db_session, order_id="ORDER-CAP")

        assert result.message == "Payment captured & updated"
        assert result.payment.payment_id == payment.payment_id
        assert result.payment.status == PaymentStatus.CAPTURED.value
        assert result.payment.transaction_id == "3C679366HH908993F"
        assert result.payment.payer_email == "customer@example.com"
        assert result.payment.payer_name == "John Doe"
        assert result.payment.capture_time == CAPTURED_AT
        # Order creation time survives the capture
        assert result.payment.create_time.replace(tzinfo=None) == datetime(2024, 1, 15, 12, 0)

    @pytest.mark.asyncio
    async def test_pending_capture_recorded_as_approved(self, db_session, make_payment, mock_gateway):
        await make_payment(order_id="ORDER-PEND")
        mock_gateway.capture_remote_order.return_value = capture_result("ORDER-PEND", status="PENDING")

        result = await self.service.capture_order(db=db_session, order_id="ORDER-PEND")

        assert result.payment.status == PaymentStatus.APPROVED.value

    @pytest.mark.asyncio
    async def test_unknown_capture_status_still_records_capture(self, db_session, make_payment, mock_gateway):
        """PayPal already moved the funds: the row is written, status falls back to APPROVED."""
        await make_payment(order_id="ORDER-ODD")
        mock_gateway.capture_remote_order.return_value = capture_result("ORDER-ODD", status="PARTIALLY_REFUNDED")

        result = await self.service.capture_order(db=db_session, order_id="ORDER-ODD")

        assert result.payment.status == PaymentStatus.APPROVED.value
        assert result.payment.transaction_id == "3C679366HH908993F"
        assert result.payment.payer_email == "customer@example.com"
        assert result.payment.capture_time == CAPTURED_AT

        row = (await db_session.execute(select(Payment).where(Payment.order_id == "ORDER-ODD"))).scalar_one()
        assert row.transaction_id == "3C679366HH908993F"
        assert row.status == PaymentStatus.APPROVED.value

    @pytest.mark.asyncio
    async def test_capture_without_ledger_record_returns_null_payment(self, db_session, mock_gateway):
        mock_gateway.capture_remote_order.return_value = capture_result("UNKNOWN-ORDER")

        result = await self.service.capture_order(db=db_session, order_id="UNKNOWN-ORDER")

        assert result.payment is None
        assert result.message == "Payment captured & updated"
        assert (await db_session.execute(select(Payment))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_unapproved_order_error_propagates_with_details(self, db_session, make_payment, mock_gateway):
        await make_payment(order_id="ORDER-NA")
        details = {"name": "UNPROCESSABLE_ENTITY", "details": [{"issue": "ORDER_NOT_APPROVED"}]}
        mock_gateway.capture_remote_order.side_effect = ValidationError(
            message="Order cannot be captured. Ensure it is approved by the buyer.",
            details=details,
        )

        with pytest.raises(ValidationError) as exc_info:
            await self.service.capture_order(db=db_session, order_id="ORDER-NA")

        assert exc_info.value.details == details
        row = (await db_session.execute(select(Payment).where(Payment.order_id == "ORDER-NA"))).scalar_one()
        assert row.status == PaymentStatus.CREATED.value
        assert row.transaction_id == ""


class TestReads:

    def setup_method(self):
        self.service = PaymentService(enforce_transitions=False)

    @pytest.mark.asyncio
    async def test_get_payment(self, db_session, make_payment):
        payment = await make_payment()

        result = await self.service.get_payment(db=db_session, payment_id=payment.payment_id)

        assert result.payment_id == payment.payment_id
        assert result.amount == 25.0

    @pytest.mark.asyncio
    async def test_get_payment_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.get_payment(db=db_session, payment_id="nonexistent")

    @pytest.mark.asyncio
    async def test_get_payment_requires_id(self, db_session):
        with pytest.raises(ValidationError):
            await self.service.get_payment(db=db_session, payment_id=None)

    @pytest.mark.asyncio
    async def test_list_payments_newest_first(self, db_session, make_payment):
        base = datetime(2024, 3, 1, tzinfo=timezone.utc)
        for offset in (2, 0, 3, 1):
            await make_payment(order_id=f"ORDER-T{offset}", created_at=base + timedelta(hours=offset))

        result = await self.service.list_payments(db=db_session)

        assert result.success is True
        assert result.total == 4
        assert [p.order_id for p in result.data] == ["ORDER-T3", "ORDER-T2", "ORDER-T1", "ORDER-T0"]

    @pytest.mark.asyncio
    async def test_list_payments_by_user(self, db_session, make_payment):
        await make_payment(user_id="user-100")
        await make_payment(user_id="user-100")
        await make_payment(user_id="user-300", user_name="Linus")

        result = await self.service.list_payments_by_user(db=db_session, user_id="user-100")

        assert result.total == 2
        assert {p.user_id for p in result.data} == {"user-100"}

    @pytest.mark.asyncio
    async def test_list_empty_ledger(self, db_session):
        result = await self.service.list_payments(db=db_session)
        assert result.total == 0
        assert result.data == []


class TestComputeStats:

    def setup_method(self):
        self.service = PaymentService(enforce_transitions=False)

    @pytest.mark.asyncio
    async def test_stats_by_status(self, db_session, make_payment):
        for amount in ("10.00", "20.00", "30.00"):
            await make_payment(status="CAPTURED", amount=amount)
        for _ in range(2):
            await make_payment(status="CREATED", amount="5.00")

        stats = await self.service.compute_stats(db=db_session)

        assert stats.total_payments == 5
        assert stats.total_amount == pytest.approx(70.0)
        assert stats.captured_payments == 3
        assert stats.captured_amount == pytest.approx(60.0)
        assert stats.created_payments == 2
        assert stats.created_amount == pytest.approx(10.0)
        assert stats.voided_payments == 0
        assert stats.failed_amount == 0.0

    @pytest.mark.asyncio
    async def test_status_buckets_sum_to_totals(self, db_session, make_payment):
        await make_payment(status="APPROVED", amount="12.50")
        await make_payment(status="VOIDED", amount="7.25")
        await make_payment(status="FAILED", amount="3.00")

        stats = await self.service.compute_stats(db=db_session)

        buckets = [
            stats.created_payments,
            stats.approved_payments,
            stats.captured_payments,
            stats.voided_payments,
            stats.failed_payments,
        ]
        assert sum(buckets) == stats.total_payments == 3
        assert stats.approved_amount == pytest.approx(12.5)
        assert stats.voided_amount == pytest.approx(7.25)
        assert stats.total_amount == pytest.approx(22.75)

    @pytest.mark.asyncio
    async def test_empty_ledger_stats_are_zero(self, db_session):
        stats = await self.service.compute_stats(db=db_session)
        assert stats.total_payments == 0
        assert stats.total_amount == 0.0


class TestAdminMaintenance:

    @pytest.mark.asyncio
    async def test_update_status(self, db_session, make_payment):
        payment = await make_payment()

        result = await PaymentService(enforce_transitions=True).update_status(
            db=db_session, payment_id=payment.payment_id, status="voided"
        )

        assert result.success is True
        assert result.data.status == PaymentStatus.VOIDED.value

    @pytest.mark.asyncio
    async def test_update_status_rejects_unknown_status(self, db_session, make_payment):
        payment = await make_payment()

        with pytest.raises(ValidationError) as exc_info:
            await PaymentService().update_status(db=db_session, payment_id=payment.payment_id, status="REFUNDED")

        assert exc_info.value.field == "status"

    @pytest.mark.asyncio
    async def test_illegal_transition_rejected_when_enforced(self, db_session, make_payment):
        payment = await make_payment(status="CAPTURED")

        with pytest.raises(ValidationError):
            await PaymentService(enforce_transitions=True).update_status(
                db=db_session, payment_id=payment.payment_id, status="CREATED"
            )

    @pytest.mark.asyncio
    async def test_illegal_transition_applied_when_advisory(self, db_session, make_payment):
        payment = await make_payment(status="CAPTURED")

        result = await PaymentService(enforce_transitions=False).update_status(
            db=db_session, payment_id=payment.payment_id, status="CREATED"
        )

        assert result.data.status == PaymentStatus.CREATED.value

    @pytest.mark.asyncio
    async def test_update_status_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            await PaymentService().update_status(db=db_session, payment_id="nonexistent", status="VOIDED")

    @pytest.mark.asyncio
    async def test_delete_payment(self, db_session, make_payment):
        payment = await make_payment()

        result = await PaymentService().delete_payment(db=db_session, payment_id=payment.payment_id)

        assert result.message == "Payment deleted successfully"
        assert (await db_session.execute(select(Payment))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_delete_nonexistent_payment(self, db_session):
        with pytest.raises(NotFoundError) as exc_info:
            await PaymentService().delete_payment(db=db_session, payment_id="nonexistent")

        assert "nonexistent" in exc_info.value.message


class TestLedgerSchema:
    """Metadata Alembic migrates from."""

    def test_ledger_tables_registered(self):
        assert {"payments", "users"} <= set(Base.metadata.tables)

    def test_order_and_user_ids_unique(self):
        assert Base.metadata.tables["payments"].c.order_id.unique is True
        assert Base.metadata.tables["users"].c.user_id.unique is True
