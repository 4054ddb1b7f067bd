"""
EngageSphere Backend - Admin Payment Routes
============================================

What:  Ledger reporting and maintenance endpoints for the admin dashboard.
How:   Thin wrappers over PaymentService; same success/error envelopes as
       the payment routes.

Route Inventory:
    GET    /admin/payments/stats             aggregate counts and amounts
    GET    /admin/payments/user/{user_id}    one user's payments
    PUT    /admin/payments/status            set a payment's status
    DELETE /admin/payments/{payment_id}      remove a payment

Access control is handled outside this service.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.schemas.payment import (
    ErrorResponse,
    MessageResponse,
    PaymentListResponse,
    PaymentStatsResponse,
    StatusUpdateResponse,
    UpdateStatusRequest,
)
from app.services.payment_service import payment_service

router = APIRouter(prefix="/admin/payments", tags=["Admin"])


@router.get(
    "/stats",
    response_model=PaymentStatsResponse,
    responses={500: {"description": "Ledger error", "model": ErrorResponse}},
    summary="Payment statistics",
)
async def get_payment_stats(
    db: AsyncSession = Depends(get_db_session),
) -> PaymentStatsResponse:
    stats = await payment_service.compute_stats(db=db)
    return PaymentStatsResponse(data=stats)


@router.get(
    "/user/{user_id}",
    response_model=PaymentListResponse,
    responses={500: {"description": "Ledger error", "model": ErrorResponse}},
    summary="Payments of a single user",
)
async def get_payments_by_user(
    user_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> PaymentListResponse:
    return await payment_service.list_payments_by_user(db=db, user_id=user_id)


@router.put(
    "/status",
    response_model=StatusUpdateResponse,
    responses={
        400: {"description": "Unknown status or illegal transition", "model": ErrorResponse},
        404: {"description": "Payment not found", "model": ErrorResponse},
    },
    summary="Update a payment's status",
)
async def update_payment_status(
    body: UpdateStatusRequest,
    db: AsyncSession = Depends(get_db_session),
) -> StatusUpdateResponse:
    return await payment_service.update_status(db=db, payment_id=body.payment_id, status=body.status)


@router.delete(
    "/{payment_id}",
    response_model=MessageResponse,
    responses={404: {"description": "Payment not found", "model": ErrorResponse}},
    summary="Delete a payment",
)
async def delete_payment(
    payment_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    return await payment_service.delete_payment(db=db, payment_id=payment_id)
