"""
EngageSphere Backend - Payment Route Handlers
==============================================

What:  The user payment flow and the admin payment listing.
How:   Parses the JSON body, delegates to PaymentService, returns its model.
Who:   Called by the frontend checkout page and the admin dashboard.

Request Flow (checkout):
    1. POST /payment/create   → approveLink, frontend redirects the payer to PayPal
    2. Payer approves on PayPal, returns to CHECKOUT_RETURN_URL
    3. POST /payment/capture  → ledger row updated with transaction and payer

Error responses are produced by the global exception handlers in main.py.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.schemas.payment import (
    CaptureOrderRequest,
    CaptureOrderResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    ErrorResponse,
    GetPaymentRequest,
    PaymentDetailResponse,
    PaymentListResponse,
)
from app.services.payment_service import payment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["Payment"])


@router.post(
    "/create",
    response_model=CreateOrderResponse,
    responses={
        400: {"description": "Invalid userId or amount", "model": ErrorResponse},
        500: {"description": "Gateway or ledger error", "model": ErrorResponse},
    },
    summary="Create a PayPal order",
    description=(
        "Creates a capture-intent PayPal order for a package purchase, records it "
        "in the ledger as CREATED and returns the PayPal approval link."
    ),
)
async def create_order(
    body: CreateOrderRequest,
    db: AsyncSession = Depends(get_db_session),
) -> CreateOrderResponse:
    logger.info(
        "Received create order request: user=%s package=%s amount=%s",
        body.user_id,
        body.package_name,
        body.amount,
    )
    return await payment_service.create_order(
        db=db,
        amount=body.amount,
        package_name=body.package_name,
        package_features=body.package_features,
        user_id=body.user_id,
    )


@router.post(
    "/capture",
    response_model=CaptureOrderResponse,
    responses={
        400: {"description": "Missing order id, or order not yet approved by the payer", "model": ErrorResponse},
        500: {"description": "Gateway or ledger error", "model": ErrorResponse},
    },
    summary="Capture an approved PayPal order",
    description=(
        "Captures the PayPal order given as `orderID` or `orderId` and updates the "
        "matching ledger record. `payment` is null when no ledger record matches."
    ),
)
async def capture_order(
    body: Optional[CaptureOrderRequest] = None,
    db: AsyncSession = Depends(get_db_session),
) -> CaptureOrderResponse:
    # A bodyless POST reaches the service and gets the 400 envelope
    order_id = body.resolved_order_id if body else None
    return await payment_service.capture_order(db=db, order_id=order_id)


@router.post(
    "/get",
    response_model=PaymentDetailResponse,
    responses={
        404: {"description": "Payment not found", "model": ErrorResponse},
    },
    summary="Get a payment by paymentId",
)
async def get_payment(
    body: GetPaymentRequest,
    db: AsyncSession = Depends(get_db_session),
) -> PaymentDetailResponse:
    payment = await payment_service.get_payment(db=db, payment_id=body.payment_id)
    return PaymentDetailResponse(payment=payment)


@router.get(
    "/all",
    response_model=PaymentListResponse,
    responses={
        500: {"description": "Ledger error", "model": ErrorResponse},
    },
    summary="List all payments (admin dashboard)",
    description="Returns every ledger record, newest first. No pagination.",
)
async def get_all_payments(
    db: AsyncSession = Depends(get_db_session),
) -> PaymentListResponse:
    return await payment_service.list_payments(db=db)
