# backend/cadence/routes/v1/payments.py
"""
Payment hold routes - API v1

Endpoints:
    POST /studios/{studio_id}/payment-intents - Open a hold for a selection
    POST /payments/{payment_id}/abandon       - Release a hold the client walked away from
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Path, status

from ...api.dependencies import get_booking_reconciler, get_client_id, get_payment_service
from ...core.exceptions import DomainException
from ...schemas.payment import (
    PaymentHoldResponse,
    PaymentIntentCreateRequest,
    PaymentStatusResponse,
)
from ...services.booking_reconciler import BookingReconciler
from ...services.payment_authorization_service import PaymentAuthorizationService
from .errors import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments-v1"])


@router.post(
    "/studios/{studio_id}/payment-intents",
    response_model=PaymentHoldResponse,
    status_code=status.HTTP_201_CREATED,
    responses={503: {"description": "Payment processor unavailable; retry"}},
)
async def create_payment_intent(
    payload: PaymentIntentCreateRequest,
    studio_id: str = Path(..., description="Studio ULID"),
    client_id: str = Depends(get_client_id),
    service: PaymentAuthorizationService = Depends(get_payment_service),
) -> PaymentHoldResponse:
    """Price the selection and open a manual-capture hold on the studio's account."""
    try:
        hold = await asyncio.to_thread(
            service.open_hold_for_selection,
            studio_id=studio_id,
            client_id=client_id,
            class_session_id=payload.class_session_id,
            selection=payload.selection,
            tracking_code=payload.tracking_code,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return PaymentHoldResponse.model_validate(hold)


@router.post("/payments/{payment_id}/abandon", response_model=PaymentStatusResponse)
async def abandon_payment(
    payment_id: str = Path(..., pattern=ULID_PATH_PATTERN, description="Payment ULID"),
    client_id: str = Depends(get_client_id),
    reconciler: BookingReconciler = Depends(get_booking_reconciler),
) -> PaymentStatusResponse:
    """Void a hold before it backs a booking."""
    try:
        payment = await asyncio.to_thread(reconciler.abandon_payment, payment_id, client_id)
    except DomainException as e:
        handle_domain_exception(e)
    return PaymentStatusResponse(payment_id=payment.id, status=payment.status)
