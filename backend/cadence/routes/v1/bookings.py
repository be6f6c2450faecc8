# backend/cadence/routes/v1/bookings.py
"""
Booking routes - API v1

All business logic delegated to BookingReconciler.

Endpoints:
    POST /studios/{studio_id}/bookings/confirm - Confirm a booking for a settled hold
    POST /bookings/{booking_id}/cancel         - Cancel a booking and release its spot
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path

from ...api.dependencies import get_booking_reconciler, get_client_id
from ...core.exceptions import DomainException
from ...schemas.booking import BookingCancelRequest, BookingConfirmRequest, BookingResponse
from ...services.booking_reconciler import BookingReconciler
from .errors import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings-v1"])


@router.post(
    "/studios/{studio_id}/bookings/confirm",
    response_model=BookingResponse,
    responses={
        409: {"description": "Slot unavailable, duplicate booking or payment not settled"},
        422: {"description": "Studio configuration or business rule prevents booking"},
    },
)
async def confirm_booking(
    payload: BookingConfirmRequest,
    studio_id: str = Path(..., description="Studio ULID"),
    client_id: str = Depends(get_client_id),
    reconciler: BookingReconciler = Depends(get_booking_reconciler),
) -> BookingResponse:
    """
    Reserve a spot and commit the booking.

    Repeating the call with the same payment_id returns the same booking.
    """
    try:
        booking = await asyncio.to_thread(
            reconciler.confirm,
            payload.class_session_id,
            client_id,
            payload.selection,
            payload.payment_id,
            studio_id=studio_id,
            tracking_code=payload.tracking_code,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN, description="Booking ULID"),
    payload: Optional[BookingCancelRequest] = Body(default=None),
    client_id: str = Depends(get_client_id),
    reconciler: BookingReconciler = Depends(get_booking_reconciler),
) -> BookingResponse:
    """Cancel a booking. No refund is issued."""
    reason = payload.reason if payload else None
    try:
        booking = await asyncio.to_thread(
            reconciler.cancel_booking, booking_id, client_id, reason
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)
