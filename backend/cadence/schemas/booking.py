# backend/cadence/schemas/booking.py
"""
Booking schemas.

A client's choice of commercial model is a tagged union discriminated on
``booking_type``: SINGLE visits carry nothing extra, RECURRING carries the
billing interval and PACK carries its size and renewal preference.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import Field, field_validator

from ._strict_base import OrmResponseModel, StrictRequestModel


class SingleSelection(StrictRequestModel):
    """One visit to one class session."""

    booking_type: Literal["SINGLE"] = "SINGLE"


class RecurringSelection(StrictRequestModel):
    """Weekly slot paid per billing interval."""

    booking_type: Literal["RECURRING"] = "RECURRING"
    interval: Literal["monthly", "yearly"] = Field(
        default="monthly", description="Billing interval for the subscription"
    )


class PackSelection(StrictRequestModel):
    """Bundle of visits; the first booking consumes one credit."""

    booking_type: Literal["PACK"] = "PACK"
    pack_size: int = Field(..., ge=1, le=100, description="Number of visits in the pack")
    auto_renew: bool = Field(default=False, description="Buy a new pack when the last credit is used")
    payment_method_ref: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Saved payment method used for off-session renewals",
    )


BookingSelection = Annotated[
    Union[SingleSelection, RecurringSelection, PackSelection],
    Field(discriminator="booking_type"),
]


def _clean_tracking_code(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


class BookingConfirmRequest(StrictRequestModel):
    """Confirm a booking after the processor authorized the hold (or for free studios)."""

    class_session_id: str = Field(..., description="Class session to book")
    selection: BookingSelection
    payment_id: Optional[str] = Field(
        default=None, description="Payment hold backing this booking; omitted for free studios"
    )
    tracking_code: Optional[str] = Field(default=None, max_length=256)

    @field_validator("tracking_code")
    @classmethod
    def _strip_code(cls, v: Optional[str]) -> Optional[str]:
        return _clean_tracking_code(v)


class BookingCancelRequest(StrictRequestModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class BookingResponse(OrmResponseModel):
    """Booking as returned to the client."""

    id: str
    client_id: str
    studio_id: str
    class_session_id: str
    status: str
    booking_type: str
    pack_size: Optional[int] = None
    auto_renew: bool = False
    amount: Decimal
    payment_id: Optional[str] = None
    subscription_id: Optional[str] = None
    tracking_code: Optional[str] = None
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
