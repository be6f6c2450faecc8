"""
Payment-related Pydantic schemas.

Request and response models for opening a hold on a studio's connected
account and for abandoning a flow before it settles.
"""

from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator

from ._strict_base import OrmResponseModel, StrictModel, StrictRequestModel
from .booking import BookingSelection

# ========== Request Models ==========


class PaymentIntentCreateRequest(StrictRequestModel):
    """Request to open a payment hold for a booking selection."""

    class_session_id: str = Field(..., description="Class session being booked")
    selection: BookingSelection
    tracking_code: Optional[str] = Field(default=None, max_length=256)

    @field_validator("tracking_code")
    @classmethod
    def _strip_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


# ========== Response Models ==========


class PaymentHoldResponse(OrmResponseModel):
    """Everything the client needs to confirm the hold with Stripe.js."""

    payment_id: str = Field(..., description="Internal payment id, sent back on confirmation")
    external_reference: str = Field(..., description="Stripe PaymentIntent id")
    client_authorization_secret: Optional[str] = Field(
        default=None, description="PaymentIntent client secret"
    )
    merchant_sub_account_id: str = Field(..., description="Connected account that owns the hold")
    amount: Decimal
    currency: str


class PaymentStatusResponse(StrictModel):
    payment_id: str
    status: str
