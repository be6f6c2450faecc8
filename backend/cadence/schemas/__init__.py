# backend/cadence/schemas/__init__.py
"""Pydantic request and response schemas for the booking API."""

from .booking import (
    BookingCancelRequest,
    BookingConfirmRequest,
    BookingResponse,
    BookingSelection,
    PackSelection,
    RecurringSelection,
    SingleSelection,
)
from .payment import PaymentHoldResponse, PaymentIntentCreateRequest, PaymentStatusResponse
from .slots import SlotListResponse, SlotResponse
from .subscription import (
    PackRedeemRequest,
    SubscriptionAccessResponse,
    SubscriptionListResponse,
    SubscriptionResponse,
)
from .tracking import TrackingAttributionResponse, TrackingClickRequest, TrackingClickResponse
from .waitlist import WaitlistEntryResponse, WaitlistJoinRequest, WaitlistListResponse
from .webhook import WebhookAckResponse

__all__ = [
    "BookingCancelRequest",
    "BookingConfirmRequest",
    "BookingResponse",
    "BookingSelection",
    "PackRedeemRequest",
    "PackSelection",
    "PaymentHoldResponse",
    "PaymentIntentCreateRequest",
    "PaymentStatusResponse",
    "RecurringSelection",
    "SingleSelection",
    "SlotListResponse",
    "SlotResponse",
    "SubscriptionAccessResponse",
    "SubscriptionListResponse",
    "SubscriptionResponse",
    "TrackingAttributionResponse",
    "TrackingClickRequest",
    "TrackingClickResponse",
    "WaitlistEntryResponse",
    "WaitlistJoinRequest",
    "WaitlistListResponse",
    "WebhookAckResponse",
]
