# backend/cadence/api/dependencies/__init__.py
"""
FastAPI dependencies for the booking API.
"""

from .database import get_db
from .identity import get_browsing_session_id, get_client_id
from .services import (
    get_booking_reconciler,
    get_payment_service,
    get_slot_service,
    get_stripe_service,
    get_subscription_service,
    get_tracking_service,
    get_waitlist_service,
    get_webhook_service,
)

__all__ = [
    "get_booking_reconciler",
    "get_browsing_session_id",
    "get_client_id",
    "get_db",
    "get_payment_service",
    "get_slot_service",
    "get_stripe_service",
    "get_subscription_service",
    "get_tracking_service",
    "get_waitlist_service",
    "get_webhook_service",
]
