# backend/cadence/core/enums.py
"""
Core enums for the booking core.

Values are stored as plain strings in the database, so each enum
subclasses ``str`` and compares equal to its stored value.
"""

from enum import Enum


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "PENDING"  # Spot reserved, hold not yet captured
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class BookingType(str, Enum):
    """Commercial model chosen by the client."""

    SINGLE = "SINGLE"
    RECURRING = "RECURRING"
    PACK = "PACK"


class PaymentStatus(str, Enum):
    """
    Payment hold lifecycle.

    CREATED -> AUTHORIZED -> SUCCEEDED, with FAILED and VOIDED as terminal
    exits. Only AUTHORIZED and SUCCEEDED payments may back a booking.
    """

    CREATED = "CREATED"
    AUTHORIZED = "AUTHORIZED"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    VOIDED = "VOIDED"


class PaymentPurpose(str, Enum):
    """Why a payment was opened."""

    BOOKING = "booking"
    PACK_RENEWAL = "pack_renewal"
    SUBSCRIPTION_RENEWAL = "subscription_renewal"


class SubscriptionStatus(str, Enum):
    """Subscription states. CANCELLED keeps access until the period ends."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class SubscriptionInterval(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class WebhookEventStatus(str, Enum):
    RECEIVED = "received"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"
    IGNORED = "ignored"


class WaitlistStatus(str, Enum):
    """
    Waitlist entry lifecycle.

    WAITING -> NOTIFIED when a spot frees up, then BOOKED once the client
    books or EXPIRED when the claim window passes. CANCELLED is the
    client leaving the list.
    """

    WAITING = "WAITING"
    NOTIFIED = "NOTIFIED"
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


OPEN_WAITLIST_STATUSES = (WaitlistStatus.WAITING.value, WaitlistStatus.NOTIFIED.value)
