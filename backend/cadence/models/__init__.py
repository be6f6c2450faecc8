"""
Database models for the booking core.

Importing this package registers every table on ``Base.metadata``:
- Studio catalog (studios, locations, teachers, class types, sessions)
- Bookings
- Payments and merchant customers
- Subscriptions
- Tracking attribution
- Webhook ledger
- Waitlist
"""

from .booking import Booking
from .payment import MerchantCustomer, Payment
from .studio import ClassSession, ClassType, Location, Studio, Teacher
from .subscription import Subscription
from .tracking import TrackingAttribution, TrackingClick, TrackingConversion
from .waitlist import WaitlistEntry
from .webhook_event import WebhookEvent

__all__ = [
    "Booking",
    "ClassSession",
    "ClassType",
    "Location",
    "MerchantCustomer",
    "Payment",
    "Studio",
    "Subscription",
    "Teacher",
    "TrackingAttribution",
    "TrackingClick",
    "TrackingConversion",
    "WaitlistEntry",
    "WebhookEvent",
]
