"""Booking domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class BookingConfirmed:
    """Fired after a booking reaches CONFIRMED; drives tracking-code conversions."""

    booking_id: str
    studio_id: str
    client_id: str
    class_session_id: str
    booking_type: str
    amount: str  # Decimal as string, JSON-safe
    confirmed_at: datetime
    tracking_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCancelled:
    """Fired after a booking is cancelled and its spot released."""

    booking_id: str
    class_session_id: str
    cancelled_at: datetime
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
