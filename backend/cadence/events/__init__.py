"""Domain events published after bookings change state."""
from .booking_events import BookingCancelled, BookingConfirmed
from .publisher import EventPublisher

__all__ = ["BookingCancelled", "BookingConfirmed", "EventPublisher"]
