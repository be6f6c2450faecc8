"""Event handlers - process domain events consumed from the queue."""
import json
import logging
from typing import Callable, Dict

from sqlalchemy.orm import Session

from ..services.tracking_attribution_service import TrackingAttributionService

logger = logging.getLogger(__name__)


def handle_booking_confirmed(payload_str: str, db: Session) -> None:
    """Attribute the booking to its tracking code, if it came with one."""
    payload = json.loads(payload_str)

    code = payload.get("tracking_code")
    if not code:
        return

    recorded = TrackingAttributionService(db).record_conversion(
        payload["studio_id"], code, payload.get("amount") or "0", payload["booking_id"]
    )
    logger.info(
        "Conversion for booking %s on code %s: %s",
        payload["booking_id"],
        code,
        "recorded" if recorded else "skipped",
    )


def handle_booking_cancelled(payload_str: str, db: Session) -> None:
    # Conversions are never rolled back; cancellation is only logged
    payload = json.loads(payload_str)
    logger.info("Booking %s cancelled: %s", payload["booking_id"], payload.get("reason"))


# Registry of event type -> handler function
EVENT_HANDLERS: Dict[str, Callable[[str, Session], None]] = {
    "event:BookingConfirmed": handle_booking_confirmed,
    "event:BookingCancelled": handle_booking_cancelled,
}


def process_event(event_type: str, payload: str, db: Session) -> bool:
    """
    Process one event.

    Returns True if handled, False if no handler is registered for the type.
    """
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.warning("No handler registered for %s", event_type)
        return False
    handler(payload, db)
    return True
