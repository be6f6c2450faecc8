"""Event publisher - hands domain events to Celery for background processing."""
from datetime import datetime
import json
import logging
from typing import Any, Dict, Protocol

from ..core.config import settings

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Protocol for event types."""

    def to_dict(self) -> Dict[str, Any]:
        ...


def serialize_event(event: Event) -> str:
    payload = event.to_dict()

    # Convert datetime objects to ISO strings for JSON serialization
    for key, value in payload.items():
        if isinstance(value, datetime):
            payload[key] = value.isoformat()
    return json.dumps(payload)


class EventPublisher:
    """
    Publishes domain events to the Celery queue.

    Publishing is fire-and-forget: the booking that raised the event is
    already committed, so a broker outage is logged and never propagated.
    """

    def publish(self, event: Event) -> bool:
        event_type = f"event:{type(event).__name__}"
        payload = serialize_event(event)

        if not settings.event_dispatch_enabled:
            logger.debug(f"Event dispatch disabled; dropping {event_type}")
            return False

        # Imported here so the API process doesn't build the Celery app at import time
        from ..tasks.event_tasks import process_domain_event

        try:
            process_domain_event.delay(event_type, payload)
            return True
        except Exception as exc:
            logger.error(f"Failed to publish {event_type}: {exc}")
            return False
