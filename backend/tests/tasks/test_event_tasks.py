from datetime import datetime, timezone
from decimal import Decimal

from cadence.core.config import settings
from cadence.events.booking_events import BookingConfirmed
from cadence.events.publisher import EventPublisher, serialize_event
from cadence.services.tracking_attribution_service import TrackingAttributionService
from cadence.tasks import event_tasks
from cadence.tasks.event_tasks import process_domain_event


def _confirmed(studio_id, booking_id="01HBOOKING0000000000000009"):
    return BookingConfirmed(
        booking_id=booking_id,
        studio_id=studio_id,
        client_id="client-1",
        class_session_id="01HSESSION0000000000000001",
        booking_type="SINGLE",
        amount="18.00",
        confirmed_at=datetime(2030, 5, 1, 9, 0, tzinfo=timezone.utc),
        tracking_code="newsletter-may",
    )


def test_process_domain_event_records_the_conversion(db, paid_studio):
    payload = serialize_event(_confirmed(paid_studio.id))

    assert process_domain_event("event:BookingConfirmed", payload) is True
    assert process_domain_event("event:BookingConfirmed", payload) is True

    attribution = TrackingAttributionService(db).get_attribution(paid_studio.id, "newsletter-may")
    assert attribution.conversions == 1
    assert attribution.revenue == Decimal("18.00")


def test_unknown_event_type_is_reported_unhandled(db):
    assert process_domain_event("event:Unknown", "{}") is False


def test_serialized_datetimes_are_iso_strings(paid_studio):
    payload = serialize_event(_confirmed(paid_studio.id))
    assert '"confirmed_at": "2030-05-01T09:00:00+00:00"' in payload


def test_publisher_hands_events_to_celery_when_enabled(monkeypatch, paid_studio):
    sent = []
    monkeypatch.setattr(settings, "event_dispatch_enabled", True)
    monkeypatch.setattr(event_tasks.process_domain_event, "delay", lambda *args: sent.append(args))

    assert EventPublisher().publish(_confirmed(paid_studio.id)) is True
    assert sent[0][0] == "event:BookingConfirmed"


def test_publisher_swallows_broker_outages(monkeypatch, paid_studio):
    def broker_down(*args):
        raise ConnectionError("redis unavailable")

    monkeypatch.setattr(settings, "event_dispatch_enabled", True)
    monkeypatch.setattr(event_tasks.process_domain_event, "delay", broker_down)

    assert EventPublisher().publish(_confirmed(paid_studio.id)) is False


def test_publisher_drops_events_when_dispatch_is_disabled(paid_studio):
    assert EventPublisher().publish(_confirmed(paid_studio.id)) is False
