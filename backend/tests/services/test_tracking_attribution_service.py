from decimal import Decimal
import json

import pytest

from cadence.core.exceptions import NotFoundException
from cadence.events.handlers import process_event
from cadence.events.publisher import EventPublisher, serialize_event
from cadence.models.tracking import TrackingAttribution, TrackingConversion
from cadence.schemas.booking import SingleSelection
from cadence.services.booking_reconciler import BookingReconciler
from cadence.services.tracking_attribution_service import TrackingAttributionService, normalize_code

CODE = "spring-promo"


class RecordingPublisher(EventPublisher):
    """Keeps serialized events instead of handing them to Celery."""

    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append((f"event:{type(event).__name__}", serialize_event(event)))
        return True


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("spring-promo", "spring-promo"),
        ("  IG_story_2024  ", "IG_story_2024"),
        ("abc", None),
        ("bad code!", None),
        ("-leading-dash", None),
        ("x" * 129, None),
        (None, None),
        (12345678, None),
    ],
)
def test_normalize_code(raw, expected):
    assert normalize_code(raw) == expected


def test_click_is_counted_once_per_browsing_session(db, paid_studio):
    service = TrackingAttributionService(db)

    assert service.record_click(paid_studio.id, CODE, "browser-1") is True
    assert service.record_click(paid_studio.id, CODE, "browser-1") is False
    assert service.record_click(paid_studio.id, CODE, "browser-2") is True

    attribution = service.get_attribution(paid_studio.id, CODE)
    assert attribution.clicks == 2
    assert attribution.last_click_at is not None


def test_clicks_without_browsing_session_always_count(db, paid_studio):
    service = TrackingAttributionService(db)

    service.record_click(paid_studio.id, CODE)
    service.record_click(paid_studio.id, CODE)

    assert service.get_attribution(paid_studio.id, CODE).clicks == 2


def test_malformed_code_or_unknown_studio_is_ignored(db, paid_studio):
    service = TrackingAttributionService(db)

    assert service.record_click(paid_studio.id, "no", "browser-1") is False
    assert service.record_click("01HZZZZZZZZZZZZZZZZZZZZZZZ", CODE, "browser-1") is False
    assert service.record_conversion(paid_studio.id, "??", Decimal("10"), "booking-1") is False
    assert db.query(TrackingAttribution).count() == 0


def test_conversion_is_counted_once_per_booking(db, paid_studio):
    service = TrackingAttributionService(db)

    assert service.record_conversion(paid_studio.id, CODE, Decimal("25.50"), "01HBOOKING0000000000000001")
    assert not service.record_conversion(paid_studio.id, CODE, Decimal("25.50"), "01HBOOKING0000000000000001")
    assert service.record_conversion(paid_studio.id, CODE, "4.5", "01HBOOKING0000000000000002")

    attribution = service.get_attribution(paid_studio.id, CODE)
    assert attribution.conversions == 2
    assert attribution.revenue == Decimal("30.00")
    assert db.query(TrackingConversion).count() == 2


def test_negative_revenue_is_clamped_to_zero(db, paid_studio):
    service = TrackingAttributionService(db)

    assert service.record_conversion(paid_studio.id, CODE, Decimal("-12.00"), "01HBOOKING0000000000000003")

    attribution = service.get_attribution(paid_studio.id, CODE)
    assert attribution.conversions == 1
    assert attribution.revenue == Decimal("0.00")


def test_unknown_code_is_not_found(db, paid_studio):
    with pytest.raises(NotFoundException):
        TrackingAttributionService(db).get_attribution(paid_studio.id, "never-clicked")


def test_confirmed_booking_converts_through_the_event_handler(db, free_studio, make_class_session):
    class_session = make_class_session(free_studio)
    publisher = RecordingPublisher()
    reconciler = BookingReconciler(db, event_publisher=publisher)

    booking = reconciler.confirm(
        class_session.id, "client-1", SingleSelection(), None, tracking_code=CODE
    )

    assert booking.tracking_code == CODE
    [(event_type, payload)] = publisher.events
    assert event_type == "event:BookingConfirmed"
    assert json.loads(payload)["booking_id"] == booking.id

    # Redelivered events do not count the booking twice
    assert process_event(event_type, payload, db) is True
    assert process_event(event_type, payload, db) is True
    db.commit()

    # Cancelling later leaves the conversion in place
    reconciler.cancel_booking(booking.id, "client-1")
    attribution = TrackingAttributionService(db).get_attribution(free_studio.id, CODE)
    assert attribution.conversions == 1
    assert attribution.revenue == Decimal("0.00")


def test_booking_without_code_publishes_nothing(db, free_studio, make_class_session):
    class_session = make_class_session(free_studio)
    publisher = RecordingPublisher()

    BookingReconciler(db, event_publisher=publisher).confirm(
        class_session.id, "client-1", SingleSelection(), None
    )

    assert publisher.events == []


def test_malformed_code_is_dropped_from_the_booking(db, free_studio, make_class_session):
    class_session = make_class_session(free_studio)
    publisher = RecordingPublisher()

    booking = BookingReconciler(db, event_publisher=publisher).confirm(
        class_session.id,
        "client-1",
        SingleSelection(),
        None,
        tracking_code="bad code!" + "x" * 190,
    )

    assert booking.tracking_code is None
    assert publisher.events == []


def test_code_is_trimmed_before_it_is_stored(db, free_studio, make_class_session):
    class_session = make_class_session(free_studio)

    booking = BookingReconciler(db, event_publisher=RecordingPublisher()).confirm(
        class_session.id, "client-1", SingleSelection(), None, tracking_code=f"  {CODE}  "
    )

    assert booking.tracking_code == CODE


def test_unknown_event_type_is_not_handled(db):
    assert process_event("event:SomethingElse", "{}", db) is False
