"""
Tests for StripeWebhookService: ledger de-duplication and event routing.
"""

from decimal import Decimal

import pytest
import stripe

from cadence.core.enums import BookingStatus, PaymentStatus, WebhookEventStatus
from cadence.core.exceptions import ServiceException
from cadence.models.booking import Booking
from cadence.models.payment import Payment
from cadence.models.studio import ClassSession, Studio
from cadence.models.webhook_event import WebhookEvent
from cadence.schemas.booking import SingleSelection
from cadence.services.booking_reconciler import BookingReconciler
from cadence.services.payment_authorization_service import PaymentAuthorizationService
from cadence.services.stripe_webhook_service import StripeWebhookService


@pytest.fixture
def payments(db, fake_stripe):
    return PaymentAuthorizationService(db, stripe_service=fake_stripe)


@pytest.fixture
def webhooks(db, payments):
    return StripeWebhookService(db, payment_service=payments)


@pytest.fixture
def hold(payments, paid_studio, make_class_session):
    class_session = make_class_session(paid_studio, price=Decimal("30.00"), capacity=3)
    return payments.open_hold_for_selection(
        studio_id=paid_studio.id,
        client_id="client-1",
        class_session_id=class_session.id,
        selection=SingleSelection(),
        tracking_code="spring-promo",
    )


def _intent_event(event_id, event_type, intent, account=None):
    intent_payload = {
        "id": intent.id,
        "object": "payment_intent",
        "status": intent.status,
        "amount": intent.amount,
        "currency": intent.currency,
        "payment_method": intent.payment_method,
        "metadata": dict(intent.metadata),
    }
    if intent.last_payment_error is not None:
        intent_payload["last_payment_error"] = {"message": intent.last_payment_error.message}
    return stripe.Event.construct_from(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "account": account or intent.account,
            "data": {"object": intent_payload},
        },
        "sk_test_123",
    )


def _ledger_row(db, event_id):
    return (
        db.query(WebhookEvent)
        .filter(WebhookEvent.event_id == event_id)
        .populate_existing()
        .one()
    )


def _payment(db, payment_id):
    return db.get(Payment, payment_id, populate_existing=True)


def test_authorized_hold_webhook_confirms_the_booking(db, webhooks, fake_stripe, hold):
    intent = fake_stripe.authorize(hold.external_reference)
    event = _intent_event("evt_auth_1", "payment_intent.amount_capturable_updated", intent)

    assert webhooks.handle_event(event) == "processed"

    booking = db.query(Booking).filter(Booking.payment_id == hold.payment_id).one()
    assert booking.status == BookingStatus.CONFIRMED.value
    assert booking.client_id == "client-1"
    assert booking.tracking_code == "spring-promo"
    assert _payment(db, hold.payment_id).status == PaymentStatus.SUCCEEDED.value
    assert db.get(ClassSession, booking.class_session_id, populate_existing=True).booked_count == 1

    row = _ledger_row(db, "evt_auth_1")
    assert row.status == WebhookEventStatus.PROCESSED.value
    assert (row.related_entity_type, row.related_entity_id) == ("booking", booking.id)
    assert row.processed_at is not None


def test_duplicate_delivery_is_acknowledged_without_rebooking(db, webhooks, fake_stripe, hold):
    intent = fake_stripe.authorize(hold.external_reference)
    event = _intent_event("evt_auth_2", "payment_intent.amount_capturable_updated", intent)

    assert webhooks.handle_event(event) == "processed"
    assert webhooks.handle_event(event) == "duplicate"

    assert db.query(Booking).filter(Booking.payment_id == hold.payment_id).count() == 1
    assert fake_stripe.calls.count("capture_intent") == 1
    row = _ledger_row(db, "evt_auth_2")
    assert row.retry_count == 1
    assert row.status == WebhookEventStatus.PROCESSED.value


def test_webhook_after_client_confirmation_finds_the_existing_booking(
    db, webhooks, payments, fake_stripe, hold
):
    intent = fake_stripe.authorize(hold.external_reference)
    payment = _payment(db, hold.payment_id)
    booking = BookingReconciler(db, payment_service=payments).confirm(
        payment.class_session_id, "client-1", SingleSelection(), hold.payment_id
    )

    event = _intent_event("evt_succeeded_1", "payment_intent.succeeded", intent)
    assert webhooks.handle_event(event) == "processed"

    assert db.query(Booking).count() == 1
    assert _ledger_row(db, "evt_succeeded_1").related_entity_id == booking.id


def test_payment_failed_marks_the_hold_failed(db, webhooks, fake_stripe, hold):
    intent = fake_stripe.decline(hold.external_reference, "Insufficient funds")
    event = _intent_event("evt_failed_1", "payment_intent.payment_failed", intent)

    assert webhooks.handle_event(event) == "processed"

    payment = _payment(db, hold.payment_id)
    assert payment.status == PaymentStatus.FAILED.value
    assert payment.failure_reason == "Insufficient funds"
    assert db.query(Booking).count() == 0


def test_canceled_intent_marks_the_hold_voided(db, webhooks, fake_stripe, hold):
    intent = fake_stripe.intents[hold.external_reference]
    intent.status = "canceled"
    event = _intent_event("evt_canceled_1", "payment_intent.canceled", intent)

    assert webhooks.handle_event(event) == "processed"
    assert _payment(db, hold.payment_id).status == PaymentStatus.VOIDED.value


def test_payment_is_found_through_metadata_when_the_reference_is_unknown(
    db, webhooks, fake_stripe, hold
):
    intent = fake_stripe.intents[hold.external_reference]
    event = stripe.Event.construct_from(
        {
            "id": "evt_canceled_2",
            "object": "event",
            "type": "payment_intent.canceled",
            "account": intent.account,
            "data": {
                "object": {
                    "id": "pi_replaced_elsewhere",
                    "object": "payment_intent",
                    "status": "canceled",
                    "metadata": dict(intent.metadata),
                }
            },
        },
        "sk_test_123",
    )

    assert webhooks.handle_event(event) == "processed"
    assert _payment(db, hold.payment_id).status == PaymentStatus.VOIDED.value


def test_events_for_unknown_intents_are_ignored(db, webhooks):
    event = stripe.Event.construct_from(
        {
            "id": "evt_unknown_1",
            "object": "event",
            "type": "payment_intent.succeeded",
            "data": {
                "object": {
                    "id": "pi_from_another_platform",
                    "object": "payment_intent",
                    "status": "succeeded",
                    "metadata": {"payment_id": "not-a-ulid"},
                }
            },
        },
        "sk_test_123",
    )

    assert webhooks.handle_event(event) == "ignored"
    assert _ledger_row(db, "evt_unknown_1").status == WebhookEventStatus.IGNORED.value


def test_event_from_another_connected_account_is_ignored(db, webhooks, fake_stripe, hold):
    intent = fake_stripe.authorize(hold.external_reference)
    event = _intent_event(
        "evt_foreign_1",
        "payment_intent.amount_capturable_updated",
        intent,
        account="acct_someone_else",
    )

    assert webhooks.handle_event(event) == "ignored"

    assert db.query(Booking).count() == 0
    assert _payment(db, hold.payment_id).status == PaymentStatus.CREATED.value
    assert fake_stripe.calls.count("capture_intent") == 0


def test_unhandled_event_types_are_ignored(db, webhooks):
    event = stripe.Event.construct_from(
        {
            "id": "evt_refund_1",
            "object": "event",
            "type": "charge.refunded",
            "data": {"object": {"id": "ch_123", "object": "charge"}},
        },
        "sk_test_123",
    )

    assert webhooks.handle_event(event) == "ignored"


def test_account_updated_mirrors_charges_enabled(db, webhooks, paid_studio):
    event = stripe.Event.construct_from(
        {
            "id": "evt_account_1",
            "object": "event",
            "type": "account.updated",
            "account": paid_studio.merchant_sub_account_id,
            "data": {
                "object": {
                    "id": paid_studio.merchant_sub_account_id,
                    "object": "account",
                    "charges_enabled": False,
                }
            },
        },
        "sk_test_123",
    )

    assert webhooks.handle_event(event) == "processed"

    studio = db.get(Studio, paid_studio.id, populate_existing=True)
    assert studio.charges_enabled is False
    row = _ledger_row(db, "evt_account_1")
    assert (row.related_entity_type, row.related_entity_id) == ("studio", paid_studio.id)
    assert row.account == paid_studio.merchant_sub_account_id


def test_account_updated_for_unknown_account_is_ignored(webhooks):
    event = stripe.Event.construct_from(
        {
            "id": "evt_account_2",
            "object": "event",
            "type": "account.updated",
            "data": {"object": {"id": "acct_nobody", "object": "account", "charges_enabled": True}},
        },
        "sk_test_123",
    )

    assert webhooks.handle_event(event) == "ignored"


def test_failed_processing_is_left_claimable_for_the_redelivery(
    db, webhooks, fake_stripe, hold, monkeypatch
):
    intent = fake_stripe.authorize(hold.external_reference)
    event = _intent_event("evt_auth_3", "payment_intent.amount_capturable_updated", intent)

    def broken_confirm(payment_id):
        raise ServiceException("database unavailable", code="TEMPORARY")

    with monkeypatch.context() as patched:
        patched.setattr(webhooks.reconciler, "confirm_from_payment", broken_confirm)
        with pytest.raises(ServiceException) as exc_info:
            webhooks.handle_event(event)
    assert exc_info.value.code == "WEBHOOK_PROCESSING_FAILED"

    row = _ledger_row(db, "evt_auth_3")
    assert row.status == WebhookEventStatus.FAILED.value
    assert row.processing_error == "database unavailable"

    assert webhooks.handle_event(event) == "processed"
    assert db.query(Booking).filter(Booking.payment_id == hold.payment_id).count() == 1
    assert _ledger_row(db, "evt_auth_3").retry_count == 1
