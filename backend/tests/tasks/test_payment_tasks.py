"""
Tests for payment maintenance Celery tasks.

Tasks open their own session from ``cadence.database.SessionLocal``, which
the ``engine`` fixture points at the test database.
"""

from datetime import datetime, timedelta, timezone

import pytest

from cadence.core.enums import PaymentStatus
from cadence.models.payment import Payment
from cadence.schemas.booking import SingleSelection
from cadence.services.booking_reconciler import BookingReconciler
from cadence.services.payment_authorization_service import PaymentAuthorizationService
from cadence.tasks import payment_tasks
from cadence.tasks.payment_tasks import void_stale_payment_holds


@pytest.fixture
def payments(db, fake_stripe):
    return PaymentAuthorizationService(db, stripe_service=fake_stripe)


@pytest.fixture(autouse=True)
def _tasks_use_fake_stripe(monkeypatch, fake_stripe):
    monkeypatch.setattr(
        payment_tasks,
        "PaymentAuthorizationService",
        lambda db: PaymentAuthorizationService(db, stripe_service=fake_stripe),
    )


def _age(db, payment_id, minutes):
    payment = db.get(Payment, payment_id, populate_existing=True)
    payment.created_at = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    db.commit()


def test_stale_holds_are_voided(db, payments, fake_stripe, paid_studio, make_class_session):
    class_session = make_class_session(paid_studio)
    abandoned = payments.open_hold_for_selection(
        studio_id=paid_studio.id,
        client_id="client-1",
        class_session_id=class_session.id,
        selection=SingleSelection(),
    )
    recent = payments.open_hold_for_selection(
        studio_id=paid_studio.id,
        client_id="client-2",
        class_session_id=class_session.id,
        selection=SingleSelection(),
    )
    _age(db, abandoned.payment_id, minutes=120)

    result = void_stale_payment_holds(limit=10)

    assert result == {"voided": 1, "failed": 0}
    assert db.get(Payment, abandoned.payment_id, populate_existing=True).status == PaymentStatus.VOIDED.value
    assert db.get(Payment, recent.payment_id, populate_existing=True).status == PaymentStatus.CREATED.value
    assert fake_stripe.intents[abandoned.external_reference].status == "canceled"


def test_holds_that_became_bookings_are_left_alone(
    db, payments, fake_stripe, paid_studio, make_class_session
):
    class_session = make_class_session(paid_studio)
    hold = payments.open_hold_for_selection(
        studio_id=paid_studio.id,
        client_id="client-1",
        class_session_id=class_session.id,
        selection=SingleSelection(),
    )
    fake_stripe.authorize(hold.external_reference)
    BookingReconciler(db, payment_service=payments).confirm(
        class_session.id, "client-1", SingleSelection(), hold.payment_id
    )
    _age(db, hold.payment_id, minutes=120)

    assert void_stale_payment_holds() == {"voided": 0, "failed": 0}
    assert db.get(Payment, hold.payment_id, populate_existing=True).status == PaymentStatus.SUCCEEDED.value
