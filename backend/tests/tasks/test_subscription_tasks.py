"""
Tests for the subscription sweep Celery tasks.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from cadence.core.enums import BookingType, PaymentPurpose, PaymentStatus, SubscriptionStatus
from cadence.models.payment import Payment
from cadence.models.subscription import Subscription
from cadence.services.payment_authorization_service import PaymentAuthorizationService
from cadence.services.subscription_lifecycle_service import SubscriptionLifecycleService
from cadence.tasks import subscription_tasks
from cadence.tasks.subscription_tasks import (
    advance_recurring_subscriptions,
    expire_lapsed_subscriptions,
    retry_pack_renewals,
)
from cadence.utils.time_utils import ensure_utc


@pytest.fixture(autouse=True)
def _tasks_use_fake_stripe(monkeypatch, fake_stripe):
    monkeypatch.setattr(
        subscription_tasks,
        "SubscriptionLifecycleService",
        lambda db: SubscriptionLifecycleService(
            db, payment_service=PaymentAuthorizationService(db, stripe_service=fake_stripe)
        ),
    )


@pytest.fixture
def make_subscription(db):
    def _make(studio, class_session, **overrides):
        values = {
            "client_id": "client-1",
            "studio_id": studio.id,
            "plan_id": class_session.class_type_id,
            "booking_type": BookingType.RECURRING.value,
            "interval": "monthly",
            "status": SubscriptionStatus.ACTIVE.value,
            "current_period_end": datetime.now(timezone.utc) - timedelta(hours=1),
        }
        values.update(overrides)
        subscription = Subscription(**values)
        db.add(subscription)
        db.commit()
        return subscription

    return _make


def _reload(db, subscription_id):
    return db.get(Subscription, subscription_id, populate_existing=True)


def test_expire_lapsed_only_touches_cancelled_subscriptions_past_their_period(
    db, free_studio, make_class_session, make_subscription
):
    class_session = make_class_session(free_studio)
    lapsed = make_subscription(free_studio, class_session, status=SubscriptionStatus.CANCELLED.value)
    still_paid = make_subscription(
        free_studio,
        class_session,
        status=SubscriptionStatus.CANCELLED.value,
        current_period_end=datetime.now(timezone.utc) + timedelta(days=3),
    )

    assert expire_lapsed_subscriptions() == {"expired": 1}

    assert _reload(db, lapsed.id).status == SubscriptionStatus.EXPIRED.value
    assert _reload(db, still_paid.id).status == SubscriptionStatus.CANCELLED.value


def test_free_recurring_subscription_rolls_forward(
    db, free_studio, make_class_session, make_subscription
):
    subscription = make_subscription(free_studio, make_class_session(free_studio))
    previous_end = ensure_utc(subscription.current_period_end)

    assert advance_recurring_subscriptions() == {"renewed": 1, "expired": 0}

    refreshed = _reload(db, subscription.id)
    assert refreshed.status == SubscriptionStatus.ACTIVE.value
    assert ensure_utc(refreshed.current_period_end) > previous_end + timedelta(days=27)


def test_paid_recurring_subscription_is_charged_off_session(
    db, fake_stripe, paid_studio, make_class_session, make_subscription
):
    class_session = make_class_session(paid_studio, price=Decimal("40.00"))
    subscription = make_subscription(
        paid_studio,
        class_session,
        payment_method_ref="pm_saved",
        merchant_customer_ref="cus_saved",
    )

    assert advance_recurring_subscriptions() == {"renewed": 1, "expired": 0}

    refreshed = _reload(db, subscription.id)
    payment = db.get(Payment, refreshed.last_renewal_payment_id)
    assert payment.purpose == PaymentPurpose.SUBSCRIPTION_RENEWAL.value
    assert payment.status == PaymentStatus.SUCCEEDED.value
    assert payment.amount == Decimal("34.00")
    assert payment.merchant_sub_account_id == paid_studio.merchant_sub_account_id
    assert fake_stripe.calls.count("create_off_session_intent") == 1

    # Nothing is due any more
    assert advance_recurring_subscriptions() == {"renewed": 0, "expired": 0}


def test_declined_renewal_expires_the_subscription(
    db, fake_stripe, paid_studio, make_class_session, make_subscription
):
    fake_stripe.decline_off_session = True
    subscription = make_subscription(
        paid_studio,
        make_class_session(paid_studio),
        payment_method_ref="pm_saved",
        merchant_customer_ref="cus_saved",
    )

    assert advance_recurring_subscriptions() == {"renewed": 0, "expired": 1}
    assert _reload(db, subscription.id).status == SubscriptionStatus.EXPIRED.value
    assert db.query(Payment).count() == 0


def test_exhausted_auto_renew_pack_is_charged_again(
    db, fake_stripe, paid_studio, make_class_session, make_subscription
):
    subscription = make_subscription(
        paid_studio,
        make_class_session(paid_studio, price=Decimal("20.00")),
        booking_type=BookingType.PACK.value,
        current_period_end=datetime.now(timezone.utc) - timedelta(days=40),
        pack_size=5,
        credits_remaining=0,
        auto_renew=True,
        renewal_attempts=1,
        payment_method_ref="pm_saved",
        merchant_customer_ref="cus_saved",
    )

    assert retry_pack_renewals() == {"renewed": 1, "failed": 0}

    refreshed = _reload(db, subscription.id)
    assert refreshed.credits_remaining == 5
    assert refreshed.renewal_attempts == 0
    payment = db.get(Payment, refreshed.last_renewal_payment_id)
    assert payment.purpose == PaymentPurpose.PACK_RENEWAL.value
    assert payment.amount == Decimal("90.00")
    assert fake_stripe.off_session_keys == [f"pack-renewal:{subscription.id}:initial:2"]
