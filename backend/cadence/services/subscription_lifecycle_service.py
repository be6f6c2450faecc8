# backend/cadence/services/subscription_lifecycle_service.py
"""
Subscription Lifecycle Service

States: active -> cancelled -> expired. Cancelling keeps access until
current_period_end; the hourly sweep expires lapsed subscriptions.

RECURRING subscriptions are charged once per interval by
``advance_recurring_periods``. PACK subscriptions hold visit credits; when
the last credit is used and auto-renew is on, a fresh pack is charged
off-session and ``pack_size`` credits are added exactly once per renewal
payment. Buying the same pack again tops up the active one. Pack credits
do not lapse with the period; a declined renewal is retried by
``retry_exhausted_packs`` up to ``pack_renewal_max_attempts`` times.

RECURRING subscriptions book the weekly repeats of their first session for
each paid period.
"""

from datetime import datetime
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.orm import Session
import stripe

from ..core.config import settings
from ..core.enums import (
    BookingType,
    PaymentPurpose,
    PaymentStatus,
    SubscriptionInterval,
    SubscriptionStatus,
)
from ..core.exceptions import (
    BusinessRuleException,
    DomainException,
    ForbiddenException,
    NotFoundException,
)
from ..core.ulid_helper import generate_ulid
from ..models.booking import Booking
from ..models.payment import Payment
from ..models.subscription import Subscription
from ..repositories.factory import RepositoryFactory
from ..utils.time_utils import add_months, ensure_utc, utc_now
from .base import BaseService
from .payment_authorization_service import PaymentAuthorizationService
from .pricing_service import price

if TYPE_CHECKING:
    from .booking_reconciler import BookingReconciler

logger = logging.getLogger(__name__)


def period_end_after(start: datetime, interval: str) -> datetime:
    """End of one billing period starting at ``start``."""
    months = 12 if interval == SubscriptionInterval.YEARLY.value else 1
    return add_months(ensure_utc(start), months)


class SubscriptionLifecycleService(BaseService):
    def __init__(
        self, db: Session, payment_service: Optional[PaymentAuthorizationService] = None
    ):
        super().__init__(db)
        self.payments = payment_service or PaymentAuthorizationService(db)
        self.subscription_repository = RepositoryFactory.create_subscription_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.studio_repository = RepositoryFactory.create_studio_repository(db)

    def _reconciler(self) -> "BookingReconciler":
        from .booking_reconciler import BookingReconciler

        return BookingReconciler(self.db, payment_service=self.payments, subscription_service=self)

    def _get_owned(self, subscription_id: str, client_id: str) -> Subscription:
        subscription = self.subscription_repository.get_fresh(subscription_id)
        if subscription is None:
            raise NotFoundException("Subscription not found", code="SUBSCRIPTION_NOT_FOUND")
        if subscription.client_id != client_id:
            raise ForbiddenException(
                "Subscription belongs to another client", code="SUBSCRIPTION_FORBIDDEN"
            )
        return subscription

    # ------------------------------------------------------------------ #
    # Creation
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("on_booking_confirmed")
    def on_booking_confirmed(
        self, booking: Booking, payment: Optional[Payment], interval: Optional[str] = None
    ) -> Optional[Subscription]:
        """
        Create the subscription behind a first RECURRING or PACK booking.

        The billing interval comes from the payment when there is one, else
        from ``interval`` (free studios), else monthly.

        Safe to call twice for the same booking: a booking already linked to
        a subscription is returned unchanged.
        """
        if booking.booking_type not in (BookingType.RECURRING.value, BookingType.PACK.value):
            return None
        if booking.subscription_id:
            return self.subscription_repository.get_by_id(booking.subscription_id)

        confirmed_at = ensure_utc(booking.confirmed_at or utc_now())
        class_type_id = booking.class_session.class_type_id
        merchant_customer_ref = None
        if payment is not None:
            customer = self.payment_repository.get_merchant_customer(
                booking.client_id, payment.merchant_sub_account_id
            )
            merchant_customer_ref = customer.stripe_customer_id if customer else None

        if booking.booking_type == BookingType.PACK.value:
            existing = self.subscription_repository.find_active_for_plan(
                booking.client_id, booking.studio_id, class_type_id, BookingType.PACK
            )
            if existing is not None:
                return self._top_up_pack(existing, booking, payment, merchant_customer_ref)

        with self.transaction():
            if booking.booking_type == BookingType.RECURRING.value:
                if payment is not None and payment.subscription_interval:
                    interval = payment.subscription_interval
                interval = interval or SubscriptionInterval.MONTHLY.value
                subscription = self.subscription_repository.create(
                    client_id=booking.client_id,
                    studio_id=booking.studio_id,
                    plan_id=class_type_id,
                    booking_type=BookingType.RECURRING.value,
                    interval=interval,
                    status=SubscriptionStatus.ACTIVE.value,
                    current_period_end=period_end_after(confirmed_at, interval),
                    payment_method_ref=payment.payment_method_ref if payment else None,
                    merchant_customer_ref=merchant_customer_ref,
                    last_renewal_payment_id=payment.id if payment else None,
                )
            else:
                pack_size = int(booking.pack_size or 1)
                subscription = self.subscription_repository.create(
                    client_id=booking.client_id,
                    studio_id=booking.studio_id,
                    plan_id=class_type_id,
                    booking_type=BookingType.PACK.value,
                    interval=SubscriptionInterval.MONTHLY.value,
                    status=SubscriptionStatus.ACTIVE.value,
                    current_period_end=period_end_after(
                        confirmed_at, SubscriptionInterval.MONTHLY.value
                    ),
                    pack_size=pack_size,
                    # The first booking uses one credit
                    credits_remaining=pack_size - 1,
                    auto_renew=bool(booking.auto_renew),
                    payment_method_ref=payment.payment_method_ref if payment else None,
                    merchant_customer_ref=merchant_customer_ref,
                    last_renewal_payment_id=payment.id if payment else None,
                )
            booking.subscription_id = subscription.id

        self.log_operation(
            "subscription_created",
            subscription_id=subscription.id,
            booking_id=booking.id,
            booking_type=subscription.booking_type,
        )
        if subscription.booking_type == BookingType.RECURRING.value:
            self._reconciler().book_recurring_series(
                subscription,
                booking.class_session,
                starts_after=booking.class_session.start_time,
                starts_before=subscription.current_period_end,
            )
        elif subscription.credits_remaining == 0:
            self.renew_exhausted_pack(subscription.id)
        return subscription

    def _top_up_pack(
        self,
        subscription: Subscription,
        booking: Booking,
        payment: Optional[Payment],
        merchant_customer_ref: Optional[str],
    ) -> Subscription:
        """Fold a repeat purchase of the same pack into the client's active one."""
        pack_size = int(booking.pack_size or 1)
        with self.transaction():
            # The booking that bought the pack uses one of its credits
            self.subscription_repository.add_credits(subscription.id, pack_size - 1)
            subscription.pack_size = pack_size
            subscription.auto_renew = bool(booking.auto_renew)
            subscription.renewal_attempts = 0
            if payment is not None:
                subscription.payment_method_ref = payment.payment_method_ref
                subscription.merchant_customer_ref = (
                    merchant_customer_ref or subscription.merchant_customer_ref
                )
                subscription.last_renewal_payment_id = payment.id
            booking.subscription_id = subscription.id

        subscription = self.subscription_repository.get_fresh(subscription.id)
        self.log_operation(
            "pack_topped_up",
            subscription_id=subscription.id,
            booking_id=booking.id,
            credits_remaining=subscription.credits_remaining,
        )
        if subscription.credits_remaining == 0:
            self.renew_exhausted_pack(subscription.id)
        return subscription

    # ------------------------------------------------------------------ #
    # Client operations
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("cancel_subscription")
    def cancel(self, subscription_id: str, client_id: str) -> Subscription:
        """Request cancellation; access continues until the current period ends."""
        subscription = self._get_owned(subscription_id, client_id)
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            return subscription
        if subscription.status == SubscriptionStatus.EXPIRED.value:
            raise BusinessRuleException(
                "Subscription has already expired", code="SUBSCRIPTION_EXPIRED"
            )

        with self.transaction():
            subscription.status = SubscriptionStatus.CANCELLED.value
            subscription.cancelled_at = utc_now()
        self.log_operation("cancel_subscription", subscription_id=subscription.id)
        return subscription

    @BaseService.measure_operation("renew_subscription")
    def renew(self, subscription_id: str, client_id: str) -> Subscription:
        """Undo a cancellation while the paid period is still running."""
        subscription = self._get_owned(subscription_id, client_id)
        if subscription.status == SubscriptionStatus.ACTIVE.value:
            return subscription
        if subscription.status == SubscriptionStatus.EXPIRED.value or not subscription.has_access():
            raise BusinessRuleException(
                "Subscription period has ended; start a new subscription",
                code="SUBSCRIPTION_ENDED",
            )

        with self.transaction():
            subscription.status = SubscriptionStatus.ACTIVE.value
            subscription.cancelled_at = None
        self.log_operation("renew_subscription", subscription_id=subscription.id)
        return subscription

    @staticmethod
    def has_access(subscription: Subscription, at: Optional[datetime] = None) -> bool:
        return subscription.has_access(at)

    def get_for_client(self, subscription_id: str, client_id: str) -> Subscription:
        return self._get_owned(subscription_id, client_id)

    def list_for_client(self, client_id: str, studio_id: Optional[str] = None) -> List[Subscription]:
        return self.subscription_repository.list_for_client(client_id, studio_id)

    @BaseService.measure_operation("redeem_pack_credit")
    def redeem_pack_credit(
        self, subscription_id: str, client_id: str, class_session_id: str
    ) -> Booking:
        """Book a session with one pack credit; renews the pack if that was the last one."""
        subscription = self._get_owned(subscription_id, client_id)
        if subscription.booking_type != BookingType.PACK.value:
            raise BusinessRuleException("Only packs have credits", code="NOT_A_PACK")
        if subscription.status == SubscriptionStatus.EXPIRED.value:
            raise BusinessRuleException("Pack is no longer active", code="SUBSCRIPTION_ENDED")

        booking = self._reconciler().book_with_pack_credit(
            subscription, class_session_id, client_id
        )

        subscription = self.subscription_repository.get_fresh(subscription.id)
        if subscription.credits_remaining == 0:
            self.renew_exhausted_pack(subscription.id)
        return booking

    # ------------------------------------------------------------------ #
    # Renewals
    # ------------------------------------------------------------------ #

    def _charge_renewal(
        self,
        subscription: Subscription,
        *,
        amount: Any,
        purpose: PaymentPurpose,
        idempotency_key: str,
    ) -> Optional[Payment]:
        """
        Authorize and capture one renewal charge. Returns the captured payment,
        or None when nothing could be charged (the hold, if any, is released).
        """
        studio = self.studio_repository.get_by_id(subscription.studio_id)
        if not subscription.payment_method_ref or not subscription.merchant_customer_ref:
            self.logger.warning(
                f"Subscription {subscription.id} has no saved payment method; cannot renew"
            )
            return None
        try:
            payment = self.payments.create_off_session_charge(
                studio=studio,
                client_id=subscription.client_id,
                amount=amount,
                purpose=purpose,
                subscription_id=subscription.id,
                customer_id=subscription.merchant_customer_ref,
                payment_method_id=subscription.payment_method_ref,
                idempotency_key=idempotency_key,
                booking_type=BookingType(subscription.booking_type),
                pack_size=subscription.pack_size,
            )
            if payment.status == PaymentStatus.AUTHORIZED.value:
                payment = self.payments.capture_hold(payment.id)
        except stripe.StripeError as e:
            self.logger.warning(f"Renewal charge declined for {subscription.id}: {str(e)}")
            return None
        except DomainException as e:
            self.logger.warning(f"Renewal charge failed for {subscription.id}: {e.message}")
            return None

        if payment.status != PaymentStatus.SUCCEEDED.value:
            self.logger.warning(
                f"Renewal payment {payment.id} for {subscription.id} ended as {payment.status}"
            )
            if not payment.is_terminal:
                try:
                    self.payments.void_hold(payment.id)
                except DomainException as e:
                    self.logger.error(f"Could not void renewal hold {payment.id}: {e.message}")
            return None
        return payment

    @BaseService.measure_operation("renew_exhausted_pack")
    def renew_exhausted_pack(self, subscription_id: str) -> bool:
        """
        Buy the next pack when credits ran out and auto-renew is on.

        Credits are only added after the charge is captured, so a failed
        renewal leaves the pack active with zero credits and nothing charged.
        Each charge attempt is counted and keyed separately, so a retry after a
        decline reaches the processor as a new charge.
        """
        subscription = self.subscription_repository.get_fresh(subscription_id)
        if (
            subscription is None
            or subscription.booking_type != BookingType.PACK.value
            or subscription.status != SubscriptionStatus.ACTIVE.value
            or not subscription.auto_renew
            or subscription.credits_remaining > 0
            or (subscription.renewal_attempts or 0) >= settings.pack_renewal_max_attempts
        ):
            return False

        studio = self.studio_repository.get_by_id(subscription.studio_id)
        class_type = self.studio_repository.get_class_type(subscription.studio_id, subscription.plan_id)
        if studio is None or class_type is None:
            self.logger.error(f"Pack {subscription.id} refers to a missing studio or class type")
            return False

        pack_size = int(subscription.pack_size or 1)
        if studio.payments_enabled:
            try:
                amount = price(class_type.price, BookingType.PACK, pack_size)
            except DomainException as e:
                self.logger.error(f"Cannot price renewal for pack {subscription.id}: {e.message}")
                return False
            with self.transaction():
                subscription.renewal_attempts = (subscription.renewal_attempts or 0) + 1
            payment = self._charge_renewal(
                subscription,
                amount=amount,
                purpose=PaymentPurpose.PACK_RENEWAL,
                # One key per attempt; the previous renewal payment marks the cycle
                idempotency_key=(
                    f"pack-renewal:{subscription.id}:"
                    f"{subscription.last_renewal_payment_id or 'initial'}:"
                    f"{subscription.renewal_attempts}"
                ),
            )
            if payment is None:
                return False
            renewal_id = payment.id
        else:
            renewal_id = generate_ulid()

        with self.transaction():
            replenished = self.subscription_repository.replenish_credits(
                subscription.id,
                pack_size,
                renewal_id,
                period_end_after(utc_now(), SubscriptionInterval.MONTHLY.value),
            )
        if replenished:
            self.log_operation(
                "pack_renewed", subscription_id=subscription.id, renewal_payment_id=renewal_id
            )
        return replenished

    @BaseService.measure_operation("retry_exhausted_packs")
    def retry_exhausted_packs(self) -> Dict[str, int]:
        """Retry auto-renew for packs a declined charge left at zero credits."""
        results = {"renewed": 0, "failed": 0}
        for subscription in self.subscription_repository.list_exhausted_auto_renew(
            settings.pack_renewal_max_attempts
        ):
            if self.renew_exhausted_pack(subscription.id):
                results["renewed"] += 1
            else:
                results["failed"] += 1

        if results["renewed"] or results["failed"]:
            self.logger.info(
                f"Pack renewal retries: renewed={results['renewed']} failed={results['failed']}"
            )
        return results

    @BaseService.measure_operation("expire_lapsed")

    def expire_lapsed(self, now: Optional[datetime] = None) -> int:
        """Expire cancelled subscriptions with nothing left: a finished period or an empty pack."""
        moment = now or utc_now()
        expired = 0
        with self.transaction():
            for subscription in self.subscription_repository.list_lapsed_cancelled(moment):
                subscription.status = SubscriptionStatus.EXPIRED.value
                expired += 1
        if expired:
            self.logger.info(f"Expired {expired} lapsed subscriptions")
        return expired

    @BaseService.measure_operation("advance_recurring_periods")
    def advance_recurring_periods(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Charge the next period for active recurring subscriptions whose period ended.

        Free studios roll the period forward without a charge. A renewal that
        cannot be charged expires the subscription.
        """
        moment = now or utc_now()
        results = {"renewed": 0, "expired": 0}

        for subscription in self.subscription_repository.list_due_recurring(moment):
            studio = self.studio_repository.get_by_id(subscription.studio_id)
            class_type = self.studio_repository.get_class_type(
                subscription.studio_id, subscription.plan_id
            )
            period_end = ensure_utc(subscription.current_period_end)
            next_end = period_end_after(period_end, subscription.interval)
            # Long outages skip missed periods rather than charging for each one
            if next_end <= moment:
                next_end = period_end_after(moment, subscription.interval)

            renewal_id: Optional[str] = None
            if studio is not None and class_type is not None and studio.payments_enabled:
                try:
                    amount = price(class_type.price, BookingType.RECURRING)
                except DomainException as e:
                    self.logger.error(f"Cannot price renewal for {subscription.id}: {e.message}")
                    amount = None
                payment = None
                if amount is not None:
                    payment = self._charge_renewal(
                        subscription,
                        amount=amount,
                        purpose=PaymentPurpose.SUBSCRIPTION_RENEWAL,
                        idempotency_key=(
                            f"subscription-renewal:{subscription.id}:{period_end.date().isoformat()}"
                        ),
                    )
                if payment is None:
                    with self.transaction():
                        subscription.status = SubscriptionStatus.EXPIRED.value
                    results["expired"] += 1
                    continue
                renewal_id = payment.id
            elif studio is None or class_type is None:
                with self.transaction():
                    subscription.status = SubscriptionStatus.EXPIRED.value
                results["expired"] += 1
                continue

            with self.transaction():
                subscription.current_period_end = next_end
                if renewal_id:
                    subscription.last_renewal_payment_id = renewal_id
            results["renewed"] += 1
            self._book_period(subscription, period_end, next_end)

        if results["renewed"] or results["expired"]:
            self.logger.info(
                f"Recurring sweep: renewed={results['renewed']} expired={results['expired']}"
            )
        return results

    def _book_period(
        self, subscription: Subscription, starts_after: datetime, starts_before: datetime
    ) -> int:
        """Book the weekly sessions of a renewed period, anchored on the series' first booking."""
        bookings = self.booking_repository.list_for_subscription(subscription.id)
        if not bookings:
            self.logger.warning(f"Recurring subscription {subscription.id} has no bookings to repeat")
            return 0
        return self._reconciler().book_recurring_series(
            subscription,
            bookings[0].class_session,
            starts_after=starts_after,
            starts_before=starts_before,
        )
