# backend/cadence/services/booking_reconciler.py
"""
Booking Reconciler

Turns a settled payment (or a free-studio request, or a pack credit) into a
durable booking. Capacity is taken with one conditional UPDATE in the same
transaction that inserts the booking:

    UPDATE class_sessions SET booked_count = booked_count + 1
     WHERE id = :id AND booked_count < capacity

Zero rows means the session filled up first; the hold is voided and the
client gets a retryable SlotUnavailableError. Confirmation is idempotent by
payment id: bookings.payment_id is unique, so a client confirmation racing
the processor webhook ends with one booking and both callers see it.

This is the only component that compensates (voids or fails holds).
"""

from datetime import datetime
from decimal import Decimal
import logging
from typing import TYPE_CHECKING, Any, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.enums import BookingStatus, BookingType, PaymentPurpose, PaymentStatus
from ..core.exceptions import (
    BusinessRuleException,
    ConflictException,
    DomainException,
    DuplicateBookingError,
    NotFoundException,
    PaymentCaptureError,
    PaymentNotSettledError,
    RepositoryException,
    SlotUnavailableError,
    ValidationException,
)
from ..events.booking_events import BookingCancelled, BookingConfirmed
from ..events.publisher import EventPublisher
from ..models.booking import Booking
from ..models.payment import Payment
from ..models.studio import ClassSession
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import PackSelection, RecurringSelection, SingleSelection
from ..utils.time_utils import ensure_utc, utc_now
from .base import BaseService
from .payment_authorization_service import PaymentAuthorizationService
from .tracking_attribution_service import normalize_code
from .waitlist_service import WaitlistService

if TYPE_CHECKING:
    from ..models.subscription import Subscription
    from .subscription_lifecycle_service import SubscriptionLifecycleService

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class _CapacityLost(Exception):
    """Internal signal: the conditional capacity update matched no row."""


class _PackExhausted(Exception):
    """Internal signal: no pack credit was left to consume."""


def selection_from_payment(payment: Payment) -> Any:
    """Rebuild the client's booking selection from the attempt context stored on a hold."""
    booking_type = BookingType(payment.booking_type or BookingType.SINGLE.value)
    if booking_type == BookingType.RECURRING:
        return RecurringSelection(interval=payment.subscription_interval or "monthly")
    if booking_type == BookingType.PACK:
        return PackSelection(
            pack_size=payment.pack_size or 1,
            auto_renew=bool(payment.auto_renew),
            payment_method_ref=payment.payment_method_ref,
        )
    return SingleSelection()


class BookingReconciler(BaseService):
    """Commits bookings against capacity and settles their payments."""

    def __init__(
        self,
        db: Session,
        payment_service: Optional[PaymentAuthorizationService] = None,
        subscription_service: Optional["SubscriptionLifecycleService"] = None,
        event_publisher: Optional[EventPublisher] = None,
    ):
        super().__init__(db)
        self.payments = payment_service or PaymentAuthorizationService(db)
        self._subscriptions = subscription_service
        self.event_publisher = event_publisher or EventPublisher()
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.class_session_repository = RepositoryFactory.create_class_session_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.subscription_repository = RepositoryFactory.create_subscription_repository(db)
        self.waitlist = WaitlistService(db)

    @property
    def subscriptions(self) -> "SubscriptionLifecycleService":
        if self._subscriptions is None:
            from .subscription_lifecycle_service import SubscriptionLifecycleService

            self._subscriptions = SubscriptionLifecycleService(
                self.db, payment_service=self.payments
            )
        return self._subscriptions

    # ------------------------------------------------------------------ #
    # Confirmation
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("confirm_booking")
    def confirm(
        self,
        class_session_id: str,
        client_id: str,
        selection: Any,
        payment_outcome: Optional[str],
        *,
        studio_id: Optional[str] = None,
        tracking_code: Optional[str] = None,
    ) -> Booking:
        """
        Reserve a spot and create the booking for a settled payment.

        Args:
            payment_outcome: Payment id backing the booking, or None for free studios

        Raises:
            NotFoundException: unknown session or payment
            BusinessRuleException: payment required (or refused) by the studio's mode
            ValidationException: payment belongs to another attempt
            PaymentNotSettledError: the processor has not authorized the hold
            DuplicateBookingError: client already booked this session
            SlotUnavailableError: session filled up; hold voided
            PaymentCaptureError: capture failed; nothing was booked
        """
        class_session = self._load_session(class_session_id, studio_id)
        studio = class_session.studio

        payment: Optional[Payment] = None
        if payment_outcome is not None:
            existing = self.booking_repository.get_by_payment_id(payment_outcome)
            if existing is not None:
                if existing.client_id != client_id:
                    raise ValidationException(
                        "Payment does not belong to this client", code="PAYMENT_MISMATCH"
                    )
                return self._settle_existing(existing)

            if not studio.payments_enabled:
                raise BusinessRuleException(
                    "This studio does not take payments", code="PAYMENTS_DISABLED"
                )
            payment = self._require_settled_payment(
                payment_outcome, class_session, client_id, selection
            )
        elif studio.payments_enabled:
            raise BusinessRuleException(
                "A payment is required to book this class", code="PAYMENT_REQUIRED"
            )

        tracking_code = normalize_code(
            tracking_code or (payment.tracking_code if payment else None)
        )
        try:
            self._guard_bookable(class_session, client_id)
        except ConflictException:
            if payment is not None:
                winner = self.booking_repository.get_by_payment_id(payment.id)
                if winner is not None:
                    # The duplicate is this payment's own booking from a concurrent call
                    return winner
                self._void_quietly(payment)
            raise

        booking, created = self._reserve_and_insert(
            class_session=class_session,
            client_id=client_id,
            selection=selection,
            payment=payment,
            tracking_code=tracking_code,
        )
        if not created:
            return booking

        if booking.status == BookingStatus.PENDING.value:
            booking = self._capture_and_confirm(booking, payment)

        self._after_confirmation(booking, payment, interval=getattr(selection, "interval", None))
        return booking

    @BaseService.measure_operation("confirm_from_payment")
    def confirm_from_payment(self, payment_id: str) -> Optional[Booking]:
        """
        Reconcile a booking from the attempt context stored on a payment.

        Used by processor webhooks, which arrive without the client. Returns
        None for payments that are not booking holds.
        """
        payment = self.payment_repository.get_by_id(payment_id)
        if payment is None:
            raise NotFoundException("Payment not found", code="PAYMENT_NOT_FOUND")
        if payment.purpose != PaymentPurpose.BOOKING.value or not payment.class_session_id:
            return None
        return self.confirm(
            payment.class_session_id,
            payment.client_id,
            selection_from_payment(payment),
            payment.id,
            studio_id=payment.studio_id,
            tracking_code=payment.tracking_code,
        )

    def _load_session(self, class_session_id: str, studio_id: Optional[str]) -> ClassSession:
        class_session = self.class_session_repository.get_fresh(class_session_id)
        if class_session is None or (studio_id and class_session.studio_id != studio_id):
            raise NotFoundException("Class session not found", code="CLASS_SESSION_NOT_FOUND")
        return class_session

    def _require_settled_payment(
        self, payment_id: str, class_session: ClassSession, client_id: str, selection: Any
    ) -> Payment:
        payment = self.payment_repository.get_by_id(payment_id)
        if payment is None:
            raise NotFoundException("Payment not found", code="PAYMENT_NOT_FOUND")

        mismatched = (
            payment.purpose != PaymentPurpose.BOOKING.value
            or payment.studio_id != class_session.studio_id
            or payment.class_session_id != class_session.id
            or payment.client_id != client_id
            or payment.booking_type != selection.booking_type
            or payment.pack_size != getattr(selection, "pack_size", None)
        )
        if mismatched:
            raise ValidationException(
                "Payment does not match this booking",
                code="PAYMENT_MISMATCH",
                details={"payment_id": payment_id},
            )

        if payment.status == PaymentStatus.CREATED.value:
            payment = self.payments.refresh_status(payment.id)
        if not payment.is_settled:
            raise PaymentNotSettledError(payment.id, payment.status)
        return payment

    def _guard_bookable(self, class_session: ClassSession, client_id: str) -> None:
        duplicate = self.booking_repository.find_active_for_client_session(
            client_id, class_session.id
        )
        if duplicate is not None:
            raise DuplicateBookingError(class_session.id, duplicate.id)
        if ensure_utc(class_session.start_time) <= utc_now():
            raise ConflictException(
                "This class has already started",
                code="SESSION_STARTED",
                details={"class_session_id": class_session.id},
            )

    def _reserve_and_insert(
        self,
        *,
        class_session: ClassSession,
        client_id: str,
        selection: Any,
        payment: Optional[Payment],
        tracking_code: Optional[str],
    ) -> Tuple[Booking, bool]:
        """Take the spot and insert the booking; the flag is False when another call won."""
        needs_capture = payment is not None and payment.status == PaymentStatus.AUTHORIZED.value
        status = BookingStatus.PENDING if needs_capture else BookingStatus.CONFIRMED

        booking: Optional[Booking] = None
        try:
            with self.transaction():
                if self.class_session_repository.try_reserve_spot(class_session.id):
                    booking = self.booking_repository.create(
                        client_id=client_id,
                        studio_id=class_session.studio_id,
                        class_session_id=class_session.id,
                        status=status.value,
                        booking_type=selection.booking_type,
                        pack_size=getattr(selection, "pack_size", None),
                        auto_renew=bool(getattr(selection, "auto_renew", False)),
                        amount=payment.amount if payment else ZERO,
                        payment_id=payment.id if payment else None,
                        tracking_code=tracking_code,
                        confirmed_at=None if needs_capture else utc_now(),
                    )
        except RepositoryException as exc:
            if payment is None or not isinstance(exc.__cause__, IntegrityError):
                raise
            # A concurrent confirmation for the same payment won the insert
            winner = self.booking_repository.get_by_payment_id(payment.id)
            if winner is None:
                raise
            self.logger.info(f"Payment {payment.id} already reconciled as booking {winner.id}")
            return winner, False

        if booking is None:
            if payment is not None:
                winner = self.booking_repository.get_by_payment_id(payment.id)
                if winner is not None:
                    return winner, False
            prometheus_metrics.inc_capacity_conflict()
            voided = self._void_quietly(payment) if payment is not None else False
            self.logger.info(
                f"Session {class_session.id} full; rejected confirmation for client {client_id}"
            )
            raise SlotUnavailableError(class_session.id, payment_voided=voided)

        self.log_operation(
            "reserve_spot", booking_id=booking.id, class_session_id=class_session.id
        )
        return booking, True

    def _capture_and_confirm(self, booking: Booking, payment: Payment) -> Booking:
        try:
            self.payments.capture_hold(payment.id)
        except PaymentCaptureError as exc:
            reason = str(exc.details.get("reason") or exc.message)
            with self.transaction():
                booking.cancel("payment_capture_failed")
                self.class_session_repository.release_spot(booking.class_session_id)
            self.payments.fail_after_capture_error(payment.id, reason)
            self.logger.warning(f"Capture failed for booking {booking.id}: {reason}")
            raise

        with self.transaction():
            booking.confirm()
        return booking

    def _settle_existing(self, booking: Booking) -> Booking:
        """
        Return the booking a payment already produced.

        A booking left PENDING by an interrupted capture is confirmed here once
        the processor reports the payment as captured.
        """
        if booking.status != BookingStatus.PENDING.value or not booking.payment_id:
            return booking
        payment = self.payments.refresh_status(booking.payment_id)
        if payment.status == PaymentStatus.SUCCEEDED.value:
            with self.transaction():
                booking.confirm()
            self._after_confirmation(booking, payment)
        elif payment.status == PaymentStatus.AUTHORIZED.value:
            booking = self._capture_and_confirm(booking, payment)
            self._after_confirmation(booking, payment)
        return booking

    def _void_quietly(self, payment: Payment) -> bool:
        try:
            self.payments.void_hold(payment.id)
        except DomainException as exc:
            self.logger.error(f"Could not void payment {payment.id}: {exc.message}")
            return False
        return payment.status == PaymentStatus.VOIDED.value

    def _after_confirmation(
        self, booking: Booking, payment: Optional[Payment], interval: Optional[str] = None
    ) -> None:
        prometheus_metrics.inc_booking_confirmed(booking.booking_type)
        self.log_operation(
            "booking_confirmed",
            booking_id=booking.id,
            class_session_id=booking.class_session_id,
            payment_id=booking.payment_id,
        )

        if booking.tracking_code:
            self.event_publisher.publish(
                BookingConfirmed(
                    booking_id=booking.id,
                    studio_id=booking.studio_id,
                    client_id=booking.client_id,
                    class_session_id=booking.class_session_id,
                    booking_type=booking.booking_type,
                    amount=str(booking.amount),
                    confirmed_at=booking.confirmed_at or utc_now(),
                    tracking_code=booking.tracking_code,
                )
            )

        self._close_waitlist_entry(booking)

        if booking.booking_type in (BookingType.RECURRING.value, BookingType.PACK.value):

            try:
                self.subscriptions.on_booking_confirmed(booking, payment, interval=interval)
            except DomainException as exc:
                # The booking is paid and durable; the subscription can be repaired later
                self.logger.error(
                    f"Subscription hook failed for booking {booking.id}: {exc.message}"
                )

    def _close_waitlist_entry(self, booking: Booking) -> None:
        try:
            self.waitlist.mark_booked(booking.class_session_id, booking.client_id, booking.id)
        except DomainException as exc:
            self.logger.error(
                f"Could not close waitlist entry for booking {booking.id}: {exc.message}"
            )


    # ------------------------------------------------------------------ #
    # Pack credits
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("book_with_pack_credit")
    def book_with_pack_credit(
        self, subscription: "Subscription", class_session_id: str, client_id: str
    ) -> Booking:
        """
        Book a session with one pack credit, no payment involved.

        The credit and the spot are taken in the same transaction, so a full
        session never costs a credit and an exhausted pack never takes a spot.
        """
        class_session = self._load_session(class_session_id, subscription.studio_id)
        if class_session.class_type_id != subscription.plan_id:
            raise ValidationException(
                "This pack is for a different class type", code="PACK_PLAN_MISMATCH"
            )
        self._guard_bookable(class_session, client_id)

        try:
            with self.transaction():
                if not self.subscription_repository.try_consume_credit(subscription.id):
                    raise _PackExhausted()
                if not self.class_session_repository.try_reserve_spot(class_session.id):
                    raise _CapacityLost()
                booking = self.booking_repository.create(
                    client_id=client_id,
                    studio_id=class_session.studio_id,
                    class_session_id=class_session.id,
                    status=BookingStatus.CONFIRMED.value,
                    booking_type=BookingType.PACK.value,
                    pack_size=subscription.pack_size,
                    auto_renew=bool(subscription.auto_renew),
                    amount=ZERO,
                    subscription_id=subscription.id,
                    confirmed_at=utc_now(),
                )
        except _PackExhausted:
            raise BusinessRuleException(
                "No pack credits remaining", code="PACK_EXHAUSTED"
            )
        except _CapacityLost:
            prometheus_metrics.inc_capacity_conflict()
            raise SlotUnavailableError(class_session.id)

        prometheus_metrics.inc_booking_confirmed(BookingType.PACK.value)
        self._close_waitlist_entry(booking)
        self.log_operation(
            "book_with_pack_credit", booking_id=booking.id, subscription_id=subscription.id
        )
        return booking

    # ------------------------------------------------------------------ #
    # Recurring series
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("book_recurring_series")
    def book_recurring_series(
        self,
        subscription: "Subscription",
        anchor: ClassSession,
        starts_after: datetime,
        starts_before: datetime,
    ) -> int:
        """
        Reserve the weekly repeats of ``anchor`` inside a paid period.

        A repeat has the anchor's class type, location and teacher, and starts
        on the same weekday at the same time of day. Each one is reserved
        through the capacity update and booked at no charge against the
        subscription; full sessions are skipped.

        Returns:
            Number of sessions booked.
        """
        anchor_start = ensure_utc(anchor.start_time)
        now = utc_now()
        booked = 0
        repeats = self.class_session_repository.list_repeats(
            studio_id=anchor.studio_id,
            location_id=anchor.location_id,
            class_type_id=anchor.class_type_id,
            teacher_id=anchor.teacher_id,
            starts_after=max(anchor_start, ensure_utc(starts_after)),
            starts_before=ensure_utc(starts_before),
        )
        for class_session in repeats:
            start = ensure_utc(class_session.start_time)
            if start.weekday() != anchor_start.weekday() or start.time() != anchor_start.time():
                continue
            if start <= now:
                continue
            if self.booking_repository.find_active_for_client_session(
                subscription.client_id, class_session.id
            ):
                continue

            with self.transaction():
                reserved = self.class_session_repository.try_reserve_spot(class_session.id)
                if reserved:
                    self.booking_repository.create(
                        client_id=subscription.client_id,
                        studio_id=class_session.studio_id,
                        class_session_id=class_session.id,
                        status=BookingStatus.CONFIRMED.value,
                        booking_type=BookingType.RECURRING.value,
                        amount=ZERO,
                        subscription_id=subscription.id,
                        confirmed_at=utc_now(),
                    )
            if not reserved:
                prometheus_metrics.inc_capacity_conflict()
                self.logger.info(
                    f"Session {class_session.id} is full; skipped for subscription {subscription.id}"
                )
                continue
            booked += 1

        if booked:
            self.log_operation(
                "book_recurring_series", subscription_id=subscription.id, booked=booked
            )
        return booked

    # ------------------------------------------------------------------ #
    # Cancellation
    # ------------------------------------------------------------------ #


    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self, booking_id: str, client_id: str, reason: Optional[str] = None
    ) -> Booking:
        """
        Cancel an active booking and give its spot back. No refund is issued.

        A spot freed before the class starts is offered to the waitlist.
        """
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None or booking.client_id != client_id:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        if booking.status == BookingStatus.CANCELLED.value:
            return booking
        if not booking.is_active:
            raise BusinessRuleException(
                f"Cannot cancel a {booking.status.lower()} booking", code="BOOKING_NOT_ACTIVE"
            )

        with self.transaction():
            booking.cancel(reason)
            self.class_session_repository.release_spot(booking.class_session_id)

        self.event_publisher.publish(
            BookingCancelled(
                booking_id=booking.id,
                class_session_id=booking.class_session_id,
                cancelled_at=booking.cancelled_at,
                reason=reason,
            )
        )
        if ensure_utc(booking.class_session.start_time) > utc_now():
            try:
                self.waitlist.promote_next(booking.class_session_id)
            except DomainException as exc:
                self.logger.error(
                    f"Waitlist promotion failed for session "
                    f"{booking.class_session_id}: {exc.message}"
                )
        return booking

    @BaseService.measure_operation("abandon_payment")
    def abandon_payment(self, payment_id: str, client_id: str) -> Payment:
        """
        Client walked away before settlement: release the hold.

        Capacity is only taken at confirmation, so nothing else needs undoing.
        """
        payment = self.payment_repository.get_by_id(payment_id)
        if payment is None or payment.client_id != client_id:
            raise NotFoundException("Payment not found", code="PAYMENT_NOT_FOUND")
        if self.booking_repository.get_by_payment_id(payment.id) is not None:
            raise BusinessRuleException(
                "Payment already backs a booking; cancel the booking instead",
                code="PAYMENT_ALREADY_BOOKED",
            )
        return self.payments.void_hold(payment.id)
