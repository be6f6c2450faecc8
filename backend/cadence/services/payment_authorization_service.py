# backend/cadence/services/payment_authorization_service.py
"""
Payment Authorization Service

Opens, captures and voids payment holds on a studio's own merchant
sub-account and keeps the local Payment row in step with the processor.

Hold creation is never retried here. When Stripe is unreachable the caller
gets a retryable PaymentInitializationError and no Payment row is left
behind: the PaymentIntent is created first and the row is only written
once Stripe has answered.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import stripe

from ..core.config import settings
from ..core.enums import BookingType, PaymentPurpose, PaymentStatus
from ..core.exceptions import (
    BusinessRuleException,
    ConfigurationError,
    InvalidPriceError,
    NotFoundException,
    PaymentCaptureError,
    PaymentInitializationError,
    RepositoryException,
    ServiceException,
)
from ..core.ulid_helper import generate_ulid
from ..models.payment import Payment
from ..models.studio import Studio
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..utils.time_utils import ensure_utc, utc_now
from .base import BaseService
from .pricing_service import price_selection, to_minor_units
from .stripe_service import StripeService
from .tracking_attribution_service import normalize_code

logger = logging.getLogger(__name__)

SETTLED_STATUSES = (PaymentStatus.AUTHORIZED, PaymentStatus.SUCCEEDED)
OPEN_STATUSES = (PaymentStatus.CREATED, PaymentStatus.AUTHORIZED)


@dataclass
class HoldHandle:
    """What the client needs to confirm a hold, and what it sends back afterwards."""

    payment_id: str
    external_reference: str
    client_authorization_secret: Optional[str]
    merchant_sub_account_id: str
    amount: Decimal
    currency: str


def map_intent_status(intent: Any) -> Optional[PaymentStatus]:
    """
    Translate a Stripe PaymentIntent status into a Payment status.

    Returns None when the intent is still in flight and the local status
    should stay as it is.
    """
    status = getattr(intent, "status", None)
    if status == "requires_capture":
        return PaymentStatus.AUTHORIZED
    if status == "succeeded":
        return PaymentStatus.SUCCEEDED
    if status == "canceled":
        return PaymentStatus.VOIDED
    if status == "requires_payment_method" and getattr(intent, "last_payment_error", None):
        return PaymentStatus.FAILED
    return None


def _allowed_sources(target: PaymentStatus) -> tuple:
    if target == PaymentStatus.AUTHORIZED:
        return (PaymentStatus.CREATED,)
    return OPEN_STATUSES


class PaymentAuthorizationService(BaseService):
    """Orchestrates the payment-hold lifecycle for one request's session."""

    def __init__(self, db: Session, stripe_service: Optional[StripeService] = None):
        super().__init__(db)
        self.stripe = stripe_service or StripeService(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.studio_repository = RepositoryFactory.create_studio_repository(db)
        self.class_session_repository = RepositoryFactory.create_class_session_repository(db)

    # ------------------------------------------------------------------ #
    # Tenant checks
    # ------------------------------------------------------------------ #

    def _require_payable_studio(self, studio_id: str) -> Studio:
        studio = self.studio_repository.get_by_id(studio_id)
        if not studio:
            raise NotFoundException("Studio not found", code="STUDIO_NOT_FOUND")
        if not studio.payments_enabled:
            raise BusinessRuleException(
                "This studio does not take payments",
                code="PAYMENTS_DISABLED",
                details={"studio_id": studio_id},
            )
        if not studio.merchant_sub_account_id:
            raise ConfigurationError(
                "Studio has no merchant account configured", studio_id=studio_id
            )
        if not studio.charges_enabled:
            raise ConfigurationError(
                "Studio merchant account cannot accept charges yet", studio_id=studio_id
            )
        return studio

    def _get_payment(self, payment_id: str) -> Payment:
        payment = self.payment_repository.get_by_id(payment_id)
        if not payment:
            raise NotFoundException("Payment not found", code="PAYMENT_NOT_FOUND")
        return payment

    # ------------------------------------------------------------------ #
    # Holds
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("open_hold_for_selection")
    def open_hold_for_selection(
        self,
        *,
        studio_id: str,
        client_id: str,
        class_session_id: str,
        selection: Any,
        tracking_code: Optional[str] = None,
    ) -> HoldHandle:
        """Price the client's selection for a session and open a hold for it."""
        class_session = self.class_session_repository.get_by_id(class_session_id)
        if not class_session or class_session.studio_id != studio_id:
            raise NotFoundException("Class session not found", code="CLASS_SESSION_NOT_FOUND")
        if ensure_utc(class_session.start_time) <= utc_now():
            raise BusinessRuleException(
                "This class has already started", code="SESSION_STARTED"
            )

        amount = price_selection(class_session.class_type.price, selection)
        return self.create_hold(
            studio_id,
            amount,
            None,
            client_id=client_id,
            class_session_id=class_session_id,
            booking_type=BookingType(selection.booking_type),
            pack_size=getattr(selection, "pack_size", None),
            subscription_interval=getattr(selection, "interval", None),
            auto_renew=bool(getattr(selection, "auto_renew", False)),
            payment_method_ref=getattr(selection, "payment_method_ref", None),
            tracking_code=tracking_code,
        )

    @BaseService.measure_operation("create_hold")
    def create_hold(
        self,
        studio_id: str,
        amount: Decimal,
        currency: Optional[str] = None,
        *,
        client_id: str,
        class_session_id: Optional[str] = None,
        booking_type: BookingType = BookingType.SINGLE,
        pack_size: Optional[int] = None,
        subscription_interval: Optional[str] = None,
        auto_renew: bool = False,
        payment_method_ref: Optional[str] = None,
        tracking_code: Optional[str] = None,
    ) -> HoldHandle:
        """
        Open a manual-capture hold on the studio's merchant sub-account.

        Raises:
            NotFoundException: unknown studio
            BusinessRuleException: studio does not take payments
            ConfigurationError: studio has no usable merchant account
            InvalidPriceError: amount is not positive
            PaymentInitializationError: Stripe failed; safe to retry
        """
        studio = self._require_payable_studio(studio_id)
        if amount is None or Decimal(amount) <= 0:
            raise InvalidPriceError(amount)

        # Malformed codes are dropped, not rejected
        tracking_code = normalize_code(tracking_code)
        currency = (currency or studio.currency or settings.stripe_currency).lower()
        merchant_account = studio.merchant_sub_account_id
        payment_id = generate_ulid()
        renews_off_session = booking_type == BookingType.RECURRING or (
            booking_type == BookingType.PACK and auto_renew
        )

        try:
            customer_id = None
            if renews_off_session:
                customer_id = self.ensure_merchant_customer(client_id, studio)
            intent = self.stripe.create_hold_intent(
                amount_cents=to_minor_units(Decimal(amount)),
                currency=currency,
                merchant_account=merchant_account,
                metadata={
                    "payment_id": payment_id,
                    "studio_id": studio.id,
                    "client_id": client_id,
                    "class_session_id": class_session_id or "",
                    "tracking_code": tracking_code or "",
                    "platform": "cadence",
                },
                idempotency_key=f"hold:{payment_id}",
                customer_id=customer_id,
                save_payment_method=renews_off_session,
            )
        except stripe.StripeError as e:
            prometheus_metrics.inc_payment_hold("init_failed")
            self.logger.error(f"Stripe error creating hold for studio {studio_id}: {str(e)}")
            raise PaymentInitializationError(
                "Payment could not be started. Please try again.",
                details={"studio_id": studio_id},
            )

        try:
            with self.transaction():
                payment = self.payment_repository.create(
                    id=payment_id,
                    studio_id=studio.id,
                    merchant_sub_account_id=merchant_account,
                    amount=Decimal(amount),
                    currency=currency,
                    status=(map_intent_status(intent) or PaymentStatus.CREATED).value,
                    external_reference=intent.id,
                    client_authorization_secret=getattr(intent, "client_secret", None),
                    purpose=PaymentPurpose.BOOKING.value,
                    client_id=client_id,
                    class_session_id=class_session_id,
                    booking_type=booking_type.value,
                    pack_size=pack_size,
                    subscription_interval=subscription_interval,
                    auto_renew=auto_renew,
                    payment_method_ref=payment_method_ref,
                    tracking_code=tracking_code,
                )
        except (RepositoryException, ServiceException):
            # Don't leave an orphaned authorization behind on the studio's account
            self._cancel_intent_quietly(intent.id, merchant_account, payment_id)
            raise

        prometheus_metrics.inc_payment_hold("created")
        self.log_operation(
            "create_hold", payment_id=payment.id, studio_id=studio.id, amount=str(amount)
        )
        return HoldHandle(
            payment_id=payment.id,
            external_reference=payment.external_reference,
            client_authorization_secret=payment.client_authorization_secret,
            merchant_sub_account_id=merchant_account,
            amount=payment.amount,
            currency=currency,
        )

    def _cancel_intent_quietly(self, intent_id: str, merchant_account: str, payment_id: str) -> bool:
        try:
            self.stripe.cancel_intent(
                intent_id, merchant_account=merchant_account, idempotency_key=f"void:{payment_id}"
            )
            return True
        except stripe.StripeError as e:
            self.logger.error(f"Failed to cancel payment intent {intent_id}: {str(e)}")
            return False

    @BaseService.measure_operation("void_hold")
    def void_hold(self, payment_id: str) -> Payment:
        """
        Release a hold. Voiding an already voided or failed payment is a no-op.

        When Stripe refuses, the local status is left open so the stale-hold
        sweep tries again later.
        """
        payment = self._get_payment(payment_id)
        if payment.is_terminal:
            return payment
        if payment.status == PaymentStatus.SUCCEEDED.value:
            raise BusinessRuleException(
                "Captured payments cannot be voided", code="PAYMENT_ALREADY_CAPTURED"
            )

        if payment.external_reference:
            try:
                self.stripe.cancel_intent(
                    payment.external_reference,
                    merchant_account=payment.merchant_sub_account_id,
                    idempotency_key=f"void:{payment.id}",
                )
            except stripe.StripeError as e:
                self.logger.error(f"Stripe error voiding payment {payment_id}: {str(e)}")
                raise ServiceException(
                    f"Failed to void payment: {str(e)}", code="PAYMENT_VOID_FAILED"
                )

        with self.transaction():
            voided = self.payment_repository.transition_status(
                payment.id, from_statuses=OPEN_STATUSES, to_status=PaymentStatus.VOIDED
            )
        if voided:
            prometheus_metrics.inc_payment_hold("voided")
            self.log_operation("void_hold", payment_id=payment.id)
        return payment

    @BaseService.measure_operation("capture_hold")
    def capture_hold(self, payment_id: str) -> Payment:
        """
        Capture an authorized hold; an already captured payment is returned as is.

        Raises:
            PaymentCaptureError: the payment is not authorized or Stripe did not capture
        """
        payment = self._get_payment(payment_id)
        if payment.status == PaymentStatus.SUCCEEDED.value:
            return payment
        if payment.status != PaymentStatus.AUTHORIZED.value:
            raise PaymentCaptureError(payment.id, f"payment is {payment.status}")

        try:
            intent = self.stripe.capture_intent(
                payment.external_reference,
                merchant_account=payment.merchant_sub_account_id,
                idempotency_key=f"capture:{payment.id}",
            )
        except stripe.StripeError as e:
            prometheus_metrics.inc_payment_hold("capture_failed")
            self.logger.error(f"Stripe error capturing payment {payment_id}: {str(e)}")
            raise PaymentCaptureError(payment.id, str(e))

        if getattr(intent, "status", None) != "succeeded":
            prometheus_metrics.inc_payment_hold("capture_failed")
            raise PaymentCaptureError(payment.id, f"intent status {getattr(intent, 'status', None)}")

        with self.transaction():
            self.payment_repository.transition_status(
                payment.id, from_statuses=OPEN_STATUSES, to_status=PaymentStatus.SUCCEEDED
            )
            self._remember_payment_method(payment, intent)
        prometheus_metrics.inc_payment_hold("captured")
        return payment

    def fail_after_capture_error(self, payment_id: str, reason: str) -> Payment:
        """Best-effort release of a hold that could not be captured, then mark it FAILED."""
        payment = self._get_payment(payment_id)
        if payment.external_reference and not payment.is_terminal:
            self._cancel_intent_quietly(
                payment.external_reference, payment.merchant_sub_account_id, payment.id
            )
        with self.transaction():
            self.payment_repository.transition_status(
                payment.id,
                from_statuses=OPEN_STATUSES,
                to_status=PaymentStatus.FAILED,
                failure_reason=reason[:500],
            )
        return payment

    # ------------------------------------------------------------------ #
    # Processor state
    # ------------------------------------------------------------------ #

    def _remember_payment_method(self, payment: Payment, intent: Any) -> None:
        method = getattr(intent, "payment_method", None)
        if isinstance(method, str) and method and not payment.payment_method_ref:
            payment.payment_method_ref = method
            self.payment_repository.flush()

    def apply_intent(self, payment: Payment, intent: Any) -> Payment:
        """Move the local payment to whatever state the PaymentIntent reports."""
        target = map_intent_status(intent)
        with self.transaction():
            if target is not None and payment.status != target.value:
                failure_reason = None
                if target == PaymentStatus.FAILED:
                    error = getattr(intent, "last_payment_error", None)
                    failure_reason = str(getattr(error, "message", None) or error)[:500]
                changed = self.payment_repository.transition_status(
                    payment.id,
                    from_statuses=_allowed_sources(target),
                    to_status=target,
                    failure_reason=failure_reason,
                )
                if changed:
                    self.logger.info(f"Payment {payment.id} moved to {target.value}")
            self._remember_payment_method(payment, intent)
        return payment

    @BaseService.measure_operation("refresh_payment_status")
    def refresh_status(self, payment_id: str) -> Payment:
        """Pull the PaymentIntent from Stripe and sync the local status."""
        payment = self._get_payment(payment_id)
        if not payment.external_reference or payment.is_terminal:
            return payment
        try:
            intent = self.stripe.retrieve_intent(
                payment.external_reference, merchant_account=payment.merchant_sub_account_id
            )
        except stripe.StripeError as e:
            self.logger.warning(f"Could not refresh payment {payment_id} from Stripe: {str(e)}")
            return payment
        return self.apply_intent(payment, intent)

    def mark_status(
        self, payment: Payment, status: PaymentStatus, reason: Optional[str] = None
    ) -> bool:
        """Apply a processor-reported status (webhooks) if the transition is still valid."""
        with self.transaction():
            return self.payment_repository.transition_status(
                payment.id,
                from_statuses=_allowed_sources(status),
                to_status=status,
                failure_reason=reason,
            )

    # ------------------------------------------------------------------ #
    # Off-session renewals
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("ensure_merchant_customer")
    def ensure_merchant_customer(self, client_id: str, studio: Studio) -> str:
        """Find or create the client's Stripe customer on the studio's connected account."""
        merchant_account = studio.merchant_sub_account_id
        if not merchant_account:
            raise ConfigurationError("Studio has no merchant account configured", studio_id=studio.id)

        existing = self.payment_repository.get_merchant_customer(client_id, merchant_account)
        if existing:
            return existing.stripe_customer_id

        customer = self.stripe.create_customer(client_id=client_id, merchant_account=merchant_account)
        try:
            with self.transaction():
                record = self.payment_repository.create_merchant_customer(
                    client_id, merchant_account, customer.id
                )
            return record.stripe_customer_id
        except RepositoryException as exc:
            if not isinstance(exc.__cause__, IntegrityError):
                raise
            # Another request created it first; the Stripe call was idempotent
            winner = self.payment_repository.get_merchant_customer(client_id, merchant_account)
            if winner is None:
                raise
            return winner.stripe_customer_id

    @BaseService.measure_operation("create_off_session_charge")
    def create_off_session_charge(
        self,
        *,
        studio: Studio,
        client_id: str,
        amount: Decimal,
        purpose: PaymentPurpose,
        subscription_id: str,
        customer_id: str,
        payment_method_id: str,
        idempotency_key: str,
        booking_type: BookingType,
        pack_size: Optional[int] = None,
    ) -> Payment:
        """
        Authorize a renewal with the client's saved payment method.

        The idempotency key is chosen by the caller per renewal cycle, so a
        retried sweep can never authorize the same renewal twice.
        """
        if not studio.merchant_sub_account_id:
            raise ConfigurationError("Studio has no merchant account configured", studio_id=studio.id)
        if Decimal(amount) <= 0:
            raise InvalidPriceError(amount)

        payment_id = generate_ulid()
        currency = (studio.currency or settings.stripe_currency).lower()
        intent = self.stripe.create_off_session_intent(
            amount_cents=to_minor_units(Decimal(amount)),
            currency=currency,
            merchant_account=studio.merchant_sub_account_id,
            customer_id=customer_id,
            payment_method_id=payment_method_id,
            metadata={
                "payment_id": payment_id,
                "studio_id": studio.id,
                "client_id": client_id,
                "subscription_id": subscription_id,
                "purpose": purpose.value,
                "platform": "cadence",
            },
            idempotency_key=idempotency_key,
        )

        existing = self.payment_repository.get_by_external_reference(intent.id)
        if existing:
            # Replayed idempotency key: Stripe returned the intent we already stored
            return existing

        with self.transaction():
            payment = self.payment_repository.create(
                id=payment_id,
                studio_id=studio.id,
                merchant_sub_account_id=studio.merchant_sub_account_id,
                amount=Decimal(amount),
                currency=currency,
                status=(map_intent_status(intent) or PaymentStatus.CREATED).value,
                external_reference=intent.id,
                purpose=purpose.value,
                client_id=client_id,
                booking_type=booking_type.value,
                pack_size=pack_size,
                subscription_id=subscription_id,
                payment_method_ref=payment_method_id,
            )
        return payment

    # ------------------------------------------------------------------ #
    # Maintenance
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("void_stale_holds")
    def void_stale_holds(self, older_than: Optional[datetime] = None, limit: int = 100) -> Dict[str, int]:
        """Void booking holds that never turned into a booking within the hold window."""
        cutoff = older_than or (
            utc_now() - timedelta(minutes=settings.payment_hold_timeout_minutes)
        )
        results = {"voided": 0, "failed": 0}
        for payment in self.payment_repository.list_stale_holds(cutoff, limit=limit):
            try:
                self.void_hold(payment.id)
                results["voided"] += 1
            except (ServiceException, BusinessRuleException) as e:
                results["failed"] += 1
                self.logger.warning(f"Could not void stale hold {payment.id}: {e.message}")
        if results["voided"] or results["failed"]:
            self.logger.info(
                f"Stale hold sweep: voided={results['voided']} failed={results['failed']}"
            )
        return results
