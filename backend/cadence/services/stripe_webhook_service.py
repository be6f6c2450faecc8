# backend/cadence/services/stripe_webhook_service.py
"""
Stripe Webhook Service

Every verified event is written to the webhook ledger first. The ledger row
is unique per (source, event_id) and only a received or failed row can be
claimed, so Stripe's duplicate deliveries are acknowledged without being
processed twice.
"""

from datetime import datetime, timezone
import logging
import time
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.enums import PaymentPurpose, PaymentStatus, WebhookEventStatus
from ..core.exceptions import (
    DomainException,
    PaymentCaptureError,
    RepositoryException,
    ServiceException,
)
from ..core.ulid_helper import is_valid_ulid
from ..models.payment import Payment
from ..models.webhook_event import WebhookEvent
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .booking_reconciler import BookingReconciler
from .payment_authorization_service import PaymentAuthorizationService

logger = logging.getLogger(__name__)

SOURCE = "stripe"

CAPTURABLE_EVENTS = ("payment_intent.amount_capturable_updated", "payment_intent.succeeded")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _to_payload(event: Any) -> Dict[str, Any]:
    to_dict = getattr(event, "to_dict_recursive", None) or getattr(event, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(event)


class StripeWebhookService(BaseService):
    """Routes verified Stripe events to the payment and booking services."""

    def __init__(
        self,
        db: Session,
        payment_service: Optional[PaymentAuthorizationService] = None,
        reconciler: Optional[BookingReconciler] = None,
    ) -> None:
        super().__init__(db)
        self.payments = payment_service or PaymentAuthorizationService(db)
        self.reconciler = reconciler or BookingReconciler(db, payment_service=self.payments)
        self.repository = RepositoryFactory.create_webhook_event_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.studio_repository = RepositoryFactory.create_studio_repository(db)

    # ------------------------------------------------------------------ #
    # Ledger
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("webhook_log_received")
    def log_received(self, event: Any) -> Tuple[WebhookEvent, bool]:
        """
        Record the event in the ledger.

        Returns:
            (ledger row, True if this delivery created it)
        """
        event_id = event.id
        existing = self.repository.find_by_source_and_event_id(SOURCE, event_id)
        if existing is not None:
            with self.transaction():
                existing.retry_count = (existing.retry_count or 0) + 1
            return existing, False

        try:
            with self.transaction():
                row = self.repository.create(
                    source=SOURCE,
                    event_type=event.type or "unknown",
                    event_id=event_id,
                    account=getattr(event, "account", None),
                    payload=_to_payload(event),
                    status=WebhookEventStatus.RECEIVED.value,
                    received_at=_now_utc(),
                    retry_count=0,
                )
            return row, True
        except RepositoryException as exc:
            # Another worker logged the same delivery first
            if isinstance(exc.__cause__, IntegrityError):
                existing = self.repository.find_by_source_and_event_id(SOURCE, event_id)
                if existing is not None:
                    return existing, False
            raise

    def _finish(
        self,
        row: WebhookEvent,
        status: WebhookEventStatus,
        started: float,
        *,
        error: Optional[str] = None,
        related: Optional[Tuple[str, str]] = None,
    ) -> None:
        with self.transaction():
            row.status = status.value
            row.processed_at = _now_utc()
            row.processing_duration_ms = int((time.monotonic() - started) * 1000)
            row.processing_error = error
            if related:
                row.related_entity_type, row.related_entity_id = related

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("handle_stripe_event")
    def handle_event(self, event: Any) -> str:
        """
        Process one verified event.

        Returns:
            "processed", "ignored" or "duplicate"

        Raises:
            ServiceException: processing failed; the ledger row is left failed
                so Stripe's retry can claim it again
        """
        event_type = event.type
        row, _created = self.log_received(event)

        with self.transaction():
            claimed = self.repository.claim_for_processing(row.id)
        if not claimed:
            self.logger.info(f"Duplicate Stripe event {event.id} ({event_type}) skipped")
            prometheus_metrics.inc_webhook_event(event_type, "duplicate")
            return "duplicate"

        started = time.monotonic()
        try:
            outcome, related = self._route(event)
        except Exception as exc:
            self.db.rollback()
            message = exc.message if isinstance(exc, DomainException) else str(exc)
            self._finish(row, WebhookEventStatus.FAILED, started, error=message[:1000])
            prometheus_metrics.inc_webhook_event(event_type, "failed")
            self.logger.error(f"Stripe event {event.id} ({event_type}) failed: {message}")
            raise ServiceException(
                "Webhook processing failed", code="WEBHOOK_PROCESSING_FAILED"
            ) from exc

        status = (
            WebhookEventStatus.PROCESSED if outcome == "processed" else WebhookEventStatus.IGNORED
        )
        self._finish(row, status, started, related=related)
        prometheus_metrics.inc_webhook_event(event_type, outcome)
        self.log_operation("stripe_event", event_id=event.id, event_type=event_type, outcome=outcome)
        return outcome

    def _route(self, event: Any) -> Tuple[str, Optional[Tuple[str, str]]]:
        event_type = event.type
        obj = event.data.object

        if event_type == "account.updated":
            return self._handle_account_updated(obj)
        if not event_type.startswith("payment_intent."):
            return "ignored", None

        payment = self._find_payment(obj)
        if payment is None:
            self.logger.info(f"No local payment for intent {getattr(obj, 'id', None)}; ignoring")
            return "ignored", None
        account = getattr(event, "account", None)
        if account != payment.merchant_sub_account_id:
            # Connect events only act on payments held on the emitting account
            self.logger.warning(
                f"Event {event.id} from account {account} does not own payment {payment.id}; ignoring"
            )
            return "ignored", None
        related = ("payment", payment.id)

        if event_type in CAPTURABLE_EVENTS:
            self.payments.apply_intent(payment, obj)
            booking_id = self._reconcile(payment)
            if booking_id:
                related = ("booking", booking_id)
            return "processed", related

        if event_type == "payment_intent.payment_failed":
            error = getattr(obj, "last_payment_error", None)
            reason = str(getattr(error, "message", None) or "payment failed")[:500]
            self.payments.mark_status(payment, PaymentStatus.FAILED, reason)
            return "processed", related

        if event_type == "payment_intent.canceled":
            self.payments.mark_status(payment, PaymentStatus.VOIDED)
            return "processed", related

        return "ignored", related

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    def _find_payment(self, intent: Any) -> Optional[Payment]:
        intent_id = getattr(intent, "id", None)
        payment = self.payment_repository.get_by_external_reference(intent_id) if intent_id else None
        if payment is not None:
            return payment
        metadata = getattr(intent, "metadata", None)
        try:
            payment_id = metadata["payment_id"] if metadata is not None else None
        except (KeyError, TypeError):
            payment_id = None
        if not payment_id or not is_valid_ulid(payment_id):
            return None
        return self.payment_repository.get_by_id(payment_id)

    def _reconcile(self, payment: Payment) -> Optional[str]:
        """Confirm the booking a settled hold was opened for."""
        if payment.purpose != PaymentPurpose.BOOKING.value:
            return None
        try:
            booking = self.reconciler.confirm_from_payment(payment.id)
        except DomainException as e:
            if isinstance(e, ServiceException) and not isinstance(e, PaymentCaptureError):
                raise
            # Business outcomes are final; the reconciler already voided the hold where needed
            self.logger.warning(
                f"Webhook reconciliation for payment {payment.id} ended with {e.code}: {e.message}"
            )
            return None
        return booking.id if booking is not None else None

    def _handle_account_updated(self, account: Any) -> Tuple[str, Optional[Tuple[str, str]]]:
        account_id = getattr(account, "id", None)
        if not account_id:
            return "ignored", None
        charges_enabled = bool(getattr(account, "charges_enabled", False))
        with self.transaction():
            updated = self.studio_repository.set_charges_enabled(account_id, charges_enabled)
        if not updated:
            return "ignored", None
        self.logger.info(f"Merchant account {account_id} charges_enabled={charges_enabled}")
        studio = self.studio_repository.get_by_merchant_account(account_id)
        return "processed", ("studio", studio.id) if studio else None
