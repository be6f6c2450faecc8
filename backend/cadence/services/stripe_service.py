# backend/cadence/services/stripe_service.py
"""
Stripe gateway for studio payment holds.

Every call is made ON the studio's connected account (``stripe_account=``),
so a hold, customer or capture can never touch another tenant's balance.
This class only talks to Stripe; persisting payment state is the job of
PaymentAuthorizationService. Stripe errors propagate as ``stripe.StripeError``
so callers can decide between retryable and fatal outcomes.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session
import stripe

from ..core.config import settings
from ..core.exceptions import ServiceException
from .base import BaseService

logger: logging.Logger = logging.getLogger(__name__)


def configure_stripe() -> bool:
    """Apply API key and network settings; returns False when no key is configured."""
    api_key = settings.stripe_api_key
    if not api_key:
        return False
    stripe.api_key = api_key
    # Hold creation must fail fast: the client retries on 503, never the server
    stripe.max_network_retries = 0
    try:
        stripe.default_http_client = stripe.http_client.RequestsClient(
            timeout=settings.stripe_timeout_seconds
        )
    except AttributeError as exc:
        # Non-fatal if client customization isn't available
        logger.warning(f"Could not set Stripe HTTP timeout: {exc}")
    return True


class StripeService(BaseService):
    """Thin wrapper over the Stripe API for connected-account PaymentIntents."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.stripe_configured = configure_stripe()
        if not self.stripe_configured:
            self.logger.warning("Stripe secret key not configured - payment calls will fail")

        # Platform fee percentage (15 means 15%, not 0.15)
        self.platform_fee_percentage = settings.stripe_platform_fee_percentage / 100.0

    def application_fee_for(self, amount_cents: int) -> Optional[int]:
        if self.platform_fee_percentage <= 0:
            return None
        return int(amount_cents * self.platform_fee_percentage)

    @BaseService.measure_operation("stripe_create_hold")
    def create_hold_intent(
        self,
        *,
        amount_cents: int,
        currency: str,
        merchant_account: str,
        metadata: Dict[str, str],
        idempotency_key: str,
        customer_id: Optional[str] = None,
        save_payment_method: bool = False,
    ) -> Any:
        """Open a manual-capture PaymentIntent for the client to confirm with Stripe.js."""
        stripe_kwargs: Dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency,
            "capture_method": "manual",
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
            "stripe_account": merchant_account,
            "idempotency_key": idempotency_key,
        }
        fee = self.application_fee_for(amount_cents)
        if fee:
            stripe_kwargs["application_fee_amount"] = fee
        if customer_id:
            stripe_kwargs["customer"] = customer_id
        if save_payment_method:
            stripe_kwargs["setup_future_usage"] = "off_session"

        intent = stripe.PaymentIntent.create(**stripe_kwargs)
        self.logger.info(
            f"Created payment intent {intent.id} on {merchant_account} for {amount_cents} {currency}"
        )
        return intent

    @BaseService.measure_operation("stripe_create_off_session_charge")
    def create_off_session_intent(
        self,
        *,
        amount_cents: int,
        currency: str,
        merchant_account: str,
        customer_id: str,
        payment_method_id: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> Any:
        """Create and confirm a manual-capture PaymentIntent with a saved payment method."""
        stripe_kwargs: Dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency,
            "customer": customer_id,
            "payment_method": payment_method_id,
            "capture_method": "manual",
            "confirm": True,
            "off_session": True,
            "metadata": metadata,
            "stripe_account": merchant_account,
            "idempotency_key": idempotency_key,
        }
        fee = self.application_fee_for(amount_cents)
        if fee:
            stripe_kwargs["application_fee_amount"] = fee
        return stripe.PaymentIntent.create(**stripe_kwargs)

    @BaseService.measure_operation("stripe_capture_payment_intent")
    def capture_intent(
        self, payment_intent_id: str, *, merchant_account: str, idempotency_key: str
    ) -> Any:
        return stripe.PaymentIntent.capture(
            payment_intent_id,
            stripe_account=merchant_account,
            idempotency_key=idempotency_key,
        )

    @BaseService.measure_operation("stripe_cancel_payment_intent")
    def cancel_intent(
        self, payment_intent_id: str, *, merchant_account: str, idempotency_key: str
    ) -> Any:
        return stripe.PaymentIntent.cancel(
            payment_intent_id,
            stripe_account=merchant_account,
            idempotency_key=idempotency_key,
        )

    @BaseService.measure_operation("stripe_retrieve_payment_intent")
    def retrieve_intent(self, payment_intent_id: str, *, merchant_account: str) -> Any:
        return stripe.PaymentIntent.retrieve(payment_intent_id, stripe_account=merchant_account)

    @BaseService.measure_operation("stripe_create_customer")
    def create_customer(self, *, client_id: str, merchant_account: str) -> Any:
        return stripe.Customer.create(
            metadata={"client_id": client_id, "platform": "cadence"},
            stripe_account=merchant_account,
            idempotency_key=f"customer:{client_id}:{merchant_account}",
        )

    def construct_event(self, payload: bytes, signature: str) -> Any:
        """
        Verify the signature and parse a webhook payload.

        Raises:
            ServiceException: webhook secret is not configured
            stripe.SignatureVerificationError: signature does not match
            ValueError: payload is not valid JSON
        """
        secret = settings.webhook_secret
        if not secret:
            raise ServiceException("Webhook secret not configured")
        return stripe.Webhook.construct_event(payload, signature, secret)
