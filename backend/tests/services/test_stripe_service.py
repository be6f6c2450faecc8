"""
Tests for StripeService.

Every call must be made on the studio's connected account and carry the
caller's idempotency key; the Stripe SDK is patched out.
"""

from unittest.mock import MagicMock, patch

from pydantic import SecretStr
import pytest
from sqlalchemy.orm import Session
import stripe

from cadence.core.config import settings
from cadence.core.exceptions import ServiceException
from cadence.services.stripe_service import StripeService
from tests.helpers.stripe_signatures import signed_event


class TestStripeService:
    """Test suite for StripeService."""

    @pytest.fixture
    def stripe_service(self, db: Session) -> StripeService:
        return StripeService(db)

    def test_hold_is_created_on_the_connected_account(self, stripe_service: StripeService):
        with patch("stripe.PaymentIntent.create") as mock_create:
            mock_create.return_value = MagicMock(id="pi_hold_1")

            intent = stripe_service.create_hold_intent(
                amount_cents=2550,
                currency="usd",
                merchant_account="acct_studio_1",
                metadata={"payment_id": "01HPAYMENT00000000000000001"},
                idempotency_key="hold:01HPAYMENT00000000000000001",
            )

        assert intent.id == "pi_hold_1"
        kwargs = mock_create.call_args.kwargs
        assert kwargs["stripe_account"] == "acct_studio_1"
        assert kwargs["idempotency_key"] == "hold:01HPAYMENT00000000000000001"
        assert kwargs["capture_method"] == "manual"
        assert kwargs["amount"] == 2550
        assert "setup_future_usage" not in kwargs
        assert "application_fee_amount" not in kwargs

    def test_renewing_hold_saves_the_card_and_takes_the_platform_fee(
        self, db: Session, monkeypatch
    ):
        monkeypatch.setattr(settings, "stripe_platform_fee_percentage", 10)
        service = StripeService(db)

        with patch("stripe.PaymentIntent.create") as mock_create:
            mock_create.return_value = MagicMock(id="pi_hold_2")
            service.create_hold_intent(
                amount_cents=10000,
                currency="usd",
                merchant_account="acct_studio_1",
                metadata={},
                idempotency_key="hold:2",
                customer_id="cus_1",
                save_payment_method=True,
            )

        kwargs = mock_create.call_args.kwargs
        assert kwargs["customer"] == "cus_1"
        assert kwargs["setup_future_usage"] == "off_session"
        assert kwargs["application_fee_amount"] == 1000

    def test_off_session_charge_confirms_immediately(self, stripe_service: StripeService):
        with patch("stripe.PaymentIntent.create") as mock_create:
            mock_create.return_value = MagicMock(id="pi_renewal_1", status="requires_capture")
            stripe_service.create_off_session_intent(
                amount_cents=3400,
                currency="usd",
                merchant_account="acct_studio_2",
                customer_id="cus_2",
                payment_method_id="pm_saved",
                metadata={},
                idempotency_key="subscription-renewal:sub:2030-01-01",
            )

        kwargs = mock_create.call_args.kwargs
        assert kwargs["confirm"] is True
        assert kwargs["off_session"] is True
        assert kwargs["payment_method"] == "pm_saved"
        assert kwargs["stripe_account"] == "acct_studio_2"

    def test_capture_and_cancel_target_the_connected_account(self, stripe_service: StripeService):
        with patch("stripe.PaymentIntent.capture") as mock_capture, patch(
            "stripe.PaymentIntent.cancel"
        ) as mock_cancel:
            stripe_service.capture_intent(
                "pi_1", merchant_account="acct_studio_3", idempotency_key="capture:1"
            )
            stripe_service.cancel_intent(
                "pi_1", merchant_account="acct_studio_3", idempotency_key="void:1"
            )

        mock_capture.assert_called_once_with(
            "pi_1", stripe_account="acct_studio_3", idempotency_key="capture:1"
        )
        mock_cancel.assert_called_once_with(
            "pi_1", stripe_account="acct_studio_3", idempotency_key="void:1"
        )

    def test_customer_creation_is_idempotent_per_client_and_account(
        self, stripe_service: StripeService
    ):
        with patch("stripe.Customer.create") as mock_create:
            stripe_service.create_customer(client_id="client-1", merchant_account="acct_studio_4")

        kwargs = mock_create.call_args.kwargs
        assert kwargs["idempotency_key"] == "customer:client-1:acct_studio_4"
        assert kwargs["stripe_account"] == "acct_studio_4"

    def test_stripe_errors_propagate(self, stripe_service: StripeService):
        with patch("stripe.PaymentIntent.create") as mock_create:
            mock_create.side_effect = stripe.APIConnectionError("network down")
            with pytest.raises(stripe.StripeError):
                stripe_service.create_hold_intent(
                    amount_cents=100,
                    currency="usd",
                    merchant_account="acct_studio_1",
                    metadata={},
                    idempotency_key="hold:3",
                )

    def test_construct_event_verifies_the_signature(self, stripe_service: StripeService):
        payload, headers = signed_event(
            {"id": "evt_1", "object": "event", "type": "account.updated", "data": {"object": {}}}
        )

        event = stripe_service.construct_event(payload.encode(), headers["stripe-signature"])

        assert event.id == "evt_1"
        with pytest.raises(stripe.SignatureVerificationError):
            stripe_service.construct_event(payload.encode(), "t=1,v1=deadbeef")

    def test_construct_event_requires_a_secret(self, stripe_service: StripeService, monkeypatch):
        monkeypatch.setattr(settings, "stripe_webhook_secret", SecretStr(""))

        with pytest.raises(ServiceException):
            stripe_service.construct_event(b"{}", "t=1,v1=abc")
