# backend/tests/helpers/fake_stripe.py
"""
In-memory stand-in for StripeService.

Behaves like Stripe where the booking core depends on it: idempotency keys
replay the first answer, holds start in ``requires_payment_method`` until
the test authorizes them, and failures surface as real ``stripe`` errors.
"""

from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import stripe

from cadence.services.stripe_service import StripeService


class FakeStripeService(StripeService):
    def __init__(self, db: Any = None):
        super().__init__(db)
        self.intents: Dict[str, SimpleNamespace] = {}
        self.by_idempotency_key: Dict[str, SimpleNamespace] = {}
        self.customers: Dict[str, SimpleNamespace] = {}
        self.calls: List[str] = []
        self.off_session_keys: List[str] = []
        self.fail_hold_creation = False
        self.fail_capture = False
        self.decline_off_session = False
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_test_{self._counter:04d}"

    def _new_intent(
        self, *, amount: int, currency: str, account: str, metadata: Dict[str, str], status: str
    ) -> SimpleNamespace:
        intent_id = self._next_id("pi")
        intent = SimpleNamespace(
            id=intent_id,
            object="payment_intent",
            status=status,
            amount=amount,
            currency=currency,
            client_secret=f"{intent_id}_secret",
            payment_method=None,
            last_payment_error=None,
            metadata=dict(metadata),
            account=account,
        )
        self.intents[intent_id] = intent
        return intent

    def authorize(self, intent_id: str, payment_method: str = "pm_test_card") -> SimpleNamespace:
        """Simulate the client confirming the hold with Stripe.js."""
        intent = self.intents[intent_id]
        intent.status = "requires_capture"
        intent.payment_method = payment_method
        return intent

    def decline(self, intent_id: str, message: str = "Your card was declined.") -> SimpleNamespace:
        intent = self.intents[intent_id]
        intent.status = "requires_payment_method"
        intent.last_payment_error = SimpleNamespace(message=message)
        return intent

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
        self.calls.append("create_hold_intent")
        if self.fail_hold_creation:
            raise stripe.APIConnectionError("Could not connect to Stripe")
        if idempotency_key in self.by_idempotency_key:
            return self.by_idempotency_key[idempotency_key]
        intent = self._new_intent(
            amount=amount_cents,
            currency=currency,
            account=merchant_account,
            metadata=metadata,
            status="requires_payment_method",
        )
        self.by_idempotency_key[idempotency_key] = intent
        return intent

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
        self.calls.append("create_off_session_intent")
        self.off_session_keys.append(idempotency_key)
        if idempotency_key in self.by_idempotency_key:
            return self.by_idempotency_key[idempotency_key]
        if self.decline_off_session:
            raise stripe.CardError("Your card was declined.", param=None, code="card_declined")
        intent = self._new_intent(
            amount=amount_cents,
            currency=currency,
            account=merchant_account,
            metadata=metadata,
            status="requires_capture",
        )
        intent.payment_method = payment_method_id
        self.by_idempotency_key[idempotency_key] = intent
        return intent

    def capture_intent(
        self, payment_intent_id: str, *, merchant_account: str, idempotency_key: str
    ) -> Any:
        self.calls.append("capture_intent")
        if self.fail_capture:
            raise stripe.APIConnectionError("Connection reset during capture")
        intent = self.intents[payment_intent_id]
        if intent.status == "requires_capture":
            intent.status = "succeeded"
        return intent

    def cancel_intent(
        self, payment_intent_id: str, *, merchant_account: str, idempotency_key: str
    ) -> Any:
        self.calls.append("cancel_intent")
        intent = self.intents[payment_intent_id]
        if intent.status != "succeeded":
            intent.status = "canceled"
        return intent

    def retrieve_intent(self, payment_intent_id: str, *, merchant_account: str) -> Any:
        self.calls.append("retrieve_intent")
        return self.intents[payment_intent_id]

    def create_customer(self, *, client_id: str, merchant_account: str) -> Any:
        self.calls.append("create_customer")
        key = f"{client_id}:{merchant_account}"
        if key not in self.customers:
            self.customers[key] = SimpleNamespace(id=self._next_id("cus"))
        return self.customers[key]
