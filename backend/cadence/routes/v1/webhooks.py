# backend/cadence/routes/v1/webhooks.py
"""
Stripe webhook route - API v1

Endpoints:
    POST /webhooks/stripe - Payment intent and connected account events

No authentication: the Stripe signature is the credential.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
import stripe

from ...api.dependencies import get_stripe_service, get_webhook_service
from ...core.exceptions import DomainException
from ...schemas.webhook import WebhookAckResponse
from ...services.stripe_service import StripeService
from ...services.stripe_webhook_service import StripeWebhookService
from .errors import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks-v1"])


@router.post("/webhooks/stripe", response_model=WebhookAckResponse)
async def handle_stripe_webhook(
    request: Request,
    stripe_service: StripeService = Depends(get_stripe_service),
    webhook_service: StripeWebhookService = Depends(get_webhook_service),
) -> WebhookAckResponse:
    """
    Verify and process a Stripe event.

    Processed, duplicate and ignored events all answer 200. A failure while
    processing answers 5xx so Stripe redelivers; the ledger lets the retry
    pick the event up again.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.warning("Webhook received without signature")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No signature")

    try:
        event = stripe_service.construct_event(payload, sig_header)
    except stripe.SignatureVerificationError:
        logger.error("Webhook signature verification failed")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")
    except DomainException as e:
        logger.error(f"Webhook configuration error: {e.message}")
        handle_domain_exception(e)

    try:
        outcome = await asyncio.to_thread(webhook_service.handle_event, event)
    except DomainException as e:
        handle_domain_exception(e)

    return WebhookAckResponse(status=outcome, event_type=event.type)
