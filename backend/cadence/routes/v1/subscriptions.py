# backend/cadence/routes/v1/subscriptions.py
"""
Subscription routes - API v1

Endpoints:
    GET  /studios/{studio_id}/subscriptions    - The client's subscriptions at a studio
    POST /subscriptions/{subscription_id}/cancel - Request cancellation at period end
    POST /subscriptions/{subscription_id}/renew  - Undo a pending cancellation
    GET  /subscriptions/{subscription_id}/access - Whether the subscription grants access now
    POST /subscriptions/{subscription_id}/redeem - Book a session with a pack credit
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Path

from ...api.dependencies import get_client_id, get_subscription_service
from ...core.exceptions import DomainException
from ...schemas.booking import BookingResponse
from ...schemas.subscription import (
    PackRedeemRequest,
    SubscriptionAccessResponse,
    SubscriptionListResponse,
    SubscriptionResponse,
)
from ...services.subscription_lifecycle_service import SubscriptionLifecycleService
from .errors import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["subscriptions-v1"])


@router.get("/studios/{studio_id}/subscriptions", response_model=SubscriptionListResponse)
async def list_subscriptions(
    studio_id: str = Path(..., description="Studio ULID"),
    client_id: str = Depends(get_client_id),
    service: SubscriptionLifecycleService = Depends(get_subscription_service),
) -> SubscriptionListResponse:
    subscriptions = await asyncio.to_thread(service.list_for_client, client_id, studio_id)
    items = [SubscriptionResponse.model_validate(s) for s in subscriptions]
    return SubscriptionListResponse(subscriptions=items, count=len(items))


@router.post("/subscriptions/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    subscription_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    client_id: str = Depends(get_client_id),
    service: SubscriptionLifecycleService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    """Cancel; access continues until the current period ends."""
    try:
        subscription = await asyncio.to_thread(service.cancel, subscription_id, client_id)
    except DomainException as e:
        handle_domain_exception(e)
    return SubscriptionResponse.model_validate(subscription)


@router.post("/subscriptions/{subscription_id}/renew", response_model=SubscriptionResponse)
async def renew_subscription(
    subscription_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    client_id: str = Depends(get_client_id),
    service: SubscriptionLifecycleService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    try:
        subscription = await asyncio.to_thread(service.renew, subscription_id, client_id)
    except DomainException as e:
        handle_domain_exception(e)
    return SubscriptionResponse.model_validate(subscription)


@router.get("/subscriptions/{subscription_id}/access", response_model=SubscriptionAccessResponse)
async def subscription_access(
    subscription_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    client_id: str = Depends(get_client_id),
    service: SubscriptionLifecycleService = Depends(get_subscription_service),
) -> SubscriptionAccessResponse:
    try:
        subscription = await asyncio.to_thread(
            service.get_for_client, subscription_id, client_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return SubscriptionAccessResponse(
        subscription_id=subscription.id,
        status=subscription.status,
        has_access=service.has_access(subscription),
        current_period_end=subscription.current_period_end,
    )


@router.post("/subscriptions/{subscription_id}/redeem", response_model=BookingResponse)
async def redeem_pack_credit(
    payload: PackRedeemRequest,
    subscription_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    client_id: str = Depends(get_client_id),
    service: SubscriptionLifecycleService = Depends(get_subscription_service),
) -> BookingResponse:
    """Book a class with one credit from a pack."""
    try:
        booking = await asyncio.to_thread(
            service.redeem_pack_credit, subscription_id, client_id, payload.class_session_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)
