# backend/cadence/routes/v1/tracking.py
"""
Tracking-code attribution routes - API v1

Endpoints:
    POST /studios/{studio_id}/tracking/clicks - Record a click on a tracking link
    GET  /studios/{studio_id}/tracking/{code} - Clicks, conversions and revenue for a code
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path

from ...api.dependencies import get_browsing_session_id, get_tracking_service
from ...core.exceptions import DomainException
from ...schemas.tracking import (
    TrackingAttributionResponse,
    TrackingClickRequest,
    TrackingClickResponse,
)
from ...services.tracking_attribution_service import TrackingAttributionService
from .errors import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tracking-v1"])


@router.post("/studios/{studio_id}/tracking/clicks", response_model=TrackingClickResponse)
async def record_click(
    payload: TrackingClickRequest,
    studio_id: str = Path(..., description="Studio ULID"),
    browsing_session_id: Optional[str] = Depends(get_browsing_session_id),
    service: TrackingAttributionService = Depends(get_tracking_service),
) -> TrackingClickResponse:
    """
    Record a click. Always answers 200; ``recorded`` is False for malformed
    codes and repeat clicks from the same browsing session.
    """
    recorded = await asyncio.to_thread(
        service.record_click, studio_id, payload.code, browsing_session_id
    )
    return TrackingClickResponse(recorded=recorded)


@router.get("/studios/{studio_id}/tracking/{code}", response_model=TrackingAttributionResponse)
async def get_attribution(
    studio_id: str = Path(..., description="Studio ULID"),
    code: str = Path(..., max_length=256),
    service: TrackingAttributionService = Depends(get_tracking_service),
) -> TrackingAttributionResponse:
    try:
        attribution = await asyncio.to_thread(service.get_attribution, studio_id, code)
    except DomainException as e:
        handle_domain_exception(e)
    return TrackingAttributionResponse.model_validate(attribution)
