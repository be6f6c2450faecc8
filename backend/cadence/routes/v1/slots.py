# backend/cadence/routes/v1/slots.py
"""
Slot availability routes - API v1

Endpoints:
    GET /studios/{studio_id}/slots - Bookable class sessions for a day
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...api.dependencies import get_slot_service
from ...core.exceptions import DomainException
from ...schemas.slots import SlotListResponse, SlotResponse
from ...services.slot_availability_service import SlotAvailabilityService
from .errors import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["slots-v1"])


@router.get("/studios/{studio_id}/slots", response_model=SlotListResponse)
async def list_slots(
    studio_id: str,
    location_id: str = Query(..., description="Location to search"),
    class_type_id: str = Query(..., description="Class type to search"),
    teacher_id: Optional[str] = Query(None, description="Only this teacher's sessions"),
    date: Optional[str] = Query(None, description="Day to search (YYYY-MM-DD)"),
    include_full: bool = Query(False, description="Include sessions with no spots left"),
    service: SlotAvailabilityService = Depends(get_slot_service),
) -> SlotListResponse:
    """
    List class sessions with their remaining spots.

    Unknown studios, filters that do not belong to the studio and malformed
    dates all yield an empty list rather than an error.
    """
    try:
        slots = await asyncio.to_thread(
            service.find_slots,
            studio_id,
            location_id,
            class_type_id,
            teacher_id=teacher_id,
            date=date,
            include_full=include_full,
        )
    except DomainException as e:
        handle_domain_exception(e)

    items = [SlotResponse.model_validate(slot) for slot in slots]
    return SlotListResponse(slots=items, count=len(items), date=date)
