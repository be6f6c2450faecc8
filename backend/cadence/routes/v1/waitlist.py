# backend/cadence/routes/v1/waitlist.py
"""
Waitlist routes - API v1

Endpoints:
    POST   /studios/{studio_id}/waitlist            - Join the waitlist of a full session
    GET    /studios/{studio_id}/waitlist            - The client's open waitlist entries
    DELETE /studios/{studio_id}/waitlist/{entry_id} - Leave the waitlist
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Path, status

from ...api.dependencies import get_client_id, get_waitlist_service
from ...core.exceptions import DomainException
from ...schemas.waitlist import WaitlistEntryResponse, WaitlistJoinRequest, WaitlistListResponse
from ...services.waitlist_service import WaitlistService
from .errors import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["waitlist-v1"])


@router.post(
    "/studios/{studio_id}/waitlist",
    response_model=WaitlistEntryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Session started, spots available or already waiting"}},
)
async def join_waitlist(
    payload: WaitlistJoinRequest,
    studio_id: str = Path(..., description="Studio ULID"),
    client_id: str = Depends(get_client_id),
    service: WaitlistService = Depends(get_waitlist_service),
) -> WaitlistEntryResponse:
    try:
        entry = await asyncio.to_thread(
            service.join, studio_id, payload.class_session_id, client_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return WaitlistEntryResponse.model_validate(entry)


@router.get("/studios/{studio_id}/waitlist", response_model=WaitlistListResponse)
async def list_waitlist_entries(
    studio_id: str = Path(..., description="Studio ULID"),
    client_id: str = Depends(get_client_id),
    service: WaitlistService = Depends(get_waitlist_service),
) -> WaitlistListResponse:
    """Open entries with their current positions, newest first."""
    entries = await asyncio.to_thread(service.list_for_client, client_id, studio_id)
    items = [WaitlistEntryResponse.model_validate(e) for e in entries]
    return WaitlistListResponse(entries=items, count=len(items))


@router.delete("/studios/{studio_id}/waitlist/{entry_id}", response_model=WaitlistEntryResponse)
async def leave_waitlist(
    studio_id: str = Path(..., description="Studio ULID"),
    entry_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    client_id: str = Depends(get_client_id),
    service: WaitlistService = Depends(get_waitlist_service),
) -> WaitlistEntryResponse:
    try:
        entry = await asyncio.to_thread(service.leave, entry_id, client_id, studio_id)
    except DomainException as e:
        handle_domain_exception(e)
    return WaitlistEntryResponse.model_validate(entry)
