"""Waitlist schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ._strict_base import OrmResponseModel, StrictModel, StrictRequestModel


class WaitlistJoinRequest(StrictRequestModel):
    class_session_id: str = Field(..., description="Full class session to wait for")


class WaitlistEntryResponse(OrmResponseModel):
    id: str
    studio_id: str
    class_session_id: str
    client_id: str
    position: int
    status: str
    notified_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    booking_id: Optional[str] = None
    created_at: datetime


class WaitlistListResponse(StrictModel):
    entries: List[WaitlistEntryResponse]
    count: int
