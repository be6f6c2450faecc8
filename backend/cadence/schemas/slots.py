"""Slot availability response schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from ._strict_base import OrmResponseModel, StrictModel


class SlotResponse(OrmResponseModel):
    class_session_id: str
    start_time: datetime
    end_time: datetime
    capacity: int
    booked_count: int
    spots_left: int = Field(..., ge=0)
    class_type_id: str
    class_type_name: str
    price: Decimal
    duration_minutes: int
    teacher_id: Optional[str] = None
    teacher_name: Optional[str] = None
    location_id: str
    location_name: Optional[str] = None


class SlotListResponse(StrictModel):
    slots: List[SlotResponse]
    count: int
    date: Optional[str] = Field(default=None, description="Requested day (YYYY-MM-DD)")
