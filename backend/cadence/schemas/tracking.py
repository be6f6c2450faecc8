"""Tracking-code attribution schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from ._strict_base import OrmResponseModel, StrictModel, StrictRequestModel


class TrackingClickRequest(StrictRequestModel):
    # Shape is checked by the service; malformed codes are simply not recorded
    code: str = Field(..., max_length=256)


class TrackingClickResponse(StrictModel):
    recorded: bool


class TrackingAttributionResponse(OrmResponseModel):
    studio_id: str
    code: str
    clicks: int
    conversions: int
    revenue: Decimal
    last_click_at: Optional[datetime] = None
    last_conversion_at: Optional[datetime] = None
