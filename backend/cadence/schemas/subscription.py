"""Subscription schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ._strict_base import OrmResponseModel, StrictModel, StrictRequestModel


class SubscriptionResponse(OrmResponseModel):
    id: str
    client_id: str
    studio_id: str
    plan_id: str
    booking_type: str
    interval: str
    status: str
    current_period_end: datetime
    cancelled_at: Optional[datetime] = None
    pack_size: Optional[int] = None
    credits_remaining: int = 0
    auto_renew: bool = False


class SubscriptionListResponse(StrictModel):
    subscriptions: List[SubscriptionResponse]
    count: int


class SubscriptionAccessResponse(StrictModel):
    subscription_id: str
    status: str
    has_access: bool
    current_period_end: datetime


class PackRedeemRequest(StrictRequestModel):
    """Book a session with one pack credit."""

    class_session_id: str = Field(..., description="Class session to book with a credit")
