"""Client subscriptions for recurring bookings and class packs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ..core.enums import BookingType, SubscriptionInterval, SubscriptionStatus
from ..database import Base
from ..utils.time_utils import ensure_utc


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Subscription(Base):
    """
    Recurring plan (RECURRING) or credit bundle (PACK) owned by one client.

    Cancelling only flips the status; access continues until
    current_period_end. Pack credits are changed with conditional UPDATEs
    in SubscriptionRepository, never by assigning credits_remaining.

    Pack credits do not lapse with the period: a pack stays usable until it
    is expired, which happens once a cancelled pack has no credits left.
    """

    __tablename__ = "subscriptions"

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('active', 'cancelled', 'expired')", name="ck_subscriptions_status"
        ),
        sa.CheckConstraint("interval IN ('monthly', 'yearly')", name="ck_subscriptions_interval"),
        sa.CheckConstraint("credits_remaining >= 0", name="ck_subscriptions_credits"),
        sa.Index("ix_subscriptions_client_studio", "client_id", "studio_id"),
        sa.Index("ix_subscriptions_status_period", "status", "current_period_end"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    client_id: Mapped[str] = mapped_column(String(64), nullable=False)
    studio_id: Mapped[str] = mapped_column(String(26), ForeignKey("studios.id"), nullable=False)
    plan_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("class_types.id"), nullable=False, comment="Class type"
    )
    booking_type: Mapped[str] = mapped_column(String(20), nullable=False)
    interval: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionInterval.MONTHLY.value
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value
    )
    current_period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Packs
    pack_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    credits_remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Off-session renewal on the studio's connected account
    payment_method_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    merchant_customer_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_renewal_payment_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    renewal_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Failed auto-renew charges since the last renewal"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=_now_utc
    )

    def has_access(self, at: datetime | None = None) -> bool:
        """Packs keep access until expired; recurring plans until the period ends."""
        if self.status == SubscriptionStatus.EXPIRED.value:
            return False
        if self.booking_type == BookingType.PACK.value:
            return True
        moment = ensure_utc(at) if at else _now_utc()
        return ensure_utc(self.current_period_end) > moment

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "studio_id": self.studio_id,
            "plan_id": self.plan_id,
            "booking_type": self.booking_type,
            "interval": self.interval,
            "status": self.status,
            "current_period_end": self.current_period_end.isoformat(),
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "pack_size": self.pack_size,
            "credits_remaining": self.credits_remaining,
            "auto_renew": self.auto_renew,
        }

    def __repr__(self) -> str:
        return (
            f"<Subscription {self.id}: client={self.client_id} type={self.booking_type} "
            f"status={self.status} period_end={self.current_period_end}>"
        )
