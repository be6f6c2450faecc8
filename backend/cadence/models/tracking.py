"""Marketing tracking-code attribution counters."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class TrackingAttribution(Base):
    """Aggregated clicks, conversions and revenue for one studio's tracking code."""

    __tablename__ = "tracking_attributions"

    __table_args__ = (
        sa.UniqueConstraint("studio_id", "code", name="uq_tracking_attributions_studio_code"),
        sa.CheckConstraint("revenue >= 0", name="ck_tracking_attributions_revenue"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    studio_id: Mapped[str] = mapped_column(String(26), ForeignKey("studios.id"), nullable=False)
    code: Mapped[str] = mapped_column(String(128), nullable=False)
    clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    conversions: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    revenue: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00"), server_default="0"
    )
    last_click_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_conversion_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now()
    )


class TrackingClick(Base):
    """One row per (studio, code, browsing session); the unique key is the click dedupe."""

    __tablename__ = "tracking_clicks"

    __table_args__ = (
        sa.UniqueConstraint(
            "studio_id", "code", "browsing_session_id", name="uq_tracking_clicks_session"
        ),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    studio_id: Mapped[str] = mapped_column(String(26), nullable=False)
    code: Mapped[str] = mapped_column(String(128), nullable=False)
    browsing_session_id: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now()
    )


class TrackingConversion(Base):
    """Append-only conversion record; booking_id is unique so each booking counts once."""

    __tablename__ = "tracking_conversions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    studio_id: Mapped[str] = mapped_column(String(26), nullable=False)
    code: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    booking_id: Mapped[str] = mapped_column(String(26), nullable=False, unique=True)
    revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now()
    )
