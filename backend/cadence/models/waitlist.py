"""Waitlist entries for full class sessions."""

from __future__ import annotations

from datetime import datetime, timezone
import sqlalchemy as sa
from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..core.enums import WaitlistStatus
from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class WaitlistEntry(Base):
    """
    One client's place in line for a full session.

    Positions count from 1 among WAITING entries of a session and close up
    when an entry ahead leaves or is promoted.
    """

    __tablename__ = "waitlist_entries"

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('WAITING', 'NOTIFIED', 'BOOKED', 'CANCELLED', 'EXPIRED')",
            name="ck_waitlist_entries_status",
        ),
        sa.CheckConstraint("position >= 1", name="ck_waitlist_entries_position"),
        sa.Index("ix_waitlist_entries_session_status", "class_session_id", "status", "position"),
        sa.Index("ix_waitlist_entries_client_studio", "client_id", "studio_id"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    studio_id: Mapped[str] = mapped_column(String(26), ForeignKey("studios.id"), nullable=False)
    class_session_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("class_sessions.id"), nullable=False
    )
    client_id: Mapped[str] = mapped_column(String(64), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WaitlistStatus.WAITING.value
    )

    # Set when a freed spot is offered to the client
    notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    booking_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("bookings.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=_now_utc
    )

    class_session = relationship("ClassSession")

    def __repr__(self) -> str:
        return (
            f"<WaitlistEntry {self.id}: session={self.class_session_id} "
            f"client={self.client_id} position={self.position} status={self.status}>"
        )
