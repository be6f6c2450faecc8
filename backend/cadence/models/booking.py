# backend/cadence/models/booking.py
"""
Booking model for the booking core.

A booking ties one client to one class session. It is inserted by the
BookingReconciler in the same transaction that reserves the spot, so a
booking row exists only for sessions whose capacity was actually taken.
payment_id is unique: one payment can back at most one booking, which
is what makes repeated confirmations idempotent.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import BookingStatus, BookingType
from ..database import Base

logger = logging.getLogger(__name__)

ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


class Booking(Base):
    """Durable reservation of one spot in a class session."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    client_id = Column(String(64), nullable=False, index=True)
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False)
    class_session_id = Column(
        String(26), ForeignKey("class_sessions.id"), nullable=False, index=True
    )

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    booking_type = Column(String(20), nullable=False, default=BookingType.SINGLE.value)
    pack_size = Column(Integer, nullable=True)
    auto_renew = Column(Boolean, nullable=False, default=False)
    amount = Column(Numeric(10, 2), nullable=False, default=0)

    # Null for free studios and pack-credit redemptions
    payment_id = Column(String(26), ForeignKey("payments.id"), nullable=True, unique=True)
    subscription_id = Column(String(26), ForeignKey("subscriptions.id"), nullable=True)
    tracking_code = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    class_session = relationship("ClassSession")
    payment = relationship("Payment", foreign_keys=[payment_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'CANCELLED', 'COMPLETED')",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "booking_type IN ('SINGLE', 'RECURRING', 'PACK')",
            name="ck_bookings_type",
        ),
        CheckConstraint("amount >= 0", name="ck_bookings_amount_non_negative"),
        Index("ix_bookings_client_session", "client_id", "class_session_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Booking {self.id}: client={self.client_id}, session={self.class_session_id}, "
            f"type={self.booking_type}, status={self.status}, payment={self.payment_id}>"
        )

    def confirm(self) -> None:
        """Mark booking as confirmed."""
        self.status = BookingStatus.CONFIRMED.value
        self.confirmed_at = datetime.now(timezone.utc)

    def cancel(self, reason: Optional[str] = None) -> None:
        """Cancel this booking."""
        self.status = BookingStatus.CANCELLED.value
        self.cancelled_at = datetime.now(timezone.utc)
        self.cancellation_reason = reason
        logger.info(f"Booking {self.id} cancelled: {reason or 'no reason given'}")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "client_id": self.client_id,
            "studio_id": self.studio_id,
            "class_session_id": self.class_session_id,
            "status": self.status,
            "booking_type": self.booking_type,
            "pack_size": self.pack_size,
            "auto_renew": bool(self.auto_renew),
            "amount": str(self.amount) if self.amount is not None else None,
            "payment_id": self.payment_id,
            "subscription_id": self.subscription_id,
            "tracking_code": self.tracking_code,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }
