# backend/cadence/models/studio.py
"""
Studio catalog models.

Studios are the tenants of the platform. The catalog (locations, teachers,
class types and scheduled sessions) is owned by each studio and managed
elsewhere; the booking core only reads it, except for the session's
booked_count which is mutated by the reconciler with conditional updates.
"""

from typing import Any

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
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class Studio(Base):
    """Tenant configuration consumed by the payment flow."""

    __tablename__ = "studios"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name = Column(String(200), nullable=False)
    subdomain = Column(String(100), nullable=False, unique=True, index=True)

    payments_enabled = Column(Boolean, nullable=False, default=False)
    merchant_sub_account_id = Column(
        String(255), nullable=True, comment="Stripe connected account id"
    )
    charges_enabled = Column(Boolean, nullable=False, default=False)
    currency = Column(String(3), nullable=False, default="usd")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self) -> str:
        return (
            f"<Studio {self.id}: {self.subdomain} payments_enabled={self.payments_enabled} "
            f"account={self.merchant_sub_account_id}>"
        )


class Location(Base):
    __tablename__ = "locations"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)


class Teacher(Base):
    __tablename__ = "teachers"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)


class ClassType(Base):
    """A bookable class offering with its list price."""

    __tablename__ = "class_types"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)

    __table_args__ = (CheckConstraint("duration_minutes > 0", name="ck_class_types_duration"),)


class ClassSession(Base):
    """
    A scheduled instance of a class type with finite capacity.

    booked_count never exceeds capacity. It is only changed through
    ClassSessionRepository.try_reserve_spot / release_spot, which issue
    conditional UPDATE statements so concurrent writers cannot overbook.
    """

    __tablename__ = "class_sessions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False)
    location_id = Column(String(26), ForeignKey("locations.id"), nullable=False)
    class_type_id = Column(String(26), ForeignKey("class_types.id"), nullable=False)
    teacher_id = Column(String(26), ForeignKey("teachers.id"), nullable=True)

    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    capacity = Column(Integer, nullable=False)
    booked_count = Column(Integer, nullable=False, default=0, server_default="0")

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    studio = relationship("Studio")
    location = relationship("Location")
    class_type = relationship("ClassType")
    teacher = relationship("Teacher")

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="ck_class_sessions_capacity"),
        CheckConstraint("booked_count >= 0", name="ck_class_sessions_booked_non_negative"),
        CheckConstraint("booked_count <= capacity", name="ck_class_sessions_not_overbooked"),
        Index("ix_class_sessions_studio_start", "studio_id", "start_time"),
    )

    @property
    def spots_left(self) -> int:
        return max(int(self.capacity or 0) - int(self.booked_count or 0), 0)

    def __repr__(self) -> str:
        return (
            f"<ClassSession {self.id}: start={self.start_time} "
            f"booked={self.booked_count}/{self.capacity}>"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "studio_id": self.studio_id,
            "location_id": self.location_id,
            "class_type_id": self.class_type_id,
            "teacher_id": self.teacher_id,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "capacity": self.capacity,
            "booked_count": self.booked_count,
            "spots_left": self.spots_left,
        }
