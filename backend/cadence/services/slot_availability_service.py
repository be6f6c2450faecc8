# backend/cadence/services/slot_availability_service.py
"""
Slot Availability Service

Read-only view of bookable class sessions. Results can be stale by the time
the client acts on them; the reconciler's conditional capacity update is
what actually decides whether a spot is still free.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.studio import ClassSession
from ..repositories.factory import RepositoryFactory
from ..utils.time_utils import day_bounds, ensure_utc, parse_date_only, utc_now
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass
class Slot:
    class_session_id: str
    start_time: datetime
    end_time: datetime
    capacity: int
    booked_count: int
    spots_left: int
    class_type_id: str
    class_type_name: str
    price: Decimal
    duration_minutes: int
    location_id: str
    location_name: Optional[str]
    teacher_id: Optional[str]
    teacher_name: Optional[str]

    @classmethod
    def from_session(cls, session: ClassSession) -> "Slot":
        return cls(
            class_session_id=session.id,
            start_time=ensure_utc(session.start_time),
            end_time=ensure_utc(session.end_time),
            capacity=session.capacity,
            booked_count=session.booked_count,
            spots_left=session.spots_left,
            class_type_id=session.class_type_id,
            class_type_name=session.class_type.name,
            price=session.class_type.price,
            duration_minutes=session.class_type.duration_minutes,
            location_id=session.location_id,
            location_name=session.location.name if session.location else None,
            teacher_id=session.teacher_id,
            teacher_name=session.teacher.name if session.teacher else None,
        )


class SlotAvailabilityService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.class_session_repository = RepositoryFactory.create_class_session_repository(db)
        self.studio_repository = RepositoryFactory.create_studio_repository(db)

    @BaseService.measure_operation("find_slots")
    def find_slots(
        self,
        studio_id: str,
        location_id: str,
        class_type_id: str,
        teacher_id: Optional[str] = None,
        date: Optional[str] = None,
        include_full: bool = False,
    ) -> List[Slot]:
        """
        Bookable sessions for a studio, location and class type.

        With ``date`` (YYYY-MM-DD) only sessions starting on that UTC day are
        returned; without it, only sessions that have not started yet. A date
        that does not parse, an unknown studio or filters that belong to
        another studio all produce an empty list rather than an error.
        """
        starts_before = None
        if date is not None:
            day = parse_date_only(date)
            if day is None:
                self.logger.debug(f"Ignoring slot query with unparseable date {date!r}")
                return []
            starts_from, starts_before = day_bounds(day)
        else:
            starts_from = utc_now()

        if not self.studio_repository.get_by_id(studio_id):
            return []
        if not self.studio_repository.location_belongs_to_studio(studio_id, location_id):
            return []
        if not self.studio_repository.get_class_type(studio_id, class_type_id):
            return []
        if teacher_id and not self.studio_repository.teacher_belongs_to_studio(studio_id, teacher_id):
            return []

        sessions = self.class_session_repository.find_slots(
            studio_id=studio_id,
            location_id=location_id,
            class_type_id=class_type_id,
            teacher_id=teacher_id,
            starts_from=starts_from,
            starts_before=starts_before,
            include_full=include_full,
            limit=settings.slot_query_limit,
        )
        return [Slot.from_session(session) for session in sessions]
