# backend/cadence/repositories/class_session_repository.py
"""
Class Session Repository

Slot queries for availability and the two capacity mutations. Capacity is
only ever changed with a single conditional UPDATE so that two concurrent
reservations for the last spot cannot both succeed:

    UPDATE class_sessions
       SET booked_count = booked_count + 1
     WHERE id = :id AND booked_count < capacity
"""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.studio import ClassSession
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ClassSessionRepository(BaseRepository[ClassSession]):
    """Repository for class sessions and their capacity counter."""

    def __init__(self, db: Session):
        super().__init__(db, ClassSession)

    def find_slots(
        self,
        *,
        studio_id: str,
        location_id: str,
        class_type_id: str,
        teacher_id: Optional[str] = None,
        starts_from: datetime,
        starts_before: Optional[datetime] = None,
        include_full: bool = False,
        limit: int = 20,
    ) -> List[ClassSession]:
        """
        Sessions matching the filters, ordered by start time.

        Args:
            starts_from: inclusive lower bound on start_time
            starts_before: exclusive upper bound on start_time
            include_full: include sessions with no spots left
        """
        try:
            query = (
                self.db.query(ClassSession)
                .options(
                    joinedload(ClassSession.class_type),
                    joinedload(ClassSession.teacher),
                    joinedload(ClassSession.location),
                )
                .filter(
                    ClassSession.studio_id == studio_id,
                    ClassSession.location_id == location_id,
                    ClassSession.class_type_id == class_type_id,
                    ClassSession.start_time >= starts_from,
                )
            )
            if teacher_id:
                query = query.filter(ClassSession.teacher_id == teacher_id)
            if starts_before is not None:
                query = query.filter(ClassSession.start_time < starts_before)
            if not include_full:
                query = query.filter(ClassSession.booked_count < ClassSession.capacity)
            return query.order_by(ClassSession.start_time.asc()).limit(limit).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error querying slots for studio {studio_id}: {str(e)}")
            raise RepositoryException(f"Failed to query slots: {str(e)}")

    def get_fresh(self, session_id: str) -> Optional[ClassSession]:
        """Load a session, overwriting any stale copy held in the identity map."""
        try:
            return self.db.get(ClassSession, session_id, populate_existing=True)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load class session: {str(e)}")

    def try_reserve_spot(self, session_id: str) -> bool:
        """
        Atomically take one spot if any is left.

        Returns:
            True when the spot was taken, False when the session is full.
        """
        try:
            result = self.db.execute(
                update(ClassSession)
                .where(
                    ClassSession.id == session_id,
                    ClassSession.booked_count < ClassSession.capacity,
                )
                .values(booked_count=ClassSession.booked_count + 1)
                .execution_options(synchronize_session=False)
            )
            reserved = result.rowcount == 1
            self.logger.debug(f"Reserve spot on {session_id}: {'ok' if reserved else 'full'}")
            return reserved
        except SQLAlchemyError as e:
            self.logger.error(f"Error reserving spot on {session_id}: {str(e)}")
            raise RepositoryException(f"Failed to reserve spot: {str(e)}") from e

    def release_spot(self, session_id: str) -> bool:
        """Give one spot back; never drives booked_count below zero."""
        try:
            result = self.db.execute(
                update(ClassSession)
                .where(ClassSession.id == session_id, ClassSession.booked_count > 0)
                .values(booked_count=ClassSession.booked_count - 1)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
        except SQLAlchemyError as e:
            self.logger.error(f"Error releasing spot on {session_id}: {str(e)}")
            raise RepositoryException(f"Failed to release spot: {str(e)}") from e

    def list_repeats(
        self,
        *,
        studio_id: str,
        location_id: str,
        class_type_id: str,
        teacher_id: str,
        starts_after: datetime,
        starts_before: datetime,
    ) -> List[ClassSession]:
        """
        Sessions of the same class, place and teacher starting strictly inside
        the window, full ones included. Weekday matching is left to the caller.
        """
        try:
            return (
                self.db.query(ClassSession)
                .filter(
                    ClassSession.studio_id == studio_id,
                    ClassSession.location_id == location_id,
                    ClassSession.class_type_id == class_type_id,
                    ClassSession.teacher_id == teacher_id,
                    ClassSession.start_time > starts_after,
                    ClassSession.start_time < starts_before,
                )
                .order_by(ClassSession.start_time.asc())
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing repeats of class type {class_type_id}: {str(e)}")
            raise RepositoryException(f"Failed to list repeat sessions: {str(e)}")
