"""Waitlist Repository: queue order per session and the position updates behind it."""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import OPEN_WAITLIST_STATUSES, WaitlistStatus
from ..core.exceptions import RepositoryException
from ..models.waitlist import WaitlistEntry
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class WaitlistRepository(BaseRepository[WaitlistEntry]):
    def __init__(self, db: Session):
        super().__init__(db, WaitlistEntry)

    def find_open(self, client_id: str, class_session_id: str) -> Optional[WaitlistEntry]:
        """The client's WAITING or NOTIFIED entry on the session, if any."""
        try:
            return (
                self.db.query(WaitlistEntry)
                .filter(
                    WaitlistEntry.client_id == client_id,
                    WaitlistEntry.class_session_id == class_session_id,
                    WaitlistEntry.status.in_(OPEN_WAITLIST_STATUSES),
                )
                .first()
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to find waitlist entry: {str(e)}")

    def next_position(self, class_session_id: str) -> int:
        try:
            last = (
                self.db.query(func.max(WaitlistEntry.position))
                .filter(
                    WaitlistEntry.class_session_id == class_session_id,
                    WaitlistEntry.status == WaitlistStatus.WAITING.value,
                )
                .scalar()
            )
            return (last or 0) + 1
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to compute waitlist position: {str(e)}")

    def first_waiting(self, class_session_id: str) -> Optional[WaitlistEntry]:
        try:
            return (
                self.db.query(WaitlistEntry)
                .filter(
                    WaitlistEntry.class_session_id == class_session_id,
                    WaitlistEntry.status == WaitlistStatus.WAITING.value,
                )
                .order_by(WaitlistEntry.position.asc(), WaitlistEntry.created_at.asc())
                .first()
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load waitlist head: {str(e)}")

    def close_gap(self, class_session_id: str, vacated_position: int) -> int:
        """Move every WAITING entry behind ``vacated_position`` up one place."""
        try:
            result = self.db.execute(
                update(WaitlistEntry)
                .where(
                    WaitlistEntry.class_session_id == class_session_id,
                    WaitlistEntry.status == WaitlistStatus.WAITING.value,
                    WaitlistEntry.position > vacated_position,
                )
                .values(position=WaitlistEntry.position - 1)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount
        except SQLAlchemyError as e:
            self.logger.error(f"Error reordering waitlist for {class_session_id}: {str(e)}")
            raise RepositoryException(f"Failed to reorder waitlist: {str(e)}") from e

    def list_open_for_client(self, client_id: str, studio_id: str) -> List[WaitlistEntry]:
        """Open entries of a client at a studio, newest first."""
        try:
            return (
                self.db.query(WaitlistEntry)
                .filter(
                    WaitlistEntry.client_id == client_id,
                    WaitlistEntry.studio_id == studio_id,
                    WaitlistEntry.status.in_(OPEN_WAITLIST_STATUSES),
                )
                .order_by(WaitlistEntry.created_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing waitlist entries for {client_id}: {str(e)}")
            raise RepositoryException(f"Failed to list waitlist entries: {str(e)}")

    def list_lapsed_offers(self, now: datetime, limit: int = 200) -> List[WaitlistEntry]:
        """NOTIFIED entries whose claim window has passed."""
        try:
            return (
                self.db.query(WaitlistEntry)
                .filter(
                    WaitlistEntry.status == WaitlistStatus.NOTIFIED.value,
                    WaitlistEntry.expires_at <= now,
                )
                .order_by(WaitlistEntry.expires_at.asc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to list lapsed waitlist offers: {str(e)}")
