"""
Tracking Repository

Counters are updated with SQL increments and dedupe rows are inserted with
``ON CONFLICT DO NOTHING``, so concurrent clicks and conversions never lose
updates or double count.
"""

from datetime import datetime, timezone
from decimal import Decimal
import logging
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.tracking import TrackingAttribution, TrackingClick, TrackingConversion
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TrackingRepository(BaseRepository[TrackingAttribution]):
    def __init__(self, db: Session):
        super().__init__(db, TrackingAttribution)

    def _insert(self, model: Any) -> Any:
        if self.dialect_name == "postgresql":
            return pg_insert(model)
        if self.dialect_name == "sqlite":
            return sqlite_insert(model)
        raise RepositoryException(f"Unsupported dialect for upserts: {self.dialect_name}")

    def get_attribution(self, studio_id: str, code: str) -> Optional[TrackingAttribution]:
        try:
            return (
                self.db.query(TrackingAttribution)
                .filter(
                    TrackingAttribution.studio_id == studio_id,
                    TrackingAttribution.code == code,
                )
                .populate_existing()
                .first()
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load attribution: {str(e)}")

    def ensure_attribution(self, studio_id: str, code: str) -> None:
        """Create the counter row on first sight of a code."""
        try:
            self.db.execute(
                self._insert(TrackingAttribution)
                .values(studio_id=studio_id, code=code)
                .on_conflict_do_nothing(index_elements=["studio_id", "code"])
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating attribution {studio_id}/{code}: {str(e)}")
            raise RepositoryException(f"Failed to create attribution: {str(e)}") from e

    def insert_click(self, studio_id: str, code: str, browsing_session_id: str) -> bool:
        """Record a session's click; False when this session already clicked."""
        try:
            result = self.db.execute(
                self._insert(TrackingClick)
                .values(studio_id=studio_id, code=code, browsing_session_id=browsing_session_id)
                .on_conflict_do_nothing(
                    index_elements=["studio_id", "code", "browsing_session_id"]
                )
            )
            return result.rowcount == 1
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to record click: {str(e)}") from e

    def increment_clicks(self, studio_id: str, code: str) -> None:
        try:
            self.db.execute(
                update(TrackingAttribution)
                .where(
                    TrackingAttribution.studio_id == studio_id,
                    TrackingAttribution.code == code,
                )
                .values(
                    clicks=TrackingAttribution.clicks + 1,
                    last_click_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to increment clicks: {str(e)}") from e

    def insert_conversion(
        self, studio_id: str, code: str, booking_id: str, revenue: Decimal
    ) -> bool:
        """Append the conversion for a booking; False if the booking was already counted."""
        try:
            result = self.db.execute(
                self._insert(TrackingConversion)
                .values(studio_id=studio_id, code=code, booking_id=booking_id, revenue=revenue)
                .on_conflict_do_nothing(index_elements=["booking_id"])
            )
            return result.rowcount == 1
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to record conversion: {str(e)}") from e

    def increment_conversions(self, studio_id: str, code: str, revenue: Decimal) -> None:
        try:
            self.db.execute(
                update(TrackingAttribution)
                .where(
                    TrackingAttribution.studio_id == studio_id,
                    TrackingAttribution.code == code,
                )
                .values(
                    conversions=TrackingAttribution.conversions + 1,
                    revenue=TrackingAttribution.revenue + revenue,
                    last_conversion_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to increment conversions: {str(e)}") from e
