"""Studio Repository: tenant configuration and read-only catalog lookups."""

import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.studio import ClassType, Location, Studio, Teacher
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class StudioRepository(BaseRepository[Studio]):
    def __init__(self, db: Session):
        super().__init__(db, Studio)

    def get_by_merchant_account(self, merchant_sub_account_id: str) -> Optional[Studio]:
        try:
            return (
                self.db.query(Studio)
                .filter(Studio.merchant_sub_account_id == merchant_sub_account_id)
                .first()
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to get studio by account: {str(e)}")

    def set_charges_enabled(self, merchant_sub_account_id: str, enabled: bool) -> int:
        """Mirror the connected account's charges_enabled flag; returns rows touched."""
        try:
            result = self.db.execute(
                update(Studio)
                .where(Studio.merchant_sub_account_id == merchant_sub_account_id)
                .values(charges_enabled=enabled)
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating charges flag for {merchant_sub_account_id}: {e}")
            raise RepositoryException(f"Failed to update studio: {str(e)}") from e

    def get_class_type(self, studio_id: str, class_type_id: str) -> Optional[ClassType]:
        try:
            return (
                self.db.query(ClassType)
                .filter(ClassType.id == class_type_id, ClassType.studio_id == studio_id)
                .first()
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to get class type: {str(e)}")

    def location_belongs_to_studio(self, studio_id: str, location_id: str) -> bool:
        try:
            return (
                self.db.query(Location.id)
                .filter(Location.id == location_id, Location.studio_id == studio_id)
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to check location: {str(e)}")

    def teacher_belongs_to_studio(self, studio_id: str, teacher_id: str) -> bool:
        try:
            return (
                self.db.query(Teacher.id)
                .filter(Teacher.id == teacher_id, Teacher.studio_id == studio_id)
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to check teacher: {str(e)}")
