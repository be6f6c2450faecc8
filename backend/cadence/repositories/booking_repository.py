# backend/cadence/repositories/booking_repository.py
"""Booking Repository: lookups the reconciler relies on for idempotency."""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import ACTIVE_BOOKING_STATUSES, Booking
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def get_by_payment_id(self, payment_id: str) -> Optional[Booking]:
        """The booking a payment already produced, if any."""
        try:
            return self.db.query(Booking).filter(Booking.payment_id == payment_id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting booking for payment {payment_id}: {str(e)}")
            raise RepositoryException(f"Failed to get booking by payment: {str(e)}")

    def find_active_for_client_session(
        self, client_id: str, class_session_id: str
    ) -> Optional[Booking]:
        """PENDING or CONFIRMED booking this client holds on the session."""
        try:
            return (
                self.db.query(Booking)
                .filter(
                    Booking.client_id == client_id,
                    Booking.class_session_id == class_session_id,
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking existing booking: {str(e)}")
            raise RepositoryException(f"Failed to check existing booking: {str(e)}")

    def list_for_subscription(self, subscription_id: str) -> List[Booking]:
        try:
            return (
                self.db.query(Booking)
                .filter(Booking.subscription_id == subscription_id)
                .order_by(Booking.created_at.asc())
                .all()
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to list subscription bookings: {str(e)}")
