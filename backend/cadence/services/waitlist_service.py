# backend/cadence/services/waitlist_service.py
"""
Waitlist Service

Clients queue for sessions that are full. When a booking is cancelled the
first WAITING client is offered the freed spot (NOTIFIED) and has
``waitlist_claim_minutes`` to book it through the normal booking flow.
Offers that lapse are expired by a sweep, which offers the spot to the
next client in line.

An offer does not hold the spot: whoever books first gets it.
"""

from datetime import datetime, timedelta
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import OPEN_WAITLIST_STATUSES, WaitlistStatus
from ..core.exceptions import ConflictException, DuplicateBookingError, NotFoundException
from ..models.waitlist import WaitlistEntry
from ..repositories.factory import RepositoryFactory
from ..utils.time_utils import ensure_utc, utc_now
from .base import BaseService

logger = logging.getLogger(__name__)


class WaitlistService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.waitlist_repository = RepositoryFactory.create_waitlist_repository(db)
        self.class_session_repository = RepositoryFactory.create_class_session_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    @BaseService.measure_operation("join_waitlist")
    def join(self, studio_id: str, class_session_id: str, client_id: str) -> WaitlistEntry:
        """
        Put the client at the back of the line for a full session.

        Raises:
            NotFoundException: unknown session, or one from another studio
            ConflictException: session started, client already booked or
                already waiting, or the session still has spots
        """
        class_session = self.class_session_repository.get_fresh(class_session_id)
        if class_session is None or class_session.studio_id != studio_id:
            raise NotFoundException("Class session not found", code="CLASS_SESSION_NOT_FOUND")
        if ensure_utc(class_session.start_time) <= utc_now():
            raise ConflictException(
                "This class has already started",
                code="SESSION_STARTED",
                details={"class_session_id": class_session.id},
            )

        booking = self.booking_repository.find_active_for_client_session(
            client_id, class_session.id
        )
        if booking is not None:
            raise DuplicateBookingError(class_session.id, booking.id)

        existing = self.waitlist_repository.find_open(client_id, class_session.id)
        if existing is not None:
            raise ConflictException(
                "Already on the waitlist for this class",
                code="ALREADY_WAITLISTED",
                details={"entry_id": existing.id, "position": existing.position},
            )
        if class_session.spots_left > 0:
            raise ConflictException(
                "This class still has spots available",
                code="SPOTS_AVAILABLE",
                details={"spots_left": class_session.spots_left},
            )

        with self.transaction():
            entry = self.waitlist_repository.create(
                studio_id=studio_id,
                class_session_id=class_session.id,
                client_id=client_id,
                position=self.waitlist_repository.next_position(class_session.id),
                status=WaitlistStatus.WAITING.value,
            )

        self.log_operation(
            "join_waitlist",
            entry_id=entry.id,
            class_session_id=class_session.id,
            position=entry.position,
        )
        return entry

    @BaseService.measure_operation("leave_waitlist")
    def leave(
        self, entry_id: str, client_id: str, studio_id: Optional[str] = None
    ) -> WaitlistEntry:
        entry = self.waitlist_repository.get_by_id(entry_id)
        if (
            entry is None
            or entry.client_id != client_id
            or (studio_id and entry.studio_id != studio_id)
        ):
            raise NotFoundException("Waitlist entry not found", code="WAITLIST_ENTRY_NOT_FOUND")
        if entry.status not in OPEN_WAITLIST_STATUSES:
            raise ConflictException(
                f"Waitlist entry is already {entry.status.lower()}",
                code="WAITLIST_ENTRY_CLOSED",
            )

        with self.transaction():
            was_waiting = entry.status == WaitlistStatus.WAITING.value
            entry.status = WaitlistStatus.CANCELLED.value
            if was_waiting:
                self.waitlist_repository.close_gap(entry.class_session_id, entry.position)

        self.log_operation("leave_waitlist", entry_id=entry.id)
        return entry

    def list_for_client(self, client_id: str, studio_id: str) -> List[WaitlistEntry]:
        return self.waitlist_repository.list_open_for_client(client_id, studio_id)

    @BaseService.measure_operation("promote_waitlist")
    def promote_next(self, class_session_id: str) -> Optional[WaitlistEntry]:
        """Offer a freed spot to the first WAITING client; None when nobody is waiting."""
        with self.transaction():
            entry = self.waitlist_repository.first_waiting(class_session_id)
            if entry is None:
                return None
            now = utc_now()
            vacated = entry.position
            entry.status = WaitlistStatus.NOTIFIED.value
            entry.notified_at = now
            entry.expires_at = now + timedelta(minutes=settings.waitlist_claim_minutes)
            self.waitlist_repository.close_gap(class_session_id, vacated)

        self.log_operation(
            "waitlist_spot_offered",
            entry_id=entry.id,
            class_session_id=class_session_id,
            client_id=entry.client_id,
            expires_at=entry.expires_at.isoformat(),
        )
        return entry

    def mark_booked(self, class_session_id: str, client_id: str, booking_id: str) -> bool:
        """Close the client's open entry once they hold a booking on the session."""
        entry = self.waitlist_repository.find_open(client_id, class_session_id)
        if entry is None:
            return False
        with self.transaction():
            was_waiting = entry.status == WaitlistStatus.WAITING.value
            entry.status = WaitlistStatus.BOOKED.value
            entry.booking_id = booking_id
            if was_waiting:
                self.waitlist_repository.close_gap(class_session_id, entry.position)
        return True

    @BaseService.measure_operation("expire_waitlist_offers")
    def expire_offers(self, now: Optional[datetime] = None) -> int:
        """Expire lapsed offers and pass each spot on to the next client in line."""
        moment = now or utc_now()
        lapsed = self.waitlist_repository.list_lapsed_offers(moment)
        with self.transaction():
            for entry in lapsed:
                entry.status = WaitlistStatus.EXPIRED.value

        for entry in lapsed:
            class_session = self.class_session_repository.get_fresh(entry.class_session_id)
            if class_session is None or ensure_utc(class_session.start_time) <= moment:
                continue
            if class_session.spots_left > 0:
                self.promote_next(class_session.id)

        if lapsed:
            self.logger.info(f"Expired {len(lapsed)} waitlist offers")
        return len(lapsed)
