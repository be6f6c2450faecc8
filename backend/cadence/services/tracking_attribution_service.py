# backend/cadence/services/tracking_attribution_service.py
"""
Tracking Attribution Service

Counts clicks and conversions for a studio's marketing tracking codes.
A malformed code is not an error: the call returns False and no counter
moves. Conversions are append-only and keyed by booking id, so a booking
that is later cancelled still counts once and never twice.
"""

from decimal import Decimal, InvalidOperation
import logging
import re
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException
from ..models.tracking import TrackingAttribution
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .pricing_service import quantize

logger = logging.getLogger(__name__)

TRACKING_CODE_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{5,127}$")


def normalize_code(raw: Optional[str]) -> Optional[str]:
    """Trimmed code when it has a valid shape, otherwise None."""
    if not isinstance(raw, str):
        return None
    candidate = raw.strip()
    if not TRACKING_CODE_PATTERN.fullmatch(candidate):
        return None
    return candidate


def _clamp_revenue(revenue: object) -> Decimal:
    try:
        value = Decimal(str(revenue))
    except (InvalidOperation, ValueError):
        return Decimal("0.00")
    if not value.is_finite() or value < 0:
        return Decimal("0.00")
    return quantize(value)


class TrackingAttributionService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.tracking_repository = RepositoryFactory.create_tracking_repository(db)
        self.studio_repository = RepositoryFactory.create_studio_repository(db)

    normalize_code = staticmethod(normalize_code)

    @BaseService.measure_operation("record_click")
    def record_click(
        self, studio_id: str, code: str, browsing_session_id: Optional[str] = None
    ) -> bool:
        """
        Count a click on a tracking code.

        Returns False for malformed codes, unknown studios and repeat clicks
        from the same browsing session.
        """
        normalized = normalize_code(code)
        if normalized is None:
            return False
        if not self.studio_repository.get_by_id(studio_id):
            return False

        session_key = (browsing_session_id or "").strip()[:128] or None
        with self.transaction():
            self.tracking_repository.ensure_attribution(studio_id, normalized)
            if session_key and not self.tracking_repository.insert_click(
                studio_id, normalized, session_key
            ):
                return False
            self.tracking_repository.increment_clicks(studio_id, normalized)
        return True

    @BaseService.measure_operation("record_conversion")
    def record_conversion(
        self, studio_id: str, code: str, revenue: object, booking_id: str
    ) -> bool:
        """
        Attribute a confirmed booking to a tracking code.

        Revenue below zero is clamped to zero. Returns False for malformed
        codes and for bookings that were already counted.
        """
        normalized = normalize_code(code)
        if normalized is None or not booking_id:
            return False

        amount = _clamp_revenue(revenue)
        with self.transaction():
            self.tracking_repository.ensure_attribution(studio_id, normalized)
            if not self.tracking_repository.insert_conversion(
                studio_id, normalized, booking_id, amount
            ):
                self.logger.info(f"Conversion for booking {booking_id} already recorded")
                return False
            self.tracking_repository.increment_conversions(studio_id, normalized, amount)

        self.log_operation(
            "record_conversion", studio_id=studio_id, code=normalized, booking_id=booking_id
        )
        return True

    def get_attribution(self, studio_id: str, code: str) -> TrackingAttribution:
        normalized = normalize_code(code)
        attribution = (
            self.tracking_repository.get_attribution(studio_id, normalized) if normalized else None
        )
        if attribution is None:
            raise NotFoundException("Tracking code not found", code="TRACKING_CODE_NOT_FOUND")
        return attribution
