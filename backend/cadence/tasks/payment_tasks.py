"""
Celery tasks for payment hold maintenance.
"""

import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from cadence.services.payment_authorization_service import PaymentAuthorizationService
from cadence.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(  # type: ignore[misc]
    bind=True, max_retries=3, name="cadence.tasks.payment_tasks.void_stale_payment_holds"
)
def void_stale_payment_holds(self: Any, limit: int = 100) -> Dict[str, int]:
    """
    Void booking holds that were never reconciled into a booking.

    Runs every 10 minutes; the hold window is ``payment_hold_timeout_minutes``.
    """
    from cadence.database import SessionLocal

    db: Session = SessionLocal()
    try:
        results = PaymentAuthorizationService(db).void_stale_holds(limit=limit)
        logger.info(
            f"Stale hold sweep completed: {results['voided']} voided, {results['failed']} failed"
        )
        return results
    finally:
        db.close()
