"""
Celery tasks for waitlist offers.
"""

import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from cadence.services.waitlist_service import WaitlistService
from cadence.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(  # type: ignore[misc]
    bind=True, max_retries=3, name="cadence.tasks.waitlist_tasks.expire_waitlist_offers"
)
def expire_waitlist_offers(self: Any) -> Dict[str, int]:
    """Expire unclaimed waitlist offers and offer the spots to the next clients."""
    from cadence.database import SessionLocal

    db: Session = SessionLocal()
    try:
        return {"expired": WaitlistService(db).expire_offers()}
    finally:
        db.close()
