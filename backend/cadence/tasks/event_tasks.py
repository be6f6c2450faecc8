"""
Celery task that consumes domain events published after a booking commits.
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from cadence.events.handlers import process_event
from cadence.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(  # type: ignore[misc]
    bind=True, max_retries=5, name="cadence.tasks.event_tasks.process_domain_event"
)
def process_domain_event(self: Any, event_type: str, payload: str) -> bool:
    """Run the registered handler for one event in its own session."""
    from cadence.database import SessionLocal

    db: Session = SessionLocal()
    try:
        handled = process_event(event_type, payload, db)
        db.commit()
        return handled
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
