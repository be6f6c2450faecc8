"""
Celery tasks for subscription lifecycle sweeps.
"""

import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from cadence.services.subscription_lifecycle_service import SubscriptionLifecycleService
from cadence.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(  # type: ignore[misc]
    bind=True, max_retries=3, name="cadence.tasks.subscription_tasks.expire_lapsed_subscriptions"
)
def expire_lapsed_subscriptions(self: Any) -> Dict[str, int]:
    """Expire cancelled subscriptions whose paid period is over."""
    from cadence.database import SessionLocal

    db: Session = SessionLocal()
    try:
        expired = SubscriptionLifecycleService(db).expire_lapsed()
        return {"expired": expired}
    finally:
        db.close()


@celery_app.task(  # type: ignore[misc]
    bind=True,
    max_retries=3,
    name="cadence.tasks.subscription_tasks.advance_recurring_subscriptions",
)
def advance_recurring_subscriptions(self: Any) -> Dict[str, int]:
    """Charge the next period of recurring subscriptions that reached their period end."""
    from cadence.database import SessionLocal

    db: Session = SessionLocal()
    try:
        results = SubscriptionLifecycleService(db).advance_recurring_periods()
        logger.info(
            f"Recurring sweep completed: {results['renewed']} renewed, {results['expired']} expired"
        )
        return results
    finally:
        db.close()


@celery_app.task(  # type: ignore[misc]
    bind=True, max_retries=3, name="cadence.tasks.subscription_tasks.retry_pack_renewals"
)
def retry_pack_renewals(self: Any) -> Dict[str, int]:
    """Retry auto-renew charges for packs left at zero credits."""
    from cadence.database import SessionLocal

    db: Session = SessionLocal()
    try:
        return SubscriptionLifecycleService(db).retry_exhausted_packs()
    finally:
        db.close()
