# backend/cadence/tasks/beat_schedule.py
"""Celery Beat schedule for the periodic maintenance sweeps."""

from datetime import timedelta
from typing import Any, Dict

from celery.schedules import crontab

CELERYBEAT_SCHEDULE: Dict[str, Dict[str, Any]] = {
    # Holds that never became a booking are released back to the client's card
    "void-stale-payment-holds": {
        "task": "cadence.tasks.payment_tasks.void_stale_payment_holds",
        "schedule": timedelta(minutes=10),
        "options": {"queue": "payments", "priority": 7},
    },
    "expire-lapsed-subscriptions": {
        "task": "cadence.tasks.subscription_tasks.expire_lapsed_subscriptions",
        "schedule": crontab(minute=5),
        "options": {"queue": "payments", "priority": 5},
    },
    "advance-recurring-subscriptions": {
        "task": "cadence.tasks.subscription_tasks.advance_recurring_subscriptions",
        "schedule": crontab(minute=20),
        "options": {"queue": "payments", "priority": 6},
    },
    "expire-waitlist-offers": {
        "task": "cadence.tasks.waitlist_tasks.expire_waitlist_offers",
        "schedule": timedelta(minutes=5),
        "options": {"queue": "events", "priority": 5},
    },
    # Declined auto-renew charges are retried a bounded number of times
    "retry-pack-renewals": {
        "task": "cadence.tasks.subscription_tasks.retry_pack_renewals",
        "schedule": crontab(minute=35, hour="*/6"),
        "options": {"queue": "payments", "priority": 6},
    },
}


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    return dict(CELERYBEAT_SCHEDULE)
