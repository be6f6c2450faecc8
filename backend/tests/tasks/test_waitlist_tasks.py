"""
Tests for the waitlist offer sweep.
"""

from datetime import datetime, timedelta, timezone

from cadence.core.enums import WaitlistStatus
from cadence.models.waitlist import WaitlistEntry
from cadence.tasks.waitlist_tasks import expire_waitlist_offers


def _entry(db, class_session, client_id, **overrides):
    values = {
        "studio_id": class_session.studio_id,
        "class_session_id": class_session.id,
        "client_id": client_id,
        "position": 1,
        "status": WaitlistStatus.WAITING.value,
    }
    values.update(overrides)
    entry = WaitlistEntry(**values)
    db.add(entry)
    db.commit()
    return entry


def _reload(db, entry_id):
    return db.get(WaitlistEntry, entry_id, populate_existing=True)


def test_unclaimed_offer_moves_to_the_next_client(db, free_studio, make_class_session):
    class_session = make_class_session(free_studio, capacity=1, booked_count=0)
    now = datetime.now(timezone.utc)
    lapsed = _entry(
        db,
        class_session,
        "client-1",
        status=WaitlistStatus.NOTIFIED.value,
        notified_at=now - timedelta(hours=2),
        expires_at=now - timedelta(hours=1),
    )
    waiting = _entry(db, class_session, "client-2", position=1)

    assert expire_waitlist_offers() == {"expired": 1}

    assert _reload(db, lapsed.id).status == WaitlistStatus.EXPIRED.value
    promoted = _reload(db, waiting.id)
    assert promoted.status == WaitlistStatus.NOTIFIED.value
    assert promoted.expires_at is not None


def test_spot_taken_meanwhile_is_not_offered_again(db, free_studio, make_class_session):
    class_session = make_class_session(free_studio, capacity=1, booked_count=1)
    now = datetime.now(timezone.utc)
    _entry(
        db,
        class_session,
        "client-1",
        status=WaitlistStatus.NOTIFIED.value,
        notified_at=now - timedelta(hours=2),
        expires_at=now - timedelta(hours=1),
    )
    waiting = _entry(db, class_session, "client-2", position=1)

    assert expire_waitlist_offers() == {"expired": 1}
    assert _reload(db, waiting.id).status == WaitlistStatus.WAITING.value
