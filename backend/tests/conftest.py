# backend/tests/conftest.py
"""
Pytest configuration for the booking core.

Every test gets its own SQLite file so threaded tests can open several
connections against the same database. ``cadence.database.SessionLocal``
is pointed at that file, which is what Celery tasks open their sessions
from, and event dispatch is switched off so nothing reaches a broker.
"""

import os

# Set testing mode BEFORE any cadence imports
os.environ.setdefault("CI", "true")
os.environ.setdefault("DATABASE_URL", "sqlite:///./cadence-test.db")
os.environ.setdefault("EVENT_DISPATCH_ENABLED", "false")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable

from fastapi.testclient import TestClient
from pydantic import SecretStr
import pytest
from sqlalchemy.orm import Session, sessionmaker

import cadence.database as cadence_database
from cadence.api.dependencies import get_stripe_service
from cadence.api.dependencies.database import get_db
from cadence.core.config import settings
from cadence.database import Base, build_engine
from cadence.main import app
import cadence.models  # noqa: F401  (registers every table)
from cadence.models.studio import ClassSession, ClassType, Location, Studio, Teacher
from tests.helpers.fake_stripe import FakeStripeService
from tests.helpers.stripe_signatures import TEST_WEBHOOK_SECRET


@pytest.fixture(scope="function")
def engine(tmp_path, monkeypatch):
    test_engine = build_engine(f"sqlite:///{tmp_path / 'cadence-test.db'}")
    Base.metadata.create_all(bind=test_engine)

    session_factory = sessionmaker(
        autocommit=False, autoflush=False, bind=test_engine, expire_on_commit=False
    )
    monkeypatch.setattr(cadence_database, "engine", test_engine)
    monkeypatch.setattr(cadence_database, "SessionLocal", session_factory)
    monkeypatch.setattr(settings, "event_dispatch_enabled", False)
    monkeypatch.setattr(settings, "stripe_webhook_secret", SecretStr(TEST_WEBHOOK_SECRET))

    yield test_engine

    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> sessionmaker:
    return cadence_database.SessionLocal


@pytest.fixture(scope="function")
def db(session_factory):
    """A fresh session per test; services commit through it."""
    session = session_factory()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def fake_stripe() -> FakeStripeService:
    return FakeStripeService()


@pytest.fixture
def client(db: Session, fake_stripe: FakeStripeService):
    """Create a test client with the test database and the in-memory Stripe."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_service] = lambda: fake_stripe

    # Don't use context manager - lifespan would configure the real Stripe client
    test_client = TestClient(app)

    yield test_client

    app.dependency_overrides.clear()
    test_client.close()


# ============================================================================
# Catalog builders
# ============================================================================


@pytest.fixture
def make_studio(db: Session) -> Callable[..., Studio]:
    counter = {"n": 0}

    def _make(**overrides: Any) -> Studio:
        counter["n"] += 1
        n = counter["n"]
        values = {
            "name": f"Studio {n}",
            "subdomain": f"studio-{n}",
            "payments_enabled": True,
            "merchant_sub_account_id": f"acct_test_{n:04d}",
            "charges_enabled": True,
            "currency": "usd",
        }
        values.update(overrides)
        studio = Studio(**values)
        db.add(studio)
        db.commit()
        return studio

    return _make


@pytest.fixture
def make_class_session(db: Session) -> Callable[..., ClassSession]:
    """Build a session (and the location, teacher and class type behind it) for a studio."""

    def _make(
        studio: Studio,
        *,
        price: Any = Decimal("20.00"),
        capacity: int = 10,
        booked_count: int = 0,
        start_time: datetime = None,
        class_type: ClassType = None,
        location: Location = None,
        teacher: Teacher = None,
    ) -> ClassSession:
        if location is None:
            location = Location(studio_id=studio.id, name="Main Room")
            db.add(location)
        if teacher is None:
            teacher = Teacher(studio_id=studio.id, name="Sam Rivera")
            db.add(teacher)
        if class_type is None:
            class_type = ClassType(
                studio_id=studio.id, name="Vinyasa Flow", price=price, duration_minutes=60
            )
            db.add(class_type)
        db.flush()

        start = start_time or (datetime.now(timezone.utc) + timedelta(days=2)).replace(
            minute=0, second=0, microsecond=0
        )
        class_session = ClassSession(
            studio_id=studio.id,
            location_id=location.id,
            class_type_id=class_type.id,
            teacher_id=teacher.id,
            start_time=start,
            end_time=start + timedelta(minutes=class_type.duration_minutes or 60),
            capacity=capacity,
            booked_count=booked_count,
        )
        db.add(class_session)
        db.commit()
        return class_session

    return _make


@pytest.fixture
def paid_studio(make_studio) -> Studio:
    return make_studio()


@pytest.fixture
def free_studio(make_studio) -> Studio:
    return make_studio(payments_enabled=False, merchant_sub_account_id=None, charges_enabled=False)
