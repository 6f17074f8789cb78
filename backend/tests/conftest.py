"""
Shared fixtures.

The app is configured for an in-memory SQLite database before any
peertutor module is imported; with StaticPool every session (test code,
services, notification sender, request handlers) shares one connection.
Tables are recreated for each test.
"""

from datetime import datetime, time, timedelta, timezone
import os
from typing import Iterator
from unittest.mock import MagicMock

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["IS_TESTING"] = "true"
os.environ["REALTIME_ENABLED"] = "false"
os.environ.setdefault("CI", "1")

import pytest  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from peertutor import models  # noqa: E402,F401
from peertutor.core import booking_lock  # noqa: E402
from peertutor.core.enums import DayOfWeek, RoleName  # noqa: E402
from peertutor.database import Base, SessionLocal, engine  # noqa: E402
from peertutor.models.user import TutorAvailability, User  # noqa: E402
from peertutor.services.session_lifecycle_service import SessionLifecycleService  # noqa: E402

# Wednesday; the week after starts Monday 2025-01-06
FIXED_NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, value: datetime) -> None:
        self.now = value

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _schema() -> Iterator[None]:
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def _no_redis(monkeypatch: pytest.MonkeyPatch) -> None:
    """Booking locks run in degraded mode unless a test installs a client."""
    monkeypatch.setattr(booking_lock, "_get_sync_redis", lambda: None)


@pytest.fixture
def db() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def realtime_bus() -> MagicMock:
    return MagicMock()


def _make_user(db: Session, email: str, first_name: str, role: RoleName) -> User:
    user = User(email=email, first_name=first_name, last_name="Test", role=role.value)
    db.add(user)
    db.flush()
    return user


def _add_weekly_availability(db: Session, tutor: User, start: time, end: time) -> None:
    for day in DayOfWeek:
        db.add(
            TutorAvailability(tutor_id=tutor.id, day_of_week=day.value, start_time=start, end_time=end)
        )
    db.flush()


@pytest.fixture
def student(db: Session) -> User:
    user = _make_user(db, "student@example.com", "Sam", RoleName.STUDENT)
    db.commit()
    return user


@pytest.fixture
def other_student(db: Session) -> User:
    user = _make_user(db, "student2@example.com", "Riley", RoleName.STUDENT)
    db.commit()
    return user


@pytest.fixture
def tutor(db: Session) -> User:
    """Tutor available every day 08:00-20:00 UTC."""
    user = _make_user(db, "tutor@example.com", "Taylor", RoleName.TUTOR)
    _add_weekly_availability(db, user, time(8, 0), time(20, 0))
    db.commit()
    return user


@pytest.fixture
def other_tutor(db: Session) -> User:
    """Tutor available around the clock."""
    user = _make_user(db, "tutor2@example.com", "Jordan", RoleName.BOTH)
    _add_weekly_availability(db, user, time(0, 0), time(0, 0))
    db.commit()
    return user


@pytest.fixture
def service(db: Session, clock: FixedClock, realtime_bus: MagicMock) -> SessionLifecycleService:
    return SessionLifecycleService(db, realtime_bus=realtime_bus, clock=clock)
