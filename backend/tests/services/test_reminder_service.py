from datetime import datetime, timedelta, timezone

import pytest

from peertutor.models.event_outbox import EventOutbox
from peertutor.schemas.session import SessionBookRequest
from peertutor.services.reminder_service import ReminderService

MONDAY_10 = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def booked(service, student, tutor):
    request = SessionBookRequest(
        tutor_id=tutor.id,
        subject="Chemistry",
        scheduled_start=MONDAY_10,
        scheduled_end=MONDAY_10 + timedelta(hours=1),
        delivery_type="online",
    )
    return service.book(student.id, request)[0]


@pytest.fixture
def reminders(db, clock):
    return ReminderService(db, clock=clock)


def _reminder_rows(db):
    return db.query(EventOutbox).filter(EventOutbox.event_type == "session.reminder").all()


def test_session_inside_window_is_reminded_once(db, clock, booked, reminders):
    clock.set(MONDAY_10 - timedelta(hours=23))

    assert reminders.sweep() == 1
    db.refresh(booked)
    assert booked.reminder_sent is True
    assert booked.reminder_sent_at == clock.now

    assert reminders.sweep() == 0
    assert reminders.sweep(now=clock.now + timedelta(hours=1)) == 0
    rows = _reminder_rows(db)
    assert len(rows) == 1
    assert rows[0].payload["session_id"] == booked.id
    assert rows[0].payload["reminder_type"] == "24h"


def test_session_outside_window_is_not_reminded(clock, booked, reminders):
    clock.set(MONDAY_10 - timedelta(hours=30))
    assert reminders.sweep() == 0


def test_started_sessions_are_not_reminded(clock, booked, reminders):
    clock.set(MONDAY_10 + timedelta(minutes=1))
    assert reminders.sweep() == 0


def test_cancelled_session_is_not_reminded(clock, service, student, booked, reminders):
    service.cancel(booked.id, student.id, "Sick")
    clock.set(MONDAY_10 - timedelta(hours=2))
    assert reminders.sweep() == 0


def test_confirmed_session_is_reminded(clock, service, tutor, booked, reminders):
    service.confirm(booked.id, tutor.id)
    clock.set(MONDAY_10 - timedelta(hours=1))
    assert reminders.sweep() == 1


def test_rescheduled_session_gets_fresh_reminder(db, clock, service, student, booked, reminders):
    clock.set(MONDAY_10 - timedelta(hours=20))
    assert reminders.sweep() == 1

    new_start = MONDAY_10 + timedelta(hours=3)
    service.reschedule(booked.id, student.id, new_start, new_start + timedelta(hours=1))
    assert reminders.sweep() == 1

    keys = sorted(row.idempotency_key for row in _reminder_rows(db))
    assert len(keys) == 2
    assert keys[0] != keys[1]


def test_claim_is_conditional(db, clock, booked):
    from peertutor.repositories.session_repository import SessionRepository

    repository = SessionRepository(db)
    assert repository.claim_reminder(booked.id, clock.now) is True
    assert repository.claim_reminder(booked.id, clock.now) is False


def test_window_moved_away_and_back_is_reminded_again(db, clock, service, student, booked, reminders):
    clock.set(MONDAY_10 - timedelta(hours=20))
    assert reminders.sweep() == 1

    away = MONDAY_10 + timedelta(hours=3)
    service.reschedule(booked.id, student.id, away, away + timedelta(hours=1))
    service.reschedule(booked.id, student.id, MONDAY_10, MONDAY_10 + timedelta(hours=1))
    assert reminders.sweep() == 1

    rows = _reminder_rows(db)
    assert len(rows) == 2
    assert all(row.payload["scheduled_start"] == MONDAY_10.isoformat() for row in rows)


def test_reminder_key_follows_the_session_version(db, clock, booked, reminders):
    clock.set(MONDAY_10 - timedelta(hours=2))
    reminders.sweep()

    (row,) = _reminder_rows(db)
    assert row.idempotency_key == f"session.reminder:{booked.id}:v{booked.version}"
