from datetime import datetime, timedelta, timezone

import pytest

from peertutor.models.session import ALLOWED_TRANSITIONS, SessionStatus, TutoringSession

START = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)


def _session(status=SessionStatus.SCHEDULED, **overrides) -> TutoringSession:
    fields = dict(
        id="01J00000000000000000000ABC",
        student_id="student",
        tutor_id="tutor",
        subject="Algebra",
        scheduled_start=START,
        scheduled_end=START + timedelta(minutes=90),
        status=status.value,
        delivery_type="offline",
        reminder_sent=False,
        is_recurring=False,
    )
    fields.update(overrides)
    return TutoringSession(**fields)


def test_transition_graph():
    scheduled = _session(SessionStatus.SCHEDULED)
    ongoing = _session(SessionStatus.ONGOING)
    completed = _session(SessionStatus.COMPLETED)

    assert scheduled.can_transition_to(SessionStatus.CONFIRMED)
    assert not scheduled.can_transition_to(SessionStatus.COMPLETED)
    assert ongoing.can_transition_to(SessionStatus.COMPLETED)
    assert not ongoing.can_transition_to(SessionStatus.CANCELLED)
    assert not any(completed.can_transition_to(target) for target in SessionStatus)


@pytest.mark.parametrize(
    "status", [SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.NO_SHOW]
)
def test_terminal_statuses_have_no_way_out(status):
    assert ALLOWED_TRANSITIONS[status] == frozenset()


def test_participants():
    session = _session()

    assert session.is_participant("student")
    assert session.is_participant("tutor")
    assert not session.is_participant("someone-else")


def test_actual_duration():
    session = _session()
    assert session.actual_duration is None

    session.start(START + timedelta(minutes=5))
    session.complete(START + timedelta(minutes=50))

    assert session.status == SessionStatus.COMPLETED.value
    assert session.actual_duration == timedelta(minutes=45)


def test_move_window_reopens_confirmation_and_reminder():
    session = _session(SessionStatus.CONFIRMED, reminder_sent=True, reminder_sent_at=START)

    session.move_window(START + timedelta(days=1), START + timedelta(days=1, hours=1))

    assert session.status == SessionStatus.SCHEDULED.value
    assert session.reminder_sent is False
    assert session.reminder_sent_at is None
