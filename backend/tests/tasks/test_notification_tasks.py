from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from peertutor.events.publisher import EventPublisher
from peertutor.events.session_events import SessionConfirmed
from peertutor.repositories.event_outbox_repository import EventOutboxRepository
from peertutor.tasks import notification_tasks
from peertutor.tasks.beat_schedule import get_beat_schedule
from peertutor.tasks.notification_tasks import BACKOFF_SECONDS, _next_backoff, dispatch_pending

START = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "attempt,expected",
    [(1, 30), (2, 120), (3, 600), (4, 1800), (5, 7200), (9, 7200), (0, 30)],
)
def test_next_backoff(attempt, expected):
    assert _next_backoff(attempt) == expected


def test_backoff_schedule_is_increasing():
    assert BACKOFF_SECONDS == sorted(BACKOFF_SECONDS)


def test_dispatch_pending_schedules_each_due_event(db):
    publisher = EventPublisher(EventOutboxRepository(db))
    first = publisher.publish(SessionConfirmed("01J000000000000000000000S1", "a", "b", START, 2))
    second = publisher.publish(SessionConfirmed("01J000000000000000000000S2", "a", "b", START, 2))
    db.commit()

    with patch.object(notification_tasks.deliver_event, "apply_async") as apply_async:
        scheduled = dispatch_pending()

    assert scheduled == 2
    queued = {call.args[0][0] for call in apply_async.call_args_list}
    assert queued == {first.id, second.id}
    assert all(call.kwargs["queue"] == "notifications" for call in apply_async.call_args_list)


def test_dispatch_pending_with_empty_outbox():
    with patch.object(notification_tasks.deliver_event, "apply_async") as apply_async:
        assert dispatch_pending() == 0
    apply_async.assert_not_called()


def test_beat_schedule_runs_sweep_and_dispatch():
    schedule = get_beat_schedule()

    assert schedule["sweep-session-reminders"]["task"] == "sessions.sweep_reminders"
    assert schedule["dispatch-outbox-events"]["task"] == "outbox.dispatch_pending"
