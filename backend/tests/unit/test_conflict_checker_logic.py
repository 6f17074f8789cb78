from datetime import datetime, timezone
from unittest.mock import MagicMock

from peertutor.services.conflict_checker import ConflictChecker, conflict_summary
from peertutor.services.time_windows import TimeWindow


def _window(start_hour: int, end_hour: int, day: int = 6) -> TimeWindow:
    return TimeWindow(
        datetime(2025, 1, day, start_hour, tzinfo=timezone.utc),
        datetime(2025, 1, day, end_hour, tzinfo=timezone.utc),
    )


def _stored(session_id: str, start_hour: int) -> MagicMock:
    session = MagicMock()
    session.id = session_id
    session.student_id = "student"
    session.tutor_id = "tutor"
    session.subject = "Algebra"
    session.status = "scheduled"
    session.scheduled_start = datetime(2025, 1, 6, start_hour, tzinfo=timezone.utc)
    session.scheduled_end = datetime(2025, 1, 6, start_hour + 1, tzinfo=timezone.utc)
    return session


def test_find_conflicts_queries_both_participants():
    repository = MagicMock()
    repository.find_overlapping.return_value = []
    checker = ConflictChecker(MagicMock(), repository)
    window = _window(10, 11)

    assert checker.find_conflicts("student", "tutor", window, exclude_session_id="S1") == []
    repository.find_overlapping.assert_called_once_with(
        ["student", "tutor"], window.start, window.end, exclude_session_id="S1"
    )


def test_find_conflicts_for_windows_deduplicates_and_sorts():
    later, earlier = _stored("B", 14), _stored("A", 10)
    repository = MagicMock()
    repository.find_overlapping.side_effect = [[later, earlier], [earlier]]
    checker = ConflictChecker(MagicMock(), repository)

    result = checker.find_conflicts_for_windows("student", "tutor", [_window(9, 15), _window(10, 11)])
    assert [s.id for s in result] == ["A", "B"]


def test_internal_overlaps_ignore_touching_windows():
    windows = [_window(10, 11), _window(11, 12), _window(12, 13)]
    assert ConflictChecker.find_internal_overlaps(windows) == []


def test_internal_overlaps_reports_pairs():
    first, second = _window(10, 12), _window(11, 13)
    pairs = ConflictChecker.find_internal_overlaps([second, first])
    assert pairs == [(first, second)]


def test_conflict_summary_shape():
    summary = conflict_summary(_stored("A", 10))
    assert summary == {
        "id": "A",
        "student_id": "student",
        "tutor_id": "tutor",
        "subject": "Algebra",
        "scheduled_start": "2025-01-06T10:00:00+00:00",
        "scheduled_end": "2025-01-06T11:00:00+00:00",
        "status": "scheduled",
    }
