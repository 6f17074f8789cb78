"""API tests for /api/v1/sessions against the real service and SQLite."""

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
import pytest

from peertutor.main import app

BASE = "/api/v1/sessions"


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def _headers(user) -> dict:
    return {"X-User-Id": user.id}


def _future_window(days: int = 3, hour: int = 10, minutes: int = 60):
    day = datetime.now(timezone.utc).date() + timedelta(days=days)
    start = datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)
    return start, start + timedelta(minutes=minutes)


def _book_body(tutor, start, end, **extra) -> dict:
    body = {
        "tutor_id": tutor.id,
        "subject": "Physics",
        "scheduled_start": start.isoformat(),
        "scheduled_end": end.isoformat(),
        "delivery_type": "online",
    }
    body.update(extra)
    return body


def _book(client, student, tutor, days=3, hour=10) -> dict:
    start, end = _future_window(days=days, hour=hour)
    response = client.post(f"{BASE}/book", json=_book_body(tutor, start, end), headers=_headers(student))
    assert response.status_code == 201, response.text
    return response.json()["sessions"][0]


class TestBooking:
    def test_book_returns_created_session(self, client, student, tutor):
        start, end = _future_window()
        response = client.post(
            f"{BASE}/book", json=_book_body(tutor, start, end), headers=_headers(student)
        )

        assert response.status_code == 201
        data = response.json()
        assert data["count"] == 1
        session = data["sessions"][0]
        assert session["status"] == "scheduled"
        assert session["student_id"] == student.id
        assert session["location"]["meeting_link"].endswith(session["id"][-8:].lower())
        assert session["reminder"] == {"sent": False, "sent_at": None}

    def test_requires_caller_identity(self, client, tutor):
        start, end = _future_window()
        response = client.post(f"{BASE}/book", json=_book_body(tutor, start, end))

        assert response.status_code == 401
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json()["code"] == "AUTH_REQUIRED"

    def test_invalid_body_is_bad_request(self, client, student, tutor):
        start, end = _future_window()
        body = _book_body(tutor, start, end, delivery_type="carrier-pigeon")

        response = client.post(f"{BASE}/book", json=body, headers=_headers(student))

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_end_before_start_is_bad_request(self, client, student, tutor):
        start, end = _future_window()
        response = client.post(
            f"{BASE}/book", json=_book_body(tutor, end, start), headers=_headers(student)
        )
        assert response.status_code == 400

    def test_overlap_returns_conflicts(self, client, student, other_student, tutor):
        existing = _book(client, student, tutor)
        start, end = _future_window(minutes=90)

        response = client.post(
            f"{BASE}/book",
            json=_book_body(tutor, start + timedelta(minutes=30), end),
            headers=_headers(other_student),
        )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "SCHEDULING_CONFLICT"
        assert [c["id"] for c in body["conflicts"]] == [existing["id"]]

    def test_outside_availability_is_unprocessable(self, client, student, tutor):
        start, end = _future_window(hour=22)
        response = client.post(
            f"{BASE}/book", json=_book_body(tutor, start, end), headers=_headers(student)
        )

        assert response.status_code == 422
        assert response.json()["code"] == "TUTOR_UNAVAILABLE"

    def test_unknown_tutor(self, client, student, tutor):
        start, end = _future_window()
        body = _book_body(tutor, start, end, tutor_id="01J0000000000000000000NOPE")

        response = client.post(f"{BASE}/book", json=body, headers=_headers(student))

        assert response.status_code == 404
        assert response.json()["code"] == "TUTOR_NOT_FOUND"


class TestSessionAccess:
    def test_get_as_participant(self, client, student, tutor):
        booked = _book(client, student, tutor)

        response = client.get(f"{BASE}/{booked['id']}", headers=_headers(tutor))

        assert response.status_code == 200
        assert response.json()["id"] == booked["id"]

    def test_get_as_outsider_is_forbidden(self, client, student, other_student, tutor):
        booked = _book(client, student, tutor)

        response = client.get(f"{BASE}/{booked['id']}", headers=_headers(other_student))

        assert response.status_code == 403

    def test_malformed_id_is_rejected(self, client, student):
        response = client.get(f"{BASE}/not-a-ulid", headers=_headers(student))
        assert response.status_code == 400

    def test_unknown_session(self, client, student):
        response = client.get(f"{BASE}/01J00000000000000000000000", headers=_headers(student))
        assert response.status_code == 404

    def test_list_filters_by_role(self, client, student, tutor, other_tutor):
        _book(client, student, tutor)
        _book(client, other_tutor, tutor, days=4)

        as_student = client.get(BASE, params={"role": "student"}, headers=_headers(other_tutor))
        as_tutor = client.get(BASE, params={"role": "tutor"}, headers=_headers(tutor))

        assert as_student.status_code == 200
        assert as_student.json()["pagination"]["total"] == 1
        assert as_tutor.json()["pagination"]["total"] == 2
        assert as_tutor.json()["pagination"]["has_next"] is False

    def test_list_rejects_unknown_status(self, client, student):
        response = client.get(BASE, params={"status": "paused"}, headers=_headers(student))
        assert response.status_code == 400


class TestTransitions:
    def test_tutor_confirms(self, client, student, tutor):
        booked = _book(client, student, tutor)

        response = client.put(f"{BASE}/{booked['id']}/confirm", headers=_headers(tutor))

        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"

    def test_student_cannot_confirm(self, client, student, tutor):
        booked = _book(client, student, tutor)

        response = client.put(f"{BASE}/{booked['id']}/confirm", headers=_headers(student))

        assert response.status_code == 403

    def test_cancel_records_reason(self, client, student, tutor):
        booked = _book(client, student, tutor)

        response = client.put(
            f"{BASE}/{booked['id']}/cancel",
            json={"reason": "Exam moved"},
            headers=_headers(student),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "cancelled"
        assert body["cancellation"]["cancelled_by"] == student.id
        assert body["cancellation"]["reason"] == "Exam moved"

    def test_cancel_twice_is_invalid_state(self, client, student, tutor):
        booked = _book(client, student, tutor)
        client.put(f"{BASE}/{booked['id']}/cancel", json={"reason": "x"}, headers=_headers(student))

        response = client.put(
            f"{BASE}/{booked['id']}/cancel", json={"reason": "again"}, headers=_headers(student)
        )

        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_STATE"

    def test_cancel_requires_reason(self, client, student, tutor):
        booked = _book(client, student, tutor)

        response = client.put(f"{BASE}/{booked['id']}/cancel", json={}, headers=_headers(student))

        assert response.status_code == 400

    def test_reschedule_moves_window(self, client, student, tutor):
        booked = _book(client, student, tutor)
        start, end = _future_window(days=5, hour=14)

        response = client.put(
            f"{BASE}/{booked['id']}/reschedule",
            json={"scheduled_start": start.isoformat(), "scheduled_end": end.isoformat()},
            headers=_headers(tutor),
        )

        assert response.status_code == 200
        assert datetime.fromisoformat(
            response.json()["scheduled_start"].replace("Z", "+00:00")
        ) == start

    def test_start_days_ahead_is_too_early(self, client, student, tutor):
        booked = _book(client, student, tutor)

        response = client.put(f"{BASE}/{booked['id']}/start", headers=_headers(tutor))

        assert response.status_code == 400
        assert response.json()["code"] == "TOO_EARLY_TO_START"

    def test_end_requires_ongoing(self, client, student, tutor):
        booked = _book(client, student, tutor)

        response = client.put(f"{BASE}/{booked['id']}/end", headers=_headers(tutor))

        assert response.status_code == 422

    def test_add_material(self, client, student, tutor):
        booked = _book(client, student, tutor)

        response = client.post(
            f"{BASE}/{booked['id']}/materials",
            json={"name": "Worksheet", "url": "https://files.example.com/w1.pdf", "type": "document"},
            headers=_headers(tutor),
        )

        assert response.status_code == 201
        assert response.json()["uploaded_by"] == tutor.id
        detail = client.get(f"{BASE}/{booked['id']}", headers=_headers(student)).json()
        assert [m["name"] for m in detail["materials"]] == ["Worksheet"]


def test_health(client):
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "ok"


def test_metrics_endpoint(client):
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "peertutor_service_operations_total" in response.text
