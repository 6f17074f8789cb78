from datetime import datetime, timezone

import pytest

from peertutor.events.handlers import process_event, recipients_for
from peertutor.events.publisher import EventPublisher
from peertutor.events.session_events import SessionCancelled, SessionConfirmed, SessionRescheduled
from peertutor.models.event_outbox import EventOutbox, EventOutboxStatus
from peertutor.repositories.event_outbox_repository import EventOutboxRepository
from peertutor.repositories.notification_delivery_repository import (
    NotificationDeliveryRepository,
)
from peertutor.services.notification_provider import (
    NotificationProviderTemporaryError,
    NotificationSender,
)
from peertutor.tasks.notification_tasks import MAX_DELIVERY_ATTEMPTS, deliver_outbox_event

START = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)
STUDENT = "01HZZZZZZZZZZZZZZZZZSTUDNT"
TUTOR = "01HZZZZZZZZZZZZZZZZZZTUTOR"


def _cancelled(session_id="01J0000000000000000000SESS", cancelled_by=STUDENT) -> SessionCancelled:
    return SessionCancelled(
        session_id=session_id,
        student_id=STUDENT,
        tutor_id=TUTOR,
        cancelled_by=cancelled_by,
        cancelled_at=START,
        reason="Sick",
        scheduled_start=START,
    )


def _enqueue(db, event) -> EventOutbox:
    row = EventPublisher(EventOutboxRepository(db)).publish(event)
    db.commit()
    return row


def _reload(db, event_id) -> EventOutbox:
    db.expire_all()
    return db.get(EventOutbox, event_id)


class TestRecipients:
    def test_cancellation_notifies_the_other_party(self):
        payload = _cancelled(cancelled_by=TUTOR).to_dict()
        assert recipients_for("session.cancelled", payload) == [STUDENT]

    def test_reschedule_by_student_notifies_tutor(self):
        payload = SessionRescheduled(
            session_id="s",
            student_id=STUDENT,
            tutor_id=TUTOR,
            rescheduled_by=STUDENT,
            previous_start=START,
            previous_end=START,
            scheduled_start=START,
            scheduled_end=START,
            session_version=2,
        ).to_dict()
        assert recipients_for("session.rescheduled", payload) == [TUTOR]

    def test_confirmation_goes_to_student(self):
        payload = SessionConfirmed("s", STUDENT, TUTOR, START, session_version=2).to_dict()
        assert recipients_for("session.confirmed", payload) == [STUDENT]

    def test_unknown_event_type_has_no_recipients(self):
        assert process_event("session.unknown", {}, "k", NotificationSender()) == []


class TestProcessEvent:
    def test_each_recipient_gets_its_own_key(self, db):
        event = SessionConfirmed("s", STUDENT, TUTOR, START, session_version=2)
        results = process_event(
            event.event_type, event.to_dict(), event.idempotency_key(), NotificationSender()
        )

        assert [r.recipient_id for r in results] == [STUDENT]
        assert results[0].idempotency_key == f"{event.idempotency_key()}:{STUDENT}"
        assert results[0].delivered is True

    def test_repeat_is_recorded_but_not_resent(self, db):
        payload = {"student_id": STUDENT, "tutor_id": TUTOR}
        sender = NotificationSender()

        first = process_event("session.completed", payload, "session.completed:s", sender)
        second = process_event("session.completed", payload, "session.completed:s", sender)

        assert all(r.delivered for r in first)
        assert not any(r.delivered for r in second)
        assert [r.attempt_count for r in second] == [2, 2]
        repo = NotificationDeliveryRepository(db)
        assert repo.count_for_recipient(STUDENT, "session.completed") == 1
        assert repo.has_delivery(f"session.completed:s:{TUTOR}")

    def test_missing_key_is_rejected(self):
        with pytest.raises(ValueError):
            NotificationSender().notify(STUDENT, "session.confirmed", {}, idempotency_key="")

    def test_known_user_is_addressed_by_email(self, db, student):
        result = NotificationSender().notify(
            student.id, "session.confirmed", {}, idempotency_key=f"session.confirmed:s:{student.id}"
        )

        assert result.delivered is True
        assert result.address == "student@example.com"

    def test_unknown_user_is_recorded_without_address(self, db):
        result = NotificationSender().notify(
            STUDENT, "session.confirmed", {}, idempotency_key=f"session.confirmed:s:{STUDENT}"
        )

        assert result.delivered is True
        assert result.address is None


class TestDeliverOutboxEvent:
    def test_delivers_and_marks_sent(self, db):
        row = _enqueue(db, _cancelled())

        outcome = deliver_outbox_event(db, row.id)

        assert outcome.status == "sent"
        assert outcome.attempt_number == 1
        reloaded = _reload(db, row.id)
        assert reloaded.status == EventOutboxStatus.SENT.value
        assert reloaded.next_attempt_at is None
        assert NotificationDeliveryRepository(db).count_for_recipient(TUTOR) == 1

    def test_sent_event_is_skipped(self, db):
        row = _enqueue(db, _cancelled())
        deliver_outbox_event(db, row.id)

        outcome = deliver_outbox_event(db, row.id)

        assert outcome.status == "skipped"
        assert NotificationDeliveryRepository(db).count_for_recipient(TUTOR) == 1

    def test_unknown_event_id(self, db):
        assert deliver_outbox_event(db, "01J00000000000000000000000").status == "missing"

    def test_transient_failure_schedules_retry(self, db, monkeypatch):
        monkeypatch.setenv("NOTIFICATION_PROVIDER_RAISE_ON", "session.cancelled")
        row = _enqueue(db, _cancelled())

        outcome = deliver_outbox_event(db, row.id)

        assert outcome.status == "retry"
        assert outcome.backoff_seconds == 30
        assert isinstance(outcome.error, NotificationProviderTemporaryError)
        reloaded = _reload(db, row.id)
        assert reloaded.status == EventOutboxStatus.PENDING.value
        assert reloaded.attempt_count == 1
        assert "Simulated transient failure" in reloaded.last_error
        assert reloaded.next_attempt_at > datetime.now(timezone.utc)

    def test_gives_up_after_max_attempts(self, db, monkeypatch):
        monkeypatch.setenv("NOTIFICATION_PROVIDER_RAISE_ON", "*")
        row = _enqueue(db, _cancelled())

        outcomes = [deliver_outbox_event(db, row.id) for _ in range(MAX_DELIVERY_ATTEMPTS + 1)]

        assert [o.status for o in outcomes] == ["retry"] * (MAX_DELIVERY_ATTEMPTS - 1) + [
            "failed",
            "skipped",
        ]
        reloaded = _reload(db, row.id)
        assert reloaded.status == EventOutboxStatus.FAILED.value
        assert reloaded.attempt_count == MAX_DELIVERY_ATTEMPTS

    def test_retry_after_recovery_delivers(self, db, monkeypatch):
        monkeypatch.setenv("NOTIFICATION_PROVIDER_RAISE_ON", "session.cancelled")
        row = _enqueue(db, _cancelled())
        assert deliver_outbox_event(db, row.id).status == "retry"

        monkeypatch.delenv("NOTIFICATION_PROVIDER_RAISE_ON")
        outcome = deliver_outbox_event(db, row.id)

        assert outcome.status == "sent"
        assert outcome.attempt_number == 2


class TestOutboxRepository:
    def test_enqueue_is_idempotent(self, db):
        first = _enqueue(db, _cancelled())
        second = _enqueue(db, _cancelled())

        assert first.id == second.id
        assert len(EventOutboxRepository(db).list_for_aggregate(first.aggregate_id)) == 1

    def test_fetch_pending_skips_future_and_sent(self, db):
        due = _enqueue(db, _cancelled(session_id="01J000000000000000000000D1"))
        sent = _enqueue(db, _cancelled(session_id="01J000000000000000000000D2"))
        repo = EventOutboxRepository(db)
        later = repo.enqueue(
            "session.cancelled",
            "01J000000000000000000000D3",
            next_attempt_at=datetime(2999, 1, 1, tzinfo=timezone.utc),
        )
        repo.mark_sent(sent.id, 1)
        db.commit()

        pending_ids = [row.id for row in repo.fetch_pending()]

        assert pending_ids == [due.id]
        assert later.id not in pending_ids
