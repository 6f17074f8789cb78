# backend/peertutor/tasks/notification_tasks.py
"""
Celery tasks that deliver session outbox events.

1. `outbox.dispatch_pending` periodically enqueues delivery tasks.
2. `outbox.deliver_event` hands one event to the notification handlers,
   retrying transient failures with backoff.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from time import monotonic
from typing import Any, Iterator, Optional

from celery.app.task import Task  # noqa: F401 - used for type hints
from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from ..core.config import settings
from ..database import SessionLocal
from ..events.handlers import process_event
from ..models.event_outbox import EventOutboxStatus
from ..monitoring.prometheus_metrics import PrometheusMetrics
from ..repositories.event_outbox_repository import EventOutboxRepository
from ..services.notification_provider import NotificationSender
from .celery_app import celery_app

logger = get_task_logger(__name__)

MAX_DELIVERY_ATTEMPTS = 5
BACKOFF_SECONDS = [30, 120, 600, 1800, 7200]


def _next_backoff(attempt_number: int) -> int:
    """Return backoff delay for the given attempt (1-indexed)."""
    index = max(0, min(attempt_number - 1, len(BACKOFF_SECONDS) - 1))
    return BACKOFF_SECONDS[index]


@contextmanager
def _session_scope() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@dataclass
class DeliveryOutcome:
    """Result of one delivery attempt; ``status`` is sent, skipped, missing, retry or failed."""

    status: str
    attempt_number: int = 0
    backoff_seconds: int = 0
    error: Optional[Exception] = None


def deliver_outbox_event(
    session: Session, event_id: str, sender: Optional[NotificationSender] = None
) -> DeliveryOutcome:
    """
    Deliver one outbox event and record the result on its row.

    Commits the row update itself. Already-sent or permanently failed events
    are skipped.
    """
    sender = sender or NotificationSender()
    repo = EventOutboxRepository(session)
    event = repo.get_by_id(event_id, for_update=True)
    if event is None:
        logger.warning("Outbox event %s missing; skipping", event_id)
        session.commit()
        return DeliveryOutcome(status="missing")
    if event.status != EventOutboxStatus.PENDING.value:
        logger.info("Outbox event %s already %s; skipping", event.id, event.status)
        session.commit()
        return DeliveryOutcome(status="skipped", attempt_number=event.attempt_count)

    attempt_number = event.attempt_count + 1
    PrometheusMetrics.record_notification_attempt(event.event_type)
    start = monotonic()
    try:
        process_event(event.event_type, event.payload, event.idempotency_key, sender)
    except Exception as exc:
        PrometheusMetrics.observe_notification_dispatch(event.event_type, monotonic() - start)
        backoff = _next_backoff(attempt_number)
        terminal = attempt_number >= MAX_DELIVERY_ATTEMPTS
        repo.mark_failed(
            event.id,
            attempt_count=attempt_number,
            backoff_seconds=backoff,
            error=str(exc),
            terminal=terminal,
        )
        session.commit()
        if terminal:
            PrometheusMetrics.record_notification_outcome(event.event_type, "failed")
            logger.error(
                "Outbox event %s failed after %s attempts: %s", event.id, attempt_number, exc
            )
            return DeliveryOutcome("failed", attempt_number, backoff, exc)
        logger.warning(
            "Retrying outbox event %s attempt=%s backoff=%ss", event.id, attempt_number, backoff
        )
        return DeliveryOutcome("retry", attempt_number, backoff, exc)

    repo.mark_sent(event.id, attempt_number)
    session.commit()
    PrometheusMetrics.observe_notification_dispatch(event.event_type, monotonic() - start)
    PrometheusMetrics.record_notification_outcome(event.event_type, "sent")
    logger.info(
        "Delivered outbox event %s type=%s attempts=%s",
        event.id,
        event.event_type,
        attempt_number,
    )
    return DeliveryOutcome("sent", attempt_number)


@celery_app.task(name="outbox.dispatch_pending", max_retries=0, queue="notifications")
def dispatch_pending() -> int:
    """
    Fetch pending outbox events and enqueue delivery tasks.

    Returns the number of events scheduled.
    """
    with _session_scope() as session:
        pending = EventOutboxRepository(session).fetch_pending(limit=settings.outbox_batch_size)
        for event in pending:
            deliver_event.apply_async((event.id,), queue="notifications")
        scheduled: int = len(pending)
        if scheduled:
            logger.info("Scheduled %s outbox events for delivery", scheduled)
        return scheduled


@celery_app.task(
    name="outbox.deliver_event",
    bind=True,
    max_retries=MAX_DELIVERY_ATTEMPTS,
    default_retry_delay=BACKOFF_SECONDS[0],
    queue="notifications",
)
def deliver_event(self: "Task[Any, Any]", event_id: str) -> Optional[str]:
    """Deliver a single outbox event."""
    session = SessionLocal()
    try:
        outcome = deliver_outbox_event(session, event_id)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if outcome.status == "retry":
        raise self.retry(countdown=outcome.backoff_seconds, exc=outcome.error)
    if outcome.status == "failed" and outcome.error is not None:
        raise outcome.error
    return event_id if outcome.status == "sent" else None
