# backend/peertutor/services/reminder_service.py
"""
Reminder sweep for upcoming sessions.

Every run looks at sessions starting within the reminder window that have
not been reminded. A reminder is claimed with a conditional update before
its event is queued, and both happen in one transaction, so overlapping or
repeated sweeps never remind the same scheduled window twice.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..events.publisher import EventPublisher
from ..events.session_events import SessionReminder
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.session_repository import SessionRepository
from .base import BaseService

logger = logging.getLogger(__name__)


class ReminderService(BaseService):
    """Finds sessions entering their reminder window and reminds them once."""

    def __init__(
        self,
        db: Session,
        repository: Optional[SessionRepository] = None,
        event_publisher: Optional[EventPublisher] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_session_repository(db)
        self.event_publisher = event_publisher or EventPublisher(
            RepositoryFactory.create_event_outbox_repository(db)
        )
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @BaseService.measure_operation("sweep_reminders")
    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Claim and enqueue due reminders.

        Args:
            now: Sweep time; defaults to the service clock

        Returns:
            Number of sessions reminded by this run
        """
        now = now or self._clock()
        window_end = now + timedelta(hours=settings.reminder_window_hours)

        sent = 0
        with self.transaction():
            due = self.repository.find_due_reminders(
                now, window_end, limit=settings.reminder_batch_size
            )
            for session in due:
                if not self.repository.claim_reminder(session.id, now):
                    self.logger.debug(f"Reminder for session {session.id} already claimed")
                    continue
                self.event_publisher.publish(
                    SessionReminder(
                        session_id=session.id,
                        student_id=session.student_id,
                        tutor_id=session.tutor_id,
                        subject=session.subject,
                        scheduled_start=session.scheduled_start,
                        scheduled_end=session.scheduled_end,
                        session_version=session.version,
                        meeting_link=session.meeting_link,
                        reminder_type=f"{settings.reminder_window_hours}h",
                    )
                )
                sent += 1

        prometheus_metrics.record_reminders_sent(sent)
        if sent:
            self.log_operation("sweep_reminders", reminded=sent, candidates=len(due))
        return sent
