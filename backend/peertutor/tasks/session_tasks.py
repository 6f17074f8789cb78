# backend/peertutor/tasks/session_tasks.py
"""Periodic session maintenance."""

from celery.utils.log import get_task_logger

from ..database import SessionLocal, with_db_retry
from ..services.reminder_service import ReminderService
from .celery_app import celery_app

logger = get_task_logger(__name__)


def run_reminder_sweep() -> int:
    session = SessionLocal()
    try:
        return ReminderService(session).sweep()
    finally:
        session.close()


@celery_app.task(name="sessions.sweep_reminders", max_retries=0, queue="sessions")
def sweep_reminders() -> int:
    """Queue reminders for sessions entering the reminder window."""
    reminded = with_db_retry("sweep_reminders", run_reminder_sweep)
    logger.info("Reminder sweep queued %s reminder(s)", reminded)
    return reminded
