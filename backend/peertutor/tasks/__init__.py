# backend/peertutor/tasks/__init__.py
"""
Celery tasks for session lifecycle side effects.

- Reminder sweep (``sessions.sweep_reminders``)
- Outbox dispatch and delivery (``outbox.*``)
"""

from .celery_app import BaseTask, celery_app
from .notification_tasks import deliver_event, dispatch_pending
from .session_tasks import sweep_reminders

__all__ = [
    "celery_app",
    "BaseTask",
    "deliver_event",
    "dispatch_pending",
    "sweep_reminders",
]
