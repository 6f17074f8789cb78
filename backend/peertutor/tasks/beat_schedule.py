# backend/peertutor/tasks/beat_schedule.py
"""Periodic schedule for the reminder sweep and the outbox dispatcher."""

from datetime import timedelta
from typing import Any, Dict

from ..core.config import settings


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    return {
        "sweep-session-reminders": {
            "task": "sessions.sweep_reminders",
            "schedule": timedelta(minutes=settings.reminder_sweep_minutes),
            "options": {"queue": "sessions", "priority": 7},
        },
        "dispatch-outbox-events": {
            "task": "outbox.dispatch_pending",
            "schedule": timedelta(minutes=1),
            "options": {"queue": "notifications", "priority": 8},
        },
    }
