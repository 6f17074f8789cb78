"""
Database models for the PeerTutor session core.

- Users and tutor availability (user directory)
- Tutoring sessions and their materials
- Event outbox and notification delivery records
"""

from .event_outbox import EventOutbox, EventOutboxStatus, NotificationDelivery
from .session import (
    ACTIVE_STATUSES,
    DeliveryType,
    MaterialType,
    RecurrenceFrequency,
    SessionMaterial,
    SessionStatus,
    TutoringSession,
)
from .user import TutorAvailability, User

__all__ = [
    "ACTIVE_STATUSES",
    "DeliveryType",
    "EventOutbox",
    "EventOutboxStatus",
    "MaterialType",
    "NotificationDelivery",
    "RecurrenceFrequency",
    "SessionMaterial",
    "SessionStatus",
    "TutorAvailability",
    "TutoringSession",
    "User",
]
