"""
Repository layer for PeerTutor.

Repositories own queries and flushes; services own transactions.
"""

from .base_repository import BaseRepository
from .event_outbox_repository import EventOutboxRepository
from .factory import RepositoryFactory
from .notification_delivery_repository import NotificationDeliveryRepository
from .session_repository import SessionRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "EventOutboxRepository",
    "NotificationDeliveryRepository",
    "RepositoryFactory",
    "SessionRepository",
    "UserRepository",
]
