# backend/peertutor/repositories/factory.py
"""
Repository Factory for PeerTutor

Provides centralized creation of repository instances so services never
construct data access objects themselves.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .event_outbox_repository import EventOutboxRepository
    from .notification_delivery_repository import NotificationDeliveryRepository
    from .session_repository import SessionRepository
    from .user_repository import UserRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_session_repository(db: Session) -> "SessionRepository":
        """Create repository for the session store."""
        from .session_repository import SessionRepository

        return SessionRepository(db)

    @staticmethod
    def create_user_repository(db: Session) -> "UserRepository":
        """Create repository for users and tutor availability."""
        from .user_repository import UserRepository

        return UserRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> "EventOutboxRepository":
        from .event_outbox_repository import EventOutboxRepository

        return EventOutboxRepository(db)

    @staticmethod
    def create_notification_delivery_repository(db: Session) -> "NotificationDeliveryRepository":
        from .notification_delivery_repository import NotificationDeliveryRepository

        return NotificationDeliveryRepository(db)
