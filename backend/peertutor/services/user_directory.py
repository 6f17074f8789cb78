# backend/peertutor/services/user_directory.py
"""
User directory contract consumed by the session core.

Profile management lives elsewhere; scheduling needs only roles, the
tutor's weekly availability, contact details for notifications, and the
stats increment applied when a lesson completes.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List, Optional, Protocol, runtime_checkable

from sqlalchemy.orm import Session

from ..core.enums import RoleName
from ..repositories.factory import RepositoryFactory
from .availability_checker import AvailabilitySlot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserContact:
    user_id: str
    email: str
    full_name: str
    phone_number: Optional[str] = None


@runtime_checkable
class UserDirectory(Protocol):
    """Narrow view of user data needed by scheduling."""

    def get_role(self, user_id: str) -> Optional[RoleName]:
        """Role of an active user, or None when unknown."""
        ...

    def get_tutor_availability(self, tutor_id: str) -> List[AvailabilitySlot]:
        ...

    def get_contact(self, user_id: str) -> Optional[UserContact]:
        ...

    def increment_stats(
        self, user_id: str, *, sessions_delta: int, hours_delta: float, as_role: RoleName
    ) -> None:
        """Add a completed lesson to the user's counters."""
        ...


class SqlUserDirectory:
    """UserDirectory backed by the users and tutor_availability tables."""

    def __init__(self, db: Session):
        self.db = db
        self.repository = RepositoryFactory.create_user_repository(db)

    def get_role(self, user_id: str) -> Optional[RoleName]:
        user = self.repository.get_active(user_id)
        if user is None:
            return None
        return RoleName(user.role)

    def get_tutor_availability(self, tutor_id: str) -> List[AvailabilitySlot]:
        return [AvailabilitySlot.from_model(row) for row in self.repository.get_availability(tutor_id)]

    def get_contact(self, user_id: str) -> Optional[UserContact]:
        user = self.repository.get_by_id(user_id, load_relationships=False)
        if user is None:
            return None
        return UserContact(
            user_id=user.id,
            email=user.email,
            full_name=user.full_name,
            phone_number=user.phone_number,
        )

    def increment_stats(
        self, user_id: str, *, sessions_delta: int, hours_delta: float, as_role: RoleName
    ) -> None:
        """
        Student side accrues hours_learning, tutor side hours_teaching.

        Runs inside the caller's transaction.
        """
        teaching = as_role == RoleName.TUTOR
        updated = self.repository.increment_stats(
            user_id,
            sessions_delta=sessions_delta,
            completed_delta=sessions_delta,
            hours_learning_delta=0.0 if teaching else hours_delta,
            hours_teaching_delta=hours_delta if teaching else 0.0,
        )
        if not updated:
            logger.warning(f"Stats update skipped; user {user_id} not found")
