# backend/peertutor/repositories/user_repository.py
"""
User Repository for PeerTutor

Read access to accounts and tutor availability, plus the atomic stats
increments applied when a session completes.
"""

import logging
from typing import List, Optional, cast

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.user import TutorAvailability, User
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """Data access for users and their availability templates."""

    def __init__(self, db: Session):
        super().__init__(db, User)
        self.logger = logging.getLogger(__name__)

    def get_active(self, user_id: str) -> Optional[User]:
        try:
            return cast(
                Optional[User],
                self.db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting user {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve user: {str(e)}")

    def get_availability(self, tutor_id: str) -> List[TutorAvailability]:
        try:
            return cast(
                List[TutorAvailability],
                self.db.query(TutorAvailability)
                .filter(TutorAvailability.tutor_id == tutor_id)
                .order_by(TutorAvailability.day_of_week, TutorAvailability.start_time)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting availability for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve availability: {str(e)}")

    def increment_stats(
        self,
        user_id: str,
        *,
        sessions_delta: int,
        completed_delta: int,
        hours_learning_delta: float = 0.0,
        hours_teaching_delta: float = 0.0,
    ) -> bool:
        """
        Increment lesson counters in a single UPDATE.

        Returns False when the user row does not exist.
        """
        try:
            result = self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(
                    total_sessions=User.total_sessions + sessions_delta,
                    completed_sessions=User.completed_sessions + completed_delta,
                    hours_learning=User.hours_learning + hours_learning_delta,
                    hours_teaching=User.hours_teaching + hours_teaching_delta,
                )
                .execution_options(synchronize_session="fetch")
            )
            return bool(result.rowcount)
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating stats for user {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to update user stats: {str(e)}")
