# backend/peertutor/repositories/session_repository.py
"""
Session Repository for PeerTutor

The session store: every read and write of ``tutoring_sessions`` and
``session_materials`` goes through here. Services receive an instance
through the factory rather than touching the ORM directly.

Overlap queries use the half-open window rule
``stored.start < end AND stored.end > start`` so back-to-back sessions
never conflict.
"""

from datetime import datetime
import logging
from typing import Iterable, List, Optional, Tuple, cast

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, selectinload

from ..core.exceptions import RepositoryException
from ..models.session import (
    ACTIVE_STATUSES,
    SessionMaterial,
    SessionStatus,
    TutoringSession,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

REMINDER_STATUSES = (SessionStatus.SCHEDULED.value, SessionStatus.CONFIRMED.value)


class SessionRepository(BaseRepository[TutoringSession]):
    """Data access for tutoring sessions."""

    def __init__(self, db: Session):
        super().__init__(db, TutoringSession)
        self.logger = logging.getLogger(__name__)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(selectinload(TutoringSession.materials))

    # Conflict queries

    def find_overlapping(
        self,
        participant_ids: Iterable[str],
        start: datetime,
        end: datetime,
        exclude_session_id: Optional[str] = None,
    ) -> List[TutoringSession]:
        """
        Active sessions overlapping [start, end) in which any of the given
        users takes part, in either role.

        Args:
            participant_ids: Users whose calendars are checked
            start: Window start (aware UTC)
            end: Window end (aware UTC)
            exclude_session_id: Session ignored by the check (reschedule)

        Returns:
            Conflicting sessions ordered by start
        """
        ids = sorted({pid for pid in participant_ids if pid})
        if not ids:
            return []
        try:
            query = self.db.query(TutoringSession).filter(
                or_(
                    TutoringSession.student_id.in_(ids),
                    TutoringSession.tutor_id.in_(ids),
                ),
                TutoringSession.status.in_([status.value for status in ACTIVE_STATUSES]),
                TutoringSession.scheduled_start < end,
                TutoringSession.scheduled_end > start,
            )
            if exclude_session_id:
                query = query.filter(TutoringSession.id != exclude_session_id)
            return cast(
                List[TutoringSession], query.order_by(TutoringSession.scheduled_start).all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking session conflicts: {str(e)}")
            raise RepositoryException(f"Failed to check conflicts: {str(e)}")

    # Listing

    def list_for_user(
        self,
        user_id: str,
        *,
        role: Optional[str] = None,
        status: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[TutoringSession], int]:
        """
        Sessions the user takes part in, newest scheduled start first.

        ``role`` narrows to sessions where the user is the student or the
        tutor. Returns the page and the total match count.
        """
        try:
            query = self.db.query(TutoringSession)
            if role == "student":
                query = query.filter(TutoringSession.student_id == user_id)
            elif role == "tutor":
                query = query.filter(TutoringSession.tutor_id == user_id)
            else:
                query = query.filter(
                    or_(
                        TutoringSession.student_id == user_id,
                        TutoringSession.tutor_id == user_id,
                    )
                )
            if status:
                query = query.filter(TutoringSession.status == status)

            total = query.count()
            items = (
                self._apply_eager_loading(query)
                .order_by(TutoringSession.scheduled_start.desc(), TutoringSession.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return cast(List[TutoringSession], items), int(total)
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing sessions for user {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to list sessions: {str(e)}")

    # Reminders

    def find_due_reminders(
        self, window_start: datetime, window_end: datetime, limit: int = 500
    ) -> List[TutoringSession]:
        """Sessions starting inside the reminder window that have not been reminded."""
        return self._execute_query(
            self.db.query(TutoringSession)
            .filter(
                TutoringSession.status.in_(REMINDER_STATUSES),
                TutoringSession.reminder_sent.is_(False),
                TutoringSession.scheduled_start >= window_start,
                TutoringSession.scheduled_start <= window_end,
            )
            .order_by(TutoringSession.scheduled_start)
            .limit(limit)
        )

    def claim_reminder(self, session_id: str, now: datetime) -> bool:
        """
        Atomically flip the reminder flag.

        Returns True only for the caller whose update changed the row, so two
        overlapping sweeps cannot both send.
        """
        try:
            result = self.db.execute(
                update(TutoringSession)
                .where(
                    TutoringSession.id == session_id,
                    TutoringSession.reminder_sent.is_(False),
                    TutoringSession.status.in_(REMINDER_STATUSES),
                )
                .values(reminder_sent=True, reminder_sent_at=now)
                .execution_options(synchronize_session="fetch")
            )
            return bool(result.rowcount)
        except SQLAlchemyError as e:
            self.logger.error(f"Error claiming reminder for session {session_id}: {str(e)}")
            raise RepositoryException(f"Failed to claim reminder: {str(e)}")

    # Materials

    def add_material(
        self,
        session: TutoringSession,
        *,
        name: str,
        url: str,
        material_type: str,
        uploaded_by_id: str,
        uploaded_at: datetime,
    ) -> SessionMaterial:
        material = SessionMaterial(
            name=name,
            url=url,
            material_type=material_type,
            uploaded_by_id=uploaded_by_id,
            uploaded_at=uploaded_at,
        )
        session.materials.append(material)
        self.db.flush()
        return material
