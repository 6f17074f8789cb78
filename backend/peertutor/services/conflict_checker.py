# backend/peertutor/services/conflict_checker.py
"""
Conflict Checker Service for PeerTutor

Finds active sessions that overlap a candidate window for either
participant of a booking, in either role. The store query and the
in-memory check for recurrence children share the half-open overlap rule
of TimeWindow.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..models.session import TutoringSession
from ..repositories.factory import RepositoryFactory
from ..repositories.session_repository import SessionRepository
from .base import BaseService
from .time_windows import TimeWindow

logger = logging.getLogger(__name__)


def conflict_summary(session: TutoringSession) -> Dict[str, Any]:
    """Client-facing description of a conflicting session."""
    return {
        "id": session.id,
        "student_id": session.student_id,
        "tutor_id": session.tutor_id,
        "subject": session.subject,
        "scheduled_start": session.scheduled_start.isoformat(),
        "scheduled_end": session.scheduled_end.isoformat(),
        "status": session.status,
    }


class ConflictChecker(BaseService):
    """Overlap detection against the session store."""

    def __init__(self, db: Session, repository: Optional[SessionRepository] = None):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_session_repository(db)

    @BaseService.measure_operation("find_conflicts")
    def find_conflicts(
        self,
        participant_a: str,
        participant_b: str,
        window: TimeWindow,
        exclude_session_id: Optional[str] = None,
    ) -> List[TutoringSession]:
        """
        Active sessions of either participant overlapping ``window``.

        Args:
            participant_a: Usually the student
            participant_b: Usually the tutor
            window: Candidate window
            exclude_session_id: Session being rescheduled

        Returns:
            Overlapping sessions, empty when the window is free
        """
        conflicts = self.repository.find_overlapping(
            [participant_a, participant_b],
            window.start,
            window.end,
            exclude_session_id=exclude_session_id,
        )
        if conflicts:
            self.logger.info(
                f"Found {len(conflicts)} conflicting session(s) for "
                f"{participant_a}/{participant_b} at {window.start.isoformat()}"
            )
        return conflicts

    def find_conflicts_for_windows(
        self,
        participant_a: str,
        participant_b: str,
        windows: Sequence[TimeWindow],
    ) -> List[TutoringSession]:
        """Store conflicts for every window of a series, deduplicated."""
        seen: Dict[str, TutoringSession] = {}
        for window in windows:
            for session in self.find_conflicts(participant_a, participant_b, window):
                seen.setdefault(session.id, session)
        return sorted(seen.values(), key=lambda s: s.scheduled_start)

    @staticmethod
    def find_internal_overlaps(windows: Iterable[TimeWindow]) -> List[Tuple[TimeWindow, TimeWindow]]:
        """Pairs of windows in the same batch that overlap each other."""
        ordered = sorted(windows, key=lambda w: w.start)
        pairs: List[Tuple[TimeWindow, TimeWindow]] = []
        for index, current in enumerate(ordered):
            for following in ordered[index + 1 :]:
                if following.start >= current.end:
                    break
                if current.overlaps(following):
                    pairs.append((current, following))
        return pairs
