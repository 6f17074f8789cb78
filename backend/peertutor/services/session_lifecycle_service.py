# backend/peertutor/services/session_lifecycle_service.py
"""
Session Lifecycle Service for PeerTutor

Owns every state change of a tutoring session:

    scheduled -> confirmed -> ongoing -> completed
    scheduled | confirmed -> cancelled
    scheduled | confirmed | ongoing -> no-show

Each operation validates its preconditions, applies the transition and
queues its domain event in one transaction; notifications are delivered
later by the outbox dispatcher, so a provider outage never fails or rolls
back a transition. Status-change pushes on the realtime bus happen after
commit and are best-effort.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import math
from typing import Callable, Collection, List, Optional

from sqlalchemy.orm import Session

from ..core.booking_lock import participants_lock_sync
from ..core.config import settings
from ..core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ..core.enums import RoleName
from ..core.exceptions import (
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    SchedulingConflictException,
    TutorUnavailableException,
    ValidationException,
)
from ..events.publisher import EventPublisher
from ..events.session_events import (
    SessionBooked,
    SessionCancelled,
    SessionCompleted,
    SessionConfirmed,
    SessionRescheduled,
)
from ..models.session import (
    DeliveryType,
    MaterialType,
    SessionMaterial,
    SessionStatus,
    TutoringSession,
)
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.session_repository import SessionRepository
from ..schemas.session import SessionBookRequest
from .availability_checker import AvailabilityChecker
from .base import BaseService
from .conflict_checker import ConflictChecker, conflict_summary
from .realtime import RealtimeBus, get_realtime_bus, session_channel
from .recurrence import RecurrenceExpander, RecurrenceRule
from .time_windows import TimeWindow, ensure_future, hours_until, minutes_until
from .user_directory import SqlUserDirectory, UserDirectory

logger = logging.getLogger(__name__)

# Reschedule is outside the forward state machine: it re-opens a confirmed
# session back to scheduled.
RESCHEDULABLE_STATUSES = frozenset({SessionStatus.SCHEDULED, SessionStatus.CONFIRMED})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionEndResult:
    session: TutoringSession
    duration_minutes: float


@dataclass
class SessionPage:
    items: List[TutoringSession]
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.per_page) if self.total else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


class SessionLifecycleService(BaseService):
    """
    The session state machine.

    Collaborators are injected so tests can swap the store, the directory,
    the bus and the clock.
    """

    def __init__(
        self,
        db: Session,
        repository: Optional[SessionRepository] = None,
        user_directory: Optional[UserDirectory] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        availability_checker: Optional[AvailabilityChecker] = None,
        recurrence_expander: Optional[RecurrenceExpander] = None,
        event_publisher: Optional[EventPublisher] = None,
        realtime_bus: Optional[RealtimeBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_session_repository(db)
        self.user_directory = user_directory or SqlUserDirectory(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db, self.repository)
        self.availability_checker = availability_checker or AvailabilityChecker()
        self.recurrence_expander = recurrence_expander or RecurrenceExpander()
        self.event_publisher = event_publisher or EventPublisher(
            RepositoryFactory.create_event_outbox_repository(db)
        )
        self.realtime_bus = realtime_bus or get_realtime_bus()
        self._clock = clock or _utc_now

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------ book

    @BaseService.measure_operation("book_session")
    def book(self, student_id: str, request: SessionBookRequest) -> List[TutoringSession]:
        """
        Book a session, or a whole recurring series.

        Args:
            student_id: Caller booking as the student
            request: Validated booking payload

        Returns:
            Created sessions; the parent comes first for a series

        Raises:
            ValidationException: Malformed or past window, bad recurrence
            NotFoundException: Tutor unknown or not tutor-capable
            SchedulingConflictException: Overlap with an active session
            TutorUnavailableException: Window outside the tutor's template
        """
        now = self.now()
        window = TimeWindow(request.scheduled_start, request.scheduled_end)
        ensure_future(window, now)

        tutor_id = request.tutor_id
        if tutor_id == student_id:
            raise ValidationException("You cannot book a session with yourself")

        self.log_operation(
            "book_session",
            student_id=student_id,
            tutor_id=tutor_id,
            start=window.start.isoformat(),
            recurring=bool(request.recurrence and request.recurrence.is_recurring),
        )

        tutor_role = self.user_directory.get_role(tutor_id)
        if tutor_role is None or not tutor_role.can_tutor:
            raise NotFoundException("Tutor not found", code="TUTOR_NOT_FOUND")
        if self.user_directory.get_role(student_id) is None:
            raise NotFoundException("Student not found", code="STUDENT_NOT_FOUND")

        rule: Optional[RecurrenceRule] = None
        windows = [window]
        if request.recurrence and request.recurrence.is_recurring:
            rule = RecurrenceRule.build(request.recurrence.frequency, request.recurrence.end_date)
            windows = self.recurrence_expander.expand(window, rule)

        with participants_lock_sync([student_id, tutor_id]) as acquired:
            if not acquired:
                raise SchedulingConflictException("another booking is in progress")

            with self.transaction():
                self._ensure_no_conflicts(student_id, tutor_id, windows)
                self._ensure_tutor_available(tutor_id, windows)

                fields = self._session_fields(student_id, request)
                if rule is not None:
                    sessions = self.recurrence_expander.materialize(
                        self.repository, windows, rule, fields
                    )
                else:
                    sessions = [
                        self.repository.create(
                            **fields, scheduled_start=window.start, scheduled_end=window.end
                        )
                    ]

                for session in sessions:
                    if session.delivery_type == DeliveryType.ONLINE.value:
                        session.meeting_link = self._meeting_link(session)
                    self.event_publisher.publish(
                        SessionBooked(
                            session_id=session.id,
                            student_id=session.student_id,
                            tutor_id=session.tutor_id,
                            subject=session.subject,
                            scheduled_start=session.scheduled_start,
                            scheduled_end=session.scheduled_end,
                            delivery_type=session.delivery_type,
                            meeting_link=session.meeting_link,
                            parent_session_id=session.parent_session_id,
                        )
                    )
                self.repository.flush()

        prometheus_metrics.record_booking(request.delivery_type, rule is not None, len(sessions))
        self._sync_calendar(sessions)
        self.logger.info(f"Booked {len(sessions)} session(s) for {student_id} with {tutor_id}")
        return sessions

    # ------------------------------------------------------------ reschedule

    @BaseService.measure_operation("reschedule_session")
    def reschedule(
        self,
        session_id: str,
        caller_id: str,
        new_start: datetime,
        new_end: datetime,
        reason: Optional[str] = None,
    ) -> TutoringSession:
        """
        Move a session to a new window.

        The session returns to ``scheduled`` (a confirmed session needs a new
        confirmation) and becomes eligible for a fresh reminder.
        """
        now = self.now()
        session = self._get_for_participant(session_id, caller_id)
        self._require_status(session, RESCHEDULABLE_STATUSES, "reschedule")
        window = TimeWindow(new_start, new_end)
        ensure_future(window, now)

        with participants_lock_sync([session.student_id, session.tutor_id]) as acquired:
            if not acquired:
                raise SchedulingConflictException("another booking is in progress")

            with self.transaction():
                conflicts = self.conflict_checker.find_conflicts(
                    session.student_id, session.tutor_id, window, exclude_session_id=session.id
                )
                if conflicts:
                    raise SchedulingConflictException(
                        conflicts=[conflict_summary(c) for c in conflicts]
                    )

                previous_status = session.status
                previous_start, previous_end = session.scheduled_start, session.scheduled_end
                session.move_window(window.start, window.end)
                self.repository.flush()
                self.event_publisher.publish(
                    SessionRescheduled(
                        session_id=session.id,
                        student_id=session.student_id,
                        tutor_id=session.tutor_id,
                        rescheduled_by=caller_id,
                        previous_start=previous_start,
                        previous_end=previous_end,
                        scheduled_start=window.start,
                        scheduled_end=window.end,
                        session_version=session.version,
                        reason=reason,
                    )
                )

        self._after_transition(session, previous_status, caller_id, event_type="rescheduled")
        return session

    # ---------------------------------------------------------------- cancel

    @BaseService.measure_operation("cancel_session")
    def cancel(self, session_id: str, caller_id: str, reason: str) -> TutoringSession:
        """
        Cancel a scheduled or confirmed session.

        Less than ``late_cancellation_hours`` of notice adds an admin note;
        the cancellation itself is identical either way.
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationException("Cancellation reason is required", code="REASON_REQUIRED")

        now = self.now()
        with self.transaction():
            session = self._get_for_participant(session_id, caller_id)
            self._require_transition(session, SessionStatus.CANCELLED, "cancel")

            previous_status = session.status
            session.cancel(caller_id, reason, now)

            notice_hours = hours_until(session.scheduled_start, now)
            late = notice_hours < settings.late_cancellation_hours
            if late:
                note = f"Late cancellation ({notice_hours:.1f} hours notice)"
                session.admin_note = f"{session.admin_note}\n{note}" if session.admin_note else note

            self.event_publisher.publish(
                SessionCancelled(
                    session_id=session.id,
                    student_id=session.student_id,
                    tutor_id=session.tutor_id,
                    cancelled_by=caller_id,
                    cancelled_at=now,
                    reason=reason,
                    scheduled_start=session.scheduled_start,
                    late_cancellation=late,
                )
            )
            self.repository.flush()

        self._after_transition(session, previous_status, caller_id)
        return session

    # --------------------------------------------------------------- confirm

    @BaseService.measure_operation("confirm_session")
    def confirm(self, session_id: str, caller_id: str) -> TutoringSession:
        """Tutor acknowledges a scheduled session."""
        with self.transaction():
            session = self._get_for_participant(session_id, caller_id)
            if session.tutor_id != caller_id:
                raise ForbiddenException("Only the tutor can confirm this session")
            self._require_transition(session, SessionStatus.CONFIRMED, "confirm")

            previous_status = session.status
            session.confirm()
            self.repository.flush()
            self.event_publisher.publish(
                SessionConfirmed(
                    session_id=session.id,
                    student_id=session.student_id,
                    tutor_id=session.tutor_id,
                    scheduled_start=session.scheduled_start,
                    session_version=session.version,
                )
            )

        self._after_transition(session, previous_status, caller_id)
        return session

    # ----------------------------------------------------------------- start

    @BaseService.measure_operation("start_session")
    def start(self, session_id: str, caller_id: str) -> TutoringSession:
        """
        Start a session no earlier than ``start_early_minutes`` before its
        scheduled start. Late starts are always allowed.
        """
        now = self.now()
        with self.transaction():
            session = self._get_for_participant(session_id, caller_id)
            self._require_transition(session, SessionStatus.ONGOING, "start")

            if minutes_until(session.scheduled_start, now) > settings.start_early_minutes:
                raise ValidationException(
                    f"Session can only be started {settings.start_early_minutes} minutes "
                    "before its scheduled time",
                    code="TOO_EARLY_TO_START",
                    details={"scheduled_start": session.scheduled_start.isoformat()},
                )

            previous_status = session.status
            session.start(now)
            self.repository.flush()

        self._after_transition(session, previous_status, caller_id)
        return session

    # ------------------------------------------------------------------- end

    @BaseService.measure_operation("end_session")
    def end(self, session_id: str, caller_id: str, notes: Optional[str] = None) -> SessionEndResult:
        """
        Complete an ongoing session.

        Notes go to the caller's own note field. Both participants' lesson
        stats grow by the actual duration in the same transaction.
        """
        now = self.now()
        with self.transaction():
            session = self._get_for_participant(session_id, caller_id)
            self._require_transition(session, SessionStatus.COMPLETED, "end")

            previous_status = session.status
            session.complete(now)
            if notes:
                if caller_id == session.student_id:
                    session.student_note = notes
                else:
                    session.tutor_note = notes

            duration = session.actual_duration
            duration_minutes = duration.total_seconds() / 60.0 if duration else 0.0
            hours = duration_minutes / 60.0
            self.user_directory.increment_stats(
                session.student_id, sessions_delta=1, hours_delta=hours, as_role=RoleName.STUDENT
            )
            self.user_directory.increment_stats(
                session.tutor_id, sessions_delta=1, hours_delta=hours, as_role=RoleName.TUTOR
            )
            self.event_publisher.publish(
                SessionCompleted(
                    session_id=session.id,
                    student_id=session.student_id,
                    tutor_id=session.tutor_id,
                    ended_by=caller_id,
                    actual_start=session.actual_start,
                    actual_end=session.actual_end,
                    duration_minutes=round(duration_minutes, 2),
                )
            )
            self.repository.flush()

        self._after_transition(session, previous_status, caller_id)
        return SessionEndResult(session=session, duration_minutes=duration_minutes)

    # --------------------------------------------------------------- no-show

    @BaseService.measure_operation("mark_no_show")
    def mark_no_show(self, session_id: str, caller_id: str) -> TutoringSession:
        """Record that a participant did not attend; only after the scheduled start."""
        now = self.now()
        with self.transaction():
            session = self._get_for_participant(session_id, caller_id)
            self._require_transition(session, SessionStatus.NO_SHOW, "mark as no-show")
            if now < session.scheduled_start:
                raise ValidationException(
                    "A session can only be marked as no-show after its scheduled start",
                    code="NO_SHOW_TOO_EARLY",
                )

            previous_status = session.status
            session.mark_no_show()
            self.repository.flush()

        self._after_transition(session, previous_status, caller_id)
        return session

    # ------------------------------------------------------------- materials

    @BaseService.measure_operation("add_session_material")
    def add_material(
        self, session_id: str, caller_id: str, name: str, url: str, material_type: str = "other"
    ) -> SessionMaterial:
        try:
            parsed_type = MaterialType(material_type)
        except ValueError:
            raise ValidationException(f"Unsupported material type: {material_type}")

        with self.transaction():
            session = self._get_for_participant(session_id, caller_id)
            if session.status == SessionStatus.CANCELLED.value:
                raise InvalidStateException(
                    "Cannot add materials to a cancelled session", current_status=session.status
                )
            material = self.repository.add_material(
                session,
                name=name,
                url=url,
                material_type=parsed_type.value,
                uploaded_by_id=caller_id,
                uploaded_at=self.now(),
            )
        return material

    # ----------------------------------------------------------------- reads

    @BaseService.measure_operation("get_session")
    def get_session(self, session_id: str, caller_id: str) -> TutoringSession:
        return self._get_for_participant(session_id, caller_id)

    @BaseService.measure_operation("list_sessions")
    def list_sessions(
        self,
        caller_id: str,
        role: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        per_page: int = DEFAULT_PAGE_SIZE,
    ) -> SessionPage:
        """Caller's sessions, newest scheduled start first."""
        if role is not None and role not in (RoleName.STUDENT.value, RoleName.TUTOR.value):
            raise ValidationException(f"Unknown role filter: {role}")
        if status is not None:
            try:
                status = SessionStatus(status).value
            except ValueError:
                raise ValidationException(f"Unknown status filter: {status}")
        page = max(page, 1)
        per_page = min(max(per_page, 1), MAX_PAGE_SIZE)

        items, total = self.repository.list_for_user(
            caller_id,
            role=role,
            status=status,
            offset=(page - 1) * per_page,
            limit=per_page,
        )
        return SessionPage(items=items, total=total, page=page, per_page=per_page)

    # --------------------------------------------------------------- helpers

    def _get_for_participant(self, session_id: str, caller_id: str) -> TutoringSession:
        session = self.repository.get_by_id(session_id)
        if session is None:
            raise NotFoundException("Session not found", code="SESSION_NOT_FOUND")
        if not session.is_participant(caller_id):
            raise ForbiddenException("You are not a participant of this session")
        return session

    @staticmethod
    def _require_status(
        session: TutoringSession, allowed: Collection[SessionStatus], action: str
    ) -> None:
        if session.status_enum not in allowed:
            raise InvalidStateException(
                f"Cannot {action} a session that is {session.status}",
                current_status=session.status,
            )

    @staticmethod
    def _require_transition(session: TutoringSession, target: SessionStatus, action: str) -> None:
        if not session.can_transition_to(target):
            raise InvalidStateException(
                f"Cannot {action} a session that is {session.status}",
                current_status=session.status,
            )

    def _ensure_no_conflicts(
        self, student_id: str, tutor_id: str, windows: List[TimeWindow]
    ) -> None:
        conflicts = self.conflict_checker.find_conflicts_for_windows(student_id, tutor_id, windows)
        if conflicts:
            raise SchedulingConflictException(conflicts=[conflict_summary(c) for c in conflicts])
        if self.conflict_checker.find_internal_overlaps(windows):
            raise ValidationException(
                "Recurring sessions would overlap each other", code="RECURRENCE_OVERLAP"
            )

    def _ensure_tutor_available(self, tutor_id: str, windows: List[TimeWindow]) -> None:
        slots = self.user_directory.get_tutor_availability(tutor_id)
        unavailable = self.availability_checker.unavailable_windows(slots, windows)
        if unavailable:
            first = unavailable[0]
            raise TutorUnavailableException(tutor_id, first.start.isoformat(), first.end.isoformat())

    @staticmethod
    def _session_fields(student_id: str, request: SessionBookRequest) -> dict:
        location = request.location
        coordinates = location.coordinates if location else None
        return {
            "student_id": student_id,
            "tutor_id": request.tutor_id,
            "subject": request.subject,
            "description": request.description,
            "delivery_type": request.delivery_type,
            "price": request.price,
            "status": SessionStatus.SCHEDULED.value,
            "location_details": location.details if location else None,
            "address": location.address if location else None,
            "latitude": coordinates.lat if coordinates else None,
            "longitude": coordinates.lng if coordinates else None,
        }

    @staticmethod
    def _meeting_link(session: TutoringSession) -> str:
        return f"{settings.meeting_link_base_url}/meeting-{session.id[-8:].lower()}"

    def _sync_calendar(self, sessions: List[TutoringSession]) -> None:
        """Calendar provider hook; no provider is integrated."""
        self.logger.debug(f"Calendar sync skipped for {len(sessions)} session(s)")

    def _after_transition(
        self,
        session: TutoringSession,
        previous_status: str,
        actor_id: str,
        event_type: str = "status_changed",
    ) -> None:
        prometheus_metrics.record_transition(previous_status, session.status)
        self.log_operation(
            f"session_{event_type}",
            session_id=session.id,
            from_status=previous_status,
            to_status=session.status,
            actor_id=actor_id,
        )
        event = {
            "type": f"session.{event_type}",
            "session_id": session.id,
            "status": session.status,
            "previous_status": previous_status,
            "scheduled_start": session.scheduled_start.isoformat(),
            "scheduled_end": session.scheduled_end.isoformat(),
            "actor_id": actor_id,
        }
        for user_id in (session.student_id, session.tutor_id):
            try:
                self.realtime_bus.publish(session_channel(user_id), event)
            except Exception as exc:
                self.logger.warning(f"Realtime publish failed for session {session.id}: {exc}")
