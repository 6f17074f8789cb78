# backend/peertutor/models/session.py
"""
Tutoring session model.

A session is a self-contained record of one lesson between a student and a
tutor: the scheduled window, the lifecycle status, where it happens, and
the audit fields each transition writes (actual start/end, reminder,
cancellation). Sessions are never hard-deleted; terminal states stay for
history and analytics.

Recurring series are not a separate table: children point at the parent
session through ``parent_session_id``.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
from typing import Dict, FrozenSet, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
import ulid

from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    """Session lifecycle statuses."""

    SCHEDULED = "scheduled"  # Initial state after booking or reschedule
    CONFIRMED = "confirmed"  # Tutor acknowledged the booking
    ONGOING = "ongoing"  # Lesson in progress
    COMPLETED = "completed"  # Lesson finished
    CANCELLED = "cancelled"  # Cancelled by a participant
    NO_SHOW = "no-show"  # A participant did not attend


ACTIVE_STATUSES: FrozenSet[SessionStatus] = frozenset(
    {SessionStatus.SCHEDULED, SessionStatus.CONFIRMED, SessionStatus.ONGOING}
)

# Forward edges of the state machine. Reschedule re-opening a confirmed
# session (confirmed -> scheduled) is handled by the reschedule operation.
ALLOWED_TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.SCHEDULED: frozenset(
        {
            SessionStatus.CONFIRMED,
            SessionStatus.ONGOING,
            SessionStatus.CANCELLED,
            SessionStatus.NO_SHOW,
        }
    ),
    SessionStatus.CONFIRMED: frozenset(
        {SessionStatus.ONGOING, SessionStatus.CANCELLED, SessionStatus.NO_SHOW}
    ),
    SessionStatus.ONGOING: frozenset({SessionStatus.COMPLETED, SessionStatus.NO_SHOW}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
    SessionStatus.NO_SHOW: frozenset(),
}


class DeliveryType(str, Enum):
    """How the lesson is delivered."""

    ONLINE = "online"
    OFFLINE = "offline"


class RecurrenceFrequency(str, Enum):
    """Supported recurrence steps."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class MaterialType(str, Enum):
    DOCUMENT = "document"
    IMAGE = "image"
    VIDEO = "video"
    LINK = "link"
    OTHER = "other"


class TutoringSession(Base):
    """
    One scheduled lesson between a student and a tutor.

    The (student_id, tutor_id) pair is fixed at creation. All mutation goes
    through SessionLifecycleService; ``version`` guards concurrent writers
    so only one of two racing transitions on the same row can commit.
    """

    __tablename__ = "tutoring_sessions"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    # Participants (immutable after creation)
    student_id = Column(String(26), ForeignKey("users.id"), nullable=False)
    tutor_id = Column(String(26), ForeignKey("users.id"), nullable=False)

    subject = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    # Scheduled window, half-open [start, end)
    scheduled_start = Column(UTCDateTime(), nullable=False)
    scheduled_end = Column(UTCDateTime(), nullable=False)
    actual_start = Column(UTCDateTime(), nullable=True)
    actual_end = Column(UTCDateTime(), nullable=True)

    status = Column(String(20), nullable=False, default=SessionStatus.SCHEDULED.value, index=True)

    # Delivery and location
    delivery_type = Column(String(10), nullable=False)
    location_details = Column(Text, nullable=True)
    meeting_link = Column(String(500), nullable=True)
    address = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    price = Column(Numeric(10, 2), nullable=True)

    # Notes, one field per audience
    student_note = Column(Text, nullable=True)
    tutor_note = Column(Text, nullable=True)
    admin_note = Column(Text, nullable=True)

    # Reminder (sent at most once per scheduled window)
    reminder_sent = Column(Boolean, nullable=False, default=False)
    reminder_sent_at = Column(UTCDateTime(), nullable=True)

    # Recurrence
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurrence_frequency = Column(String(10), nullable=True)
    recurrence_end_date = Column(Date, nullable=True)
    parent_session_id = Column(String(26), ForeignKey("tutoring_sessions.id"), nullable=True)

    # Cancellation record (written once)
    cancelled_by_id = Column(String(26), ForeignKey("users.id"), nullable=True)
    cancelled_at = Column(UTCDateTime(), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(UTCDateTime(), nullable=False, default=_now_utc)
    updated_at = Column(UTCDateTime(), nullable=False, default=_now_utc, onupdate=_now_utc)

    version = Column(Integer, nullable=False, default=1)

    # Relationships
    student = relationship("User", foreign_keys=[student_id])
    tutor = relationship("User", foreign_keys=[tutor_id])
    cancelled_by = relationship("User", foreign_keys=[cancelled_by_id])
    parent_session = relationship("TutoringSession", remote_side=[id], uselist=False)
    materials = relationship(
        "SessionMaterial",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionMaterial.uploaded_at",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("scheduled_start < scheduled_end", name="ck_sessions_window_order"),
        CheckConstraint(
            "status IN ('scheduled', 'confirmed', 'ongoing', 'completed', 'cancelled', 'no-show')",
            name="ck_sessions_status",
        ),
        CheckConstraint("delivery_type IN ('online', 'offline')", name="ck_sessions_delivery_type"),
        CheckConstraint("price IS NULL OR price >= 0", name="ck_sessions_price_non_negative"),
        CheckConstraint(
            "recurrence_frequency IS NULL OR recurrence_frequency IN ('weekly', 'biweekly', 'monthly')",
            name="ck_sessions_recurrence_frequency",
        ),
        Index("idx_sessions_student_start", "student_id", "scheduled_start"),
        Index("idx_sessions_tutor_start", "tutor_id", "scheduled_start"),
        Index("idx_sessions_status_start", "status", "scheduled_start"),
        Index("idx_sessions_window", "scheduled_start", "scheduled_end"),
        Index("idx_sessions_parent", "parent_session_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<TutoringSession {self.id}: student={self.student_id}, "
            f"tutor={self.tutor_id}, window={self.scheduled_start}-{self.scheduled_end}, "
            f"status={self.status}>"
        )

    # ------------------------------------------------------------------ state

    @property
    def status_enum(self) -> SessionStatus:
        return SessionStatus(self.status)

    def can_transition_to(self, target: SessionStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status_enum]

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.student_id, self.tutor_id)

    # ------------------------------------------------------------- durations

    @property
    def actual_duration(self) -> Optional[timedelta]:
        if self.actual_start and self.actual_end:
            return self.actual_end - self.actual_start
        return None

    # ----------------------------------------------------------- transitions
    # Callers validate preconditions; these only write the fields each
    # transition owns.

    def confirm(self) -> None:
        self.status = SessionStatus.CONFIRMED.value
        logger.info(f"Session {self.id} confirmed")

    def start(self, now: datetime) -> None:
        self.status = SessionStatus.ONGOING.value
        self.actual_start = now
        logger.info(f"Session {self.id} started at {now.isoformat()}")

    def complete(self, now: datetime) -> None:
        self.status = SessionStatus.COMPLETED.value
        self.actual_end = now
        logger.info(f"Session {self.id} marked as completed")

    def cancel(self, cancelled_by_user_id: str, reason: str, now: datetime) -> None:
        self.status = SessionStatus.CANCELLED.value
        self.cancelled_by_id = cancelled_by_user_id
        self.cancelled_at = now
        self.cancellation_reason = reason
        logger.info(f"Session {self.id} cancelled by user {cancelled_by_user_id}")

    def mark_no_show(self) -> None:
        self.status = SessionStatus.NO_SHOW.value
        logger.info(f"Session {self.id} marked as no-show")

    def move_window(self, start: datetime, end: datetime) -> None:
        """Replace the scheduled window and re-open confirmation and reminders."""
        self.scheduled_start = start
        self.scheduled_end = end
        self.status = SessionStatus.SCHEDULED.value
        self.reminder_sent = False
        self.reminder_sent_at = None


class SessionMaterial(Base):
    """Append-only lesson material attached to a session."""

    __tablename__ = "session_materials"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    session_id = Column(
        String(26), ForeignKey("tutoring_sessions.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(255), nullable=False)
    url = Column(String(1000), nullable=False)
    material_type = Column(String(20), nullable=False, default=MaterialType.OTHER.value)
    uploaded_by_id = Column(String(26), ForeignKey("users.id"), nullable=False)
    uploaded_at = Column(UTCDateTime(), nullable=False, default=_now_utc)

    session = relationship("TutoringSession", back_populates="materials")

    __table_args__ = (
        CheckConstraint(
            "material_type IN ('document', 'image', 'video', 'link', 'other')",
            name="ck_session_materials_type",
        ),
        Index("idx_session_materials_session", "session_id"),
    )
