# backend/peertutor/models/user.py
"""
User and availability models backing the user directory.

Profile management lives outside the session core; these tables hold just
what scheduling needs: role, contact details for notifications, lesson
statistics, and the tutor's weekly availability template.

Classes:
    User: Student/tutor account as seen by the scheduling core
    TutorAvailability: One weekly slot of a tutor's availability template
"""

import logging

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.config import settings
from ..core.enums import DayOfWeek, RoleName
from ..database import Base, is_sqlite_url

logger = logging.getLogger(__name__)

IS_SQLITE = is_sqlite_url(settings.database_url)


class User(Base):
    """
    Account record used by the scheduling core.

    Attributes:
        id: ULID primary key
        email: Unique email address used for notifications
        role: student, tutor or both
        total_sessions / completed_sessions: Lesson counters
        hours_learning / hours_teaching: Accumulated lesson hours
    """

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    phone_number = Column(String(20), nullable=True)
    role = Column(String(20), nullable=False, default=RoleName.STUDENT.value)
    is_active = Column(Boolean, default=True, nullable=False)

    # Lesson statistics (accumulated when sessions complete)
    total_sessions = Column(Integer, nullable=False, default=0)
    completed_sessions = Column(Integer, nullable=False, default=0)
    hours_learning = Column(Float, nullable=False, default=0.0)
    hours_teaching = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    availability = relationship(
        "TutorAvailability",
        back_populates="tutor",
        cascade="all, delete-orphan",
        order_by="TutorAvailability.start_time",
    )

    __table_args__ = (
        CheckConstraint(
            "role IN ('student', 'tutor', 'both', 'admin')",
            name="ck_users_role",
        ),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email} role={self.role}>"


class TutorAvailability(Base):
    """Weekly availability slot, e.g. monday 09:00-17:00."""

    __tablename__ = "tutor_availability"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(String(10), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")

    tutor = relationship("User", back_populates="availability")

    _table_constraints = [
        CheckConstraint(
            "day_of_week IN ("
            + ", ".join(f"'{day.value}'" for day in DayOfWeek)
            + ")",
            name="ck_tutor_availability_day",
        ),
        Index("idx_tutor_availability_tutor_day", "tutor_id", "day_of_week"),
    ]

    # end_time 00:00 means end of day
    if not IS_SQLITE:
        _table_constraints.append(
            CheckConstraint(
                "CASE "
                "WHEN end_time = '00:00:00' AND start_time <> '00:00:00' THEN TRUE "
                "ELSE start_time < end_time "
                "END",
                name="ck_tutor_availability_order",
            )
        )

    __table_args__ = tuple(_table_constraints)

    def __repr__(self) -> str:
        return f"<TutorAvailability {self.day_of_week} {self.start_time}-{self.end_time}>"
