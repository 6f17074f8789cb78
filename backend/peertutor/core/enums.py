# backend/peertutor/core/enums.py
"""
Core enums for the peer tutoring platform.

Session status and delivery enums live with the session model; this module
holds the account-level values shared by the identity and directory layers.
"""

from enum import Enum


class RoleName(str, Enum):
    """
    Account roles as resolved by the identity provider.

    ``BOTH`` covers users who tutor some subjects and study others.
    """

    STUDENT = "student"
    TUTOR = "tutor"
    BOTH = "both"
    ADMIN = "admin"

    @property
    def can_tutor(self) -> bool:
        return self in (RoleName.TUTOR, RoleName.BOTH)


class DayOfWeek(str, Enum):
    """Weekday names used by tutor availability templates (Monday == 0)."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_weekday(cls, weekday: int) -> "DayOfWeek":
        return list(cls)[weekday]
