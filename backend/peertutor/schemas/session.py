# backend/peertutor/schemas/session.py
"""
Pydantic schemas for tutoring session operations.

Request models validate shape and lengths only; window ordering, future
start and every status rule are enforced by SessionLifecycleService so the
same checks apply to non-HTTP callers.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import Field, model_validator

from ..core.constants import (
    MAX_DESCRIPTION_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_REASON_LENGTH,
    MAX_SUBJECT_LENGTH,
)
from ..models.session import TutoringSession
from .base import StrictModel, StrictRequestModel

DeliveryTypeLiteral = Literal["online", "offline"]
FrequencyLiteral = Literal["weekly", "biweekly", "monthly"]
MaterialTypeLiteral = Literal["document", "image", "video", "link", "other"]
StatusLiteral = Literal["scheduled", "confirmed", "ongoing", "completed", "cancelled", "no-show"]


class Coordinates(StrictRequestModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class LocationInput(StrictRequestModel):
    """Where an offline session happens, or extra details for an online one."""

    details: Optional[str] = Field(None, max_length=1000)
    address: Optional[str] = Field(None, max_length=500)
    coordinates: Optional[Coordinates] = None


class RecurrenceInput(StrictRequestModel):
    is_recurring: bool = False
    frequency: Optional[FrequencyLiteral] = None
    end_date: Optional[date] = Field(
        None, description="Occurrences start strictly before midnight UTC of this date"
    )

    @model_validator(mode="after")
    def _require_rule_when_recurring(self) -> "RecurrenceInput":
        if self.is_recurring and (self.frequency is None or self.end_date is None):
            raise ValueError("frequency and end_date are required for recurring sessions")
        return self


class SessionBookRequest(StrictRequestModel):
    """Book one session, or a series when ``recurrence.is_recurring`` is set."""

    tutor_id: str = Field(..., min_length=1, max_length=26)
    subject: str = Field(..., min_length=1, max_length=MAX_SUBJECT_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    scheduled_start: datetime
    scheduled_end: datetime
    delivery_type: DeliveryTypeLiteral
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    location: Optional[LocationInput] = None
    recurrence: Optional[RecurrenceInput] = None


class SessionRescheduleRequest(StrictRequestModel):
    scheduled_start: datetime
    scheduled_end: datetime
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class SessionCancelRequest(StrictRequestModel):
    reason: str = Field(..., min_length=1, max_length=MAX_REASON_LENGTH)


class SessionEndRequest(StrictRequestModel):
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)


class MaterialCreateRequest(StrictRequestModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=1000)
    type: MaterialTypeLiteral = "other"


# Responses


class MaterialResponse(StrictModel):
    id: str
    name: str
    url: str
    type: str
    uploaded_by: str
    uploaded_at: datetime


class LocationResponse(StrictModel):
    details: Optional[str] = None
    meeting_link: Optional[str] = None
    address: Optional[str] = None
    coordinates: Optional[dict] = None


class NotesResponse(StrictModel):
    student: Optional[str] = None
    tutor: Optional[str] = None
    admin: Optional[str] = None


class ReminderResponse(StrictModel):
    sent: bool
    sent_at: Optional[datetime] = None


class RecurrenceResponse(StrictModel):
    is_recurring: bool
    frequency: Optional[str] = None
    end_date: Optional[date] = None
    parent_session_id: Optional[str] = None


class CancellationResponse(StrictModel):
    cancelled_by: str
    cancelled_at: datetime
    reason: Optional[str] = None


class SessionResponse(StrictModel):
    """Full session as seen by a participant."""

    id: str
    student_id: str
    tutor_id: str
    subject: str
    description: Optional[str] = None
    scheduled_start: datetime
    scheduled_end: datetime
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    status: StatusLiteral
    delivery_type: DeliveryTypeLiteral
    location: LocationResponse
    price: Optional[Decimal] = None
    materials: List[MaterialResponse] = Field(default_factory=list)
    notes: NotesResponse
    reminder: ReminderResponse
    recurrence: RecurrenceResponse
    cancellation: Optional[CancellationResponse] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_session(cls, session: TutoringSession) -> "SessionResponse":
        coordinates = None
        if session.latitude is not None and session.longitude is not None:
            coordinates = {"lat": session.latitude, "lng": session.longitude}
        cancellation = None
        if session.cancelled_at is not None:
            cancellation = CancellationResponse(
                cancelled_by=session.cancelled_by_id,
                cancelled_at=session.cancelled_at,
                reason=session.cancellation_reason,
            )
        return cls(
            id=session.id,
            student_id=session.student_id,
            tutor_id=session.tutor_id,
            subject=session.subject,
            description=session.description,
            scheduled_start=session.scheduled_start,
            scheduled_end=session.scheduled_end,
            actual_start=session.actual_start,
            actual_end=session.actual_end,
            status=session.status,
            delivery_type=session.delivery_type,
            location=LocationResponse(
                details=session.location_details,
                meeting_link=session.meeting_link,
                address=session.address,
                coordinates=coordinates,
            ),
            price=session.price,
            materials=[
                MaterialResponse(
                    id=material.id,
                    name=material.name,
                    url=material.url,
                    type=material.material_type,
                    uploaded_by=material.uploaded_by_id,
                    uploaded_at=material.uploaded_at,
                )
                for material in session.materials
            ],
            notes=NotesResponse(
                student=session.student_note,
                tutor=session.tutor_note,
                admin=session.admin_note,
            ),
            reminder=ReminderResponse(
                sent=bool(session.reminder_sent), sent_at=session.reminder_sent_at
            ),
            recurrence=RecurrenceResponse(
                is_recurring=bool(session.is_recurring),
                frequency=session.recurrence_frequency,
                end_date=session.recurrence_end_date,
                parent_session_id=session.parent_session_id,
            ),
            cancellation=cancellation,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )


class SessionBookResponse(StrictModel):
    sessions: List[SessionResponse]
    count: int


class PaginationMeta(StrictModel):
    current: int
    pages: int
    total: int
    per_page: int
    has_next: bool
    has_prev: bool


class SessionListResponse(StrictModel):
    sessions: List[SessionResponse]
    pagination: PaginationMeta


class SessionEndResponse(StrictModel):
    session: SessionResponse
    duration_minutes: float

