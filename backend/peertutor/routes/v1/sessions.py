# backend/peertutor/routes/v1/sessions.py
"""
Tutoring session routes - API v1

Versioned session endpoints under /api/v1/sessions.
All business logic delegated to SessionLifecycleService.

Endpoints:
    POST /book - Book a session or a recurring series
    GET / - List the caller's sessions with filters and pagination
    GET /{session_id} - Full session details
    PUT /{session_id}/reschedule - Move to a new window
    PUT /{session_id}/cancel - Cancel with a reason
    PUT /{session_id}/confirm - Tutor confirms
    PUT /{session_id}/start - Start (up to 15 minutes early)
    PUT /{session_id}/end - Complete an ongoing session
    PUT /{session_id}/no-show - Record a no-show
    POST /{session_id}/materials - Attach a material
"""

import asyncio
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.params import Path

from ...api.dependencies import get_current_principal, get_session_lifecycle_service
from ...core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, ULID_PATH_PATTERN
from ...core.exceptions import DomainException
from ...principal import CallerPrincipal
from ...schemas.session import (
    MaterialCreateRequest,
    MaterialResponse,
    PaginationMeta,
    SessionBookRequest,
    SessionBookResponse,
    SessionCancelRequest,
    SessionEndRequest,
    SessionEndResponse,
    SessionListResponse,
    SessionRescheduleRequest,
    SessionResponse,
)
from ...services.session_lifecycle_service import SessionLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions-v1"])

SESSION_ID_PATH = Path(..., description="Session ULID", pattern=ULID_PATH_PATTERN)


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post(
    "/book",
    response_model=SessionBookResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"description": "Tutor not found"},
        409: {"description": "Window overlaps an active session"},
        422: {"description": "Tutor unavailable at the requested time"},
    },
)
async def book_session(
    payload: SessionBookRequest = Body(...),
    principal: CallerPrincipal = Depends(get_current_principal),
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
) -> SessionBookResponse:
    """Book a session as the student; a recurring request books the whole series."""
    try:
        sessions = await asyncio.to_thread(service.book, principal.user_id, payload)
    except DomainException as e:
        handle_domain_exception(e)
    return SessionBookResponse(
        sessions=[SessionResponse.from_session(s) for s in sessions],
        count=len(sessions),
    )


@router.get("", response_model=SessionListResponse)
@router.get("/", response_model=SessionListResponse, include_in_schema=False)
async def list_sessions(
    role: Optional[str] = Query(None, description="student or tutor"),
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    principal: CallerPrincipal = Depends(get_current_principal),
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
) -> SessionListResponse:
    try:
        result = await asyncio.to_thread(
            service.list_sessions,
            principal.user_id,
            role,
            status_filter,
            page,
            per_page,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return SessionListResponse(
        sessions=[SessionResponse.from_session(s) for s in result.items],
        pagination=PaginationMeta(
            current=result.page,
            pages=result.pages,
            total=result.total,
            per_page=result.per_page,
            has_next=result.has_next,
            has_prev=result.has_prev,
        ),
    )


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str = SESSION_ID_PATH,
    principal: CallerPrincipal = Depends(get_current_principal),
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
) -> SessionResponse:
    try:
        session = await asyncio.to_thread(service.get_session, session_id, principal.user_id)
    except DomainException as e:
        handle_domain_exception(e)
    return SessionResponse.from_session(session)


@router.put("/{session_id}/reschedule", response_model=SessionResponse)
async def reschedule_session(
    session_id: str = SESSION_ID_PATH,
    payload: SessionRescheduleRequest = Body(...),
    principal: CallerPrincipal = Depends(get_current_principal),
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
) -> SessionResponse:
    """Move the session to a new window; it goes back to scheduled."""
    try:
        session = await asyncio.to_thread(
            service.reschedule,
            session_id,
            principal.user_id,
            payload.scheduled_start,
            payload.scheduled_end,
            payload.reason,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return SessionResponse.from_session(session)


@router.put("/{session_id}/cancel", response_model=SessionResponse)
async def cancel_session(
    session_id: str = SESSION_ID_PATH,
    payload: SessionCancelRequest = Body(...),
    principal: CallerPrincipal = Depends(get_current_principal),
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
) -> SessionResponse:
    try:
        session = await asyncio.to_thread(
            service.cancel, session_id, principal.user_id, payload.reason
        )
    except DomainException as e:
        handle_domain_exception(e)
    return SessionResponse.from_session(session)


@router.put("/{session_id}/confirm", response_model=SessionResponse)
async def confirm_session(
    session_id: str = SESSION_ID_PATH,
    principal: CallerPrincipal = Depends(get_current_principal),
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
) -> SessionResponse:
    """Tutor-only."""
    try:
        session = await asyncio.to_thread(service.confirm, session_id, principal.user_id)
    except DomainException as e:
        handle_domain_exception(e)
    return SessionResponse.from_session(session)


@router.put("/{session_id}/start", response_model=SessionResponse)
async def start_session(
    session_id: str = SESSION_ID_PATH,
    principal: CallerPrincipal = Depends(get_current_principal),
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
) -> SessionResponse:
    try:
        session = await asyncio.to_thread(service.start, session_id, principal.user_id)
    except DomainException as e:
        handle_domain_exception(e)
    return SessionResponse.from_session(session)


@router.put("/{session_id}/end", response_model=SessionEndResponse)
async def end_session(
    session_id: str = SESSION_ID_PATH,
    payload: Optional[SessionEndRequest] = Body(None),
    principal: CallerPrincipal = Depends(get_current_principal),
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
) -> SessionEndResponse:
    notes = payload.notes if payload else None
    try:
        result = await asyncio.to_thread(service.end, session_id, principal.user_id, notes)
    except DomainException as e:
        handle_domain_exception(e)
    return SessionEndResponse(
        session=SessionResponse.from_session(result.session),
        duration_minutes=round(result.duration_minutes, 2),
    )


@router.put("/{session_id}/no-show", response_model=SessionResponse)
async def mark_no_show(
    session_id: str = SESSION_ID_PATH,
    principal: CallerPrincipal = Depends(get_current_principal),
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
) -> SessionResponse:
    try:
        session = await asyncio.to_thread(service.mark_no_show, session_id, principal.user_id)
    except DomainException as e:
        handle_domain_exception(e)
    return SessionResponse.from_session(session)


@router.post(
    "/{session_id}/materials",
    response_model=MaterialResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_material(
    session_id: str = SESSION_ID_PATH,
    payload: MaterialCreateRequest = Body(...),
    principal: CallerPrincipal = Depends(get_current_principal),
    service: SessionLifecycleService = Depends(get_session_lifecycle_service),
) -> MaterialResponse:
    try:
        material = await asyncio.to_thread(
            service.add_material,
            session_id,
            principal.user_id,
            payload.name,
            payload.url,
            payload.type,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return MaterialResponse(
        id=material.id,
        name=material.name,
        url=material.url,
        type=material.material_type,
        uploaded_by=material.uploaded_by_id,
        uploaded_at=material.uploaded_at,
    )
