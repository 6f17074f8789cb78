# backend/peertutor/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets a service bound to its own database session; the
realtime bus is process-wide.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.realtime import RealtimeBus, get_realtime_bus
from ...services.session_lifecycle_service import SessionLifecycleService
from .database import get_db


def get_realtime_bus_dep() -> RealtimeBus:
    return get_realtime_bus()


def get_session_lifecycle_service(
    db: Session = Depends(get_db),
    realtime_bus: RealtimeBus = Depends(get_realtime_bus_dep),
) -> SessionLifecycleService:
    """
    Get session lifecycle service instance.

    Args:
        db: Database session
        realtime_bus: Bus for status-change pushes

    Returns:
        SessionLifecycleService instance
    """
    return SessionLifecycleService(db, realtime_bus=realtime_bus)
