# backend/peertutor/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .auth import get_current_principal
from .database import get_db
from .services import get_realtime_bus_dep, get_session_lifecycle_service

__all__ = [
    "get_current_principal",
    "get_db",
    "get_realtime_bus_dep",
    "get_session_lifecycle_service",
]
