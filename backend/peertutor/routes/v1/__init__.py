# backend/peertutor/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import health, sessions

__all__ = ["health", "sessions"]
