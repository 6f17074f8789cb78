# backend/peertutor/api/dependencies/auth.py
"""
Caller identity dependency.

Authentication happens upstream; the gateway forwards the verified user
id in ``X-User-Id`` and, optionally, the role in ``X-User-Role``.
"""

import logging
from typing import Optional

from fastapi import Header

from ...core.enums import RoleName
from ...core.exceptions import UnauthorizedException, ValidationException
from ...principal import CallerPrincipal

logger = logging.getLogger(__name__)


def get_current_principal(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> CallerPrincipal:
    """
    Resolve the caller from request headers.

    Raises:
        HTTPException: 401 when the user id header is missing, 400 for an
            unknown role
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        logger.debug("Request without X-User-Id header")
        raise UnauthorizedException(
            "Authentication required", code="AUTH_REQUIRED"
        ).to_http_exception()

    role: Optional[RoleName] = None
    if x_user_role:
        try:
            role = RoleName(x_user_role.strip().lower())
        except ValueError:
            raise ValidationException(
                f"Unknown role: {x_user_role}", code="INVALID_ROLE"
            ).to_http_exception()
    return CallerPrincipal(user_id=user_id, role=role)

