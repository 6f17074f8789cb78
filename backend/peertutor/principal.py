"""Caller identity resolved from the identity provider's headers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .core.enums import RoleName


@dataclass(frozen=True)
class CallerPrincipal:
    """The user making a request; ids are trusted and opaque."""

    user_id: str
    role: Optional[RoleName] = None

    @property
    def id(self) -> str:
        return self.user_id
