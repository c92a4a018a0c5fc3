"""
Authorization policy: who may act on which record.

The policy is a pure function of the principal and the owner of the target
record. Role dispatch is a two-variant check on ``Role``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from taskboard.errors import Forbidden


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated identity attached to a request."""

    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def can_access(principal: Principal, owner_id: str) -> bool:
    """Administrators may act on anything; everyone else only on their own records."""
    if principal.role is Role.ADMIN:
        return True
    return principal.user_id == owner_id


def require_admin(principal: Principal) -> None:
    if principal.role is not Role.ADMIN:
        raise Forbidden()
