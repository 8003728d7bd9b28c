"""Three-tier role hierarchy and capability checks."""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from ..errors import AuthenticationRequired, ForbiddenError


class UserRole(str, Enum):
    """Roles ordered consumer < illustrator < administrator."""

    CONSUMER = "consumer"
    ILLUSTRATOR = "illustrator"
    ADMINISTRATOR = "administrator"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]


_ROLE_RANK = {
    UserRole.CONSUMER: 0,
    UserRole.ILLUSTRATOR: 1,
    UserRole.ADMINISTRATOR: 2,
}


def _role_of(user: Any) -> Optional[UserRole]:
    value = getattr(user, "role", None)
    if value is None:
        return None
    try:
        return UserRole(value)
    except ValueError:
        return None


def has_role(user: Any, required: UserRole) -> bool:
    """Return True when the user's rank is at least the required rank."""

    if user is None:
        return False
    role = _role_of(user)
    if role is None:
        return False
    return role.rank >= UserRole(required).rank


def is_illustrator(user: Any) -> bool:
    return has_role(user, UserRole.ILLUSTRATOR)


def is_admin(user: Any) -> bool:
    return has_role(user, UserRole.ADMINISTRATOR)


def require_auth(user: Any) -> Any:
    if user is None:
        raise AuthenticationRequired()
    return user


def require_role(user: Any, required: UserRole) -> Any:
    require_auth(user)
    if not has_role(user, required):
        raise ForbiddenError(
            message=f"Role {UserRole(required).value} required",
            detail={"required_role": UserRole(required).value},
        )
    return user


def can_modify(user: Any, owner_id: Any) -> bool:
    """Owners and administrators may mutate a resource."""

    if user is None:
        return False
    return str(getattr(user, "id", "")) == str(owner_id) or _role_of(user) == UserRole.ADMINISTRATOR


def require_owner_or_admin(user: Any, owner_id: Any) -> Any:
    require_auth(user)
    if not can_modify(user, owner_id):
        raise ForbiddenError()
    return user


__all__ = [
    "UserRole",
    "can_modify",
    "has_role",
    "is_admin",
    "is_illustrator",
    "require_auth",
    "require_owner_or_admin",
    "require_role",
]
