"""Role and capability checks applied at every mutating entry point."""

from .roles import (
    UserRole,
    can_modify,
    has_role,
    is_admin,
    is_illustrator,
    require_auth,
    require_owner_or_admin,
    require_role,
)

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
