"""Bridge between the external identity provider and local user records."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..access.roles import UserRole
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationFailed
from .models import NewUser, User
from .provider import IdentityProvider
from .repository import UserRepository

logger = logging.getLogger("identity")


@dataclass
class IdentityService:
    """Resolves the calling principal to a local user and manages role upgrades."""

    repository: UserRepository
    provider: IdentityProvider

    def resolve_principal(self, session_token: Optional[str]) -> Optional[User]:
        """Return the local user for the session, creating it on first sight.

        Any persistence failure yields ``None`` so callers treat the request as
        unauthenticated.
        """

        principal = self.provider.get_principal(session_token)
        if principal is None:
            return None

        try:
            existing = self.repository.get_by_external_id(principal.external_id)
            if existing is not None:
                return existing
            user = self.repository.create_or_fetch(NewUser.from_principal(principal))
        except Exception:
            logger.exception("Failed to resolve local user for %s", principal.external_id)
            return None

        logger.info("Resolved user %s for principal %s", user.id, principal.external_id)
        return user

    def request_role(self, user: User, requested: str) -> User:
        try:
            role = UserRole(requested)
        except ValueError as exc:
            raise ValidationFailed(message="Invalid role") from exc

        if role == UserRole.ADMINISTRATOR:
            raise ForbiddenError(message="Cannot request admin role")
        if role == UserRole.CONSUMER:
            raise ValidationFailed(message="Role downgrade is not supported")
        if UserRole(user.role) != UserRole.CONSUMER:
            raise ConflictError(
                message="Already registered as illustrator",
                status_code=400,
            )

        updated = self.repository.update_role(user.id, UserRole.ILLUSTRATOR)
        if updated is None:
            raise NotFoundError(message="User not found")
        logger.info("User %s upgraded to %s", user.id, updated.role.value)
        return updated


__all__ = ["IdentityService"]
