"""Application wiring for the identity bridge and current-user resolution."""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from ... import app_context
from ..access.roles import require_auth
from ..identity import IdentityService, PostgresUserRepository, User


@lru_cache(maxsize=1)
def get_identity_service() -> IdentityService:
    return IdentityService(
        repository=PostgresUserRepository(),
        provider=app_context.get_identity_provider(),
    )


def get_optional_current_user(session_token: Optional[str] = None) -> Optional[User]:
    return get_identity_service().resolve_principal(session_token)


def get_current_user(session_token: Optional[str] = None) -> User:
    return require_auth(get_optional_current_user(session_token))


__all__ = ["get_current_user", "get_identity_service", "get_optional_current_user"]
