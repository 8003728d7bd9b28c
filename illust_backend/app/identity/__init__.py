"""Identity bridge: external principals mapped onto local users."""

from .models import ExternalPrincipal, NewUser, User
from .provider import IdentityProvider, JWTSessionIdentityProvider
from .repository import PostgresUserRepository, UserRepository
from .service import IdentityService

__all__ = [
    "ExternalPrincipal",
    "IdentityProvider",
    "IdentityService",
    "JWTSessionIdentityProvider",
    "NewUser",
    "PostgresUserRepository",
    "User",
    "UserRepository",
]
