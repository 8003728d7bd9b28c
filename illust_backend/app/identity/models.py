"""Domain models for local users and external identity principals."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..access.roles import UserRole


class ExternalPrincipal(BaseModel):
    """Authenticated principal as reported by the identity provider."""

    external_id: str
    primary_email: Optional[str] = None
    display_name: Optional[str] = None
    email_verified: bool = False

    model_config = ConfigDict(frozen=True)


class User(BaseModel):
    """Local user record mirrored from the identity provider on first sight."""

    id: str
    external_id: str
    email: str = ""
    name: Optional[str] = None
    role: UserRole = UserRole.CONSUMER
    is_verified: bool = False
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None
    social_links: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @property
    def is_illustrator(self) -> bool:
        return self.role == UserRole.ILLUSTRATOR

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMINISTRATOR


class NewUser(BaseModel):
    """Values used when creating a user on first sight."""

    external_id: str
    email: str = ""
    name: Optional[str] = None
    role: UserRole = UserRole.CONSUMER
    is_verified: bool = False

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_principal(cls, principal: ExternalPrincipal) -> "NewUser":
        return cls(
            external_id=principal.external_id,
            email=principal.primary_email or "",
            name=principal.display_name,
            role=UserRole.CONSUMER,
            is_verified=principal.email_verified,
        )
