"""API schemas for role endpoints."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RoleStatusResponse(BaseModel):
    role: str
    is_illustrator: bool = Field(alias="isIllustrator")
    is_admin: bool = Field(alias="isAdmin")

    model_config = ConfigDict(populate_by_name=True)


class RoleUpdateRequest(BaseModel):
    role: str


class RoleUpdateResponse(BaseModel):
    message: str
    role: str
