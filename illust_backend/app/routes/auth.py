"""API routes for the caller's role."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..access import UserRole
from ..errors import MarketplaceError
from ..schemas.auth import RoleStatusResponse, RoleUpdateRequest, RoleUpdateResponse
from ..services.identity import get_identity_service
from .dependencies import get_current_user

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/role", response_model=RoleStatusResponse)
def get_role(*, current_user=Depends(get_current_user)) -> RoleStatusResponse:
    role = UserRole(current_user.role)
    return RoleStatusResponse(
        role=role.value,
        is_illustrator=role == UserRole.ILLUSTRATOR,
        is_admin=role == UserRole.ADMINISTRATOR,
    )


@router.post("/role", response_model=RoleUpdateResponse)
def update_role(
    payload: RoleUpdateRequest,
    *,
    current_user=Depends(get_current_user),
) -> RoleUpdateResponse:
    service = get_identity_service()
    try:
        updated = service.request_role(current_user, payload.role)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return RoleUpdateResponse(
        message="Registered as illustrator",
        role=UserRole(updated.role).value,
    )
