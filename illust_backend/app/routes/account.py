"""API route for deleting the caller's account."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..errors import MarketplaceError
from ..schemas.account import AccountDeletionResponse
from ..services.content import get_account_service
from .dependencies import get_current_user

router = APIRouter(prefix="/api/account", tags=["account"])


@router.post("/delete", response_model=AccountDeletionResponse)
def delete_account(*, current_user=Depends(get_current_user)) -> AccountDeletionResponse:
    service = get_account_service()
    try:
        result = service.delete_account(current_user)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return AccountDeletionResponse.from_result(result)
