"""API routes for the caller's favorites, download history and the taxonomy."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..errors import MarketplaceError
from ..schemas.illustrations import CategoryListResponse, LibraryResponse, TagListResponse
from ..services.content import get_content_service
from .dependencies import get_current_user

router = APIRouter(prefix="/api", tags=["library"])


@router.get("/favorites", response_model=LibraryResponse)
def list_favorites(*, current_user=Depends(get_current_user)) -> LibraryResponse:
    service = get_content_service()
    try:
        items = service.list_favorites(current_user)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return LibraryResponse.from_items(items)


@router.get("/downloads", response_model=LibraryResponse)
def list_downloads(*, current_user=Depends(get_current_user)) -> LibraryResponse:
    service = get_content_service()
    try:
        items = service.list_downloads(current_user)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return LibraryResponse.from_items(items)


@router.get("/categories", response_model=CategoryListResponse)
def list_categories() -> CategoryListResponse:
    service = get_content_service()
    try:
        categories = service.list_categories()
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return CategoryListResponse.from_categories(categories)


@router.get("/tags", response_model=TagListResponse)
def list_tags() -> TagListResponse:
    service = get_content_service()
    try:
        tags = service.list_tags()
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return TagListResponse.from_tags(tags)
