"""API routes for browsing, authoring, favoriting and downloading illustrations."""
from __future__ import annotations

import os
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from ..content import ClientInfo, UploadedImage, build_query
from ..errors import MarketplaceError
from ..schemas.illustrations import (
    CreatorStatsResponse,
    DownloadResponse,
    IllustrationDetailResponse,
    IllustrationListResponse,
    IllustrationMutationResponse,
    IllustrationOut,
    IllustrationUpdateRequest,
    MessageResponse,
)
from ..services.content import get_content_service
from .dependencies import client_info, get_current_user, get_optional_current_user

router = APIRouter(prefix="/api/illustrations", tags=["illustrations"])


def _uploaded_image(image: Optional[UploadFile]) -> Optional[UploadedImage]:
    if image is None or not image.filename:
        return None
    size = image.size
    if size is None:
        image.file.seek(0, os.SEEK_END)
        size = image.file.tell()
        image.file.seek(0)
    return UploadedImage(filename=image.filename, content_type=image.content_type, size=size)


@router.get("", response_model=IllustrationListResponse)
def list_illustrations(
    page: int = Query(1),
    limit: int = Query(20),
    category_id: Optional[str] = Query(None, alias="categoryId"),
    tag_id: Optional[str] = Query(None, alias="tagId"),
    search: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    status_filter: Optional[str] = Query(None, alias="status"),
) -> IllustrationListResponse:
    service = get_content_service()
    try:
        query = build_query(
            page=page,
            limit=limit,
            category_id=category_id,
            tag_id=tag_id,
            search=search,
            status=status_filter or "published",
            sort_by=sort_by,
            sort_order=sort_order,
        )
        result = service.list_illustrations(query)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return IllustrationListResponse.from_page(result)


@router.post("", response_model=IllustrationMutationResponse, status_code=status.HTTP_201_CREATED)
def create_illustration(
    image: Optional[UploadFile] = File(None),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category_id: Optional[str] = Form(None, alias="categoryId"),
    tags: Optional[str] = Form(None),
    is_free: Optional[str] = Form(None, alias="isFree"),
    status_value: Optional[str] = Form(None, alias="status"),
    *,
    current_user=Depends(get_current_user),
) -> IllustrationMutationResponse:
    service = get_content_service()
    try:
        created = service.create_illustration(
            current_user,
            title=title,
            upload=_uploaded_image(image),
            description=description,
            category_id=category_id,
            tags=tags,
            is_free=(is_free or "").lower() == "true",
            status=status_value,
        )
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return IllustrationMutationResponse(
        message="Illustration published",
        illustration=IllustrationOut.from_domain(created),
    )


@router.get("/my", response_model=IllustrationListResponse)
def list_my_illustrations(
    page: int = Query(1),
    limit: int = Query(20),
    status_filter: Optional[str] = Query(None, alias="status"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    *,
    current_user=Depends(get_current_user),
) -> IllustrationListResponse:
    service = get_content_service()
    try:
        result = service.list_my_illustrations(
            current_user,
            page=page,
            limit=limit,
            status=status_filter,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return IllustrationListResponse.from_page(result)


@router.get("/my/stats", response_model=CreatorStatsResponse)
def my_stats(*, current_user=Depends(get_current_user)) -> CreatorStatsResponse:
    service = get_content_service()
    try:
        stats = service.creator_stats(current_user)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return CreatorStatsResponse.from_stats(stats)


@router.get("/{illustration_id}", response_model=IllustrationDetailResponse)
def get_illustration(
    illustration_id: str,
    *,
    current_user=Depends(get_optional_current_user),
) -> IllustrationDetailResponse:
    service = get_content_service()
    try:
        detail = service.get_illustration(illustration_id, current_user)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return IllustrationDetailResponse(
        illustration=IllustrationOut.from_domain(detail.illustration),
        is_favorited=detail.is_favorited,
    )


@router.put("/{illustration_id}", response_model=IllustrationMutationResponse)
def update_illustration(
    illustration_id: str,
    payload: IllustrationUpdateRequest,
    *,
    current_user=Depends(get_current_user),
) -> IllustrationMutationResponse:
    service = get_content_service()
    try:
        updated = service.update_illustration(current_user, illustration_id, payload.to_changes())
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return IllustrationMutationResponse(
        message="Illustration updated",
        illustration=IllustrationOut.from_domain(updated),
    )


@router.delete("/{illustration_id}", response_model=MessageResponse)
def delete_illustration(
    illustration_id: str,
    *,
    current_user=Depends(get_current_user),
) -> MessageResponse:
    service = get_content_service()
    try:
        service.delete_illustration(current_user, illustration_id)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return MessageResponse(message="Illustration deleted")


@router.post("/{illustration_id}/favorite", response_model=MessageResponse)
def add_favorite(
    illustration_id: str,
    *,
    current_user=Depends(get_current_user),
) -> MessageResponse:
    service = get_content_service()
    try:
        service.add_favorite(current_user, illustration_id)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return MessageResponse(message="Added to favorites")


@router.delete("/{illustration_id}/favorite", response_model=MessageResponse)
def remove_favorite(
    illustration_id: str,
    *,
    current_user=Depends(get_current_user),
) -> MessageResponse:
    service = get_content_service()
    try:
        service.remove_favorite(current_user, illustration_id)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return MessageResponse(message="Removed from favorites")


@router.post("/{illustration_id}/download", response_model=DownloadResponse)
def download_illustration(
    illustration_id: str,
    *,
    client: ClientInfo = Depends(client_info),
    current_user=Depends(get_current_user),
) -> DownloadResponse:
    service = get_content_service()
    try:
        grant = service.download_illustration(current_user, illustration_id, client)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return DownloadResponse.from_grant(grant)
