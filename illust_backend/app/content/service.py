"""Illustration catalogue operations: listing, authoring, favorites and downloads."""
from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Protocol

from pydantic import ValidationError

from ..access.roles import UserRole, require_auth, require_owner_or_admin, require_role
from ..errors import ConflictError, NotFoundError, UpstreamFailure, ValidationFailed
from .models import (
    Category,
    ClientInfo,
    CreatorStats,
    DownloadGrant,
    Illustration,
    IllustrationChanges,
    IllustrationDetail,
    IllustrationPage,
    IllustrationQuery,
    IllustrationStatus,
    LibraryItem,
    NewIllustration,
    Pagination,
    SortOrder,
    Tag,
    UploadedImage,
)
from .repository import SORT_COLUMNS, ContentRepository

logger = logging.getLogger("content")

ALLOWED_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/webp"})
MAX_UPLOAD_BYTES = 20 * 1024 * 1024
RECENT_WINDOW = timedelta(days=30)
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100

_CAMEL_SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "viewCount": "view_count",
    "downloadCount": "download_count",
    "favoriteCount": "favorite_count",
}


class DownloadEntitlement(Protocol):
    """Decides whether a user may download paid illustrations."""

    def assert_download_entitled(self, user: Any, now: Optional[datetime] = None) -> Any:
        ...


def normalize_sort_field(value: Optional[str], default: str) -> str:
    if not value:
        return default
    candidate = _CAMEL_SORT_FIELDS.get(value, value)
    if candidate not in SORT_COLUMNS:
        raise ValidationFailed(message=f"Unsupported sort field: {value}")
    return candidate


def build_query(
    *,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    category_id: Optional[str] = None,
    tag_id: Optional[str] = None,
    search: Optional[str] = None,
    status: Optional[str] = IllustrationStatus.PUBLISHED.value,
    owner_id: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    default_sort: str = "created_at",
) -> IllustrationQuery:
    """Validate raw listing parameters into an ``IllustrationQuery``."""

    page = DEFAULT_PAGE if page is None else page
    limit = DEFAULT_LIMIT if limit is None else limit
    if page < 1:
        raise ValidationFailed(message="page must be >= 1")
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationFailed(message=f"limit must be between 1 and {MAX_LIMIT}")

    sort_field = normalize_sort_field(sort_by, default_sort)
    try:
        direction = SortOrder((sort_order or SortOrder.DESC.value).lower())
    except ValueError as exc:
        raise ValidationFailed(message=f"Unsupported sort order: {sort_order}") from exc
    try:
        resolved_status = IllustrationStatus(status) if status else None
    except ValueError as exc:
        raise ValidationFailed(message=f"Unsupported status: {status}") from exc

    try:
        return IllustrationQuery(
            page=page,
            limit=limit,
            category_id=category_id or None,
            tag_id=tag_id or None,
            search=(search or "").strip() or None,
            status=resolved_status,
            owner_id=owner_id,
            sort_by=sort_field,
            sort_order=direction,
        )
    except ValidationError as exc:
        raise ValidationFailed(message="Invalid listing parameters") from exc


def parse_tag_ids(raw: Optional[str]) -> List[str]:
    """Decode the JSON array of tag ids sent with an upload; bad input means no tags."""

    if not raw:
        return []
    try:
        decoded = json.loads(raw)
    except ValueError:
        logger.warning("Ignoring malformed tags payload %r", raw)
        return []
    if not isinstance(decoded, list):
        logger.warning("Ignoring non-list tags payload %r", raw)
        return []
    return [str(tag_id) for tag_id in decoded if tag_id]


def download_file_name(illustration: Illustration) -> str:
    extension = "jpg"
    if illustration.mime_type and "/" in illustration.mime_type:
        extension = illustration.mime_type.split("/", 1)[1] or "jpg"
    return f"{illustration.title}.{extension}"


@dataclass
class ContentService:
    """Coordinates illustration reads and writes with role and billing checks."""

    repository: ContentRepository
    entitlement: DownloadEntitlement
    empty_catalog_on_failure: bool = False
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(timezone.utc))

    def _now(self) -> datetime:
        return self.clock()

    def _page(self, query: IllustrationQuery) -> IllustrationPage:
        illustrations, total = self.repository.list_illustrations(query)
        return IllustrationPage(
            illustrations=illustrations,
            pagination=Pagination(
                page=query.page,
                limit=query.limit,
                total=total,
                total_pages=math.ceil(total / query.limit),
            ),
        )

    def list_illustrations(self, query: IllustrationQuery) -> IllustrationPage:
        return self._page(query)

    def list_my_illustrations(
        self,
        user: Any,
        *,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        status: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> IllustrationPage:
        require_auth(user)
        query = build_query(
            page=page,
            limit=limit,
            status=status,
            owner_id=str(user.id),
            sort_by=sort_by,
            sort_order=sort_order,
            default_sort="updated_at",
        )
        return self._page(query)

    def get_illustration(self, illustration_id: str, viewer: Any = None) -> IllustrationDetail:
        illustration = self.repository.get_illustration(
            illustration_id, status=IllustrationStatus.PUBLISHED
        )
        if illustration is None:
            raise NotFoundError(message="Illustration not found")

        self.repository.increment_view_count(illustration_id)
        illustration = illustration.model_copy(update={"view_count": illustration.view_count + 1})

        is_favorited = False
        if viewer is not None:
            is_favorited = self.repository.is_favorited(str(viewer.id), illustration_id)
        return IllustrationDetail(illustration=illustration, is_favorited=is_favorited)

    def create_illustration(
        self,
        user: Any,
        *,
        title: Optional[str],
        upload: Optional[UploadedImage],
        description: Optional[str] = None,
        category_id: Optional[str] = None,
        tags: Optional[str] = None,
        is_free: bool = False,
        status: Optional[str] = None,
    ) -> Illustration:
        require_role(user, UserRole.ILLUSTRATOR)

        if upload is None or not upload.filename:
            raise ValidationFailed(message="An image is required")
        if not title or not title.strip():
            raise ValidationFailed(message="A title is required")
        if upload.content_type not in ALLOWED_MIME_TYPES:
            raise ValidationFailed(message="Unsupported image format")
        if upload.size > MAX_UPLOAD_BYTES:
            raise ValidationFailed(message="Image is too large (max 20MB)")

        try:
            resolved_status = IllustrationStatus(status) if status else IllustrationStatus.DRAFT
        except ValueError as exc:
            raise ValidationFailed(message="Invalid status") from exc

        # Storage upload is not wired up; URLs are placeholders keyed by upload time.
        stamp = int(time.time() * 1000)
        new = NewIllustration(
            user_id=str(user.id),
            title=title.strip(),
            description=(description or "").strip() or None,
            image_url=f"https://example.com/images/{stamp}-{upload.filename}",
            thumbnail_url=f"https://example.com/thumbnails/{stamp}-{upload.filename}",
            file_size=upload.size,
            mime_type=upload.content_type,
            is_free=is_free,
            status=resolved_status,
            category_id=category_id or None,
            tag_ids=parse_tag_ids(tags),
        )
        created = self.repository.create_illustration(new)
        logger.info("User %s created illustration %s", user.id, created.id)
        return created

    def _owned_illustration(self, user: Any, illustration_id: str) -> Illustration:
        require_auth(user)
        illustration = self.repository.get_illustration(illustration_id)
        if illustration is None:
            raise NotFoundError(message="Illustration not found")
        require_owner_or_admin(user, illustration.user_id)
        return illustration

    def update_illustration(self, user: Any, illustration_id: str, changes: IllustrationChanges) -> Illustration:
        self._owned_illustration(user, illustration_id)
        if changes.title is not None and not changes.title.strip():
            raise ValidationFailed(message="A title is required")

        updated = self.repository.update_illustration(illustration_id, changes)
        if updated is None:
            raise NotFoundError(message="Illustration not found")
        logger.info("User %s updated illustration %s", user.id, illustration_id)
        return updated

    def delete_illustration(self, user: Any, illustration_id: str) -> None:
        self._owned_illustration(user, illustration_id)
        if not self.repository.delete_illustration(illustration_id):
            raise NotFoundError(message="Illustration not found")
        logger.info("User %s deleted illustration %s", user.id, illustration_id)

    def add_favorite(self, user: Any, illustration_id: str) -> None:
        require_auth(user)
        illustration = self.repository.get_illustration(
            illustration_id, status=IllustrationStatus.PUBLISHED
        )
        if illustration is None:
            raise NotFoundError(message="Illustration not found")
        if not self.repository.add_favorite(str(user.id), illustration_id):
            raise ConflictError(message="Already added to favorites", status_code=400)

    def remove_favorite(self, user: Any, illustration_id: str) -> None:
        require_auth(user)
        if not self.repository.remove_favorite(str(user.id), illustration_id):
            raise ConflictError(message="Not in favorites", status_code=400)

    def download_illustration(
        self,
        user: Any,
        illustration_id: str,
        client: Optional[ClientInfo] = None,
    ) -> DownloadGrant:
        require_auth(user)
        illustration = self.repository.get_illustration(
            illustration_id, status=IllustrationStatus.PUBLISHED
        )
        if illustration is None:
            raise NotFoundError(message="Illustration not found")
        if not illustration.is_free:
            self.entitlement.assert_download_entitled(user, self._now())

        self.repository.record_download(str(user.id), illustration_id, client or ClientInfo())
        return DownloadGrant(
            download_url=illustration.image_url,
            file_name=download_file_name(illustration),
        )

    def list_favorites(self, user: Any) -> List[LibraryItem]:
        require_auth(user)
        return self.repository.list_favorites(str(user.id))

    def list_downloads(self, user: Any) -> List[LibraryItem]:
        require_auth(user)
        return self.repository.list_downloads(str(user.id))

    def creator_stats(self, user: Any) -> CreatorStats:
        require_auth(user)
        return self.repository.creator_stats(str(user.id), since=self._now() - RECENT_WINDOW)

    def list_categories(self) -> List[Category]:
        try:
            return self.repository.list_categories()
        except Exception as exc:
            return self._catalog_fallback("categories", exc)

    def list_tags(self) -> List[Tag]:
        try:
            return self.repository.list_tags()
        except Exception as exc:
            return self._catalog_fallback("tags", exc)

    def _catalog_fallback(self, what: str, exc: Exception) -> list:
        if self.empty_catalog_on_failure:
            logger.warning("Failed to load %s; serving an empty list", what, exc_info=exc)
            return []
        logger.exception("Failed to load %s", what)
        raise UpstreamFailure() from exc


__all__ = [
    "ALLOWED_MIME_TYPES",
    "ContentService",
    "DownloadEntitlement",
    "MAX_UPLOAD_BYTES",
    "build_query",
    "download_file_name",
    "normalize_sort_field",
    "parse_tag_ids",
]
