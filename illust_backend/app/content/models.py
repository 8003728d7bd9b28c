"""Domain models for illustrations, their taxonomy and user libraries."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class IllustrationStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    PRIVATE = "private"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class CreatorSummary(BaseModel):
    id: str
    name: Optional[str] = None
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class CategorySummary(BaseModel):
    id: str
    name: str
    color: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class TagSummary(BaseModel):
    id: str
    name: str

    model_config = ConfigDict(frozen=True)


class Category(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    color: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class Tag(BaseModel):
    id: str
    name: str
    slug: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class Illustration(BaseModel):
    """Illustration row with its creator, category and tags embedded."""

    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    image_url: str
    thumbnail_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    is_free: bool = True
    status: IllustrationStatus = IllustrationStatus.DRAFT
    view_count: int = 0
    download_count: int = 0
    favorite_count: int = 0
    category_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    creator: Optional[CreatorSummary] = None
    category: Optional[CategorySummary] = None
    tags: List[TagSummary] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class IllustrationQuery(BaseModel):
    """Normalized listing query; ``sort_by`` is always a snake_case column key."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    category_id: Optional[str] = None
    tag_id: Optional[str] = None
    search: Optional[str] = None
    status: Optional[IllustrationStatus] = IllustrationStatus.PUBLISHED
    owner_id: Optional[str] = None
    sort_by: str = "created_at"
    sort_order: SortOrder = SortOrder.DESC

    model_config = ConfigDict(frozen=True)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

    model_config = ConfigDict(frozen=True)


class IllustrationPage(BaseModel):
    illustrations: List[Illustration]
    pagination: Pagination

    model_config = ConfigDict(frozen=True)


class IllustrationDetail(BaseModel):
    illustration: Illustration
    is_favorited: bool = False

    model_config = ConfigDict(frozen=True)


class UploadedImage(BaseModel):
    """Metadata of the uploaded image file; the bytes are not stored."""

    filename: str
    content_type: Optional[str] = None
    size: int = 0

    model_config = ConfigDict(frozen=True)


class NewIllustration(BaseModel):
    user_id: str
    title: str
    description: Optional[str] = None
    image_url: str
    thumbnail_url: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    is_free: bool = True
    status: IllustrationStatus = IllustrationStatus.DRAFT
    category_id: Optional[str] = None
    tag_ids: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class IllustrationChanges(BaseModel):
    """Partial update; ``None`` leaves a field untouched, ``tags`` replaces the set."""

    title: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[str] = None
    is_free: Optional[bool] = None
    status: Optional[IllustrationStatus] = None
    tags: Optional[List[str]] = None

    model_config = ConfigDict(frozen=True)

    def column_updates(self) -> dict:
        values = {
            "title": self.title,
            "description": self.description,
            "category_id": self.category_id,
            "is_free": self.is_free,
            "status": self.status.value if self.status is not None else None,
        }
        return {key: value for key, value in values.items() if value is not None}


class ClientInfo(BaseModel):
    ip_address: str = "unknown"
    user_agent: str = "unknown"

    model_config = ConfigDict(frozen=True)


class DownloadGrant(BaseModel):
    download_url: str
    file_name: str

    model_config = ConfigDict(frozen=True)


class LibraryItem(BaseModel):
    """Illustration in a user's favorites or download history."""

    illustration: Illustration
    recorded_at: datetime

    model_config = ConfigDict(frozen=True)


class PopularIllustration(BaseModel):
    id: str
    title: str
    view_count: int = 0
    favorite_count: int = 0
    download_count: int = 0

    model_config = ConfigDict(frozen=True)


class CreatorStats(BaseModel):
    total_illustrations: int = 0
    published_illustrations: int = 0
    draft_illustrations: int = 0
    private_illustrations: int = 0
    total_views: int = 0
    total_downloads: int = 0
    total_favorites: int = 0
    recent_illustrations: int = 0
    popular_illustrations: List[PopularIllustration] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


__all__ = [
    "Category",
    "CategorySummary",
    "ClientInfo",
    "CreatorStats",
    "CreatorSummary",
    "DownloadGrant",
    "Illustration",
    "IllustrationChanges",
    "IllustrationDetail",
    "IllustrationPage",
    "IllustrationQuery",
    "IllustrationStatus",
    "LibraryItem",
    "NewIllustration",
    "Pagination",
    "PopularIllustration",
    "SortOrder",
    "Tag",
    "TagSummary",
    "UploadedImage",
]
