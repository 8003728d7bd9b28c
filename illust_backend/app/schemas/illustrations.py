"""API schemas for illustrations, taxonomy and user libraries."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..content import (
    Category,
    CreatorStats,
    DownloadGrant,
    Illustration,
    IllustrationChanges,
    IllustrationPage,
    IllustrationStatus,
    LibraryItem,
    Tag,
)


class CreatorOut(BaseModel):
    id: str
    name: Optional[str] = None
    profile_image: Optional[str] = Field(default=None, alias="profileImage")
    bio: Optional[str] = None
    website: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class CategorySummaryOut(BaseModel):
    id: str
    name: str
    color: Optional[str] = None


class TagSummaryOut(BaseModel):
    id: str
    name: str


class IllustrationOut(BaseModel):
    id: str
    user_id: str = Field(alias="userId")
    title: str
    description: Optional[str] = None
    image_url: str = Field(alias="imageUrl")
    thumbnail_url: Optional[str] = Field(default=None, alias="thumbnailUrl")
    width: Optional[int] = None
    height: Optional[int] = None
    file_size: Optional[int] = Field(default=None, alias="fileSize")
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    is_free: bool = Field(alias="isFree")
    status: IllustrationStatus
    view_count: int = Field(alias="viewCount")
    download_count: int = Field(alias="downloadCount")
    favorite_count: int = Field(alias="favoriteCount")
    category_id: Optional[str] = Field(default=None, alias="categoryId")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    user: Optional[CreatorOut] = None
    category: Optional[CategorySummaryOut] = None
    tags: List[TagSummaryOut] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_domain(cls, illustration: Illustration) -> "IllustrationOut":
        data = illustration.model_dump(exclude={"creator"})
        data["user"] = illustration.creator.model_dump() if illustration.creator else None
        return cls.model_validate(data)


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")

    model_config = ConfigDict(populate_by_name=True)


class IllustrationListResponse(BaseModel):
    illustrations: List[IllustrationOut]
    pagination: PaginationOut

    @classmethod
    def from_page(cls, page: IllustrationPage) -> "IllustrationListResponse":
        return cls(
            illustrations=[IllustrationOut.from_domain(item) for item in page.illustrations],
            pagination=PaginationOut.model_validate(page.pagination.model_dump()),
        )


class IllustrationDetailResponse(BaseModel):
    illustration: IllustrationOut
    is_favorited: bool = Field(alias="isFavorited")

    model_config = ConfigDict(populate_by_name=True)


class IllustrationMutationResponse(BaseModel):
    message: str
    illustration: IllustrationOut


class MessageResponse(BaseModel):
    message: str


class IllustrationUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("categoryId", "category_id")
    )
    is_free: Optional[bool] = Field(default=None, validation_alias=AliasChoices("isFree", "is_free"))
    status: Optional[IllustrationStatus] = None
    tags: Optional[List[str]] = None

    model_config = ConfigDict(populate_by_name=True)

    def to_changes(self) -> IllustrationChanges:
        return IllustrationChanges(
            title=self.title,
            description=self.description,
            category_id=self.category_id,
            is_free=self.is_free,
            status=self.status,
            tags=self.tags,
        )


class DownloadResponse(BaseModel):
    message: str = "Download started"
    download_url: str = Field(alias="downloadUrl")
    file_name: str = Field(alias="fileName")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_grant(cls, grant: DownloadGrant) -> "DownloadResponse":
        return cls(download_url=grant.download_url, file_name=grant.file_name)


class LibraryIllustrationOut(IllustrationOut):
    recorded_at: datetime = Field(alias="recordedAt")

    @classmethod
    def from_item(cls, item: LibraryItem) -> "LibraryIllustrationOut":
        data = item.illustration.model_dump(exclude={"creator"})
        data["user"] = item.illustration.creator.model_dump() if item.illustration.creator else None
        data["recorded_at"] = item.recorded_at
        return cls.model_validate(data)


class LibraryResponse(BaseModel):
    illustrations: List[LibraryIllustrationOut]

    @classmethod
    def from_items(cls, items: List[LibraryItem]) -> "LibraryResponse":
        return cls(illustrations=[LibraryIllustrationOut.from_item(item) for item in items])


class PopularIllustrationOut(BaseModel):
    id: str
    title: str
    view_count: int = Field(alias="viewCount")
    favorite_count: int = Field(alias="favoriteCount")
    download_count: int = Field(alias="downloadCount")

    model_config = ConfigDict(populate_by_name=True)


class CreatorStatsOut(BaseModel):
    total_illustrations: int = Field(alias="totalIllustrations")
    published_illustrations: int = Field(alias="publishedIllustrations")
    draft_illustrations: int = Field(alias="draftIllustrations")
    private_illustrations: int = Field(alias="privateIllustrations")
    total_views: int = Field(alias="totalViews")
    total_downloads: int = Field(alias="totalDownloads")
    total_favorites: int = Field(alias="totalFavorites")
    recent_illustrations: int = Field(alias="recentIllustrations")
    popular_illustrations: List[PopularIllustrationOut] = Field(alias="popularIllustrations")

    model_config = ConfigDict(populate_by_name=True)


class CreatorStatsResponse(BaseModel):
    stats: CreatorStatsOut

    @classmethod
    def from_stats(cls, stats: CreatorStats) -> "CreatorStatsResponse":
        return cls(stats=CreatorStatsOut.model_validate(stats.model_dump()))


class CategoryOut(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    color: Optional[str] = None
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)


class CategoryListResponse(BaseModel):
    categories: List[CategoryOut]

    @classmethod
    def from_categories(cls, categories: List[Category]) -> "CategoryListResponse":
        return cls(categories=[CategoryOut.model_validate(item.model_dump()) for item in categories])


class TagOut(BaseModel):
    id: str
    name: str
    slug: str
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)


class TagListResponse(BaseModel):
    tags: List[TagOut]

    @classmethod
    def from_tags(cls, tags: List[Tag]) -> "TagListResponse":
        return cls(tags=[TagOut.model_validate(item.model_dump()) for item in tags])
