"""Content store: illustrations, taxonomy, favorites and download history."""

from .models import (
    Category,
    CategorySummary,
    ClientInfo,
    CreatorStats,
    CreatorSummary,
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
    PopularIllustration,
    SortOrder,
    Tag,
    TagSummary,
    UploadedImage,
)
from .repository import ContentRepository, PostgresContentRepository
from .service import ContentService, DownloadEntitlement, build_query, parse_tag_ids

__all__ = [
    "Category",
    "CategorySummary",
    "ClientInfo",
    "ContentRepository",
    "ContentService",
    "CreatorStats",
    "CreatorSummary",
    "DownloadEntitlement",
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
    "PostgresContentRepository",
    "SortOrder",
    "Tag",
    "TagSummary",
    "UploadedImage",
    "build_query",
    "parse_tag_ids",
]
