"""Unit tests for catalogue listing, authoring, favorites and downloads."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional, Tuple

import pytest

from illust_backend.app.content import (
    Category,
    ClientInfo,
    ContentRepository,
    ContentService,
    CreatorStats,
    Illustration,
    IllustrationChanges,
    IllustrationQuery,
    IllustrationStatus,
    LibraryItem,
    NewIllustration,
    SortOrder,
    Tag,
    TagSummary,
    UploadedImage,
    build_query,
    parse_tag_ids,
)
from illust_backend.app.content.service import MAX_UPLOAD_BYTES, download_file_name
from illust_backend.app.errors import (
    AuthenticationRequired,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UpstreamFailure,
    ValidationFailed,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryContentRepository(ContentRepository):
    def __init__(self) -> None:
        self.illustrations: Dict[str, Illustration] = {}
        self.favorites: Dict[Tuple[str, str], datetime] = {}
        self.downloads: List[Tuple[str, str, ClientInfo]] = []
        self.created: List[NewIllustration] = []
        self.last_query: Optional[IllustrationQuery] = None
        self.catalog_error: Optional[Exception] = None
        self.categories: List[Category] = []
        self.tags: List[Tag] = []

    def add(self, illustration_id: str, **fields) -> Illustration:
        values = {
            "id": illustration_id,
            "user_id": "creator-1",
            "title": f"Illustration {illustration_id}",
            "image_url": f"https://cdn.test/{illustration_id}.png",
            "mime_type": "image/png",
            "status": IllustrationStatus.PUBLISHED,
        }
        values.update(fields)
        illustration = Illustration(**values)
        self.illustrations[illustration_id] = illustration
        return illustration

    def _bump(self, illustration_id: str, field: str, delta: int) -> None:
        current = self.illustrations[illustration_id]
        value = max(getattr(current, field) + delta, 0)
        self.illustrations[illustration_id] = current.model_copy(update={field: value})

    def list_illustrations(self, query):
        self.last_query = query
        rows = [
            i
            for i in self.illustrations.values()
            if (query.status is None or i.status == query.status)
            and (query.owner_id is None or i.user_id == query.owner_id)
        ]
        return rows[query.offset : query.offset + query.limit], len(rows)

    def get_illustration(self, illustration_id, *, status=None):
        illustration = self.illustrations.get(illustration_id)
        if illustration is None or (status is not None and illustration.status != status):
            return None
        return illustration

    def increment_view_count(self, illustration_id):
        self._bump(illustration_id, "view_count", 1)

    def create_illustration(self, new):
        self.created.append(new)
        return self.add(
            f"ill-{len(self.created)}",
            user_id=new.user_id,
            title=new.title,
            description=new.description,
            image_url=new.image_url,
            thumbnail_url=new.thumbnail_url,
            mime_type=new.mime_type,
            is_free=new.is_free,
            status=new.status,
            tags=[TagSummary(id=tag_id, name=tag_id) for tag_id in new.tag_ids],
        )

    def update_illustration(self, illustration_id, changes):
        current = self.illustrations.get(illustration_id)
        if current is None:
            return None
        update = changes.column_updates()
        if "status" in update:
            update["status"] = IllustrationStatus(update["status"])
        if changes.tags is not None:
            update["tags"] = [TagSummary(id=tag_id, name=tag_id) for tag_id in dict.fromkeys(changes.tags)]
        updated = current.model_copy(update=update)
        self.illustrations[illustration_id] = updated
        return updated

    def delete_illustration(self, illustration_id):
        return self.illustrations.pop(illustration_id, None) is not None

    def is_favorited(self, user_id, illustration_id):
        return (user_id, illustration_id) in self.favorites

    def add_favorite(self, user_id, illustration_id):
        if (user_id, illustration_id) in self.favorites:
            return False
        self.favorites[(user_id, illustration_id)] = NOW
        self._bump(illustration_id, "favorite_count", 1)
        return True

    def remove_favorite(self, user_id, illustration_id):
        if self.favorites.pop((user_id, illustration_id), None) is None:
            return False
        self._bump(illustration_id, "favorite_count", -1)
        return True

    def record_download(self, user_id, illustration_id, client):
        self.downloads.append((user_id, illustration_id, client))
        self._bump(illustration_id, "download_count", 1)

    def list_favorites(self, user_id):
        return [
            LibraryItem(illustration=self.illustrations[ill_id], recorded_at=at)
            for (owner, ill_id), at in self.favorites.items()
            if owner == user_id
        ]

    def list_downloads(self, user_id):
        return [
            LibraryItem(illustration=self.illustrations[ill_id], recorded_at=NOW)
            for owner, ill_id, _client in self.downloads
            if owner == user_id
        ]

    def creator_stats(self, user_id, *, since):
        owned = [i for i in self.illustrations.values() if i.user_id == user_id]
        return CreatorStats(
            total_illustrations=len(owned),
            recent_illustrations=sum(1 for i in owned if i.created_at >= since),
        )

    def list_categories(self):
        if self.catalog_error is not None:
            raise self.catalog_error
        return list(self.categories)

    def list_tags(self):
        if self.catalog_error is not None:
            raise self.catalog_error
        return list(self.tags)


class FakeEntitlement:
    def __init__(self, entitled: bool = False) -> None:
        self.entitled = entitled
        self.checks: List[str] = []

    def assert_download_entitled(self, user, now=None):
        self.checks.append(str(user.id))
        if not self.entitled:
            raise ForbiddenError(message="An active subscription is required")
        return True


def _user(user_id: str = "viewer-1", role: str = "consumer"):
    return SimpleNamespace(id=user_id, role=role, email=f"{user_id}@example.com")


CREATOR = _user("creator-1", "illustrator")
OTHER_CREATOR = _user("creator-2", "illustrator")
ADMIN = _user("admin-1", "administrator")
PNG = UploadedImage(filename="cat.png", content_type="image/png", size=1024)


@pytest.fixture
def content():
    repository = InMemoryContentRepository()
    entitlement = FakeEntitlement()
    service = ContentService(repository=repository, entitlement=entitlement, clock=lambda: NOW)
    return service, repository, entitlement


def test_build_query_defaults_to_published_newest_first():
    query = build_query()

    assert query.page == 1
    assert query.limit == 20
    assert query.status == IllustrationStatus.PUBLISHED
    assert query.sort_by == "created_at"
    assert query.sort_order == SortOrder.DESC


def test_build_query_normalizes_camel_case_sort_and_search():
    query = build_query(page=3, limit=10, sort_by="viewCount", sort_order="ASC", search="  cats  ")

    assert query.sort_by == "view_count"
    assert query.sort_order == SortOrder.ASC
    assert query.search == "cats"
    assert query.offset == 20


@pytest.mark.parametrize(
    "kwargs",
    [
        {"page": 0},
        {"limit": 0},
        {"limit": 101},
        {"sort_by": "id; DROP TABLE users"},
        {"sort_order": "sideways"},
        {"status": "archived"},
    ],
)
def test_build_query_rejects_invalid_parameters(kwargs):
    with pytest.raises(ValidationFailed):
        build_query(**kwargs)


def test_listing_reports_pagination(content):
    service, repository, _ = content
    for index in range(45):
        repository.add(f"p{index}")
    repository.add("draft", status=IllustrationStatus.DRAFT)

    page = service.list_illustrations(build_query(page=3, limit=20))

    assert page.pagination.total == 45
    assert page.pagination.total_pages == 3
    assert len(page.illustrations) == 5


def test_empty_listing_has_zero_pages(content):
    service, _repository, _ = content

    page = service.list_illustrations(build_query())

    assert page.pagination.total == 0
    assert page.pagination.total_pages == 0
    assert page.illustrations == []


def test_list_my_illustrations_spans_statuses_and_sorts_by_update(content):
    service, repository, _ = content
    repository.add("a", user_id="creator-1", status=IllustrationStatus.DRAFT)
    repository.add("b", user_id="creator-1")
    repository.add("c", user_id="creator-2")

    page = service.list_my_illustrations(CREATOR)

    assert {i.id for i in page.illustrations} == {"a", "b"}
    assert repository.last_query.status is None
    assert repository.last_query.sort_by == "updated_at"
    assert repository.last_query.owner_id == "creator-1"


def test_get_illustration_counts_view_and_reports_favorite(content):
    service, repository, _ = content
    repository.add("a", view_count=4)
    repository.favorites[("viewer-1", "a")] = NOW

    detail = service.get_illustration("a", viewer=_user())

    assert detail.illustration.view_count == 5
    assert repository.illustrations["a"].view_count == 5
    assert detail.is_favorited is True
    assert service.get_illustration("a").is_favorited is False


def test_get_unpublished_illustration_is_not_found(content):
    service, repository, _ = content
    repository.add("draft", status=IllustrationStatus.DRAFT)

    with pytest.raises(NotFoundError):
        service.get_illustration("draft")
    assert repository.illustrations["draft"].view_count == 0


def test_create_requires_illustrator_role(content):
    service, repository, _ = content

    with pytest.raises(ForbiddenError):
        service.create_illustration(_user(), title="Cat", upload=PNG)
    with pytest.raises(AuthenticationRequired):
        service.create_illustration(None, title="Cat", upload=PNG)
    assert repository.created == []


@pytest.mark.parametrize(
    "title, upload",
    [
        ("Cat", None),
        ("   ", PNG),
        ("Cat", UploadedImage(filename="cat.gif", content_type="image/gif", size=10)),
        ("Cat", UploadedImage(filename="cat.png", content_type="image/png", size=MAX_UPLOAD_BYTES + 1)),
    ],
)
def test_create_validates_upload(content, title, upload):
    service, repository, _ = content

    with pytest.raises(ValidationFailed):
        service.create_illustration(CREATOR, title=title, upload=upload)
    assert repository.created == []


def test_create_defaults_to_draft_and_parses_tags(content):
    service, repository, _ = content

    created = service.create_illustration(
        CREATOR,
        title="  Cat  ",
        upload=PNG,
        description="",
        category_id="",
        tags='["t1", "t2"]',
    )

    new = repository.created[0]
    assert created.status == IllustrationStatus.DRAFT
    assert new.title == "Cat"
    assert new.description is None
    assert new.category_id is None
    assert new.is_free is False
    assert new.tag_ids == ["t1", "t2"]
    assert new.image_url.startswith("https://example.com/images/")
    assert new.image_url.endswith("-cat.png")
    assert new.file_size == 1024


def test_create_with_malformed_tags_still_succeeds(content):
    service, repository, _ = content

    service.create_illustration(CREATOR, title="Cat", upload=PNG, tags="not json", status="published")

    assert repository.created[0].tag_ids == []
    assert repository.created[0].status == IllustrationStatus.PUBLISHED


@pytest.mark.parametrize(
    "raw, expected",
    [(None, []), ("", []), ("{bad", []), ('{"a": 1}', []), ('["x", "", 3]', ["x", "3"])],
)
def test_parse_tag_ids(raw, expected):
    assert parse_tag_ids(raw) == expected


def test_update_is_limited_to_owner_or_admin(content):
    service, repository, _ = content
    repository.add("a", user_id="creator-1")

    with pytest.raises(ForbiddenError):
        service.update_illustration(OTHER_CREATOR, "a", IllustrationChanges(title="Mine now"))
    assert repository.illustrations["a"].title == "Illustration a"

    updated = service.update_illustration(ADMIN, "a", IllustrationChanges(title="Moderated"))
    assert updated.title == "Moderated"


def test_update_missing_illustration_is_not_found_before_ownership(content):
    service, _repository, _ = content

    with pytest.raises(NotFoundError):
        service.update_illustration(OTHER_CREATOR, "missing", IllustrationChanges(title="x"))


def test_update_replaces_tags_and_rejects_blank_title(content):
    service, repository, _ = content
    repository.add("a", user_id="creator-1", tags=[TagSummary(id="old", name="old")])

    updated = service.update_illustration(
        CREATOR,
        "a",
        IllustrationChanges(status=IllustrationStatus.PRIVATE, tags=["t1", "t1", "t2"]),
    )

    assert [tag.id for tag in updated.tags] == ["t1", "t2"]
    assert updated.status == IllustrationStatus.PRIVATE
    with pytest.raises(ValidationFailed):
        service.update_illustration(CREATOR, "a", IllustrationChanges(title=" "))


def test_delete_checks_ownership(content):
    service, repository, _ = content
    repository.add("a", user_id="creator-1")

    with pytest.raises(ForbiddenError):
        service.delete_illustration(OTHER_CREATOR, "a")
    service.delete_illustration(CREATOR, "a")

    assert "a" not in repository.illustrations
    with pytest.raises(NotFoundError):
        service.delete_illustration(CREATOR, "a")


def test_favorite_toggle_keeps_counter_in_step(content):
    service, repository, _ = content
    repository.add("a")
    viewer = _user()

    service.add_favorite(viewer, "a")
    with pytest.raises(ConflictError) as exc_info:
        service.add_favorite(viewer, "a")
    assert exc_info.value.status_code == 400
    assert repository.illustrations["a"].favorite_count == 1

    service.remove_favorite(viewer, "a")
    with pytest.raises(ConflictError):
        service.remove_favorite(viewer, "a")
    assert repository.illustrations["a"].favorite_count == 0


def test_favorite_requires_published_illustration(content):
    service, repository, _ = content
    repository.add("draft", status=IllustrationStatus.DRAFT)

    with pytest.raises(NotFoundError):
        service.add_favorite(_user(), "draft")
    assert repository.favorites == {}


def test_free_download_counts_every_request(content):
    service, repository, entitlement = content
    repository.add("a", is_free=True, title="Cat", mime_type="image/webp")
    client = ClientInfo(ip_address="203.0.113.5", user_agent="pytest")

    for _ in range(3):
        grant = service.download_illustration(_user(), "a", client)

    assert grant.download_url == "https://cdn.test/a.png"
    assert grant.file_name == "Cat.webp"
    assert repository.illustrations["a"].download_count == 3
    assert len(repository.downloads) == 3
    assert repository.downloads[0][2] == client
    assert entitlement.checks == []


def test_paid_download_without_subscription_records_nothing(content):
    service, repository, entitlement = content
    repository.add("a", is_free=False)

    with pytest.raises(ForbiddenError):
        service.download_illustration(_user(), "a")

    assert entitlement.checks == ["viewer-1"]
    assert repository.illustrations["a"].download_count == 0
    assert repository.downloads == []


def test_paid_download_with_subscription_is_recorded(content):
    service, repository, entitlement = content
    entitlement.entitled = True
    repository.add("a", is_free=False)

    service.download_illustration(_user(), "a")

    assert repository.downloads[0][2] == ClientInfo()
    assert repository.illustrations["a"].download_count == 1


def test_download_requires_authentication(content):
    service, repository, _ = content
    repository.add("a")

    with pytest.raises(AuthenticationRequired):
        service.download_illustration(None, "a")


def test_download_file_name_falls_back_to_jpg():
    illustration = Illustration(id="a", user_id="u", title="Sky", image_url="https://cdn.test/a", mime_type=None)

    assert download_file_name(illustration) == "Sky.jpg"


def test_creator_stats_use_thirty_day_window(content):
    service, repository, _ = content
    repository.add("old", user_id="creator-1", created_at=NOW - timedelta(days=31))
    repository.add("new", user_id="creator-1", created_at=NOW - timedelta(days=2))

    stats = service.creator_stats(CREATOR)

    assert stats.total_illustrations == 2
    assert stats.recent_illustrations == 1


def test_library_lists_are_per_user(content):
    service, repository, _ = content
    repository.add("a")
    service.add_favorite(_user("viewer-1"), "a")
    service.download_illustration(_user("viewer-2"), "a")

    assert [item.illustration.id for item in service.list_favorites(_user("viewer-1"))] == ["a"]
    assert service.list_favorites(_user("viewer-2")) == []
    assert [item.illustration.id for item in service.list_downloads(_user("viewer-2"))] == ["a"]


def test_catalog_failure_raises_by_default(content):
    service, repository, _ = content
    repository.catalog_error = RuntimeError("database unavailable")

    with pytest.raises(UpstreamFailure):
        service.list_categories()
    with pytest.raises(UpstreamFailure):
        service.list_tags()


def test_catalog_failure_serves_empty_list_when_fallback_enabled():
    repository = InMemoryContentRepository()
    repository.catalog_error = RuntimeError("database unavailable")
    service = ContentService(
        repository=repository,
        entitlement=FakeEntitlement(),
        empty_catalog_on_failure=True,
    )

    assert service.list_categories() == []
    assert service.list_tags() == []
