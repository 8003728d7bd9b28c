"""Persistence layer for illustrations, taxonomy, favorites and downloads."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...db import managed_connection
from .models import (
    Category,
    CategorySummary,
    ClientInfo,
    CreatorStats,
    CreatorSummary,
    Illustration,
    IllustrationChanges,
    IllustrationQuery,
    IllustrationStatus,
    LibraryItem,
    NewIllustration,
    PopularIllustration,
    Tag,
    TagSummary,
)

# Allow-listed ORDER BY targets keyed by the normalized sort field.
SORT_COLUMNS: Dict[str, str] = {
    "created_at": "i.created_at",
    "updated_at": "i.updated_at",
    "title": "i.title",
    "view_count": "i.view_count",
    "download_count": "i.download_count",
    "favorite_count": "i.favorite_count",
}


class ContentRepository(Protocol):
    """Persistence operations required by the content service."""

    def list_illustrations(self, query: IllustrationQuery) -> Tuple[List[Illustration], int]:
        ...

    def get_illustration(
        self, illustration_id: str, *, status: Optional[IllustrationStatus] = None
    ) -> Optional[Illustration]:
        ...

    def increment_view_count(self, illustration_id: str) -> None:
        ...

    def create_illustration(self, new: NewIllustration) -> Illustration:
        ...

    def update_illustration(self, illustration_id: str, changes: IllustrationChanges) -> Optional[Illustration]:
        ...

    def delete_illustration(self, illustration_id: str) -> bool:
        ...

    def is_favorited(self, user_id: str, illustration_id: str) -> bool:
        ...

    def add_favorite(self, user_id: str, illustration_id: str) -> bool:
        ...

    def remove_favorite(self, user_id: str, illustration_id: str) -> bool:
        ...

    def record_download(self, user_id: str, illustration_id: str, client: ClientInfo) -> None:
        ...

    def list_favorites(self, user_id: str) -> List[LibraryItem]:
        ...

    def list_downloads(self, user_id: str) -> List[LibraryItem]:
        ...

    def creator_stats(self, user_id: str, *, since: datetime) -> CreatorStats:
        ...

    def list_categories(self) -> List[Category]:
        ...

    def list_tags(self) -> List[Tag]:
        ...


_ILLUSTRATION_SELECT = """
    SELECT
        i.*,
        u.name AS creator_name,
        u.profile_image AS creator_profile_image,
        u.bio AS creator_bio,
        u.website AS creator_website,
        c.name AS category_name,
        c.color AS category_color,
        COALESCE(
            (
                SELECT json_agg(json_build_object('id', t.id, 'name', t.name) ORDER BY t.name)
                FROM illustration_tags it
                JOIN tags t ON t.id = it.tag_id
                WHERE it.illustration_id = i.id
            ),
            '[]'::json
        ) AS tag_list
    FROM illustrations i
    JOIN users u ON u.id = i.user_id
    LEFT JOIN categories c ON c.id = i.category_id
"""


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_illustration(row: dict) -> Illustration:
    category = None
    if row.get("category_id") and row.get("category_name"):
        category = CategorySummary(
            id=str(row["category_id"]),
            name=row["category_name"],
            color=row.get("category_color"),
        )
    return Illustration(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        title=row["title"],
        description=row.get("description"),
        image_url=row["image_url"],
        thumbnail_url=row.get("thumbnail_url"),
        width=row.get("width"),
        height=row.get("height"),
        file_size=row.get("file_size"),
        mime_type=row.get("mime_type"),
        is_free=bool(row.get("is_free")),
        status=IllustrationStatus(row["status"]),
        view_count=int(row.get("view_count") or 0),
        download_count=int(row.get("download_count") or 0),
        favorite_count=int(row.get("favorite_count") or 0),
        category_id=str(row["category_id"]) if row.get("category_id") else None,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        creator=CreatorSummary(
            id=str(row["user_id"]),
            name=row.get("creator_name"),
            profile_image=row.get("creator_profile_image"),
            bio=row.get("creator_bio"),
            website=row.get("creator_website"),
        ),
        category=category,
        tags=[TagSummary(id=str(tag["id"]), name=tag["name"]) for tag in row.get("tag_list") or []],
    )


def build_listing_filters(query: IllustrationQuery) -> Tuple[str, Dict[str, Any]]:
    """Return the WHERE clause and parameters for a listing query."""

    clauses: List[str] = []
    params: Dict[str, Any] = {}
    if query.status is not None:
        clauses.append("i.status = %(status)s")
        params["status"] = query.status.value
    if query.owner_id:
        clauses.append("i.user_id = %(owner_id)s")
        params["owner_id"] = query.owner_id
    if query.category_id:
        clauses.append("i.category_id = %(category_id)s")
        params["category_id"] = query.category_id
    if query.tag_id:
        clauses.append(
            "EXISTS (SELECT 1 FROM illustration_tags ft"
            " WHERE ft.illustration_id = i.id AND ft.tag_id = %(tag_id)s)"
        )
        params["tag_id"] = query.tag_id
    if query.search:
        clauses.append("(i.title ILIKE %(search)s OR i.description ILIKE %(search)s)")
        params["search"] = f"%{_escape_like(query.search)}%"
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


class PostgresContentRepository:
    """Concrete repository persisting content in PostgreSQL."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        with managed_connection(self._conn) as (connection, _managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()

    def _fetch_illustration(self, cursor: PgCursor, illustration_id: str) -> Optional[Illustration]:
        cursor.execute(f"{_ILLUSTRATION_SELECT} WHERE i.id = %s", (illustration_id,))
        row = cursor.fetchone()
        return _row_to_illustration(row) if row else None

    def list_illustrations(self, query: IllustrationQuery) -> Tuple[List[Illustration], int]:
        where, params = build_listing_filters(query)
        column = SORT_COLUMNS[query.sort_by]
        direction = "ASC" if query.sort_order.value == "asc" else "DESC"
        with self._cursor() as cursor:
            cursor.execute(f"SELECT COUNT(*) AS total FROM illustrations i {where}", params)
            total = int(cursor.fetchone()["total"])
            cursor.execute(
                f"""
                {_ILLUSTRATION_SELECT}
                {where}
                ORDER BY {column} {direction}, i.id {direction}
                LIMIT %(limit)s OFFSET %(offset)s
                """,
                {**params, "limit": query.limit, "offset": query.offset},
            )
            rows = cursor.fetchall()
        return [_row_to_illustration(row) for row in rows], total

    def get_illustration(
        self, illustration_id: str, *, status: Optional[IllustrationStatus] = None
    ) -> Optional[Illustration]:
        with self._cursor() as cursor:
            illustration = self._fetch_illustration(cursor, illustration_id)
        if illustration is None:
            return None
        if status is not None and illustration.status != status:
            return None
        return illustration

    def increment_view_count(self, illustration_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE illustrations SET view_count = view_count + 1 WHERE id = %s",
                (illustration_id,),
            )

    def create_illustration(self, new: NewIllustration) -> Illustration:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO illustrations (
                    user_id, title, description, image_url, thumbnail_url,
                    file_size, mime_type, is_free, status, category_id
                )
                VALUES (%(user_id)s, %(title)s, %(description)s, %(image_url)s,
                        %(thumbnail_url)s, %(file_size)s, %(mime_type)s, %(is_free)s,
                        %(status)s, %(category_id)s)
                RETURNING id
                """,
                {
                    "user_id": new.user_id,
                    "title": new.title,
                    "description": new.description,
                    "image_url": new.image_url,
                    "thumbnail_url": new.thumbnail_url,
                    "file_size": new.file_size,
                    "mime_type": new.mime_type,
                    "is_free": new.is_free,
                    "status": new.status.value,
                    "category_id": new.category_id,
                },
            )
            illustration_id = str(cursor.fetchone()["id"])
            self._insert_tags(cursor, illustration_id, new.tag_ids)
            created = self._fetch_illustration(cursor, illustration_id)
        if created is None:
            raise RuntimeError("Failed to load created illustration")
        return created

    @staticmethod
    def _insert_tags(cursor: PgCursor, illustration_id: str, tag_ids: Sequence[str]) -> None:
        if not tag_ids:
            return
        psycopg2.extras.execute_values(
            cursor,
            """
            INSERT INTO illustration_tags (illustration_id, tag_id)
            VALUES %s
            ON CONFLICT DO NOTHING
            """,
            [(illustration_id, tag_id) for tag_id in dict.fromkeys(tag_ids)],
        )

    def update_illustration(self, illustration_id: str, changes: IllustrationChanges) -> Optional[Illustration]:
        """Apply column changes and, when given, replace the tag set in one transaction."""

        updates = changes.column_updates()
        with self._cursor() as cursor:
            if updates:
                assignments = ", ".join(f"{column} = %({column})s" for column in updates)
                cursor.execute(
                    f"""
                    UPDATE illustrations
                    SET {assignments}, updated_at = NOW()
                    WHERE id = %(illustration_id)s
                    """,
                    {**updates, "illustration_id": illustration_id},
                )
            if changes.tags is not None:
                cursor.execute(
                    "DELETE FROM illustration_tags WHERE illustration_id = %s",
                    (illustration_id,),
                )
                self._insert_tags(cursor, illustration_id, changes.tags)
            return self._fetch_illustration(cursor, illustration_id)

    def delete_illustration(self, illustration_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM illustrations WHERE id = %s", (illustration_id,))
            return cursor.rowcount > 0

    def is_favorited(self, user_id: str, illustration_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT 1 FROM favorites WHERE user_id = %s AND illustration_id = %s",
                (user_id, illustration_id),
            )
            return cursor.fetchone() is not None

    def add_favorite(self, user_id: str, illustration_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO favorites (user_id, illustration_id)
                VALUES (%s, %s)
                ON CONFLICT (user_id, illustration_id) DO NOTHING
                """,
                (user_id, illustration_id),
            )
            if cursor.rowcount == 0:
                return False
            cursor.execute(
                "UPDATE illustrations SET favorite_count = favorite_count + 1 WHERE id = %s",
                (illustration_id,),
            )
            return True

    def remove_favorite(self, user_id: str, illustration_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "DELETE FROM favorites WHERE user_id = %s AND illustration_id = %s",
                (user_id, illustration_id),
            )
            if cursor.rowcount == 0:
                return False
            cursor.execute(
                """
                UPDATE illustrations
                SET favorite_count = GREATEST(favorite_count - 1, 0)
                WHERE id = %s
                """,
                (illustration_id,),
            )
            return True

    def record_download(self, user_id: str, illustration_id: str, client: ClientInfo) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO download_history (user_id, illustration_id, ip_address, user_agent)
                VALUES (%s, %s, %s, %s)
                """,
                (user_id, illustration_id, client.ip_address, client.user_agent),
            )
            cursor.execute(
                "UPDATE illustrations SET download_count = download_count + 1 WHERE id = %s",
                (illustration_id,),
            )

    def _list_library(self, table: str, timestamp_column: str, user_id: str) -> List[LibraryItem]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT lib.{timestamp_column} AS recorded_at, listing.*
                FROM {table} lib
                JOIN LATERAL ({_ILLUSTRATION_SELECT} WHERE i.id = lib.illustration_id) listing ON TRUE
                WHERE lib.user_id = %s
                ORDER BY lib.{timestamp_column} DESC
                """,
                (user_id,),
            )
            rows = cursor.fetchall()
        return [
            LibraryItem(illustration=_row_to_illustration(row), recorded_at=row["recorded_at"])
            for row in rows
        ]

    def list_favorites(self, user_id: str) -> List[LibraryItem]:
        return self._list_library("favorites", "created_at", user_id)

    def list_downloads(self, user_id: str) -> List[LibraryItem]:
        return self._list_library("download_history", "downloaded_at", user_id)

    def creator_stats(self, user_id: str, *, since: datetime) -> CreatorStats:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT
                    COUNT(*) AS total_illustrations,
                    COUNT(*) FILTER (WHERE status = 'published') AS published_illustrations,
                    COUNT(*) FILTER (WHERE status = 'draft') AS draft_illustrations,
                    COUNT(*) FILTER (WHERE status = 'private') AS private_illustrations,
                    COALESCE(SUM(view_count), 0) AS total_views,
                    COALESCE(SUM(download_count), 0) AS total_downloads,
                    COALESCE(SUM(favorite_count), 0) AS total_favorites,
                    COUNT(*) FILTER (WHERE created_at >= %(since)s) AS recent_illustrations
                FROM illustrations
                WHERE user_id = %(user_id)s
                """,
                {"user_id": user_id, "since": since},
            )
            totals = cursor.fetchone() or {}
            cursor.execute(
                """
                SELECT id, title, view_count, favorite_count, download_count
                FROM illustrations
                WHERE user_id = %s
                ORDER BY view_count DESC, created_at DESC
                LIMIT 5
                """,
                (user_id,),
            )
            popular = cursor.fetchall()
        return CreatorStats(
            **{key: int(value or 0) for key, value in dict(totals).items()},
            popular_illustrations=[
                PopularIllustration(
                    id=str(row["id"]),
                    title=row["title"],
                    view_count=int(row["view_count"] or 0),
                    favorite_count=int(row["favorite_count"] or 0),
                    download_count=int(row["download_count"] or 0),
                )
                for row in popular
            ],
        )

    def list_categories(self) -> List[Category]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT id, name, slug, description, color, created_at FROM categories ORDER BY name ASC"
            )
            rows = cursor.fetchall()
        return [
            Category(
                id=str(row["id"]),
                name=row["name"],
                slug=row["slug"],
                description=row.get("description"),
                color=row.get("color"),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def list_tags(self) -> List[Tag]:
        with self._cursor() as cursor:
            cursor.execute("SELECT id, name, slug, created_at FROM tags ORDER BY name ASC")
            rows = cursor.fetchall()
        return [
            Tag(id=str(row["id"]), name=row["name"], slug=row["slug"], created_at=row["created_at"])
            for row in rows
        ]


__all__ = ["ContentRepository", "PostgresContentRepository", "SORT_COLUMNS", "build_listing_filters"]
