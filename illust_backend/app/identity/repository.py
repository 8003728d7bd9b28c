"""Persistence layer for local user records."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...db import managed_connection
from ..access.roles import UserRole
from .models import NewUser, User


class UserRepository(Protocol):
    """Persistence operations required by the identity bridge."""

    def get_by_external_id(self, external_id: str) -> Optional[User]:
        ...

    def get_by_id(self, user_id: str) -> Optional[User]:
        ...

    def create_or_fetch(self, new_user: NewUser) -> User:
        ...

    def update_role(self, user_id: str, role: UserRole) -> Optional[User]:
        ...

    def delete_user(self, user_id: str) -> bool:
        ...


_USER_COLUMNS = """
    id, external_id, email, name, role, is_verified, profile_image, bio,
    website, social_links, created_at, updated_at
"""


def _row_to_user(row: dict) -> User:
    return User(
        id=str(row["id"]),
        external_id=row["external_id"],
        email=row.get("email") or "",
        name=row.get("name"),
        role=UserRole(row["role"]),
        is_verified=bool(row.get("is_verified")),
        profile_image=row.get("profile_image"),
        bio=row.get("bio"),
        website=row.get("website"),
        social_links=row.get("social_links") or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresUserRepository:
    """Concrete repository persisting users in PostgreSQL."""

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

    def get_by_external_id(self, external_id: str) -> Optional[User]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE external_id = %s LIMIT 1",
                (external_id,),
            )
            row = cursor.fetchone()
            return _row_to_user(row) if row else None

    def get_by_id(self, user_id: str) -> Optional[User]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s LIMIT 1",
                (user_id,),
            )
            row = cursor.fetchone()
            return _row_to_user(row) if row else None

    def create_or_fetch(self, new_user: NewUser) -> User:
        """Insert the user unless another request already did, then return the row."""

        with self._cursor() as cursor:
            cursor.execute(
                f"""
                INSERT INTO users (external_id, email, name, role, is_verified)
                VALUES (%(external_id)s, %(email)s, %(name)s, %(role)s, %(is_verified)s)
                ON CONFLICT (external_id) DO NOTHING
                RETURNING {_USER_COLUMNS}
                """,
                {
                    "external_id": new_user.external_id,
                    "email": new_user.email,
                    "name": new_user.name,
                    "role": new_user.role.value,
                    "is_verified": new_user.is_verified,
                },
            )
            row = cursor.fetchone()
            if row is None:
                cursor.execute(
                    f"SELECT {_USER_COLUMNS} FROM users WHERE external_id = %s LIMIT 1",
                    (new_user.external_id,),
                )
                row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to create or load user")
            return _row_to_user(row)

    def update_role(self, user_id: str, role: UserRole) -> Optional[User]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                UPDATE users
                SET role = %s, updated_at = NOW()
                WHERE id = %s
                RETURNING {_USER_COLUMNS}
                """,
                (role.value, user_id),
            )
            row = cursor.fetchone()
            return _row_to_user(row) if row else None

    def delete_user(self, user_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM users WHERE id = %s", (user_id,))
            return cursor.rowcount > 0


__all__ = ["PostgresUserRepository", "UserRepository"]
