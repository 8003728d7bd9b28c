"""Persistence layer for local subscription rows and webhook receipts."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...db import managed_connection
from .models import BillingWebhookEvent, Subscription, SubscriptionSnapshot, SubscriptionStatus


class SubscriptionRepository(Protocol):
    """Persistence operations required by the billing service."""

    def get_by_user(self, user_id: str) -> Optional[Subscription]:
        ...

    def get_by_customer(self, customer_id: str) -> Optional[Subscription]:
        ...

    def upsert_for_user(self, user_id: str, snapshot: SubscriptionSnapshot) -> Subscription:
        ...

    def has_webhook_event(self, event_id: str) -> bool:
        ...

    def record_webhook_event(self, event: BillingWebhookEvent) -> bool:
        ...


def _row_to_subscription(row: dict) -> Subscription:
    return Subscription(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        provider_customer_id=row.get("stripe_customer_id"),
        provider_subscription_id=row.get("stripe_subscription_id"),
        status=SubscriptionStatus(row["status"]),
        current_period_end=row.get("current_period_end"),
        cancel_at=row.get("cancel_at"),
        cancel_at_period_end=bool(row.get("cancel_at_period_end")),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresSubscriptionRepository:
    """Concrete repository persisting subscriptions in PostgreSQL."""

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

    def get_by_user(self, user_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM subscriptions WHERE user_id = %s LIMIT 1", (user_id,))
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def get_by_customer(self, customer_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT * FROM subscriptions
                WHERE stripe_customer_id = %s
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                (customer_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def upsert_for_user(self, user_id: str, snapshot: SubscriptionSnapshot) -> Subscription:
        """Write the remote snapshot as the user's single subscription row."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO subscriptions (
                    user_id,
                    stripe_customer_id,
                    stripe_subscription_id,
                    status,
                    current_period_end,
                    cancel_at,
                    cancel_at_period_end
                )
                VALUES (%(user_id)s, %(customer_id)s, %(subscription_id)s, %(status)s,
                        %(current_period_end)s, %(cancel_at)s, %(cancel_at_period_end)s)
                ON CONFLICT (user_id) DO UPDATE SET
                    stripe_customer_id = EXCLUDED.stripe_customer_id,
                    stripe_subscription_id = EXCLUDED.stripe_subscription_id,
                    status = EXCLUDED.status,
                    current_period_end = EXCLUDED.current_period_end,
                    cancel_at = EXCLUDED.cancel_at,
                    cancel_at_period_end = EXCLUDED.cancel_at_period_end,
                    updated_at = NOW()
                RETURNING *
                """,
                {
                    "user_id": user_id,
                    "customer_id": snapshot.provider_customer_id,
                    "subscription_id": snapshot.provider_subscription_id,
                    "status": snapshot.status.value,
                    "current_period_end": snapshot.current_period_end,
                    "cancel_at": snapshot.cancel_at,
                    "cancel_at_period_end": snapshot.cancel_at_period_end,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to upsert subscription")
            return _row_to_subscription(row)

    def has_webhook_event(self, event_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT 1 FROM billing_webhook_events WHERE event_id = %s LIMIT 1",
                (event_id,),
            )
            return cursor.fetchone() is not None

    def record_webhook_event(self, event: BillingWebhookEvent) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO billing_webhook_events (
                    event_id,
                    event_type,
                    payload,
                    received_at
                )
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (event_id) DO NOTHING
                """,
                (
                    event.event_id,
                    event.event_type,
                    psycopg2.extras.Json(event.payload),
                    event.received_at,
                ),
            )
            return cursor.rowcount > 0


__all__ = ["PostgresSubscriptionRepository", "SubscriptionRepository"]
