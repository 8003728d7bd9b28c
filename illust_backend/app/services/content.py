"""Application wiring for the content and account services."""
from __future__ import annotations

from functools import lru_cache

from ... import app_context
from ..accounts import AccountService
from ..content import ContentService, PostgresContentRepository
from ..identity import PostgresUserRepository
from .billing import get_billing_service


@lru_cache(maxsize=1)
def get_content_service() -> ContentService:
    settings = app_context.get_settings()
    return ContentService(
        repository=PostgresContentRepository(),
        entitlement=get_billing_service(),
        empty_catalog_on_failure=settings.deployment_platform_fallback,
    )


@lru_cache(maxsize=1)
def get_account_service() -> AccountService:
    return AccountService(users=PostgresUserRepository(), billing=get_billing_service())


__all__ = ["get_account_service", "get_content_service"]
