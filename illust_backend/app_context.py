"""Shared application context for reusable dependencies."""
from __future__ import annotations

from typing import Any, Optional

_settings: Optional[Any] = None
_database: Optional[Any] = None
_identity_provider: Optional[Any] = None
_payment_provider: Optional[Any] = None


def configure(
    *,
    settings: Any,
    database: Any,
    identity_provider: Any,
    payment_provider: Any,
) -> None:
    """Register process-wide collaborators built once at startup."""

    global _settings
    global _database
    global _identity_provider
    global _payment_provider

    _settings = settings
    _database = database
    _identity_provider = identity_provider
    _payment_provider = payment_provider


def reset() -> None:
    """Forget registered collaborators (used on shutdown and in tests)."""

    global _settings
    global _database
    global _identity_provider
    global _payment_provider

    _settings = None
    _database = None
    _identity_provider = None
    _payment_provider = None


def _require(value: Optional[Any], name: str) -> Any:
    if value is None:
        raise RuntimeError(f"Application context has not been configured yet: {name}")
    return value


def get_settings() -> Any:
    return _require(_settings, "settings")


def get_database() -> Any:
    return _require(_database, "database")


def get_identity_provider() -> Any:
    return _require(_identity_provider, "identity_provider")


def get_payment_provider() -> Any:
    return _require(_payment_provider, "payment_provider")
