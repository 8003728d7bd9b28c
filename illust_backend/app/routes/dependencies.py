"""Request dependencies shared by the API routers."""
from __future__ import annotations

import os
from typing import Optional

from fastapi import Cookie, Request

from ..content import ClientInfo
from ..errors import MarketplaceError
from ..identity import User
from ..services import identity as identity_services

SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "stack-access")


def get_current_user(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> User:
    try:
        return identity_services.get_current_user(session_token)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc


def get_optional_current_user(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> Optional[User]:
    return identity_services.get_optional_current_user(session_token)


def client_info(request: Request) -> ClientInfo:
    headers = request.headers
    forwarded = headers.get("x-forwarded-for") or headers.get("x-real-ip") or "unknown"
    return ClientInfo(
        ip_address=forwarded,
        user_agent=headers.get("user-agent") or "unknown",
    )


__all__ = ["SESSION_COOKIE_NAME", "client_info", "get_current_user", "get_optional_current_user"]
