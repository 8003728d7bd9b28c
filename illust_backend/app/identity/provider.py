"""Identity provider integration: session token to external principal."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

from jose import JWTError, jwt

from .models import ExternalPrincipal

logger = logging.getLogger("identity")


class IdentityProvider(Protocol):
    """External identity provider consumed as "who is calling"."""

    def get_principal(self, session_token: Optional[str]) -> Optional[ExternalPrincipal]:
        ...


class JWTSessionIdentityProvider:
    """Verifies the provider-issued session JWT carried in the session cookie."""

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        audience: Optional[str] = None,
    ) -> None:
        if not secret:
            raise ValueError("secret must be provided")
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience

    def get_principal(self, session_token: Optional[str]) -> Optional[ExternalPrincipal]:
        if not session_token:
            return None
        options = {"verify_aud": self._audience is not None}
        try:
            claims: Dict[str, Any] = jwt.decode(
                session_token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                options=options,
            )
        except JWTError:
            logger.debug("Rejected session token")
            return None

        subject = claims.get("sub")
        if not subject:
            return None
        return ExternalPrincipal(
            external_id=str(subject),
            primary_email=claims.get("email") or claims.get("primary_email"),
            display_name=claims.get("name") or claims.get("display_name"),
            email_verified=bool(claims.get("email_verified", False)),
        )


__all__ = ["IdentityProvider", "JWTSessionIdentityProvider"]
