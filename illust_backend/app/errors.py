"""Error taxonomy shared by every service and surfaced at the route boundary."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class MarketplaceError(Exception):
    """Represents an actionable failure surfaced to API callers."""

    message: str
    code: str = "error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


@dataclass
class AuthenticationRequired(MarketplaceError):
    message: str = "Authentication required"
    code: str = "unauthenticated"
    status_code: int = status.HTTP_401_UNAUTHORIZED


@dataclass
class ForbiddenError(MarketplaceError):
    message: str = "Forbidden"
    code: str = "forbidden"
    status_code: int = status.HTTP_403_FORBIDDEN


@dataclass
class ValidationFailed(MarketplaceError):
    message: str = "Invalid request"
    code: str = "invalid_request"
    status_code: int = status.HTTP_400_BAD_REQUEST


@dataclass
class NotFoundError(MarketplaceError):
    message: str = "Not found"
    code: str = "not_found"
    status_code: int = status.HTTP_404_NOT_FOUND


@dataclass
class ConflictError(MarketplaceError):
    """Business invariant violation; duplicates answer 400, contract holds 409."""

    message: str = "Conflict"
    code: str = "conflict"
    status_code: int = status.HTTP_409_CONFLICT


@dataclass
class UpstreamFailure(MarketplaceError):
    message: str = "Internal server error"
    code: str = "upstream_failure"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


__all__ = [
    "AuthenticationRequired",
    "ConflictError",
    "ForbiddenError",
    "MarketplaceError",
    "NotFoundError",
    "UpstreamFailure",
    "ValidationFailed",
]
