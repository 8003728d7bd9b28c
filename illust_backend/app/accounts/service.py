"""Account deletion gated on the user's billing state."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from ..access.roles import require_auth
from ..billing.models import DeletionAssessment
from ..errors import NotFoundError

logger = logging.getLogger("accounts")


class DeletionGate(Protocol):
    def assess_account_deletion(self, user: Any, now: Optional[datetime] = None) -> DeletionAssessment:
        ...


class UserDeleter(Protocol):
    def delete_user(self, user_id: str) -> bool:
        ...


class AccountDeletionResult(BaseModel):
    deleted: bool
    forfeits_paid_period: bool = False

    model_config = ConfigDict(frozen=True)


@dataclass
class AccountService:
    users: UserDeleter
    billing: DeletionGate

    def delete_account(self, user: Any, now: Optional[datetime] = None) -> AccountDeletionResult:
        """Delete the user and everything it owns once the billing gate allows it.

        Raises ``ConflictError`` while a paid period is active and not scheduled
        for cancellation, and ``UpstreamFailure`` when the subscription cannot
        be read.
        """

        require_auth(user)
        assessment = self.billing.assess_account_deletion(user, now)
        if not self.users.delete_user(str(user.id)):
            raise NotFoundError(message="User not found")

        logger.info(
            "Deleted account %s forfeits_paid_period=%s",
            user.id,
            assessment.forfeits_paid_period,
        )
        return AccountDeletionResult(
            deleted=True,
            forfeits_paid_period=assessment.forfeits_paid_period,
        )


__all__ = ["AccountDeletionResult", "AccountService", "DeletionGate", "UserDeleter"]
