from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..accounts import AccountDeletionResult

FORFEIT_NOTICE = "Your remaining paid period has been forfeited."


class AccountDeletionResponse(BaseModel):
    deleted: bool
    forfeits_paid_period: bool = Field(alias="forfeitsPaidPeriod")
    notice: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: AccountDeletionResult) -> "AccountDeletionResponse":
        return cls(
            deleted=result.deleted,
            forfeits_paid_period=result.forfeits_paid_period,
            notice=FORFEIT_NOTICE if result.forfeits_paid_period else None,
        )
