"""Domain models for subscription billing."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SubscriptionStatus(str, Enum):
    """Subscription states reported by the payment provider."""

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"
    PAUSED = "paused"


ENTITLING_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})


class SubscriptionSnapshot(BaseModel):
    """Remote subscription fields extracted from a provider payload."""

    provider_subscription_id: str
    provider_customer_id: str
    status: SubscriptionStatus
    current_period_end: Optional[datetime] = None
    cancel_at: Optional[datetime] = None
    cancel_at_period_end: bool = False

    model_config = ConfigDict(frozen=True)


class Subscription(BaseModel):
    """Local subscription row, one per user."""

    id: str
    user_id: str
    provider_customer_id: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    status: SubscriptionStatus
    current_period_end: Optional[datetime] = None
    cancel_at: Optional[datetime] = None
    cancel_at_period_end: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class DisplayState(BaseModel):
    """Entitlement and presentation state derived from a subscription at read time."""

    cancel_scheduled: bool
    past_end: bool
    canceled_display: bool
    entitled: bool
    label: str

    model_config = ConfigDict(frozen=True)


class SubscriptionView(BaseModel):
    """Subscription row paired with its derived display state."""

    subscription: Subscription
    display: DisplayState

    model_config = ConfigDict(frozen=True)


class DeletionAssessment(BaseModel):
    """Outcome of the account deletion billing gate."""

    allowed: bool
    forfeits_paid_period: bool = False

    model_config = ConfigDict(frozen=True)


class ProviderCheckoutSession(BaseModel):
    """Checkout session returned to the browser for redirection."""

    session_id: str
    url: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class PortalSession(BaseModel):
    url: str

    model_config = ConfigDict(frozen=True)


class ProductPrice(BaseModel):
    id: str
    amount: Optional[int] = None
    currency: str
    interval: Optional[str] = None
    interval_count: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class ProductOffer(BaseModel):
    """Active product paired with its resolvable price."""

    id: str
    name: str
    description: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    price: ProductPrice

    model_config = ConfigDict(frozen=True)


class PaymentRecord(BaseModel):
    """Charge made against the user's provider customer."""

    id: str
    amount: int
    currency: str
    status: str
    description: str = "Subscription fee"
    created_at: datetime
    receipt_url: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("currency")
    @classmethod
    def _lower_currency(cls, value: str) -> str:
        return value.lower()


class BillingWebhookEvent(BaseModel):
    """Verified webhook payload stored for idempotency tracking."""

    event_id: str
    event_type: str
    payload: Dict[str, Any]
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class BillingAuditEventType(str, Enum):
    """Audit event categories emitted by the billing subsystem."""

    CHECKOUT_CREATED = "checkout_created"
    SUBSCRIPTION_SYNCED = "subscription_synced"
    SUBSCRIPTION_REFRESHED = "subscription_refreshed"
    WEBHOOK_APPLIED = "webhook_applied"
    PORTAL_OPENED = "portal_opened"


class BillingAuditEvent(BaseModel):
    """Structured audit event for billing activity."""

    event_type: BillingAuditEventType
    user_id: Optional[str] = None
    subscription_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


__all__ = [
    "BillingAuditEvent",
    "BillingAuditEventType",
    "BillingWebhookEvent",
    "DeletionAssessment",
    "DisplayState",
    "ENTITLING_STATUSES",
    "PaymentRecord",
    "PortalSession",
    "ProductOffer",
    "ProductPrice",
    "ProviderCheckoutSession",
    "Subscription",
    "SubscriptionSnapshot",
    "SubscriptionStatus",
    "SubscriptionView",
]
