"""API schemas for subscription billing endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..billing import (
    DisplayState,
    PaymentRecord,
    ProductOffer,
    ProviderCheckoutSession,
    Subscription,
    SubscriptionStatus,
    SubscriptionView,
)


class CheckoutRequest(BaseModel):
    price_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("priceId", "price_id"))


class CheckoutResponse(BaseModel):
    session_id: str = Field(alias="sessionId")
    url: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_session(cls, session: ProviderCheckoutSession) -> "CheckoutResponse":
        return cls(session_id=session.session_id, url=session.url)


class SyncRequest(BaseModel):
    session_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("sessionId", "session_id")
    )


class DisplayStateOut(BaseModel):
    cancel_scheduled: bool = Field(alias="cancelScheduled")
    past_end: bool = Field(alias="pastEnd")
    canceled_display: bool = Field(alias="canceledDisplay")
    entitled: bool
    label: str

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_state(cls, state: DisplayState) -> "DisplayStateOut":
        return cls.model_validate(state.model_dump())


class SubscriptionOut(BaseModel):
    id: str
    user_id: str = Field(alias="userId")
    stripe_customer_id: Optional[str] = Field(default=None, alias="stripeCustomerId")
    stripe_subscription_id: Optional[str] = Field(default=None, alias="stripeSubscriptionId")
    status: SubscriptionStatus
    current_period_end: Optional[datetime] = Field(default=None, alias="currentPeriodEnd")
    cancel_at: Optional[datetime] = Field(default=None, alias="cancelAt")
    cancel_at_period_end: bool = Field(alias="cancelAtPeriodEnd")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    display_state: Optional[DisplayStateOut] = Field(default=None, alias="displayState")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_subscription(
        cls,
        subscription: Subscription,
        display: Optional[DisplayState] = None,
    ) -> "SubscriptionOut":
        return cls(
            id=subscription.id,
            user_id=subscription.user_id,
            stripe_customer_id=subscription.provider_customer_id,
            stripe_subscription_id=subscription.provider_subscription_id,
            status=subscription.status,
            current_period_end=subscription.current_period_end,
            cancel_at=subscription.cancel_at,
            cancel_at_period_end=subscription.cancel_at_period_end,
            created_at=subscription.created_at,
            updated_at=subscription.updated_at,
            display_state=DisplayStateOut.from_state(display) if display else None,
        )

    @classmethod
    def from_view(cls, view: SubscriptionView) -> "SubscriptionOut":
        return cls.from_subscription(view.subscription, view.display)


class SubscriptionResponse(BaseModel):
    subscription: Optional[SubscriptionOut] = None


class PortalResponse(BaseModel):
    url: str


class PriceOut(BaseModel):
    id: str
    amount: Optional[int] = None
    currency: str
    interval: Optional[str] = None
    interval_count: Optional[int] = Field(default=None, alias="intervalCount")

    model_config = ConfigDict(populate_by_name=True)


class ProductOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    price: PriceOut


class ProductListResponse(BaseModel):
    products: List[ProductOut]

    @classmethod
    def from_offers(cls, offers: List[ProductOffer]) -> "ProductListResponse":
        return cls(products=[ProductOut.model_validate(offer.model_dump()) for offer in offers])


class PaymentOut(BaseModel):
    id: str
    amount: int
    currency: str
    status: str
    description: str
    created_at: datetime = Field(alias="createdAt")
    receipt_url: Optional[str] = Field(default=None, alias="receiptUrl")

    model_config = ConfigDict(populate_by_name=True)


class PaymentHistoryResponse(BaseModel):
    payments: List[PaymentOut]

    @classmethod
    def from_records(cls, records: List[PaymentRecord]) -> "PaymentHistoryResponse":
        return cls(payments=[PaymentOut.model_validate(record.model_dump()) for record in records])


class WebhookAck(BaseModel):
    received: bool = True
