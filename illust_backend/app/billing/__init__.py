"""Billing domain package."""

from .models import (
    ENTITLING_STATUSES,
    BillingAuditEvent,
    BillingAuditEventType,
    BillingWebhookEvent,
    DeletionAssessment,
    DisplayState,
    PaymentRecord,
    PortalSession,
    ProductOffer,
    ProductPrice,
    ProviderCheckoutSession,
    Subscription,
    SubscriptionSnapshot,
    SubscriptionStatus,
    SubscriptionView,
)
from .provider import PaymentProvider, PaymentProviderError, StripePaymentProvider
from .repository import PostgresSubscriptionRepository, SubscriptionRepository
from .service import BillingEventLogger, BillingService
from .state import derive_display_state, extract_current_period_end, snapshot_from_remote

__all__ = [
    "BillingAuditEvent",
    "BillingAuditEventType",
    "BillingEventLogger",
    "BillingService",
    "BillingWebhookEvent",
    "DeletionAssessment",
    "DisplayState",
    "ENTITLING_STATUSES",
    "PaymentProvider",
    "PaymentProviderError",
    "PaymentRecord",
    "PortalSession",
    "PostgresSubscriptionRepository",
    "ProductOffer",
    "ProductPrice",
    "ProviderCheckoutSession",
    "StripePaymentProvider",
    "Subscription",
    "SubscriptionRepository",
    "SubscriptionSnapshot",
    "SubscriptionStatus",
    "SubscriptionView",
    "derive_display_state",
    "extract_current_period_end",
    "snapshot_from_remote",
]
