"""Application wiring for the billing service."""
from __future__ import annotations

import logging
from functools import lru_cache

from ... import app_context
from ..billing import BillingAuditEvent, BillingEventLogger, BillingService
from ..billing.repository import PostgresSubscriptionRepository

logger = logging.getLogger("billing")


class LoggingBillingEventLogger(BillingEventLogger):
    """Event logger forwarding billing audit events to logging."""

    def log(self, event: BillingAuditEvent) -> None:
        logger.info(
            "Billing event %s user=%s subscription=%s metadata=%s",
            event.event_type.value,
            event.user_id,
            event.subscription_id,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_billing_service() -> BillingService:
    settings = app_context.get_settings()
    return BillingService(
        repository=PostgresSubscriptionRepository(),
        provider=app_context.get_payment_provider(),
        event_logger=LoggingBillingEventLogger(),
        price_id=settings.stripe_price_id,
        success_url=settings.checkout_success_url,
        cancel_url=settings.checkout_cancel_url,
        portal_return_url=settings.portal_return_url,
    )


__all__ = ["LoggingBillingEventLogger", "get_billing_service"]
