"""Subscription reconciliation between the payment provider and local rows."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, TypeVar

from ..errors import (
    AuthenticationRequired,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UpstreamFailure,
    ValidationFailed,
)
from .models import (
    BillingAuditEvent,
    BillingAuditEventType,
    BillingWebhookEvent,
    DeletionAssessment,
    PaymentRecord,
    PortalSession,
    ProductOffer,
    ProductPrice,
    ProviderCheckoutSession,
    Subscription,
    SubscriptionSnapshot,
    SubscriptionView,
)
from .provider import PaymentProvider, PaymentProviderError
from .repository import SubscriptionRepository
from .state import derive_display_state, snapshot_from_remote

logger = logging.getLogger("billing")

T = TypeVar("T")

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_EVENTS = frozenset(
    {
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
    }
)


class BillingEventLogger(Protocol):
    """Captures structured billing audit events."""

    def log(self, event: BillingAuditEvent) -> None:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ref(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        value = value.get("id")
    return str(value) if value else None


def _from_epoch(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value or 0), tz=timezone.utc)


@dataclass
class BillingService:
    """Keeps the local subscription row in step with the provider.

    Three paths write the row: the browser returning from checkout
    (``sync_checkout_session``), an explicit refresh (``refresh_subscription``)
    and provider webhooks (``handle_webhook``). All of them overwrite the row
    keyed by user id, so replaying any of them is harmless.
    """

    repository: SubscriptionRepository
    provider: PaymentProvider
    event_logger: BillingEventLogger
    price_id: str = ""
    success_url: str = ""
    cancel_url: str = ""
    portal_return_url: str = ""
    clock: Callable[[], datetime] = field(default=_utcnow)

    def _now(self) -> datetime:
        return self.clock()

    def _call_provider(self, operation: str, func: Callable[[], T]) -> T:
        try:
            return func()
        except PaymentProviderError:
            logger.exception("Payment provider call failed during %s", operation)
            raise

    def _snapshot(self, remote: Mapping[str, Any]) -> SubscriptionSnapshot:
        try:
            return snapshot_from_remote(remote)
        except ValueError as exc:
            logger.exception("Unusable subscription payload %s", remote.get("id"))
            raise UpstreamFailure() from exc

    def _view(self, subscription: Subscription, now: Optional[datetime]) -> SubscriptionView:
        display = derive_display_state(
            subscription.status,
            subscription.current_period_end,
            subscription.cancel_at,
            subscription.cancel_at_period_end,
            now or self._now(),
        )
        return SubscriptionView(subscription=subscription, display=display)

    def _audit(self, event_type: BillingAuditEventType, subscription: Subscription, /, **metadata: str) -> None:
        self.event_logger.log(
            BillingAuditEvent(
                event_type=event_type,
                user_id=subscription.user_id,
                subscription_id=subscription.provider_subscription_id,
                metadata=metadata,
                occurred_at=self._now(),
            )
        )

    def create_checkout_session(self, user: Any, price_id: Optional[str] = None) -> ProviderCheckoutSession:
        if not getattr(user, "email", None):
            raise AuthenticationRequired(message="A verified email address is required")

        price = price_id or self.price_id
        if not price:
            logger.error("Checkout requested but no price is configured")
            raise UpstreamFailure()

        existing: Optional[Subscription] = None
        try:
            existing = self.repository.get_by_user(user.id)
        except Exception:
            logger.warning("Subscription lookup failed for %s; continuing without customer", user.id, exc_info=True)

        user_id = str(user.id)
        params: Dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": price, "quantity": 1}],
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
            "client_reference_id": user_id,
            "metadata": {"user_id": user_id},
            "subscription_data": {"metadata": {"user_id": user_id}},
            "allow_promotion_codes": True,
            "billing_address_collection": "auto",
        }
        if existing is not None and existing.provider_customer_id:
            params["customer"] = existing.provider_customer_id
        else:
            params["customer_email"] = user.email

        session = self._call_provider("checkout", lambda: self.provider.create_checkout_session(params))
        session_id = _ref(session.get("id"))
        if not session_id:
            logger.error("Checkout session response carried no id")
            raise UpstreamFailure()

        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.CHECKOUT_CREATED,
                user_id=user_id,
                metadata={"session_id": session_id},
                occurred_at=self._now(),
            )
        )
        return ProviderCheckoutSession(session_id=session_id, url=session.get("url"))

    def sync_checkout_session(self, user: Any, session_id: Optional[str]) -> Subscription:
        if not session_id or not session_id.strip():
            raise ValidationFailed(message="Session ID is required")

        session = self._call_provider(
            "sync", lambda: self.provider.retrieve_checkout_session(session_id.strip())
        )
        if str(session.get("client_reference_id") or "") != str(user.id):
            logger.warning("Checkout session %s does not belong to user %s", session_id, user.id)
            raise ForbiddenError(message="Checkout session does not belong to the current user")

        subscription_id = _ref(session.get("subscription"))
        customer_id = _ref(session.get("customer"))
        if not subscription_id or not customer_id:
            raise NotFoundError(message="Subscription or customer not found")

        remote = self._call_provider("sync", lambda: self.provider.retrieve_subscription(subscription_id))
        persisted = self.repository.upsert_for_user(str(user.id), self._snapshot(remote))
        self._audit(BillingAuditEventType.SUBSCRIPTION_SYNCED, persisted, session_id=session_id)
        return persisted

    def refresh_subscription(self, user: Any) -> Subscription:
        existing = self.repository.get_by_user(str(user.id))
        if existing is None or not existing.provider_subscription_id:
            raise NotFoundError(message="Subscription not found")

        subscription_id = existing.provider_subscription_id
        remote = self._call_provider("refresh", lambda: self.provider.retrieve_subscription(subscription_id))
        persisted = self.repository.upsert_for_user(str(user.id), self._snapshot(remote))
        self._audit(BillingAuditEventType.SUBSCRIPTION_REFRESHED, persisted)
        return persisted

    def refresh_if_incomplete(self, user: Any) -> Optional[Subscription]:
        """Re-fetch the row when it was stored without a period end."""

        existing = self.repository.get_by_user(str(user.id))
        if existing is None:
            return None
        if existing.current_period_end is None and existing.provider_subscription_id:
            return self.refresh_subscription(user)
        return existing

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> BillingWebhookEvent:
        raw = self.provider.construct_webhook_event(payload, signature)
        event_id = raw.get("id")
        event_type = raw.get("type")
        if not event_id or not event_type:
            raise ValidationFailed(message="Webhook event is missing its id or type")
        return BillingWebhookEvent(
            event_id=str(event_id),
            event_type=str(event_type),
            payload=raw,
            received_at=self._now(),
        )

    def handle_webhook(self, event: BillingWebhookEvent) -> bool:
        """Apply a verified webhook event; returns ``False`` for ignored events.

        The event id is stored only once the event has been applied, so a
        delivery that fails part way is applied again when the provider retries.
        """

        if self.repository.has_webhook_event(event.event_id):
            logger.info("Skipping duplicate webhook event %s", event.event_id)
            return False

        applied = self._apply_webhook(event)
        if not self.repository.record_webhook_event(event):
            logger.info("Webhook event %s was recorded by a concurrent delivery", event.event_id)
        return applied

    def _apply_webhook(self, event: BillingWebhookEvent) -> bool:
        data = event.payload.get("data")
        obj = data.get("object") if isinstance(data, Mapping) else None
        if not isinstance(obj, Mapping):
            logger.warning("Webhook event %s carried no object", event.event_id)
            return False

        if event.event_type == CHECKOUT_COMPLETED:
            return self._apply_checkout_completed(event, obj)
        if event.event_type in SUBSCRIPTION_EVENTS:
            return self._apply_subscription_event(event, obj)

        logger.debug("Ignoring webhook event %s of type %s", event.event_id, event.event_type)
        return False

    def _apply_checkout_completed(self, event: BillingWebhookEvent, session: Mapping[str, Any]) -> bool:
        metadata = session.get("metadata") if isinstance(session.get("metadata"), Mapping) else {}
        user_id = session.get("client_reference_id") or metadata.get("user_id")
        subscription_id = _ref(session.get("subscription"))
        if not user_id or not subscription_id:
            logger.warning("Checkout event %s lacks user or subscription reference", event.event_id)
            return False

        remote = self._call_provider("webhook", lambda: self.provider.retrieve_subscription(subscription_id))
        persisted = self.repository.upsert_for_user(str(user_id), self._snapshot(remote))
        self._audit(BillingAuditEventType.WEBHOOK_APPLIED, persisted, event_type=event.event_type)
        return True

    def _apply_subscription_event(self, event: BillingWebhookEvent, remote: Mapping[str, Any]) -> bool:
        snapshot = self._snapshot(remote)
        metadata = remote.get("metadata") if isinstance(remote.get("metadata"), Mapping) else {}
        user_id = metadata.get("user_id")
        if not user_id:
            owner = self.repository.get_by_customer(snapshot.provider_customer_id)
            user_id = owner.user_id if owner is not None else None
        if not user_id:
            logger.warning(
                "Webhook event %s references unknown customer %s",
                event.event_id,
                snapshot.provider_customer_id,
            )
            return False

        persisted = self.repository.upsert_for_user(str(user_id), snapshot)
        self._audit(BillingAuditEventType.WEBHOOK_APPLIED, persisted, event_type=event.event_type)
        return True

    def get_subscription_status(self, user: Any, now: Optional[datetime] = None) -> Optional[SubscriptionView]:
        try:
            existing = self.repository.get_by_user(str(user.id))
        except Exception:
            logger.warning("Subscription read failed for %s; reporting none", user.id, exc_info=True)
            return None
        if existing is None:
            return None
        return self._view(existing, now)

    def _gate_view(self, user: Any, now: Optional[datetime]) -> Optional[SubscriptionView]:
        try:
            existing = self.repository.get_by_user(str(user.id))
        except Exception as exc:
            logger.exception("Subscription read failed for %s", user.id)
            raise UpstreamFailure() from exc
        if existing is None:
            return None
        return self._view(existing, now)

    def assert_download_entitled(self, user: Any, now: Optional[datetime] = None) -> SubscriptionView:
        view = self._gate_view(user, now)
        if view is None or not view.display.entitled:
            raise ForbiddenError(
                message="An active subscription is required to download this illustration",
                detail={"reason": "subscription_required"},
            )
        return view

    def assess_account_deletion(self, user: Any, now: Optional[datetime] = None) -> DeletionAssessment:
        view = self._gate_view(user, now)
        if view is None or not view.display.entitled:
            return DeletionAssessment(allowed=True, forfeits_paid_period=False)
        if not view.display.cancel_scheduled:
            raise ConflictError(
                message="Cancel your subscription from the billing portal before deleting your account",
                detail={"reason": "active_subscription"},
            )
        return DeletionAssessment(allowed=True, forfeits_paid_period=True)

    def create_portal_session(self, user: Any) -> PortalSession:
        existing = self.repository.get_by_user(str(user.id))
        if existing is None or not existing.provider_customer_id:
            raise NotFoundError(message="Customer not found")

        customer_id = existing.provider_customer_id
        session = self._call_provider(
            "portal",
            lambda: self.provider.create_billing_portal_session(
                customer_id=customer_id,
                return_url=self.portal_return_url,
            ),
        )
        url = session.get("url")
        if not url:
            logger.error("Portal session response carried no url")
            raise UpstreamFailure()
        self._audit(BillingAuditEventType.PORTAL_OPENED, existing)
        return PortalSession(url=str(url))

    def list_products(self) -> List[ProductOffer]:
        products = self._call_provider("products", lambda: self.provider.list_products(active=True))
        prices = self._call_provider("products", lambda: self.provider.list_prices(active=True))

        offers: List[ProductOffer] = []
        for product in products:
            price = self._resolve_price(product, prices)
            if price is None:
                continue
            recurring = price.get("recurring") if isinstance(price.get("recurring"), Mapping) else {}
            offers.append(
                ProductOffer(
                    id=str(product["id"]),
                    name=str(product.get("name") or ""),
                    description=product.get("description"),
                    images=list(product.get("images") or []),
                    price=ProductPrice(
                        id=str(price["id"]),
                        amount=price.get("unit_amount"),
                        currency=str(price.get("currency") or ""),
                        interval=recurring.get("interval"),
                        interval_count=recurring.get("interval_count"),
                    ),
                )
            )
        return offers

    @staticmethod
    def _resolve_price(
        product: Mapping[str, Any],
        prices: List[Dict[str, Any]],
    ) -> Optional[Mapping[str, Any]]:
        default = product.get("default_price")
        if isinstance(default, Mapping) and default.get("id"):
            return default
        if isinstance(default, str):
            for price in prices:
                if price.get("id") == default:
                    return price
        for price in prices:
            if _ref(price.get("product")) == product.get("id"):
                return price
        return None

    def list_payment_history(self, user: Any, limit: int = 20) -> List[PaymentRecord]:
        existing = self.repository.get_by_user(str(user.id))
        if existing is None or not existing.provider_customer_id:
            return []

        customer_id = existing.provider_customer_id
        charges = self._call_provider(
            "payment-history",
            lambda: self.provider.list_charges(customer_id=customer_id, limit=limit),
        )
        records = [
            PaymentRecord(
                id=str(charge["id"]),
                amount=int(charge.get("amount") or 0),
                currency=str(charge.get("currency") or ""),
                status=str(charge.get("status") or ""),
                description=charge.get("description") or "Subscription fee",
                created_at=_from_epoch(charge.get("created")),
                receipt_url=charge.get("receipt_url") or None,
            )
            for charge in charges
        ]
        records.sort(key=lambda record: record.created_at, reverse=True)
        return records


__all__ = ["BillingEventLogger", "BillingService"]
