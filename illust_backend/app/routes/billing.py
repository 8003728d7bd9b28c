"""API routes exposing subscription billing."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool

from ..errors import MarketplaceError
from ..schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    PaymentHistoryResponse,
    PortalResponse,
    ProductListResponse,
    SubscriptionOut,
    SubscriptionResponse,
    SyncRequest,
    WebhookAck,
)
from ..services.billing import get_billing_service
from .dependencies import get_current_user

logger = logging.getLogger("billing")

router = APIRouter(prefix="/api/stripe", tags=["billing"])


@router.post("/checkout", response_model=CheckoutResponse)
def create_checkout_session(
    payload: Optional[CheckoutRequest] = None,
    *,
    current_user=Depends(get_current_user),
) -> CheckoutResponse:
    service = get_billing_service()
    try:
        session = service.create_checkout_session(
            current_user,
            price_id=payload.price_id if payload else None,
        )
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return CheckoutResponse.from_session(session)


@router.post("/sync", response_model=SubscriptionResponse)
def sync_checkout_session(
    payload: SyncRequest,
    *,
    current_user=Depends(get_current_user),
) -> SubscriptionResponse:
    service = get_billing_service()
    try:
        subscription = service.sync_checkout_session(current_user, payload.session_id)
        view = service.get_subscription_status(current_user)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    if view is not None:
        return SubscriptionResponse(subscription=SubscriptionOut.from_view(view))
    return SubscriptionResponse(subscription=SubscriptionOut.from_subscription(subscription))


@router.post("/refresh", response_model=SubscriptionResponse)
def refresh_subscription(*, current_user=Depends(get_current_user)) -> SubscriptionResponse:
    service = get_billing_service()
    try:
        subscription = service.refresh_subscription(current_user)
        view = service.get_subscription_status(current_user)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    if view is not None:
        return SubscriptionResponse(subscription=SubscriptionOut.from_view(view))
    return SubscriptionResponse(subscription=SubscriptionOut.from_subscription(subscription))


@router.get("/subscription", response_model=SubscriptionResponse)
def get_subscription(*, current_user=Depends(get_current_user)) -> SubscriptionResponse:
    service = get_billing_service()
    try:
        service.refresh_if_incomplete(current_user)
    except Exception:
        logger.warning("Could not complete subscription for %s", current_user.id, exc_info=True)

    view = service.get_subscription_status(current_user)
    if view is None:
        return SubscriptionResponse(subscription=None)
    return SubscriptionResponse(subscription=SubscriptionOut.from_view(view))


@router.post("/portal", response_model=PortalResponse)
def create_portal_session(*, current_user=Depends(get_current_user)) -> PortalResponse:
    service = get_billing_service()
    try:
        session = service.create_portal_session(current_user)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return PortalResponse(url=session.url)


@router.get("/products", response_model=ProductListResponse)
def list_products() -> ProductListResponse:
    service = get_billing_service()
    try:
        offers = service.list_products()
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return ProductListResponse.from_offers(offers)


@router.get("/payment-history", response_model=PaymentHistoryResponse)
def list_payment_history(*, current_user=Depends(get_current_user)) -> PaymentHistoryResponse:
    service = get_billing_service()
    try:
        records = service.list_payment_history(current_user)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return PaymentHistoryResponse.from_records(records)


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
) -> WebhookAck:
    service = get_billing_service()
    payload = await request.body()
    try:
        event = service.parse_webhook(payload, stripe_signature)
        await run_in_threadpool(service.handle_webhook, event)
    except MarketplaceError as exc:
        raise exc.to_http_exception() from exc
    return WebhookAck(received=True)
