from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from starlette.requests import Request

from illust_backend.app.accounts import AccountDeletionResult
from illust_backend.app.billing import (
    DisplayState,
    Subscription,
    SubscriptionStatus,
    SubscriptionView,
)
from illust_backend.app.content import (
    DownloadGrant,
    Illustration,
    IllustrationPage,
    IllustrationStatus,
    Pagination,
)
from illust_backend.app.errors import ConflictError, ForbiddenError, ValidationFailed
from illust_backend.app.routes import account as account_routes
from illust_backend.app.routes import auth as auth_routes
from illust_backend.app.routes import billing as billing_routes
from illust_backend.app.routes import dependencies
from illust_backend.app.routes import illustrations as illustration_routes
from illust_backend.app.services import identity as identity_services

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _user(role: str = "consumer"):
    return SimpleNamespace(id="user-1", role=role, email="ada@example.com")


class StubContentService:
    def __init__(self) -> None:
        self.queries = []
        self.download_error = None

    def list_illustrations(self, query):
        self.queries.append(query)
        illustration = Illustration(
            id="ill-1",
            user_id="creator-1",
            title="Cat",
            image_url="https://cdn.test/cat.png",
            status=IllustrationStatus.PUBLISHED,
        )
        return IllustrationPage(
            illustrations=[illustration],
            pagination=Pagination(page=query.page, limit=query.limit, total=21, total_pages=2),
        )

    def download_illustration(self, user, illustration_id, client):
        if self.download_error is not None:
            raise self.download_error
        return DownloadGrant(download_url="https://cdn.test/cat.png", file_name="Cat.png")


def _list_kwargs(**overrides):
    kwargs = {
        "page": 1,
        "limit": 20,
        "category_id": None,
        "tag_id": None,
        "search": None,
        "sort_by": None,
        "sort_order": None,
        "status_filter": None,
    }
    kwargs.update(overrides)
    return kwargs


def test_list_illustrations_returns_camel_case_pagination(monkeypatch):
    service = StubContentService()
    monkeypatch.setattr(illustration_routes, "get_content_service", lambda: service)

    response = illustration_routes.list_illustrations(**_list_kwargs(sort_by="viewCount"))

    body = response.model_dump(by_alias=True)
    assert body["pagination"]["totalPages"] == 2
    assert body["illustrations"][0]["imageUrl"] == "https://cdn.test/cat.png"
    assert service.queries[0].sort_by == "view_count"
    assert service.queries[0].status == IllustrationStatus.PUBLISHED


def test_list_illustrations_rejects_out_of_range_limit(monkeypatch):
    service = StubContentService()
    monkeypatch.setattr(illustration_routes, "get_content_service", lambda: service)

    with pytest.raises(HTTPException) as exc_info:
        illustration_routes.list_illustrations(**_list_kwargs(limit=500))

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail["error"] == "invalid_request"
    assert service.queries == []


def test_download_route_maps_missing_subscription_to_403(monkeypatch):
    service = StubContentService()
    service.download_error = ForbiddenError(
        message="An active subscription is required",
        detail={"reason": "subscription_required"},
    )
    monkeypatch.setattr(illustration_routes, "get_content_service", lambda: service)

    with pytest.raises(HTTPException) as exc_info:
        illustration_routes.download_illustration("ill-1", client=None, current_user=_user())

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail["reason"] == "subscription_required"


def test_download_route_returns_grant(monkeypatch):
    monkeypatch.setattr(illustration_routes, "get_content_service", StubContentService)

    response = illustration_routes.download_illustration("ill-1", client=None, current_user=_user())

    assert response.model_dump(by_alias=True) == {
        "message": "Download started",
        "downloadUrl": "https://cdn.test/cat.png",
        "fileName": "Cat.png",
    }


def test_get_role_reports_flags():
    response = auth_routes.get_role(current_user=_user("illustrator"))

    assert response.model_dump(by_alias=True) == {
        "role": "illustrator",
        "isIllustrator": True,
        "isAdmin": False,
    }


def test_update_role_maps_conflict_to_400(monkeypatch):
    class StubIdentityService:
        def request_role(self, user, requested):
            raise ConflictError(message="Already registered as illustrator", status_code=400)

    monkeypatch.setattr(auth_routes, "get_identity_service", StubIdentityService)

    with pytest.raises(HTTPException) as exc_info:
        auth_routes.update_role(auth_routes.RoleUpdateRequest(role="illustrator"), current_user=_user("illustrator"))

    assert exc_info.value.status_code == 400


def _view(**fields) -> SubscriptionView:
    subscription = Subscription(
        id="row-1",
        user_id="user-1",
        provider_customer_id="cus_1",
        provider_subscription_id="sub_1",
        status=SubscriptionStatus.ACTIVE,
        current_period_end=NOW + timedelta(days=5),
        **fields,
    )
    display = DisplayState(
        cancel_scheduled=subscription.cancel_at_period_end,
        past_end=False,
        canceled_display=False,
        entitled=True,
        label="cancel_scheduled" if subscription.cancel_at_period_end else "active",
    )
    return SubscriptionView(subscription=subscription, display=display)


def test_get_subscription_survives_refresh_failure(monkeypatch):
    class StubBillingService:
        def refresh_if_incomplete(self, user):
            raise RuntimeError("provider unreachable")

        def get_subscription_status(self, user):
            return _view(cancel_at_period_end=True)

    monkeypatch.setattr(billing_routes, "get_billing_service", StubBillingService)

    response = billing_routes.get_subscription(current_user=_user())

    body = response.model_dump(by_alias=True)
    assert body["subscription"]["stripeSubscriptionId"] == "sub_1"
    assert body["subscription"]["displayState"]["cancelScheduled"] is True


def test_get_subscription_without_row_returns_null(monkeypatch):
    class StubBillingService:
        def refresh_if_incomplete(self, user):
            return None

        def get_subscription_status(self, user):
            return None

    monkeypatch.setattr(billing_routes, "get_billing_service", StubBillingService)

    assert billing_routes.get_subscription(current_user=_user()).subscription is None


def test_account_delete_maps_active_subscription_to_409(monkeypatch):
    class StubAccountService:
        def delete_account(self, user):
            raise ConflictError(message="Cancel your subscription first")

    monkeypatch.setattr(account_routes, "get_account_service", StubAccountService)

    with pytest.raises(HTTPException) as exc_info:
        account_routes.delete_account(current_user=_user())

    assert exc_info.value.status_code == 409


def test_account_delete_reports_forfeited_period(monkeypatch):
    class StubAccountService:
        def delete_account(self, user):
            return AccountDeletionResult(deleted=True, forfeits_paid_period=True)

    monkeypatch.setattr(account_routes, "get_account_service", StubAccountService)

    body = account_routes.delete_account(current_user=_user()).model_dump(by_alias=True)

    assert body["deleted"] is True
    assert body["forfeitsPaidPeriod"] is True
    assert body["notice"]


def test_client_info_prefers_forwarded_address():
    request = Request(
        {
            "type": "http",
            "headers": [(b"x-forwarded-for", b"203.0.113.5"), (b"user-agent", b"pytest")],
        }
    )

    info = dependencies.client_info(request)

    assert info.ip_address == "203.0.113.5"
    assert info.user_agent == "pytest"


def test_client_info_defaults_to_unknown():
    info = dependencies.client_info(Request({"type": "http", "headers": []}))

    assert info.ip_address == "unknown"
    assert info.user_agent == "unknown"


@pytest.fixture
def client():
    from illust_backend.main import app

    return TestClient(app)


def test_protected_route_without_session_is_401(monkeypatch, client):
    monkeypatch.setattr(identity_services, "get_optional_current_user", lambda token=None: None)

    response = client.get("/api/favorites")

    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "unauthenticated"


def test_webhook_with_bad_signature_is_400(monkeypatch, client):
    class StubBillingService:
        def parse_webhook(self, payload, signature):
            assert signature == "t=1,v1=bad"
            raise ValidationFailed(message="Invalid webhook signature")

    monkeypatch.setattr(billing_routes, "get_billing_service", StubBillingService)

    response = client.post("/api/stripe/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=bad"})

    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "Invalid webhook signature"


def test_webhook_applies_event_in_threadpool(monkeypatch, client):
    handled = []

    class StubBillingService:
        def parse_webhook(self, payload, signature):
            return SimpleNamespace(event_id="evt_1", payload=payload)

        def handle_webhook(self, event):
            handled.append(event.event_id)
            return True

    monkeypatch.setattr(billing_routes, "get_billing_service", StubBillingService)

    response = client.post("/api/stripe/webhook", content=b'{"id": "evt_1"}')

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert handled == ["evt_1"]
