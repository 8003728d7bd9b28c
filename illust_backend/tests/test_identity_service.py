from __future__ import annotations

from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest
from jose import jwt

from illust_backend.app.access import (
    UserRole,
    can_modify,
    has_role,
    is_admin,
    is_illustrator,
    require_auth,
    require_owner_or_admin,
    require_role,
)
from illust_backend.app.errors import (
    AuthenticationRequired,
    ConflictError,
    ForbiddenError,
    ValidationFailed,
)
from illust_backend.app.identity import (
    ExternalPrincipal,
    IdentityService,
    JWTSessionIdentityProvider,
    NewUser,
    User,
    UserRepository,
)


class InMemoryUserRepository(UserRepository):
    def __init__(self) -> None:
        self.users: Dict[str, User] = {}
        self.created: List[NewUser] = []
        self.fail = False

    def get_by_external_id(self, external_id: str) -> Optional[User]:
        if self.fail:
            raise RuntimeError("database unavailable")
        return next((u for u in self.users.values() if u.external_id == external_id), None)

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    def create_or_fetch(self, new_user: NewUser) -> User:
        existing = self.get_by_external_id(new_user.external_id)
        if existing is not None:
            return existing
        self.created.append(new_user)
        user = User(id=f"user-{len(self.users) + 1}", **new_user.model_dump())
        self.users[user.id] = user
        return user

    def update_role(self, user_id: str, role: UserRole) -> Optional[User]:
        user = self.users.get(user_id)
        if user is None:
            return None
        updated = user.model_copy(update={"role": role})
        self.users[user_id] = updated
        return updated

    def delete_user(self, user_id: str) -> bool:
        return self.users.pop(user_id, None) is not None


class StaticIdentityProvider:
    def __init__(self, principals: Dict[str, ExternalPrincipal]) -> None:
        self.principals = principals

    def get_principal(self, session_token: Optional[str]) -> Optional[ExternalPrincipal]:
        if not session_token:
            return None
        return self.principals.get(session_token)


@pytest.fixture
def identity():
    repository = InMemoryUserRepository()
    provider = StaticIdentityProvider(
        {
            "token-ada": ExternalPrincipal(
                external_id="ext-ada",
                primary_email="ada@example.com",
                display_name="Ada",
                email_verified=True,
            ),
            "token-bob": ExternalPrincipal(external_id="ext-bob"),
        }
    )
    return IdentityService(repository=repository, provider=provider), repository


def test_resolve_principal_without_session_is_anonymous(identity):
    service, repository = identity

    assert service.resolve_principal(None) is None
    assert service.resolve_principal("unknown") is None
    assert repository.created == []


def test_resolve_principal_creates_consumer_on_first_sight(identity):
    service, repository = identity

    user = service.resolve_principal("token-ada")

    assert user is not None
    assert user.email == "ada@example.com"
    assert user.name == "Ada"
    assert user.is_verified is True
    assert user.role == UserRole.CONSUMER
    assert len(repository.created) == 1


def test_resolve_principal_reuses_existing_user(identity):
    service, repository = identity

    first = service.resolve_principal("token-ada")
    second = service.resolve_principal("token-ada")

    assert first.id == second.id
    assert len(repository.created) == 1


def test_resolve_principal_without_email_stores_empty_string(identity):
    service, _repository = identity

    user = service.resolve_principal("token-bob")

    assert user.email == ""
    assert user.name is None


def test_resolve_principal_fails_closed_on_storage_error(identity):
    service, repository = identity
    repository.fail = True

    assert service.resolve_principal("token-ada") is None


def test_request_role_upgrades_consumer(identity):
    service, _repository = identity
    user = service.resolve_principal("token-ada")

    updated = service.request_role(user, "illustrator")

    assert updated.role == UserRole.ILLUSTRATOR
    assert updated.is_illustrator is True


@pytest.mark.parametrize(
    "requested, error",
    [
        ("administrator", ForbiddenError),
        ("consumer", ValidationFailed),
        ("superuser", ValidationFailed),
    ],
)
def test_request_role_rejects_other_targets(identity, requested, error):
    service, _repository = identity
    user = service.resolve_principal("token-ada")

    with pytest.raises(error):
        service.request_role(user, requested)


def test_request_role_rejects_repeat_registration(identity):
    service, _repository = identity
    user = service.request_role(service.resolve_principal("token-ada"), "illustrator")

    with pytest.raises(ConflictError) as exc_info:
        service.request_role(user, "illustrator")
    assert exc_info.value.status_code == 400


def test_role_hierarchy_is_ordered():
    consumer = SimpleNamespace(id="u1", role="consumer")
    illustrator = SimpleNamespace(id="u2", role="illustrator")
    admin = SimpleNamespace(id="u3", role="administrator")

    assert not is_illustrator(consumer)
    assert is_illustrator(illustrator) and not is_admin(illustrator)
    assert is_illustrator(admin) and is_admin(admin)
    assert has_role(admin, UserRole.CONSUMER)
    assert not has_role(None, UserRole.CONSUMER)
    assert not has_role(SimpleNamespace(id="u4", role="owner"), UserRole.CONSUMER)


def test_require_role_distinguishes_unauthenticated_from_forbidden():
    with pytest.raises(AuthenticationRequired):
        require_role(None, UserRole.ILLUSTRATOR)
    with pytest.raises(ForbiddenError) as exc_info:
        require_role(SimpleNamespace(id="u1", role="consumer"), UserRole.ILLUSTRATOR)
    assert exc_info.value.payload["required_role"] == "illustrator"
    with pytest.raises(AuthenticationRequired):
        require_auth(None)


def test_owner_or_admin_may_modify():
    owner = SimpleNamespace(id="u1", role="illustrator")
    other = SimpleNamespace(id="u2", role="illustrator")
    admin = SimpleNamespace(id="u3", role="administrator")

    assert can_modify(owner, "u1")
    assert can_modify(admin, "u1")
    assert not can_modify(other, "u1")
    assert not can_modify(None, "u1")
    with pytest.raises(ForbiddenError):
        require_owner_or_admin(other, "u1")


def test_jwt_provider_maps_claims_to_principal():
    provider = JWTSessionIdentityProvider("session-secret")
    token = jwt.encode(
        {"sub": "ext-1", "email": "ada@example.com", "name": "Ada", "email_verified": True},
        "session-secret",
        algorithm="HS256",
    )

    principal = provider.get_principal(token)

    assert principal == ExternalPrincipal(
        external_id="ext-1",
        primary_email="ada@example.com",
        display_name="Ada",
        email_verified=True,
    )


def test_jwt_provider_rejects_foreign_or_subjectless_tokens():
    provider = JWTSessionIdentityProvider("session-secret")
    forged = jwt.encode({"sub": "ext-1"}, "another-secret", algorithm="HS256")
    anonymous = jwt.encode({"email": "x@example.com"}, "session-secret", algorithm="HS256")

    assert provider.get_principal(forged) is None
    assert provider.get_principal(anonymous) is None
    assert provider.get_principal("not-a-jwt") is None
    assert provider.get_principal(None) is None


def test_jwt_provider_checks_audience_when_configured():
    provider = JWTSessionIdentityProvider("session-secret", audience="illust")
    matching = jwt.encode({"sub": "ext-1", "aud": "illust"}, "session-secret", algorithm="HS256")
    foreign = jwt.encode({"sub": "ext-1", "aud": "other"}, "session-secret", algorithm="HS256")

    assert provider.get_principal(matching).external_id == "ext-1"
    assert provider.get_principal(foreign) is None


def test_jwt_provider_requires_secret():
    with pytest.raises(ValueError):
        JWTSessionIdentityProvider("")
