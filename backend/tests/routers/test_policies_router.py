from typing import Any, AsyncIterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from standbook.deps import get_current_user_id, get_session
from standbook.domain.errors import PermissionDeniedError
from standbook.domain.policy import PolicyConfig
from standbook.routers import policies as router


class DummySession:
    def begin(self) -> "DummySession":
        return self

    async def __aenter__(self) -> "DummySession":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        return False


class _Repo:
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        pass


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    app = FastAPI()

    async def override_session() -> AsyncIterator[DummySession]:
        yield DummySession()

    async def override_user() -> int:
        return 3

    monkeypatch.setattr(router, "SqlAlchemyClubRepository", _Repo)
    monkeypatch.setattr(router, "SqlAlchemyPolicyRepository", _Repo)
    monkeypatch.setattr(router, "emit_audit_log", lambda **kwargs: None)
    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_current_user_id] = override_user
    app.include_router(router.router)
    return TestClient(app)


def test_get_policy_returns_defaults(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    async def require_member(*args: Any, **kwargs: Any) -> None:
        return None

    async def get_policy(*args: Any, **kwargs: Any) -> PolicyConfig:
        return PolicyConfig()

    monkeypatch.setattr(router.policy_usecase, "require_member", require_member)
    monkeypatch.setattr(router.policy_usecase, "get_policy", get_policy)
    res = client.get("/clubs/1/policy")
    assert res.status_code == 200
    body = res.json()
    assert body["max_consecutive_days"] == 3
    assert body["guest_restrictions"] == {"allow_guests": True, "requires_approval": True, "max_guest_days": 2}


def test_update_policy_round_trips_blackouts(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    async def update_policy(*args: Any, policy: PolicyConfig, **kwargs: Any) -> PolicyConfig:
        return policy

    monkeypatch.setattr(router.policy_usecase, "update_policy", update_policy)
    res = client.put("/clubs/1/policy", json={"blackout_dates": ["2024-12-25", "2024-11-23"]})
    assert res.status_code == 200
    body = res.json()
    assert body["blackout_dates"] == ["2024-11-23", "2024-12-25"]
    assert body["guest_restrictions"] == {"allow_guests": True, "requires_approval": True, "max_guest_days": 2}


def test_update_policy_by_member_is_403(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    async def update_policy(*args: Any, **kwargs: Any) -> PolicyConfig:
        raise PermissionDeniedError("only club owners and admins can change booking rules")

    monkeypatch.setattr(router.policy_usecase, "update_policy", update_policy)
    res = client.put("/clubs/1/policy", json={})
    assert res.status_code == 403


def test_policy_without_guest_rule_reads_back_as_unrestricted(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def require_member(*args: Any, **kwargs: Any) -> None:
        return None

    async def get_policy(*args: Any, **kwargs: Any) -> PolicyConfig:
        return PolicyConfig(guest_restrictions=None)

    monkeypatch.setattr(router.policy_usecase, "require_member", require_member)
    monkeypatch.setattr(router.policy_usecase, "get_policy", get_policy)
    res = client.get("/clubs/1/policy")
    assert res.status_code == 200
    assert res.json()["guest_restrictions"] == {"allow_guests": True, "requires_approval": False, "max_guest_days": None}


def test_update_policy_rejects_null_guest_restrictions(client: TestClient) -> None:
    res = client.put("/clubs/1/policy", json={"guest_restrictions": None})
    assert res.status_code == 422
