"""Role hierarchy, JWT round trip and the current-user dependency"""
import pytest
from fastapi import Depends, FastAPI, HTTPException
from fastapi.testclient import TestClient

from auth import CurrentUser, create_access_token, decode_token, get_current_user, require_role, resolve_company_id
from auth import dependencies
from auth.roles import (
    COMPANY_ADMIN,
    EMPLOYEE,
    HR_ADMIN,
    PLATFORM_ADMIN,
    SUPER_ADMIN,
    get_managed_roles,
    has_role_access,
    is_valid_role,
    normalize_legacy_role,
)


def test_role_hierarchy() -> None:
    assert has_role_access(SUPER_ADMIN, HR_ADMIN)
    assert has_role_access(HR_ADMIN, HR_ADMIN)
    assert not has_role_access(EMPLOYEE, HR_ADMIN)
    assert not has_role_access(None, EMPLOYEE)
    assert not has_role_access(SUPER_ADMIN, "owner")
    assert get_managed_roles(COMPANY_ADMIN) == [HR_ADMIN, EMPLOYEE]
    assert get_managed_roles(EMPLOYEE) == []
    assert is_valid_role(COMPANY_ADMIN)
    assert not is_valid_role("company_admin")


def test_normalize_legacy_role() -> None:
    assert normalize_legacy_role("super_admin") == SUPER_ADMIN
    assert normalize_legacy_role(" HR Admin ") == HR_ADMIN
    assert normalize_legacy_role("user") == EMPLOYEE
    assert normalize_legacy_role("owner") is None
    assert normalize_legacy_role("") is None


def test_token_round_trip() -> None:
    token = create_access_token(42, role=HR_ADMIN, company_id="acme", email="hr@acme.com")
    payload = decode_token(token)
    assert payload["sub"] == "42"
    assert payload["role"] == HR_ADMIN
    assert payload["company_id"] == "acme"
    assert decode_token(token + "x") is None
    assert decode_token(create_access_token(1, expire_seconds=-10)) is None


def test_resolve_company_id() -> None:
    hr = CurrentUser(id=1, role=HR_ADMIN, company_id="acme")
    assert resolve_company_id(hr) == "acme"
    assert resolve_company_id(hr, "acme") == "acme"
    with pytest.raises(HTTPException) as exc:
        resolve_company_id(hr, "globex")
    assert exc.value.status_code == 403

    platform = CurrentUser(id=2, role=PLATFORM_ADMIN)
    assert resolve_company_id(platform, "globex") == "globex"
    with pytest.raises(HTTPException) as exc:
        resolve_company_id(platform)
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        resolve_company_id(CurrentUser(id=3))
    assert exc.value.status_code == 400


def _client() -> TestClient:
    app = FastAPI()

    @app.get("/me")
    async def me(user: CurrentUser = Depends(get_current_user)):
        return {"id": user.id, "role": user.role, "company_id": user.company_id}

    @app.get("/hr")
    async def hr(user: CurrentUser = Depends(require_role(HR_ADMIN))):
        return {"id": user.id}

    return TestClient(app)


def test_get_current_user_from_bearer_token() -> None:
    client = _client()
    token = create_access_token(7, role="company_admin", company_id="acme")
    r = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json() == {"id": 7, "role": COMPANY_ADMIN, "company_id": "acme"}

    r = client.get("/me", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401


def test_get_current_user_dev_headers(monkeypatch) -> None:
    monkeypatch.delenv("AUTH_ALLOW_DEV_HEADERS", raising=False)
    client = _client()
    r = client.get("/me", headers={"X-User-Id": "5", "X-User-Role": "hr_admin", "X-Company-Id": "acme"})
    assert r.json() == {"id": 5, "role": HR_ADMIN, "company_id": "acme"}

    assert client.get("/me", headers={"X-User-Id": "abc"}).status_code == 400
    assert client.get("/me").status_code == 401

    monkeypatch.setenv("AUTH_ALLOW_DEV_HEADERS", "false")
    assert client.get("/me", headers={"X-User-Id": "5", "X-User-Role": "employee"}).status_code == 401


def test_get_current_user_dev_header_looks_up_user(monkeypatch) -> None:
    async def get_by_id(user_id):
        return {"id": user_id, "role": "hr admin", "company_id": "acme", "email": "a@acme.com"} if user_id == 9 else None

    monkeypatch.setattr(dependencies.user_repository, "get_by_id", get_by_id)
    client = _client()
    assert client.get("/me", headers={"X-User-Id": "9"}).json()["role"] == HR_ADMIN
    assert client.get("/me", headers={"X-User-Id": "10"}).status_code == 401


def test_require_role() -> None:
    client = _client()
    employee = create_access_token(1, role=EMPLOYEE, company_id="acme")
    admin = create_access_token(2, role=SUPER_ADMIN)
    assert client.get("/hr", headers={"Authorization": f"Bearer {employee}"}).status_code == 403
    assert client.get("/hr", headers={"Authorization": f"Bearer {admin}"}).json() == {"id": 2}
