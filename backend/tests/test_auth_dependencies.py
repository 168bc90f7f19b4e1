import pathlib
import sys
from datetime import timedelta

import pytest
from fastapi import HTTPException


ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import backend.main as backend_main


def test_invalid_token_resolves_to_no_user():
    assert backend_main.resolve_user_from_session_token("not-a-valid-token") is None


def test_expired_token_resolves_to_no_user(monkeypatch):
    expired_token = backend_main.create_access_token(
        subject="42", expires_delta=timedelta(minutes=-5)
    )

    def _unexpected_get_user_by_id(_uid: str):
        raise AssertionError("get_user_by_id should not be called for expired tokens")

    monkeypatch.setattr(backend_main, "get_user_by_id", _unexpected_get_user_by_id)

    assert backend_main.resolve_user_from_session_token(expired_token) is None


def test_get_current_user_returns_user_for_valid_token(monkeypatch):
    user = backend_main.UserOut(id="8f2c", email="parent@example.com", role="user")

    monkeypatch.setattr(backend_main, "get_user_by_id", lambda uid: user if uid == "8f2c" else None)

    token = backend_main.create_access_token(subject=user.id)

    assert backend_main.get_current_user(token) is user


def test_get_current_user_requires_cookie():
    with pytest.raises(HTTPException) as excinfo:
        backend_main.get_current_user(None)

    assert excinfo.value.status_code == 401


def test_routes_resolve_current_user_through_app_context(monkeypatch):
    from backend import app_context
    from backend.app.routes import entitlements as entitlement_routes

    user = backend_main.UserOut(id="u1")
    seen = []

    def _resolver(session_token=None):
        seen.append(session_token)
        return user

    monkeypatch.setattr(app_context, "_get_current_user", _resolver)

    assert entitlement_routes._get_current_user(session_token="cookie-value") is user
    assert seen == ["cookie-value"]


def test_main_registers_session_resolver_in_app_context():
    from backend import app_context

    assert app_context._get_current_user is backend_main.get_current_user
    assert app_context._get_conn is backend_main.get_conn


def test_app_registers_routers():
    paths = {route.path for route in backend_main.app.routes}

    assert "/api/entitlements/seats" in paths
    assert "/api/players" in paths
    assert "/api/billing/payments" in paths
    assert "/api/admin/catalog/prices/{price_id}/replace" in paths


def test_get_current_user_rejects_unknown_subject(monkeypatch):
    monkeypatch.setattr(backend_main, "get_user_by_id", lambda uid: None)
    token = backend_main.create_access_token(subject="deleted-user")

    with pytest.raises(HTTPException) as excinfo:
        backend_main.get_current_user(token)

    assert excinfo.value.status_code == 401
