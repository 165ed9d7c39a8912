from types import SimpleNamespace

from fastapi import FastAPI, Depends
from fastapi.testclient import TestClient

from marketplace.utils import security as security_mod
from marketplace.utils.security import get_current_user, get_user_from_token, COOKIE_NAME


def _make_app():
    app = FastAPI()

    @app.get("/me")
    def me(user=Depends(get_current_user)):
        return user

    return app


def _fake_supabase(user):
    auth = SimpleNamespace(get_user=lambda token: SimpleNamespace(user=user))
    return lambda: SimpleNamespace(auth=auth)


def test_get_user_from_token_normalizes_object(monkeypatch):
    monkeypatch.setattr(
        "marketplace.infra.supabase_client.get_supabase",
        _fake_supabase(SimpleNamespace(id="u1", email="a@b")),
    )
    assert get_user_from_token("tok") == {"id": "u1", "email": "a@b", "token": "tok"}


def test_get_current_user_bearer_success(monkeypatch):
    monkeypatch.setattr(security_mod, "get_user_from_token", lambda token: {"id": "u1", "email": "a@b", "token": token})
    client = TestClient(_make_app())
    r = client.get("/me", headers={"Authorization": "Bearer tok-123"})
    assert r.status_code == 200
    assert r.json()["token"] == "tok-123"


def test_get_current_user_cookie_success(monkeypatch):
    monkeypatch.setattr(security_mod, "get_user_from_token", lambda token: {"id": "u1", "token": token})
    client = TestClient(_make_app())
    client.cookies.set(COOKIE_NAME, "cookie-token")
    r = client.get("/me")
    assert r.status_code == 200
    assert r.json()["token"] == "cookie-token"


def test_get_current_user_missing_token_401():
    client = TestClient(_make_app())
    r = client.get("/me")
    assert r.status_code == 401
    assert "Non authentifié" in r.text


def test_get_current_user_missing_id_401(monkeypatch):
    monkeypatch.setattr(security_mod, "get_user_from_token", lambda token: {"id": None})
    client = TestClient(_make_app())
    r = client.get("/me", headers={"Authorization": "Bearer tok"})
    assert r.status_code == 401
    assert "Session expirée" in r.text


def test_get_current_user_auth_failure_401(monkeypatch):
    def _boom(token):
        raise RuntimeError("invalid JWT")

    monkeypatch.setattr(security_mod, "get_user_from_token", _boom)
    client = TestClient(_make_app())
    r = client.get("/me", headers={"Authorization": "Bearer tok"})
    assert r.status_code == 401
