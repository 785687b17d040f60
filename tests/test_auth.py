# tests/test_auth.py
import time
from unittest import mock

import requests
from requests_oauthlib import OAuth2Session

from questcraft_cms.config import DriveConfig
from questcraft_cms.services import oauth_service
from questcraft_cms.services.oauth_service import needs_refresh, refresh_session_token


class _Resp:
    def __init__(self, status=200, payload=None):
        self.status_code = status
        self.ok = status < 400
        self._payload = payload or {}

    def json(self):
        return self._payload


def test_api_requires_session(client):
    resp = client.get("/api/collections")
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Unauthorized"}


def test_pages_redirect_to_login(client):
    resp = client.get("/rewards")
    assert resp.status_code == 302
    assert "/auth/login" in resp.headers["Location"]


def test_login_page_renders(client):
    resp = client.get("/auth/login")
    assert resp.status_code == 200
    assert "Mit Google anmelden".encode() in resp.data


def test_drive_routes_require_token(auth_client_no_drive):
    resp = auth_client_no_drive.get("/api/google-drive/files")
    assert resp.status_code == 403
    assert resp.get_json()["error"].startswith("No Google Drive access")


def test_logout_clears_session(auth_client):
    auth_client.get("/auth/logout")
    assert auth_client.get("/api/stats").status_code == 401


def test_callback_rejects_state_mismatch(client):
    with client.session_transaction() as s:
        s["oauth_state"] = "expected"
    resp = client.get("/auth/google/callback?state=other&code=x")
    assert resp.status_code == 302
    with client.session_transaction() as s:
        assert "user" not in s


def test_health_is_public(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}

# ---------- Token-Refresh ----------

def test_needs_refresh_window():
    now = 1_000_000
    assert not needs_refresh({"expires_at": now + 301}, now)
    assert needs_refresh({"expires_at": now + 300}, now)
    assert needs_refresh({"expires_at": now - 5}, now)
    assert not needs_refresh({}, now)


def test_no_refresh_far_from_expiry(monkeypatch):
    post = mock.Mock()
    monkeypatch.setattr(oauth_service.requests, "post", post)
    token = {"access_token": "a", "refresh_token": "r", "expires_at": 10_000}
    assert refresh_session_token(token, DriveConfig(), now=1_000) is token
    post.assert_not_called()


def test_refresh_success(monkeypatch):
    post = mock.Mock(return_value=_Resp(200, {"access_token": "new", "expires_in": 3600}))
    monkeypatch.setattr(oauth_service.requests, "post", post)
    token = {"access_token": "old", "refresh_token": "r", "expires_at": 1_100}
    out = refresh_session_token(token, DriveConfig(client_id="cid", client_secret="sec"), now=1_000)
    assert out["access_token"] == "new"
    assert out["expires_at"] == 4_600
    assert out["refresh_token"] == "r"
    assert post.call_args.kwargs["data"]["grant_type"] == "refresh_token"
    assert post.call_count == 1


def test_refresh_failure_keeps_stale_token(monkeypatch):
    monkeypatch.setattr(oauth_service.requests, "post", mock.Mock(return_value=_Resp(400)))
    token = {"access_token": "old", "refresh_token": "r", "expires_at": 1_100}
    assert refresh_session_token(token, DriveConfig(), now=1_000) is token


def test_refresh_network_error_keeps_stale_token(monkeypatch):
    monkeypatch.setattr(
        oauth_service.requests, "post", mock.Mock(side_effect=requests.ConnectionError("offline"))
    )
    token = {"access_token": "old", "refresh_token": "r", "expires_at": 1_100}
    assert refresh_session_token(token, DriveConfig(), now=1_000) is token


def test_refresh_runs_before_request(client, monkeypatch):
    post = mock.Mock(return_value=_Resp(200, {"access_token": "fresh", "expires_in": 3600}))
    monkeypatch.setattr(oauth_service.requests, "post", post)
    with client.session_transaction() as s:
        s["user"] = {"email": "a@b.c"}
        s["google"] = {"access_token": "old", "refresh_token": "r", "expires_at": int(time.time()) + 60}

    assert client.get("/api/stats").status_code == 200
    assert post.call_count == 1
    with client.session_transaction() as s:
        assert s["google"]["access_token"] == "fresh"

# ---------- Login-Flow (PKCE) ----------

def _fake_fetch_token(captured):
    def fake(self, token_url, **kwargs):
        captured.update(kwargs)
        self.token = {
            "access_token": "at",
            "refresh_token": "rt",
            "token_type": "Bearer",
            "expires_at": 2_000_000_000,
        }
        return self.token
    return fake


def test_exchange_sends_code_verifier():
    cfg = DriveConfig(client_id="cid", client_secret="sec")
    redirect = "https://cms.example.com/auth/google/callback"
    url, state, verifier = oauth_service.authorization_url(cfg, redirect)
    assert verifier
    assert "code_challenge=" in url

    captured = {}
    with mock.patch.object(OAuth2Session, "fetch_token", autospec=True, side_effect=_fake_fetch_token(captured)):
        token = oauth_service.exchange_code(
            cfg, redirect, state, f"{redirect}?state={state}&code=abc", code_verifier=verifier,
        )
    assert captured["code_verifier"] == verifier
    assert token["access_token"] == "at"
    assert token["refresh_token"] == "rt"
    assert token["expires_at"] == 2_000_000_000


def test_google_callback_logs_in(tmp_path, monkeypatch):
    from questcraft_cms import create_app
    from questcraft_cms.blueprints.auth import routes as auth_routes

    app = create_app({
        "DATABASE_URL": f"sqlite:///{tmp_path}/login.db",
        "GOOGLE_CLIENT_ID": "cid",
        "GOOGLE_CLIENT_SECRET": "sec",
        "TESTING": True,
    })
    client = app.test_client()

    resp = client.get("/auth/google")
    assert resp.status_code == 302
    assert resp.headers["Location"].startswith(oauth_service.AUTH_URI)
    with client.session_transaction() as s:
        state = s["oauth_state"]
        verifier = s["oauth_code_verifier"]
    assert verifier

    monkeypatch.setattr(auth_routes, "fetch_userinfo", lambda _tok: {"email": "a@b.c", "name": "A", "picture": None})
    captured = {}
    with mock.patch.object(OAuth2Session, "fetch_token", autospec=True, side_effect=_fake_fetch_token(captured)):
        resp = client.get(f"/auth/google/callback?state={state}&code=abc")

    assert resp.status_code == 302
    assert captured["code_verifier"] == verifier
    with client.session_transaction() as s:
        assert s["user"]["email"] == "a@b.c"
        assert s["google"]["access_token"] == "at"
        assert "oauth_code_verifier" not in s
