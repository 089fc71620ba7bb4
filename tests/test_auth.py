from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

import vfurniture.auth as auth_module
from vfurniture.core.security import TokenService

from conftest import PASSWORD, login_as, register


def set_cookie_headers(resp, name):
    return [h for h in resp.headers.get_list("set-cookie") if h.startswith(f"{name}=")]


def assert_cookies_cleared(resp):
    for name in ("vf_access", "vf_refresh"):
        headers = set_cookie_headers(resp, name)
        assert headers, f"{name} not cleared"
        assert "Max-Age=0" in headers[0]


# ─────────────────────────────────────────────
# Register
# ─────────────────────────────────────────────
def test_register_creates_user_and_sets_cookies(client):
    resp = register(client, name="  jane   DOE ", email="  Jane@Example.COM ")

    assert resp.status_code == 201
    body = resp.json()
    assert body["name"] == "Jane Doe"
    assert body["email"] == "jane@example.com"
    assert body["slug"] == "jane-doe"
    assert set(body) == {"id", "name", "email", "slug"}
    assert set_cookie_headers(resp, "vf_access")
    assert set_cookie_headers(resp, "vf_refresh")


def test_register_duplicate_email_conflicts(client):
    assert register(client).status_code == 201
    resp = register(client, name="Someone Else", email="JANE@example.com")
    assert resp.status_code == 409
    assert "error" in resp.json()


def test_register_slug_collisions_get_suffixes(client):
    assert register(client, email="a@example.com").json()["slug"] == "jane-doe"
    assert register(client, email="b@example.com").json()["slug"] == "jane-doe-2"
    assert register(client, email="c@example.com").json()["slug"] == "jane-doe-3"


@pytest.mark.parametrize("payload", [
    {"email": "x@example.com", "password": PASSWORD},
    {"name": "X", "password": PASSWORD},
    {"name": "X", "email": "x@example.com"},
    {"name": "X", "email": "not-an-email", "password": PASSWORD},
    {"name": "X", "email": "x@example.com", "password": "12345"},
])
def test_register_rejects_bad_input(client, payload):
    resp = client.post("/api/auth/register", json=payload)
    assert resp.status_code == 400
    assert resp.json()["error"]


def test_register_with_uid_allows_missing_password(client):
    resp = client.post(
        "/api/auth/register",
        json={"name": "Oauth User", "email": "o@example.com", "uid": "google-123"},
    )
    assert resp.status_code == 201
    check = client.post("/api/auth/check-email-exists", json={"email": "o@example.com"})
    assert check.json() == {"exists": True, "hasOAuth": True}


def test_register_with_uid_skips_password_length_rule(client):
    resp = register(client, email="o@example.com", password="abc", uid="google-123")
    assert resp.status_code == 201


def test_password_is_stored_hashed(client, seed):
    register(client)
    row = seed.query("SELECT password FROM users WHERE email = ?", ("jane@example.com",))[0]
    assert row["password"] != PASSWORD
    assert row["password"].startswith("$2")


# ─────────────────────────────────────────────
# Login
# ─────────────────────────────────────────────
def test_login_success(client):
    register(client)
    client.cookies.clear()

    resp = client.post("/api/auth/login", json={"email": "JANE@example.com", "password": PASSWORD})

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"]
    assert body["user"]["email"] == "jane@example.com"
    assert set(body["user"]) == {"id", "email", "name"}
    assert set_cookie_headers(resp, "vf_access")


def test_login_unknown_email_is_404(client):
    resp = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "x"})
    assert resp.status_code == 404


def test_login_wrong_password_is_401(client):
    register(client)
    resp = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "wrongpass"})
    assert resp.status_code == 401


def test_login_missing_fields_is_400(client):
    assert client.post("/api/auth/login", json={"email": "jane@example.com"}).status_code == 400


def test_login_accepts_password_padded_like_at_register(client):
    padded = f"  {PASSWORD} "
    assert register(client, password=padded).status_code == 201

    assert login_as(client, "jane@example.com", padded).status_code == 200
    assert login_as(client, "jane@example.com", PASSWORD).status_code == 200


def test_login_whitespace_password_is_400(client):
    register(client)
    resp = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "   "})
    assert resp.status_code == 400


# ─────────────────────────────────────────────
# Google
# ─────────────────────────────────────────────
def test_google_first_time_then_returning(client):
    payload = {"name": "g user", "email": "g@example.com", "uid": "g-1", "photoURL": "https://img/1.png"}

    first = client.post("/api/auth/google", json=payload)
    assert first.status_code == 200
    assert first.json()["firstTime"] is True
    assert first.json()["hasOAuth"] is True
    assert first.json()["name"] == "G User"

    second = client.post("/api/auth/google", json={**payload, "photoURL": "https://img/2.png"})
    assert second.status_code == 200
    assert second.json()["firstTime"] is False
    assert second.json()["photoURL"] == "https://img/2.png"
    assert second.json()["id"] == first.json()["id"]


def test_google_backfills_oauth_flag_on_password_account(client):
    register(client)
    resp = client.post(
        "/api/auth/google",
        json={"name": "Jane Doe", "email": "jane@example.com", "uid": "g-2"},
    )
    assert resp.json()["firstTime"] is False
    assert resp.json()["hasOAuth"] is True
    # Password still works afterwards
    login_as(client, "jane@example.com")


def test_google_requires_uid(client):
    resp = client.post("/api/auth/google", json={"name": "X", "email": "x@example.com"})
    assert resp.status_code == 400


# ─────────────────────────────────────────────
# Session: me / logout / refresh
# ─────────────────────────────────────────────
def test_me_returns_public_profile(client, user):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 200
    profile = resp.json()["user"]
    assert profile["id"] == user["id"]
    assert set(profile) == {"id", "name", "email", "photoURL"}


def test_me_without_cookie_is_401(client):
    assert client.get("/api/auth/me").status_code == 401


def test_me_with_malformed_cookie_is_401(client):
    client.cookies.set("vf_access", "not-a-jwt")
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json()["error"]


def test_me_with_expired_token_is_401(client, user, config):
    expired = TokenService(
        config.JWT_SECRET, config.JWT_REFRESH_SECRET, access_ttl=timedelta(seconds=-10)
    ).issue_access_token(SimpleNamespace(id=user["id"], email=user["email"]))
    client.cookies.clear()
    client.cookies.set("vf_access", expired)

    assert client.get("/api/auth/me").status_code == 401


def test_me_for_deleted_user_is_401(client, user, seed):
    seed.run("DELETE FROM users WHERE id = ?", (user["id"],))
    assert client.get("/api/auth/me").status_code == 401


def test_logout_clears_cookies(client, user):
    resp = client.post("/api/auth/logout")
    assert resp.status_code == 200
    assert resp.json()["message"]
    assert_cookies_cleared(resp)
    assert client.get("/api/auth/me").status_code == 401


def test_logout_without_session_still_succeeds(client):
    assert client.post("/api/auth/logout").status_code == 200


def test_refresh_rotates_cookies(client, user):
    resp = client.post("/api/auth/refresh")
    assert resp.status_code == 200
    assert resp.json() == {"success": True}
    assert set_cookie_headers(resp, "vf_access")
    assert set_cookie_headers(resp, "vf_refresh")
    assert client.get("/api/auth/me").status_code == 200


def test_refresh_without_cookie_is_401_and_clears(client):
    resp = client.post("/api/auth/refresh")
    assert resp.status_code == 401
    assert_cookies_cleared(resp)


def test_refresh_with_access_token_in_refresh_slot_is_401(client, user):
    access = client.cookies.get("vf_access")
    client.cookies.clear()
    client.cookies.set("vf_refresh", access)

    resp = client.post("/api/auth/refresh")
    assert resp.status_code == 401
    assert_cookies_cleared(resp)


def test_refresh_for_deleted_user_is_401(client, user, seed):
    seed.run("DELETE FROM users WHERE id = ?", (user["id"],))
    resp = client.post("/api/auth/refresh")
    assert resp.status_code == 401
    assert_cookies_cleared(resp)


# ─────────────────────────────────────────────
# Email lookup + password reset
# ─────────────────────────────────────────────
def test_check_email_exists(client, user):
    assert client.post("/api/auth/check-email-exists", json={"email": "jane@example.com"}).json() == {
        "exists": True, "hasOAuth": False,
    }
    assert client.post("/api/auth/check-email-exists", json={"email": "no@example.com"}).json() == {
        "exists": False,
    }
    assert client.post("/api/auth/check-email-exists", json={}).status_code == 400


@pytest.fixture
def sent_codes(monkeypatch):
    sent = []

    async def fake_send(config, email, name, code):
        sent.append((email, code))

    monkeypatch.setattr(auth_module, "send_reset_email", fake_send)
    return sent


def test_reset_password_flow(client, user, sent_codes, seed):
    resp = client.post("/api/auth/send-reset-code", json={"email": "jane@example.com"})
    assert resp.status_code == 200
    email, code = sent_codes[-1]
    assert email == "jane@example.com"
    assert len(code) == 6 and code.isdigit()

    stored = seed.query("SELECT reset_code FROM users WHERE id = ?", (user["id"],))[0]["reset_code"]
    assert stored != code

    wrong = "000000" if code != "000000" else "111111"
    assert client.post(
        "/api/auth/verify-reset-code", json={"email": email, "code": wrong}
    ).status_code == 400

    verify = client.post("/api/auth/verify-reset-code", json={"email": email, "code": code})
    assert verify.status_code == 200
    assert not set_cookie_headers(verify, "vf_access")

    reset = client.post(
        "/api/auth/reset-password",
        json={"email": email, "code": code, "newPassword": "brandnew1"},
    )
    assert reset.status_code == 200

    login_as(client, "jane@example.com", "brandnew1")
    client.cookies.clear()
    assert client.post(
        "/api/auth/login", json={"email": "jane@example.com", "password": PASSWORD}
    ).status_code == 401

    # Code is single-use
    assert client.post("/api/auth/verify-reset-code", json={"email": email, "code": code}).status_code == 400


def test_expired_reset_code_is_rejected(client, user, sent_codes, seed):
    client.post("/api/auth/send-reset-code", json={"email": "jane@example.com"})
    _, code = sent_codes[-1]
    past = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
    seed.run("UPDATE users SET reset_code_expires = ? WHERE id = ?", (past, user["id"]))

    resp = client.post("/api/auth/verify-reset-code", json={"email": "jane@example.com", "code": code})
    assert resp.status_code == 400
    assert "expired" in resp.json()["error"].lower()


@pytest.mark.parametrize("payload", [
    {"code": "123456"},
    {"email": "jane@example.com"},
    {"email": "nobody@example.com", "code": "123456"},
    {"email": "jane@example.com", "code": "123456"},     # no code on file
])
def test_verify_reset_code_failures(client, user, payload):
    assert client.post("/api/auth/verify-reset-code", json=payload).status_code == 400


def test_send_reset_code_unknown_email_is_404(client, sent_codes):
    resp = client.post("/api/auth/send-reset-code", json={"email": "nobody@example.com"})
    assert resp.status_code == 404
    assert sent_codes == []


def test_reset_password_rejects_short_password(client, user, sent_codes):
    client.post("/api/auth/send-reset-code", json={"email": "jane@example.com"})
    _, code = sent_codes[-1]
    resp = client.post(
        "/api/auth/reset-password",
        json={"email": "jane@example.com", "code": code, "newPassword": "123"},
    )
    assert resp.status_code == 400


def test_reset_code_is_logged_when_email_is_not_configured(client, user, caplog):
    caplog.set_level("INFO", logger="vfurniture.auth")
    resp = client.post("/api/auth/send-reset-code", json={"email": "jane@example.com"})
    assert resp.status_code == 200
    assert any("Reset code for jane@example.com" in r.getMessage() for r in caplog.records)
