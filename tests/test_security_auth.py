import types

from app import auth_utils
from app import security
from app.routes import admin
from app.routes import auth
from app.routes import deliveries


def test_csrf_validation_success_and_failure():
    class DummyReq:
        def __init__(self, cookies):
            self.cookies = cookies

    token = security.issue_csrf_token()
    req_ok = DummyReq({security.CSRF_COOKIE_NAME: token})
    assert security.validate_csrf(req_ok, token) is True

    req_bad = DummyReq({security.CSRF_COOKIE_NAME: token})
    assert security.validate_csrf(req_bad, "wrong") is False
    req_missing = DummyReq({})
    assert security.validate_csrf(req_missing, token) is False


def test_issue_csrf_token_reuses_cookie_value():
    assert security.issue_csrf_token("kept") == "kept"
    assert security.issue_csrf_token(None) != security.issue_csrf_token(None)


def test_rate_limit_sliding_window():
    key = "test:rl"
    allowed, remaining = security.allow_request_with_remaining(key, limit=2, window_seconds=60)
    assert allowed is True and remaining == 1
    allowed, remaining = security.allow_request_with_remaining(key, limit=2, window_seconds=60)
    assert allowed is True and remaining == 0
    allowed, remaining = security.allow_request_with_remaining(key, limit=2, window_seconds=60)
    assert allowed is False and remaining == 0


def test_admin_page_forbidden_for_non_admin(monkeypatch):
    # Stub get_current_user to return a quote creator
    monkeypatch.setattr(auth_utils, "get_current_user", lambda req: ({"id": 2, "role": "quote_creator"}, None))
    # Avoid hitting the real DB
    monkeypatch.setattr(admin, "get_user_stats", lambda *a: [])

    class DummyReq:
        cookies = {}

    resp = admin.user_stats(DummyReq())
    assert resp.status_code == 403


def test_admin_page_redirect_when_not_logged_in(monkeypatch):
    monkeypatch.setattr(auth_utils, "get_current_user", lambda req: (None, None))

    class DummyReq:
        cookies = {}

    resp = admin.user_management(DummyReq())
    assert resp.status_code in (302, 303)
    assert resp.headers["location"] == "/login"


def test_driver_page_forbidden_for_price_manager(monkeypatch):
    monkeypatch.setattr(auth_utils, "get_current_user", lambda req: ({"id": 3, "role": "price_manager"}, None))

    class DummyReq:
        cookies = {}

    resp = deliveries.driver_deliveries(DummyReq())
    assert resp.status_code == 403


def test_has_role():
    assert auth_utils.has_role({"role": "admin"}, auth_utils.ADMIN_ROLES) is True
    assert auth_utils.has_role({"role": "driver"}, auth_utils.PRICING_ROLES) is False
    assert auth_utils.has_role({"role": "driver"}, None) is True
    assert auth_utils.has_role(None, None) is False


def test_login_rejects_missing_csrf(monkeypatch):
    # Allow rate limit to pass
    monkeypatch.setattr(auth, "allow_request_with_remaining", lambda *a, **k: (True, 9))
    dummy_req = types.SimpleNamespace(
        client=types.SimpleNamespace(host="127.0.0.1"),
        cookies={security.CSRF_COOKIE_NAME: "cookie-token"},
    )
    resp = auth.login(dummy_req, email="user@example.com", password="bad", csrf_token="wrong")
    assert resp.status_code == 403


def test_login_wrong_password_is_generic(monkeypatch):
    monkeypatch.setattr(auth, "allow_request_with_remaining", lambda *a, **k: (True, 4))
    monkeypatch.setattr(
        auth,
        "get_user_by_email",
        lambda email: {"id": 1, "email": email, "password_hash": "x", "active": 1},
    )
    monkeypatch.setattr(auth, "verify_password", lambda raw, hashed: False)
    dummy_req = types.SimpleNamespace(
        client=types.SimpleNamespace(host="127.0.0.1"),
        cookies={security.CSRF_COOKIE_NAME: "cookie-token"},
    )
    resp = auth.login(dummy_req, email="user@example.com", password="bad", csrf_token="cookie-token")
    assert resp.status_code == 401
    assert b"Invalid email or password." in resp.body
    assert b"Attempts left: 4" in resp.body


def test_login_success_sets_session_cookie(monkeypatch):
    monkeypatch.setattr(auth, "allow_request_with_remaining", lambda *a, **k: (True, 9))
    monkeypatch.setattr(
        auth,
        "get_user_by_email",
        lambda email: {"id": 7, "email": email, "password_hash": "x", "active": 1},
    )
    monkeypatch.setattr(auth, "verify_password", lambda raw, hashed: True)
    monkeypatch.setattr(auth, "create_session", lambda user_id: "session-abc")
    dummy_req = types.SimpleNamespace(
        client=types.SimpleNamespace(host="127.0.0.1"),
        cookies={security.CSRF_COOKIE_NAME: "cookie-token"},
    )
    resp = auth.login(dummy_req, email="user@example.com", password="Passw0rd1", csrf_token="cookie-token")
    assert resp.status_code == 303
    assert resp.headers["location"] == "/dashboard"
    assert "session_id=session-abc" in resp.headers["set-cookie"]


def test_login_rejects_deactivated_account(monkeypatch):
    monkeypatch.setattr(auth, "allow_request_with_remaining", lambda *a, **k: (True, 9))
    monkeypatch.setattr(
        auth,
        "get_user_by_email",
        lambda email: {"id": 7, "email": email, "password_hash": "x", "active": 0},
    )
    monkeypatch.setattr(auth, "verify_password", lambda raw, hashed: True)
    dummy_req = types.SimpleNamespace(
        client=types.SimpleNamespace(host="127.0.0.1"),
        cookies={security.CSRF_COOKIE_NAME: "cookie-token"},
    )
    resp = auth.login(dummy_req, email="user@example.com", password="Passw0rd1", csrf_token="cookie-token")
    assert resp.status_code == 403
