"""
CSRF double-submit cookie and in-memory rate limiting for the form pages.
"""
from __future__ import annotations

import hmac
import os
import secrets
import time
from typing import Dict, Tuple

CSRF_COOKIE_NAME = "csrf_token"
CSRF_FIELD_NAME = "csrf_token"
SECURE_COOKIES = (
    os.getenv("COOKIE_SECURE", "").lower() in ("1", "true", "yes")
    or os.getenv("PUBLIC_BASE_URL", "").lower().startswith("https://")
)

LOGIN_RATE_LIMIT = 10
LOGIN_RATE_WINDOW_SECONDS = 300


def issue_csrf_token(existing: str | None = None) -> str:
    """Re-use the token already in the cookie, or mint a new one."""
    return existing or secrets.token_urlsafe(16)


def csrf_field(token: str) -> str:
    """Hidden form input carrying the token back on POST."""
    return f'<input type="hidden" name="{CSRF_FIELD_NAME}" value="{token}" />'


def attach_csrf_cookie(response, token: str) -> None:
    # readable by the page so every form can echo it
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,
        samesite="lax",
        secure=SECURE_COOKIES,
    )


def validate_csrf(request, form_token: str | None) -> bool:
    """Constant-time compare of the submitted token with the cookie value."""
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME) or ""
    form_token = form_token or ""
    if not cookie_token or not form_token:
        return False
    return hmac.compare_digest(cookie_token, form_token)


def client_ip(request) -> str:
    return request.client.host if request is not None and request.client else "unknown"


# -------- Rate limiting (in-memory, per process) --------
_rate_state: Dict[str, list[float]] = {}


def allow_request(key: str, limit: int = 5, window_seconds: int = 60) -> bool:
    allowed, _ = allow_request_with_remaining(key, limit=limit, window_seconds=window_seconds)
    return allowed


def allow_request_with_remaining(key: str, limit: int = 5, window_seconds: int = 60) -> Tuple[bool, int]:
    """
    Sliding-window limit. Returns (allowed, remaining attempts after this one).
    """
    now = time.time()
    window_start = now - window_seconds
    history = [t for t in _rate_state.get(key, []) if t > window_start]
    if len(history) >= limit:
        _rate_state[key] = history
        return False, 0
    history.append(now)
    _rate_state[key] = history
    return True, max(0, limit - len(history))


def reset_rate_limits() -> None:
    _rate_state.clear()


__all__ = [
    "CSRF_COOKIE_NAME",
    "CSRF_FIELD_NAME",
    "LOGIN_RATE_LIMIT",
    "LOGIN_RATE_WINDOW_SECONDS",
    "issue_csrf_token",
    "csrf_field",
    "attach_csrf_cookie",
    "validate_csrf",
    "client_ip",
    "allow_request",
    "allow_request_with_remaining",
    "reset_rate_limits",
]
