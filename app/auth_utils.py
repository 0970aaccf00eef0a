"""
Helpers for session cookies, current-user lookup and role gates.
"""
from __future__ import annotations

import os
from typing import Iterable, Optional, Tuple

from fastapi import Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from core.database import delete_session, get_session, get_user_by_id, touch_session

SESSION_COOKIE_NAME = "session_id"
SESSION_COOKIE_MAX_AGE = 1800  # 30 minutes
SECURE_COOKIES = (
    os.getenv("COOKIE_SECURE", "").lower() in ("1", "true", "yes")
    or os.getenv("PUBLIC_BASE_URL", "").lower().startswith("https://")
)

# Who may open which area.
PRICING_ROLES = ("price_manager", "admin")
VERIFY_ROLES = ("quality_controller", "admin")
ADMIN_ROLES = ("admin",)
DRIVER_ROLES = ("driver", "admin")


def get_current_user(request: Request):
    """
    Read session cookie and return (user_dict, session_token) or (None, None).
    Refreshes inactivity timeout when the session is valid.
    """
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None, None

    session = get_session(token)
    if not session:
        return None, token

    user = get_user_by_id(session["user_id"])
    if not user:
        delete_session(token)
        return None, token

    # Deactivated accounts lose their sessions
    if not user.get("active"):
        delete_session(token)
        return None, token

    touch_session(token)
    return user, token


def has_role(user: Optional[dict], roles: Iterable[str] | None) -> bool:
    if not user:
        return False
    if not roles:
        return True
    return user.get("role") in tuple(roles)


def require_page_user(request: Request, roles: Iterable[str] | None = None) -> Tuple[Optional[dict], Optional[Response]]:
    """
    For HTML pages: (user, None) when allowed, otherwise (None, response)
    redirecting to /login or answering 403.
    """
    user, _ = get_current_user(request)
    if not user:
        return None, RedirectResponse(url="/login", status_code=303)
    if not has_role(user, roles):
        return None, HTMLResponse("Forbidden", status_code=403)
    return user, None


def require_api_user(request: Request, roles: Iterable[str] | None = None) -> Tuple[Optional[dict], Optional[Response]]:
    """Same as require_page_user but answers JSON 401/403."""
    user, _ = get_current_user(request)
    if not user:
        return None, JSONResponse({"error": "Authentication required"}, status_code=401)
    if not has_role(user, roles):
        return None, JSONResponse({"error": "Forbidden"}, status_code=403)
    return user, None


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        max_age=SESSION_COOKIE_MAX_AGE,
        samesite="lax",
        secure=SECURE_COOKIES,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME)
