import html
import logging

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth_utils import clear_session_cookie, get_current_user, set_session_cookie
from app.layout import render_page
from app.security import (
    LOGIN_RATE_LIMIT,
    LOGIN_RATE_WINDOW_SECONDS,
    allow_request_with_remaining,
    attach_csrf_cookie,
    client_ip,
    csrf_field,
    issue_csrf_token,
    validate_csrf,
)
from core.database import create_session, delete_session, get_user_by_email, verify_password

router = APIRouter()
log = logging.getLogger("auth")


def _login_body(csrf_token: str, email: str = "", error: str = "", remaining: int | None = None) -> str:
    error_html = f'<p class="error">{error}</p>' if error else ""
    remaining_html = f"<p class='muted'>Attempts left: {remaining}</p>" if remaining is not None else ""
    safe_email = html.escape(email or "", quote=True)
    return f"""
    <div class="card" style="max-width:420px;margin:0 auto;">
      <p class="muted">Sign in with your staff account.</p>
      {error_html}
      {remaining_html}
      <form method="post" action="/login">
        <label>Email</label>
        <input type="email" name="email" required maxlength="100" value="{safe_email}" />
        <label>Password</label>
        <input type="password" name="password" required maxlength="100" />
        {csrf_field(csrf_token)}
        <button type="submit">Login</button>
      </form>
    </div>
    """


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request):
    user, _ = get_current_user(request)
    if user:
        return RedirectResponse(url="/dashboard", status_code=303)
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    resp = render_page("Login", _login_body(csrf_token), user=None)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/login", response_class=HTMLResponse)
def login(
    request: Request,
    email: str = Form(..., max_length=100),
    password: str = Form(..., max_length=100),
    csrf_token: str = Form(""),
):
    ip = client_ip(request)
    allowed, remaining = allow_request_with_remaining(
        f"login:{ip}", limit=LOGIN_RATE_LIMIT, window_seconds=LOGIN_RATE_WINDOW_SECONDS
    )
    if not allowed:
        return HTMLResponse("Too many login attempts. Please try again later.", status_code=429)

    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    user = get_user_by_email(email)
    cookie_token = request.cookies.get("csrf_token", "")

    # same message for unknown email and wrong password
    if not user or not verify_password(password, user["password_hash"]):
        log.info("Failed login for %s from %s", email, ip)
        body = _login_body(cookie_token, email=email, error="Invalid email or password.", remaining=remaining)
        return render_page("Login", body, user=None, status_code=401)

    if not user.get("active"):
        body = _login_body(cookie_token, email=email, error="This account has been deactivated.")
        return render_page("Login", body, user=None, status_code=403)

    token = create_session(user["id"])
    log.info("User %s signed in", user["email"])
    response = RedirectResponse(url="/dashboard", status_code=303)
    set_session_cookie(response, token)
    return response


@router.get("/logout")
def logout(request: Request):
    _, token = get_current_user(request)
    if token:
        delete_session(token)
    response = RedirectResponse(url="/login", status_code=303)
    clear_session_cookie(response)
    return response
