import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Body, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from app.auth_utils import ADMIN_ROLES, require_api_user, require_page_user
from app.layout import escape, render_page
from app.queries import quote_counts
from app.security import attach_csrf_cookie, csrf_field, issue_csrf_token, validate_csrf
from core.database import (
    ROLES,
    create_user,
    delete_sessions_for_user,
    delete_user,
    get_activity_summary,
    get_quote_actions,
    get_user_by_id,
    get_user_stats,
    list_users,
    public_user,
    update_user,
)
from core.errors import QuoteDeskError
from core.quoting import format_currency

router = APIRouter()
log = logging.getLogger("admin")

REQUIRED_USER_FIELDS = ("email", "password", "username", "full_name", "role")


def _format_dt(dt_str: str | None) -> str:
    """Render a stored UTC ISO timestamp in local time."""
    if not dt_str:
        return ""
    try:
        dt = datetime.fromisoformat(dt_str)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone().strftime("%d/%m/%Y %H:%M")
    except ValueError:
        return dt_str


def _role_options(selected: str | None) -> str:
    return "".join(
        f'<option value="{r}"{" selected" if r == selected else ""}>{r}</option>' for r in ROLES
    )


# ---------- user management page ----------


def _user_management_body(users, csrf_token: str, current_id: int, error: str = "") -> str:
    rows_html = ""
    for u in users:
        checked = " checked" if u.get("active") else ""
        delete_html = ""
        if u["id"] != current_id:
            delete_html = f"""
            <form method="post" action="/user-management/{u['id']}/delete"
                  onsubmit="return confirm('Delete this user?');">
              {csrf_field(csrf_token)}
              <button type="submit" class="danger">Delete</button>
            </form>
            """
        rows_html += f"""
        <tr>
          <td>{u['id']}</td>
          <td>{escape(u.get('email'))}</td>
          <td>{escape(u.get('full_name'))}<div class="muted">{escape(u.get('username'))}</div></td>
          <td>
            <form method="post" action="/user-management/{u['id']}">
              <select name="role">{_role_options(u.get('role'))}</select>
              <label><input type="checkbox" name="active" value="1"{checked} /> Active</label>
              {csrf_field(csrf_token)}
              <button type="submit" class="secondary">Save</button>
            </form>
          </td>
          <td>{_format_dt(u.get('created_at'))}</td>
          <td>{delete_html}</td>
        </tr>
        """
    if not users:
        rows_html = '<tr><td colspan="6">No users yet.</td></tr>'

    error_html = f'<p class="error">{escape(error)}</p>' if error else ""
    return f"""
    <div class="card">
      <h2>Add user</h2>
      {error_html}
      <form method="post" action="/user-management">
        <div class="grid">
          <div><label>Email</label><input type="email" name="email" required /></div>
          <div><label>Password</label><input type="password" name="password" required /></div>
          <div><label>Username</label><input name="username" required /></div>
          <div><label>Full name</label><input name="full_name" required /></div>
          <div><label>Role</label><select name="role">{_role_options("quote_creator")}</select></div>
        </div>
        {csrf_field(csrf_token)}
        <button type="submit">Create user</button>
      </form>
    </div>

    <div class="card">
      <h2>Users</h2>
      <table>
        <thead>
          <tr><th>ID</th><th>Email</th><th>Name</th><th>Role</th><th>Created</th><th></th></tr>
        </thead>
        <tbody>
          {rows_html}
        </tbody>
      </table>
    </div>
    """


def _render_user_management(request: Request, user: dict, error: str = "", status_code: int = 200):
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    body = _user_management_body(list_users(), csrf_token, user["id"], error)
    resp = render_page("User management", body, user=user, counts=quote_counts(), status_code=status_code)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.get("/user-management", response_class=HTMLResponse)
def user_management(request: Request):
    user, denied = require_page_user(request, ADMIN_ROLES)
    if denied:
        return denied
    return _render_user_management(request, user)


@router.post("/user-management", response_class=HTMLResponse)
def create_user_form(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    username: str = Form(""),
    full_name: str = Form(""),
    role: str = Form("quote_creator"),
    csrf_token: str = Form(""),
):
    user, denied = require_page_user(request, ADMIN_ROLES)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    try:
        create_user(email, password, username=username, full_name=full_name, role=role)
    except QuoteDeskError as exc:
        return _render_user_management(request, user, error=str(exc), status_code=exc.status_code)
    log.info("Admin %s created user %s (%s)", user["email"], email, role)
    return RedirectResponse(url="/user-management", status_code=303)


@router.post("/user-management/{user_id}", response_class=HTMLResponse)
def update_user_form(
    user_id: int,
    request: Request,
    role: str = Form(...),
    active: str = Form(""),
    csrf_token: str = Form(""),
):
    user, denied = require_page_user(request, ADMIN_ROLES)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    try:
        updated = update_user(user_id, {"role": role, "active": bool(active)})
    except QuoteDeskError as exc:
        return _render_user_management(request, user, error=str(exc), status_code=exc.status_code)
    if updated and not updated.get("active"):
        delete_sessions_for_user(user_id)
    return RedirectResponse(url="/user-management", status_code=303)


@router.post("/user-management/{user_id}/delete")
def delete_user_form(user_id: int, request: Request, csrf_token: str = Form("")):
    user, denied = require_page_user(request, ADMIN_ROLES)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    if user_id != user["id"]:
        delete_user(user_id)
        log.info("Admin %s deleted user id=%s", user["email"], user_id)
    return RedirectResponse(url="/user-management", status_code=303)


# ---------- user stats page ----------


@router.get("/user-stats", response_class=HTMLResponse)
def user_stats(request: Request, start: str = "", end: str = ""):
    user, denied = require_page_user(request, ADMIN_ROLES)
    if denied:
        return denied

    # date inputs give yyyy-mm-dd; make the end inclusive of the whole day
    start_date = start or None
    end_date = f"{end}T23:59:59" if end else None
    stats = get_user_stats(start_date, end_date)
    summary = get_activity_summary()

    rows_html = ""
    for s in stats:
        rows_html += f"""
        <tr>
          <td>{escape(s.get('user_name'))}</td>
          <td>{s.get('quotes_created', 0)}</td>
          <td>{s.get('quotes_priced', 0)}</td>
          <td>{s.get('quotes_verified', 0)}</td>
          <td>{s.get('quotes_completed', 0)}</td>
          <td>{s.get('quotes_ordered', 0)}</td>
          <td>{s.get('quotes_marked_wrong', 0)}</td>
          <td><strong>{s.get('total_actions', 0)}</strong></td>
          <td>{format_currency(s.get('total_value'))}</td>
        </tr>
        """
    if not stats:
        rows_html = '<tr><td colspan="9">No users yet.</td></tr>'

    body = f"""
    <div class="stats">
      <div class="stat"><div class="label">Today</div><div class="value">{summary.get('actions_today', 0)}</div></div>
      <div class="stat"><div class="label">Last 7 days</div><div class="value">{summary.get('actions_this_week', 0)}</div></div>
      <div class="stat"><div class="label">Last 30 days</div><div class="value">{summary.get('actions_this_month', 0)}</div></div>
      <div class="stat"><div class="label">All time</div><div class="value">{summary.get('total_actions', 0)}</div></div>
    </div>
    <div class="card" style="margin-top:1rem;">
      <form method="get" action="/user-stats">
        <div class="grid">
          <div><label>From</label><input type="date" name="start" value="{escape(start)}" /></div>
          <div><label>To</label><input type="date" name="end" value="{escape(end)}" /></div>
        </div>
        <button type="submit" class="secondary">Filter</button>
      </form>
      <table>
        <thead>
          <tr>
            <th>User</th><th>Created</th><th>Priced</th><th>Verified</th><th>Completed</th>
            <th>Ordered</th><th>Marked wrong</th><th>Total</th><th>Quoted value</th>
          </tr>
        </thead>
        <tbody>
          {rows_html}
        </tbody>
      </table>
    </div>
    """
    return render_page("User stats", body, user=user, counts=quote_counts())


# ---------- JSON ----------


@router.get("/api/users")
def list_users_api(request: Request):
    user, denied = require_api_user(request, ADMIN_ROLES)
    if denied:
        return denied
    return {"users": list_users()}


@router.post("/api/users")
def create_user_api(request: Request, payload: dict = Body(...)):
    user, denied = require_api_user(request, ADMIN_ROLES)
    if denied:
        return denied
    if any(not payload.get(field) for field in REQUIRED_USER_FIELDS):
        return JSONResponse({"error": "Missing required fields"}, status_code=400)
    if payload["role"] not in ROLES:
        return JSONResponse({"error": "Invalid role"}, status_code=400)

    user_id = create_user(
        payload["email"],
        payload["password"],
        username=payload["username"],
        full_name=payload["full_name"],
        role=payload["role"],
    )
    log.info("Admin %s created user %s via API", user["email"], payload["email"])
    return {"success": True, "user": public_user(get_user_by_id(user_id))}


@router.patch("/api/users/{user_id}")
def update_user_api(user_id: int, request: Request, payload: dict = Body(...)):
    user, denied = require_api_user(request, ADMIN_ROLES)
    if denied:
        return denied
    updated = update_user(user_id, payload)
    if not updated:
        return JSONResponse({"error": "User not found"}, status_code=404)
    if not updated.get("active"):
        delete_sessions_for_user(user_id)
    return {"success": True, "user": public_user(updated)}


@router.delete("/api/users/{user_id}")
def delete_user_api(user_id: int, request: Request):
    user, denied = require_api_user(request, ADMIN_ROLES)
    if denied:
        return denied
    if user_id == user["id"]:
        return JSONResponse({"error": "You cannot delete your own account"}, status_code=400)
    if not delete_user(user_id):
        return JSONResponse({"error": "User not found"}, status_code=404)
    return {"success": True}


@router.get("/api/quote-actions")
def quote_actions_api(
    request: Request,
    user_id: int | None = None,
    action_type: str | None = None,
    quote_id: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
):
    user, denied = require_api_user(request, ADMIN_ROLES)
    if denied:
        return denied
    filters = {
        "user_id": user_id,
        "action_type": action_type,
        "quote_id": quote_id,
        "start_date": start_date,
        "end_date": end_date,
    }
    return {"actions": get_quote_actions(filters)}


@router.get("/api/user-stats")
def user_stats_api(request: Request, start_date: str | None = None, end_date: str | None = None):
    user, denied = require_api_user(request, ADMIN_ROLES)
    if denied:
        return denied
    return {"stats": get_user_stats(start_date, end_date), "summary": get_activity_summary()}
