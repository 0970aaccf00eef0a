from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth_utils import get_current_user, require_page_user
from app.layout import escape, render_page
from app.queries import quote_counts
from core.database import count_wrong_quotes_for_user, get_activity_summary, get_recent_activity
from core.quoting import QUOTE_STATUSES, STATUS_LABELS, format_date

router = APIRouter()

ACTION_LABELS = {
    "CREATED": "created",
    "PRICED": "priced",
    "VERIFIED": "verified",
    "COMPLETED": "completed",
    "ORDERED": "ordered",
    "MARKED_WRONG": "marked wrong",
}

STATUS_PAGES = {
    "unpriced": "/pricing",
    "waiting_verification": "/verify-price",
    "priced": "/priced",
    "completed": "/completed-quotes",
    "ordered": "/orders",
    "wrong": "/wrong-quotes",
}


@router.get("/")
def home(request: Request):
    user, _ = get_current_user(request)
    target = "/dashboard" if user else "/login"
    return RedirectResponse(url=target, status_code=303)


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request):
    user, denied = require_page_user(request)
    if denied:
        return denied

    counts = quote_counts()
    summary = get_activity_summary()
    activity = get_recent_activity(limit=15)
    wrong_count = count_wrong_quotes_for_user(user["id"])

    stats_html = ""
    for status in QUOTE_STATUSES:
        href = STATUS_PAGES.get(status)
        label = STATUS_LABELS[status]
        if href:
            label = f'<a href="{href}">{label}</a>'
        stats_html += f"""
        <div class="stat">
          <div class="label">{label}</div>
          <div class="value">{counts.get(status, 0)}</div>
        </div>
        """

    wrong_html = ""
    if wrong_count:
        wrong_html = f"""
        <div class="notice" style="margin-bottom:1rem;">
          You have {wrong_count} quote{'s' if wrong_count != 1 else ''} marked wrong.
          <a href="/wrong-quotes">Review them</a>.
        </div>
        """

    rows_html = ""
    for a in activity:
        rows_html += f"""
        <tr>
          <td>{format_date(a.get('timestamp'))} {escape((a.get('timestamp') or '')[11:16])}</td>
          <td>{escape(a.get('user_name') or 'System')}</td>
          <td>{ACTION_LABELS.get(a.get('action_type'), escape(a.get('action_type')))}</td>
          <td><a href="/quotes/{a.get('quote_id')}">{escape(a.get('quote_ref') or a.get('quote_id'))}</a></td>
        </tr>
        """
    if not activity:
        rows_html = '<tr><td colspan="4">No activity yet.</td></tr>'

    body = f"""
    {wrong_html}
    <div class="stats">
      {stats_html}
    </div>

    <div class="card" style="margin-top:1rem;">
      <h2>Activity</h2>
      <p class="muted">
        Today: {summary.get('actions_today', 0)} &middot;
        Last 7 days: {summary.get('actions_this_week', 0)} &middot;
        Last 30 days: {summary.get('actions_this_month', 0)} &middot;
        All time: {summary.get('total_actions', 0)}
      </p>
      <table>
        <thead>
          <tr><th>When</th><th>Who</th><th>Action</th><th>Quote</th></tr>
        </thead>
        <tbody>
          {rows_html}
        </tbody>
      </table>
    </div>
    """
    return render_page("Dashboard", body, user=user, counts=counts)
