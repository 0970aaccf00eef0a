"""
Shared HTML layout: navigation by role, status badges and page chrome.
"""
from __future__ import annotations

import html
from typing import Dict, Optional

from fastapi.responses import HTMLResponse

from core.quoting import STATUS_LABELS

APP_NAME = "Quote Desk"

# (href, label, status key for the count badge, roles allowed; None = everyone)
NAV_ITEMS = [
    ("/dashboard", "Dashboard", None, None),
    ("/new", "New quote", None, ("quote_creator", "price_manager", "quality_controller", "admin")),
    ("/pricing", "Pricing", "unpriced", ("price_manager", "admin")),
    ("/verify-price", "Verify", "waiting_verification", ("quality_controller", "admin")),
    ("/priced", "Priced", "priced", None),
    ("/completed-quotes", "Completed", "completed", None),
    ("/orders", "Orders", "ordered", None),
    ("/wrong-quotes", "Wrong", "wrong", None),
    ("/delivery", "Deliveries", None, ("driver", "admin")),
]

ADMIN_NAV_ITEMS = [
    ("/user-management", "Users"),
    ("/user-stats", "Stats"),
    ("/parts-rules", "Parts rules"),
]


def escape(value) -> str:
    return html.escape("" if value is None else str(value), quote=True)


def status_badge(status: str | None) -> str:
    label = STATUS_LABELS.get(status or "", status or "")
    return f'<span class="badge badge-{escape(status)}">{escape(label)}</span>'


def _nav_links(user: Optional[dict], counts: Optional[Dict[str, int]]) -> str:
    if not user:
        return '<a href="/login">Login</a>'

    role = user.get("role")
    links = []
    for href, label, count_key, roles in NAV_ITEMS:
        if roles and role not in roles:
            continue
        badge = ""
        if counts and count_key and counts.get(count_key):
            badge = f' <span class="count">{counts[count_key]}</span>'
        links.append(f'<a href="{href}">{label}{badge}</a>')
    if role == "admin":
        links.extend(f'<a href="{href}">{label}</a>' for href, label in ADMIN_NAV_ITEMS)
    links.append('<a href="/logout">Logout</a>')
    return "\n".join(links)


def render_page(
    title: str,
    body: str,
    user: dict | None = None,
    counts: Dict[str, int] | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    """
    Wrap `body` in the app chrome. `counts` (quotes per status) adds the
    badges next to the matching nav links.
    """
    if user:
        who = escape(user.get("full_name") or user.get("email"))
        signed_in_text = f"Signed in as <strong>{who}</strong> ({escape(user.get('role'))})"
    else:
        signed_in_text = "Not signed in"

    page = f"""
    <!DOCTYPE html>
    <html>
      <head>
        <meta charset="utf-8" />
        <title>{escape(title)} - {APP_NAME}</title>
        <style>
          * {{ box-sizing: border-box; }}
          body {{
            font-family: system-ui, -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
            margin: 0;
            background: #f8fafc;
            color: #0f172a;
          }}
          .page {{ max-width: 1200px; margin: 0 auto; padding: 1.25rem 1rem 3rem; }}
          header {{
            display: flex;
            justify-content: space-between;
            align-items: center;
            flex-wrap: wrap;
            gap: 0.75rem;
            padding: 0.75rem 1rem;
            background: #ffffff;
            border: 1px solid #e2e8f0;
            border-radius: 0.75rem;
          }}
          header h1 {{ font-size: 1.3rem; margin: 0; }}
          nav {{ display: flex; flex-wrap: wrap; gap: 0.4rem; }}
          nav a {{
            text-decoration: none;
            color: #0f172a;
            font-size: 0.9rem;
            padding: 6px 10px;
            border-radius: 8px;
            background: #f1f5f9;
          }}
          nav a:hover {{ background: #e2e8f0; }}
          .count {{
            display: inline-block;
            min-width: 1.4em;
            padding: 0 0.35em;
            border-radius: 999px;
            background: #dc2626;
            color: #fff;
            font-size: 0.75rem;
            text-align: center;
          }}
          .signed-in {{ font-size: 0.8rem; color: #64748b; margin-top: 0.25rem; }}
          main {{ margin-top: 1rem; }}
          .card {{
            background: #ffffff;
            border: 1px solid #e2e8f0;
            border-radius: 0.75rem;
            padding: 1rem 1.25rem;
            margin-bottom: 1rem;
          }}
          label {{ display: block; margin-top: 0.75rem; font-size: 0.9rem; }}
          input:not([type="checkbox"]), select, textarea {{
            width: 100%;
            padding: 0.45rem;
            margin-top: 0.25rem;
            border: 1px solid #cbd5e1;
            border-radius: 0.375rem;
            font: inherit;
          }}
          textarea {{ min-height: 8rem; }}
          button {{
            margin-top: 0.75rem;
            padding: 0.5rem 1rem;
            border: none;
            border-radius: 0.5rem;
            background: #2563eb;
            color: #fff;
            font-weight: 600;
            cursor: pointer;
          }}
          button.danger {{ background: #dc2626; }}
          button.secondary {{ background: #64748b; }}
          .inline {{ display: inline-block; margin-right: 0.5rem; }}
          .grid {{ display: grid; grid-template-columns: repeat(auto-fill, minmax(220px, 1fr)); gap: 0 1rem; }}
          table {{ width: 100%; border-collapse: collapse; margin-top: 0.75rem; font-size: 0.9rem; }}
          th, td {{ border-bottom: 1px solid #e2e8f0; padding: 0.45rem 0.5rem; text-align: left; vertical-align: top; }}
          th {{ background: #f1f5f9; }}
          tr.overdue td {{ background: #fef2f2; }}
          tr.urgent td {{ background: #fffbeb; }}
          .muted {{ color: #64748b; font-size: 0.85rem; }}
          .error {{ color: #b91c1c; }}
          .notice {{ background: #fef3c7; border: 1px solid #fcd34d; padding: 0.6rem 0.8rem; border-radius: 0.5rem; }}
          .stats {{ display: flex; flex-wrap: wrap; gap: 0.75rem; }}
          .stat {{ flex: 0 0 150px; padding: 0.6rem 0.8rem; border: 1px solid #e2e8f0; border-radius: 0.75rem; background: #fff; }}
          .stat .label {{ font-size: 0.75rem; color: #64748b; }}
          .stat .value {{ font-size: 1.3rem; font-weight: 600; }}
          .badge {{ padding: 2px 8px; border-radius: 999px; font-size: 0.75rem; background: #e2e8f0; }}
          .badge-unpriced {{ background: #fee2e2; }}
          .badge-waiting_verification {{ background: #fef3c7; }}
          .badge-priced {{ background: #dbeafe; }}
          .badge-completed {{ background: #dcfce7; }}
          .badge-ordered {{ background: #ede9fe; }}
          .badge-delivered {{ background: #ccfbf1; }}
          .badge-wrong {{ background: #fecaca; }}
          .pager a {{ margin-right: 0.5rem; }}
        </style>
      </head>
      <body>
        <div class="page">
          <header>
            <div>
              <h1>{escape(title)}</h1>
              <div class="signed-in">{signed_in_text}</div>
            </div>
            <nav>
              {_nav_links(user, counts)}
            </nav>
          </header>
          <main>
            {body}
          </main>
        </div>
      </body>
    </html>
    """
    return HTMLResponse(content=page, status_code=status_code)
