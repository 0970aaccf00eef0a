import logging

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from app.auth_utils import ADMIN_ROLES, DRIVER_ROLES, require_api_user, require_page_user
from app.cache import DELIVERIES_KEY, query_cache
from app.layout import escape, render_page
from app.queries import deliveries_list, quote_counts
from app.security import attach_csrf_cookie, csrf_field, issue_csrf_token, validate_csrf
from core.database import (
    add_delivery,
    add_delivery_customer,
    assign_delivery,
    compute_delivery_stats,
    get_customer_by_account_number,
    get_overdue_deliveries,
    is_overdue,
    list_delivery_customers,
    list_users_by_role,
    mark_as_delivered,
)
from core.errors import QuoteDeskError
from core.quoting import format_date

router = APIRouter()
log = logging.getLogger("deliveries")


def _delivery_rows(deliveries, extra_cell=None) -> str:
    rows_html = ""
    for d in deliveries:
        row_class = "overdue" if is_overdue(d) else ""
        extra = f"<td>{extra_cell(d)}</td>" if extra_cell else ""
        rows_html += f"""
        <tr class="{row_class}">
          <td>{d['id']}</td>
          <td>{escape(d.get('account_number'))}</td>
          <td>{escape(d.get('customer_name'))}<div class="muted">{escape(d.get('address'))}</div></td>
          <td>{escape(d.get('delivery_round'))}</td>
          <td>{escape(d.get('invoice_number'))}</td>
          <td>{escape(d.get('status'))}</td>
          <td>{escape(d.get('driver_name'))}</td>
          <td>{format_date(d.get('created_at'))}</td>
          {extra}
        </tr>
        """
    if not deliveries:
        cols = 9 if extra_cell else 8
        rows_html = f'<tr><td colspan="{cols}">No deliveries.</td></tr>'
    return rows_html


def _table(rows_html: str, extra_header: str = "") -> str:
    extra = f"<th>{extra_header}</th>" if extra_header else ""
    return f"""
    <table>
      <thead>
        <tr>
          <th>ID</th><th>Account</th><th>Customer</th><th>Round</th><th>Invoice</th>
          <th>Status</th><th>Driver</th><th>Created</th>{extra}
        </tr>
      </thead>
      <tbody>{rows_html}</tbody>
    </table>
    """


def _with_csrf(request: Request, title: str, body_fn, user: dict):
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    resp = render_page(title, body_fn(csrf_token), user=user, counts=quote_counts())
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.get("/delivery", response_class=HTMLResponse)
def delivery_overview(request: Request):
    user, denied = require_page_user(request, DRIVER_ROLES)
    if denied:
        return denied

    deliveries = deliveries_list()
    stats = compute_delivery_stats(deliveries)
    overdue = [d for d in deliveries if is_overdue(d)]

    overdue_html = ""
    if overdue:
        overdue_html = f"""
        <div class="notice" style="margin:1rem 0;">
          {len(overdue)} deliver{'ies have' if len(overdue) != 1 else 'y has'} been pending for more than 24 hours.
        </div>
        """

    links = '<a href="/delivery/driver">My deliveries</a>'
    if user.get("role") == "admin":
        links += ' &middot; <a href="/delivery/admin">Manage deliveries</a>'

    body = f"""
    <p>{links}</p>
    <div class="stats">
      <div class="stat"><div class="label">Total</div><div class="value">{stats['total_deliveries']}</div></div>
      <div class="stat"><div class="label">Pending</div><div class="value">{stats['pending_deliveries']}</div></div>
      <div class="stat"><div class="label">Assigned</div><div class="value">{stats['assigned_deliveries']}</div></div>
      <div class="stat"><div class="label">Delivered</div><div class="value">{stats['delivered_deliveries']}</div></div>
      <div class="stat"><div class="label">Delivery rate</div><div class="value">{stats['delivery_rate']}%</div></div>
      <div class="stat"><div class="label">Avg hours</div><div class="value">{stats['average_delivery_time']}</div></div>
    </div>
    {overdue_html}
    <div class="card">
      {_table(_delivery_rows(deliveries))}
    </div>
    """
    return render_page("Deliveries", body, user=user, counts=quote_counts())


def _admin_body(csrf_token: str, deliveries, drivers, customers, error: str = "") -> str:
    driver_options = "".join(
        f'<option value="{d["id"]}">{escape(d.get("full_name") or d.get("email"))}</option>' for d in drivers
    )

    def assign_cell(d):
        if d.get("status") == "delivered" or not drivers:
            return ""
        return f"""
        <form method="post" action="/delivery/{d['id']}/assign">
          <select name="driver_id">{driver_options}</select>
          {csrf_field(csrf_token)}
          <button type="submit" class="secondary">Assign</button>
        </form>
        """

    customer_rows = "".join(
        f"<tr><td>{escape(c['account_number'])}</td><td>{escape(c['customer_name'])}</td>"
        f"<td>{escape(c.get('address'))}</td><td>{escape(c.get('phone'))}</td></tr>"
        for c in customers
    ) or '<tr><td colspan="4">No delivery customers.</td></tr>'

    error_html = f'<p class="error">{escape(error)}</p>' if error else ""
    return f"""
    {error_html}
    <div class="card">
      <h2>New delivery</h2>
      <p class="muted">Enter an account number to fill the customer details from the customer list.</p>
      <form method="post" action="/delivery/admin/deliveries">
        <div class="grid">
          <div><label>Account number</label><input name="account_number" /></div>
          <div><label>Customer name</label><input name="customer_name" /></div>
          <div><label>Address</label><input name="address" /></div>
          <div><label>Delivery round</label><input name="delivery_round" /></div>
          <div><label>Invoice number</label><input name="invoice_number" /></div>
        </div>
        {csrf_field(csrf_token)}
        <button type="submit">Add delivery</button>
      </form>
    </div>

    <div class="card">
      <h2>Deliveries</h2>
      {_table(_delivery_rows(deliveries, assign_cell), "Assign")}
    </div>

    <div class="card">
      <h2>Delivery customers</h2>
      <form method="post" action="/delivery/admin/customers">
        <div class="grid">
          <div><label>Account number</label><input name="account_number" required /></div>
          <div><label>Customer name</label><input name="customer_name" required /></div>
          <div><label>Address</label><input name="address" /></div>
          <div><label>Phone</label><input name="phone" /></div>
          <div><label>Email</label><input name="email" /></div>
        </div>
        {csrf_field(csrf_token)}
        <button type="submit" class="secondary">Add customer</button>
      </form>
      <table>
        <thead><tr><th>Account</th><th>Name</th><th>Address</th><th>Phone</th></tr></thead>
        <tbody>{customer_rows}</tbody>
      </table>
    </div>
    """


def _render_admin(request: Request, user: dict, error: str = ""):
    deliveries = deliveries_list()
    drivers = list_users_by_role("driver")
    customers = list_delivery_customers()
    return _with_csrf(
        request,
        "Manage deliveries",
        lambda token: _admin_body(token, deliveries, drivers, customers, error),
        user,
    )


@router.get("/delivery/admin", response_class=HTMLResponse)
def delivery_admin(request: Request):
    user, denied = require_page_user(request, ADMIN_ROLES)
    if denied:
        return denied
    return _render_admin(request, user)


@router.post("/delivery/admin/deliveries")
def create_delivery_form(
    request: Request,
    account_number: str = Form(""),
    customer_name: str = Form(""),
    address: str = Form(""),
    delivery_round: str = Form(""),
    invoice_number: str = Form(""),
    csrf_token: str = Form(""),
):
    user, denied = require_page_user(request, ADMIN_ROLES)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    data = {
        "account_number": account_number,
        "customer_name": customer_name,
        "address": address,
        "delivery_round": delivery_round,
        "invoice_number": invoice_number,
    }
    known = get_customer_by_account_number(account_number) if account_number.strip() else None
    if known:
        data["customer_name"] = data["customer_name"] or known["customer_name"]
        data["address"] = data["address"] or known.get("address") or ""

    try:
        add_delivery(data)
    except QuoteDeskError as exc:
        return _render_admin(request, user, error=str(exc))
    query_cache.invalidate(DELIVERIES_KEY)
    return RedirectResponse(url="/delivery/admin", status_code=303)


@router.post("/delivery/admin/customers")
def create_delivery_customer_form(
    request: Request,
    account_number: str = Form(""),
    customer_name: str = Form(""),
    address: str = Form(""),
    phone: str = Form(""),
    email: str = Form(""),
    csrf_token: str = Form(""),
):
    user, denied = require_page_user(request, ADMIN_ROLES)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    try:
        add_delivery_customer(
            {
                "account_number": account_number,
                "customer_name": customer_name,
                "address": address,
                "phone": phone,
                "email": email,
            }
        )
    except QuoteDeskError as exc:
        return _render_admin(request, user, error=str(exc))
    return RedirectResponse(url="/delivery/admin", status_code=303)


@router.post("/delivery/{delivery_id}/assign")
def assign_delivery_form(delivery_id: int, request: Request, driver_id: int = Form(...), csrf_token: str = Form("")):
    user, denied = require_page_user(request, ADMIN_ROLES)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    try:
        assign_delivery(delivery_id, driver_id)
    except QuoteDeskError as exc:
        return _render_admin(request, user, error=str(exc))
    log.info("Delivery %s assigned to driver %s by %s", delivery_id, driver_id, user["email"])
    query_cache.invalidate(DELIVERIES_KEY)
    return RedirectResponse(url="/delivery/admin", status_code=303)


@router.get("/delivery/driver", response_class=HTMLResponse)
def driver_deliveries(request: Request, error: str = ""):
    user, denied = require_page_user(request, DRIVER_ROLES)
    if denied:
        return denied

    mine = [
        d
        for d in deliveries_list()
        if d.get("status") == "assigned" and (user.get("role") == "admin" or d.get("assigned_to") == user["id"])
    ]

    def body_fn(csrf_token: str) -> str:
        def deliver_cell(d):
            return f"""
            <form method="post" action="/delivery/{d['id']}/delivered">
              <input name="receiver_name" placeholder="Received by" required />
              <input name="photo_proof" placeholder="Photo link" />
              <input name="signature" placeholder="Signature" />
              {csrf_field(csrf_token)}
              <button type="submit">Delivered</button>
            </form>
            """

        error_html = f'<p class="error">{escape(error)}</p>' if error else ""
        return f"""
        {error_html}
        <div class="card">
          <p class="muted">{len(mine)} deliver{'ies' if len(mine) != 1 else 'y'} assigned.</p>
          {_table(_delivery_rows(mine, deliver_cell), "Proof of delivery")}
        </div>
        """

    return _with_csrf(request, "My deliveries", body_fn, user)


@router.post("/delivery/{delivery_id}/delivered")
def delivered_form(
    delivery_id: int,
    request: Request,
    receiver_name: str = Form(""),
    photo_proof: str = Form(""),
    signature: str = Form(""),
    csrf_token: str = Form(""),
):
    user, denied = require_page_user(request, DRIVER_ROLES)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    try:
        driver_id = None if user.get("role") == "admin" else user["id"]
        mark_as_delivered(delivery_id, photo_proof, receiver_name, signature, driver_id=driver_id)
    except QuoteDeskError as exc:
        return driver_deliveries(request, error=str(exc))
    query_cache.invalidate(DELIVERIES_KEY)
    return RedirectResponse(url="/delivery/driver", status_code=303)


# ---------- JSON ----------


@router.get("/api/deliveries")
def deliveries_api(request: Request):
    user, denied = require_api_user(request, DRIVER_ROLES)
    if denied:
        return denied
    deliveries = deliveries_list()
    return {
        "deliveries": deliveries,
        "stats": compute_delivery_stats(deliveries),
        "overdue": [d["id"] for d in deliveries if is_overdue(d)],
    }


@router.get("/api/deliveries/overdue")
def overdue_deliveries_api(request: Request):
    user, denied = require_api_user(request, ADMIN_ROLES)
    if denied:
        return denied
    return {"deliveries": get_overdue_deliveries()}


@router.get("/api/delivery-customers/{account_number}")
def delivery_customer_api(account_number: str, request: Request):
    user, denied = require_api_user(request, DRIVER_ROLES)
    if denied:
        return denied
    customer = get_customer_by_account_number(account_number)
    if not customer:
        return JSONResponse({"error": "Customer not found"}, status_code=404)
    return customer
