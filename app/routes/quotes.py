import logging
from typing import Callable, Dict, List
from urllib.parse import urlencode

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth_utils import PRICING_ROLES, VERIFY_ROLES, has_role, require_page_user
from app.cache import PARTS_KEY, invalidate_quotes, query_cache
from app.layout import escape, render_page, status_badge
from app.queries import quote_counts, quote_detail, quotes_page
from app.security import attach_csrf_cookie, csrf_field, issue_csrf_token, validate_csrf
from core.database import (
    add_part_to_quote,
    add_variant,
    create_quote,
    delete_quote,
    delete_variant,
    get_available_parts_for_brand,
    get_quote_actions_by_quote_id,
    mark_quote_as_ordered,
    mark_quote_completed,
    mark_quote_delivered,
    mark_quote_wrong,
    remove_part_from_quote,
    set_default_variant,
    update_part,
    verify_quote_price,
)
from core.errors import QuoteDeskError
from core.quick_fill import is_supported_format, parse_quote_data
from core.quoting import (
    effective_price,
    format_currency,
    format_date,
    get_deadline_info,
    quote_total,
)

router = APIRouter()
log = logging.getLogger("quotes")

PAGE_SIZE = 25
CREATE_ROLES = ("quote_creator", "price_manager", "quality_controller", "admin")

# path -> (title, statuses, roles allowed, only the signed-in user's quotes)
LIST_PAGES = {
    "/pricing": ("Pricing", ["unpriced", "waiting_verification"], PRICING_ROLES, False),
    "/verify-price": ("Verify prices", ["waiting_verification"], VERIFY_ROLES, False),
    "/priced": ("Priced quotes", ["priced"], None, False),
    "/completed-quotes": ("Completed quotes", ["completed"], None, False),
    "/orders": ("Orders", ["ordered", "delivered"], None, False),
    "/wrong-quotes": ("Wrong quotes", ["wrong"], None, True),
}


def parse_parts_text(text: str) -> List[Dict]:
    """
    One part per line: "Radiator" or "Radiator | 12345-ABC".
    Blank lines are skipped.
    """
    parts = []
    for line in (text or "").splitlines():
        if not line.strip():
            continue
        name, _, number = line.partition("|")
        parts.append({"name": name.strip(), "number": number.strip()})
    return parts


def _csrf_page(request: Request, title: str, body_fn: Callable[[str], str], user: dict, status_code: int = 200):
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    resp = render_page(title, body_fn(csrf_token), user=user, counts=quote_counts(), status_code=status_code)
    attach_csrf_cookie(resp, csrf_token)
    return resp


def _error_page(request: Request, user: dict, exc: QuoteDeskError, back: str):
    body = f"""
    <div class="card">
      <p class="error">{escape(exc)}</p>
      <p><a href="{back}">Back</a></p>
    </div>
    """
    return render_page("Something went wrong", body, user=user, status_code=exc.status_code)


# ---------- new quote ----------

_FORM_FIELDS = [
    ("quote_ref", "Quote ref", "quoteRef"),
    ("customer", "Customer name", "customer"),
    ("phone", "Phone", "phone"),
    ("address", "Address", "address"),
    ("make", "Make", "make"),
    ("model", "Model", "model"),
    ("series", "Series", "series"),
    ("year", "Month/Year", "mthyr"),
    ("vin", "VIN", "vin"),
    ("rego", "Rego", "rego"),
    ("body", "Body", "body"),
    ("color", "Colour", None),
    ("required_by", "Required by (dd/mm/yyyy h:mmam)", "requiredBy"),
]


def _new_quote_body(csrf_token: str, values: Dict[str, str], error: str = "", hint: str = "") -> str:
    inputs = ""
    for name, label, _ in _FORM_FIELDS:
        required = " required" if name in ("customer", "make") else ""
        inputs += f"""
        <div>
          <label>{label}</label>
          <input name="{name}" value="{escape(values.get(name, ''))}"{required} />
        </div>
        """
    checked = "" if values.get("auto") == "false" else " checked"
    error_html = f'<p class="error">{escape(error)}</p>' if error else ""
    return f"""
    <div class="card">
      <h2>Quick fill</h2>
      <p class="muted">Paste a PartsCheck or RepairConnection request to fill the form.</p>
      <form method="post" action="/new/quick-fill">
        <textarea name="text" placeholder="Paste request text here"></textarea>
        {csrf_field(csrf_token)}
        <button type="submit" class="secondary">Fill form</button>
      </form>
    </div>

    <div class="card">
      <h2>Quote details</h2>
      {error_html}
      {hint}
      <form method="post" action="/new">
        <div class="grid">
          {inputs}
        </div>
        <label><input type="checkbox" name="auto" value="true"{checked} /> Automatic transmission</label>
        <label>Notes</label>
        <textarea name="notes">{escape(values.get('notes', ''))}</textarea>
        <label>Parts (one per line, optionally "name | part number")</label>
        <textarea name="parts">{escape(values.get('parts', ''))}</textarea>
        {csrf_field(csrf_token)}
        <button type="submit">Create quote</button>
      </form>
    </div>
    """


def _brand_hint(make: str) -> str:
    if not make:
        return ""
    names = get_available_parts_for_brand(make)
    if not names:
        return ""
    return f'<p class="muted">Parts usually quoted for {escape(make)}: {escape(", ".join(names))}</p>'


@router.get("/new", response_class=HTMLResponse)
def new_quote_form(request: Request):
    user, denied = require_page_user(request, CREATE_ROLES)
    if denied:
        return denied
    return _csrf_page(request, "New quote", lambda token: _new_quote_body(token, {}), user)


@router.post("/new/quick-fill", response_class=HTMLResponse)
def quick_fill(request: Request, text: str = Form(""), csrf_token: str = Form("")):
    user, denied = require_page_user(request, CREATE_ROLES)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    parsed = parse_quote_data(text)
    values = {name: parsed.get(key, "") for name, _, key in _FORM_FIELDS if key}
    values["auto"] = parsed.get("auto", "true")
    values["notes"] = parsed.get("notes", "")
    error = "" if is_supported_format(text) else "Could not recognise that request format."
    hint = _brand_hint(values.get("make", ""))
    return _csrf_page(request, "New quote", lambda token: _new_quote_body(token, values, error, hint), user)


@router.post("/new", response_class=HTMLResponse)
async def create_quote_form(request: Request):
    user, denied = require_page_user(request, CREATE_ROLES)
    if denied:
        return denied
    form = await request.form()
    if not validate_csrf(request, form.get("csrf_token")):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    values = {k: (form.get(k) or "").strip() for k, _, _ in _FORM_FIELDS}
    values["notes"] = form.get("notes") or ""
    values["parts"] = form.get("parts") or ""
    values["auto"] = "true" if form.get("auto") else "false"

    try:
        quote = create_quote(
            customer={"name": values["customer"], "phone": values["phone"], "address": values["address"]},
            vehicle={
                "make": values["make"],
                "model": values["model"],
                "series": values["series"],
                "year": values["year"],
                "vin": values["vin"],
                "rego": values["rego"],
                "body": values["body"],
                "color": values["color"],
                "auto": values["auto"] == "true",
            },
            parts=parse_parts_text(values["parts"]),
            notes=values["notes"],
            required_by=values["required_by"],
            quote_ref=values["quote_ref"],
            created_by=user["id"],
        )
    except QuoteDeskError as exc:
        return _csrf_page(
            request,
            "New quote",
            lambda token: _new_quote_body(token, values, str(exc)),
            user,
            status_code=exc.status_code,
        )

    invalidate_quotes()
    query_cache.invalidate(PARTS_KEY)
    return RedirectResponse(url=f"/quotes/{quote['id']}", status_code=303)


# ---------- list pages ----------


def _deadline_cell(quote: Dict) -> tuple:
    info = get_deadline_info(quote.get("required_by"))
    if not info:
        return "", ""
    days = info["days_remaining"]
    if info["is_overdue"]:
        return f"{format_date(quote['required_by'])} <span class='error'>({-days}d overdue)</span>", "overdue"
    if info["is_urgent"]:
        return f"{format_date(quote['required_by'])} <strong>({days}d)</strong>", "urgent"
    return format_date(quote["required_by"]), ""


def render_quote_rows(quotes: List[Dict]) -> str:
    rows_html = ""
    for q in quotes:
        deadline_html, row_class = _deadline_cell(q)
        vehicle = " ".join(str(v) for v in (q.get("make"), q.get("model"), q.get("year")) if v)
        parts = q.get("parts") or []
        rows_html += f"""
        <tr class="{row_class}">
          <td><a href="/quotes/{q['id']}">{escape(q.get('quote_ref') or q['id'])}</a></td>
          <td>{escape(q.get('customer'))}</td>
          <td>{escape(vehicle)}<div class="muted">{escape(q.get('rego') or q.get('vin') or '')}</div></td>
          <td>{len(parts)}</td>
          <td>{format_currency(quote_total(parts))}</td>
          <td>{deadline_html}</td>
          <td>{status_badge(q.get('status'))}</td>
          <td>{format_date(q.get('created_at'))}</td>
        </tr>
        """
    if not quotes:
        rows_html = '<tr><td colspan="8">No quotes here.</td></tr>'
    return rows_html


def _pager(path: str, page: int, total: int, search: str) -> str:
    pages = max(1, (total + PAGE_SIZE - 1) // PAGE_SIZE)
    if pages == 1:
        return ""
    links = []
    if page > 1:
        links.append(f'<a href="{path}?{urlencode({"q": search, "page": page - 1})}">&larr; Previous</a>')
    links.append(f"<span class='muted'>Page {page} of {pages}</span>")
    if page < pages:
        links.append(f'<a href="{path}?{urlencode({"q": search, "page": page + 1})}">Next &rarr;</a>')
    return f'<div class="pager">{" ".join(links)}</div>'


def _list_page(request: Request, path: str, q: str, page: int):
    title, statuses, roles, mine_only = LIST_PAGES[path]
    user, denied = require_page_user(request, roles)
    if denied:
        return denied

    result = quotes_page(
        status=statuses,
        search=q or None,
        created_by=user["id"] if mine_only else None,
        page=page,
        limit=PAGE_SIZE,
        order="priority",
    )
    quotes = result["quotes"]

    body = f"""
    <div class="card">
      <form method="get" action="{path}">
        <input name="q" value="{escape(q)}" placeholder="Search ref, VIN, rego, make, model or customer" />
      </form>
      <p class="muted">{result['total']} quote{'s' if result['total'] != 1 else ''}</p>
      <table>
        <thead>
          <tr>
            <th>Ref</th><th>Customer</th><th>Vehicle</th><th>Parts</th>
            <th>Total</th><th>Required by</th><th>Status</th><th>Created</th>
          </tr>
        </thead>
        <tbody>
          {render_quote_rows(quotes)}
        </tbody>
      </table>
      {_pager(path, result['page'], result['total'], q)}
    </div>
    """
    return render_page(title, body, user=user, counts=quote_counts())


@router.get("/pricing", response_class=HTMLResponse)
def pricing(request: Request, q: str = "", page: int = 1):
    return _list_page(request, "/pricing", q, page)


@router.get("/verify-price", response_class=HTMLResponse)
def verify_price(request: Request, q: str = "", page: int = 1):
    return _list_page(request, "/verify-price", q, page)


@router.get("/priced", response_class=HTMLResponse)
def priced(request: Request, q: str = "", page: int = 1):
    return _list_page(request, "/priced", q, page)


@router.get("/completed-quotes", response_class=HTMLResponse)
def completed_quotes(request: Request, q: str = "", page: int = 1):
    return _list_page(request, "/completed-quotes", q, page)


@router.get("/orders", response_class=HTMLResponse)
def orders(request: Request, q: str = "", page: int = 1):
    return _list_page(request, "/orders", q, page)


@router.get("/wrong-quotes", response_class=HTMLResponse)
def wrong_quotes(request: Request, q: str = "", page: int = 1):
    return _list_page(request, "/wrong-quotes", q, page)


# ---------- quote detail ----------


def _variants_html(quote: Dict, part: Dict, csrf_token: str, can_price: bool) -> str:
    base = f"/quotes/{quote['id']}/parts/{part['id']}/variants"
    items = ""
    for v in part.get("variants") or []:
        marker = " <strong>(default)</strong>" if v.get("is_default") else ""
        controls = ""
        if can_price:
            if not v.get("is_default"):
                controls += f"""
                <form class="inline" method="post" action="{base}/{escape(v['id'])}/default">
                  {csrf_field(csrf_token)}<button type="submit" class="secondary">Make default</button>
                </form>
                """
            controls += f"""
            <form class="inline" method="post" action="{base}/{escape(v['id'])}/delete">
              {csrf_field(csrf_token)}<button type="submit" class="danger">Remove</button>
            </form>
            """
        items += f"<li>{format_currency(v.get('final_price'))} {escape(v.get('note'))}{marker} {controls}</li>"

    add_form = ""
    if can_price:
        add_form = f"""
        <form method="post" action="{base}">
          <input name="final_price" placeholder="Price" inputmode="decimal" required style="max-width:120px;" />
          <input name="note" placeholder="Note" style="max-width:240px;" />
          {csrf_field(csrf_token)}
          <button type="submit">Add price</button>
        </form>
        """
    return f"<ul>{items}</ul>{add_form}"


def _quote_detail_body(quote: Dict, history: List[Dict], user: dict, csrf_token: str) -> str:
    status = quote["status"]
    can_price = has_role(user, PRICING_ROLES) and status in ("unpriced", "waiting_verification", "wrong")
    parts = quote.get("parts") or []

    part_rows = ""
    for part in parts:
        price = effective_price(part)
        number_cell = escape(part.get("part_number"))
        remove_html = ""
        if can_price:
            number_cell = f"""
            <form method="post" action="/quotes/{quote['id']}/parts/{part['id']}">
              <input name="part_number" value="{escape(part.get('part_number'))}" />
              {csrf_field(csrf_token)}
              <button type="submit" class="secondary">Save</button>
            </form>
            """
            remove_html = f"""
            <form method="post" action="/quotes/{quote['id']}/parts/{part['id']}/remove">
              {csrf_field(csrf_token)}<button type="submit" class="danger">Remove part</button>
            </form>
            """
        ordered = " (ordered)" if part.get("ordered") else ""
        part_rows += f"""
        <tr>
          <td>{escape(part.get('part_name'))}{ordered}</td>
          <td>{number_cell}</td>
          <td>{format_currency(price) if price else '<span class="muted">unpriced</span>'}</td>
          <td>{_variants_html(quote, part, csrf_token, can_price)}</td>
          <td>{remove_html}</td>
        </tr>
        """
    if not parts:
        part_rows = '<tr><td colspan="5">No parts on this quote.</td></tr>'

    add_part_html = ""
    if can_price:
        add_part_html = f"""
        <form method="post" action="/quotes/{quote['id']}/parts">
          <div class="grid">
            <div><label>Part name</label><input name="name" required /></div>
            <div><label>Part number</label><input name="number" /></div>
          </div>
          {csrf_field(csrf_token)}
          <button type="submit" class="secondary">Add part</button>
        </form>
        """

    actions = ""
    if status == "waiting_verification" and has_role(user, VERIFY_ROLES):
        actions += _action_form(quote, "verify", "Verify price", csrf_token)
    if status == "priced":
        actions += _action_form(quote, "complete", "Mark completed", csrf_token)
    if status in ("priced", "completed"):
        checkboxes = "".join(
            f'<label><input type="checkbox" name="part_ids" value="{p["id"]}" checked /> {escape(p.get("part_name"))}</label>'
            for p in parts
        )
        if checkboxes:
            checkboxes += '<input type="hidden" name="select_parts" value="1" />'
        actions += f"""
        <form method="post" action="/quotes/{quote['id']}/order">
          <label>Tax invoice number</label>
          <input name="tax_invoice_number" required />
          {checkboxes}
          {csrf_field(csrf_token)}
          <button type="submit">Mark ordered</button>
        </form>
        """
    if status == "ordered":
        actions += _action_form(quote, "delivered", "Mark delivered", csrf_token)
    if status in ("unpriced", "waiting_verification", "priced"):
        actions += _action_form(quote, "wrong", "Mark wrong", csrf_token, css="danger")
    if has_role(user, ("admin",)):
        actions += _action_form(quote, "delete", "Delete quote", csrf_token, css="danger")

    history_rows = "".join(
        f"<tr><td>{format_date(h.get('timestamp'))} {escape((h.get('timestamp') or '')[11:16])}</td>"
        f"<td>{escape(h.get('action_type'))}</td><td>{escape(h.get('user_name') or 'System')}</td></tr>"
        for h in history
    ) or '<tr><td colspan="3">No history.</td></tr>'

    invoice = ""
    if quote.get("tax_invoice_number"):
        invoice = f"<div><strong>Tax invoice:</strong> {escape(quote['tax_invoice_number'])}</div>"

    return f"""
    <div class="card">
      <div>{status_badge(status)}</div>
      <div class="grid">
        <div><strong>Customer:</strong> {escape(quote.get('customer'))}<br/>
             {escape(quote.get('phone'))}<br/>{escape(quote.get('address'))}</div>
        <div><strong>Vehicle:</strong> {escape(quote.get('make'))} {escape(quote.get('model'))} {escape(quote.get('series'))}<br/>
             {escape(quote.get('year'))} {escape(quote.get('body'))} {'Auto' if quote.get('auto') else 'Manual'}<br/>
             VIN {escape(quote.get('vin'))} &middot; Rego {escape(quote.get('rego'))}</div>
        <div><strong>Required by:</strong> {format_date(quote.get('required_by'))}<br/>
             <strong>Created:</strong> {format_date(quote.get('created_at'))}
             {invoice}</div>
      </div>
      <p class="muted">{escape(quote.get('notes'))}</p>
    </div>

    <div class="card">
      <h2>Parts</h2>
      <table>
        <thead><tr><th>Part</th><th>Number</th><th>Price</th><th>Variants</th><th></th></tr></thead>
        <tbody>{part_rows}</tbody>
      </table>
      <p><strong>Total:</strong> {format_currency(quote_total(parts))}</p>
      {add_part_html}
    </div>

    <div class="card">
      <h2>Actions</h2>
      {actions or '<p class="muted">No actions available.</p>'}
    </div>

    <div class="card">
      <h2>History</h2>
      <table>
        <thead><tr><th>When</th><th>Action</th><th>By</th></tr></thead>
        <tbody>{history_rows}</tbody>
      </table>
    </div>
    """


def _action_form(quote: Dict, action: str, label: str, csrf_token: str, css: str = "") -> str:
    return f"""
    <form class="inline" method="post" action="/quotes/{quote['id']}/{action}">
      {csrf_field(csrf_token)}
      <button type="submit" class="{css}">{label}</button>
    </form>
    """


@router.get("/quotes/{quote_id}", response_class=HTMLResponse)
def quote_page(quote_id: int, request: Request):
    user, denied = require_page_user(request)
    if denied:
        return denied
    try:
        quote = quote_detail(quote_id)
    except QuoteDeskError as exc:
        return _error_page(request, user, exc, "/dashboard")
    history = get_quote_actions_by_quote_id(quote_id)
    title = f"Quote {quote.get('quote_ref') or quote_id}"
    return _csrf_page(request, title, lambda token: _quote_detail_body(quote, history, user, token), user)


def _quote_post(request: Request, quote_id: int, csrf_token: str, roles, action: Callable[[dict], object], redirect: str | None = None):
    """Shared POST flow: auth, CSRF, run the store call, invalidate, redirect."""
    user, denied = require_page_user(request, roles)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    try:
        action(user)
    except QuoteDeskError as exc:
        log.info("Quote %s action rejected for %s: %s", quote_id, user["email"], exc)
        return _error_page(request, user, exc, f"/quotes/{quote_id}")
    invalidate_quotes(quote_id)
    return RedirectResponse(url=redirect or f"/quotes/{quote_id}", status_code=303)


@router.post("/quotes/{quote_id}/verify")
def verify_action(quote_id: int, request: Request, csrf_token: str = Form("")):
    return _quote_post(request, quote_id, csrf_token, VERIFY_ROLES, lambda u: verify_quote_price(quote_id, u["id"]))


@router.post("/quotes/{quote_id}/complete")
def complete_action(quote_id: int, request: Request, csrf_token: str = Form("")):
    return _quote_post(request, quote_id, csrf_token, None, lambda u: mark_quote_completed(quote_id, u["id"]))


@router.post("/quotes/{quote_id}/order")
async def order_action(quote_id: int, request: Request):
    form = await request.form()
    # select_parts marks a form with part checkboxes, where no ticks means an empty selection
    part_ids = None
    if form.get("select_parts"):
        part_ids = [int(pid) for pid in form.getlist("part_ids") if str(pid).isdigit()]
    return _quote_post(
        request,
        quote_id,
        form.get("csrf_token") or "",
        None,
        lambda u: mark_quote_as_ordered(quote_id, form.get("tax_invoice_number") or "", part_ids, u["id"]),
    )


@router.post("/quotes/{quote_id}/delivered")
def delivered_action(quote_id: int, request: Request, csrf_token: str = Form("")):
    return _quote_post(request, quote_id, csrf_token, None, lambda u: mark_quote_delivered(quote_id, u["id"]))


@router.post("/quotes/{quote_id}/wrong")
def wrong_action(quote_id: int, request: Request, csrf_token: str = Form("")):
    return _quote_post(request, quote_id, csrf_token, None, lambda u: mark_quote_wrong(quote_id, u["id"]))


@router.post("/quotes/{quote_id}/delete")
def delete_action(quote_id: int, request: Request, csrf_token: str = Form("")):
    response = _quote_post(
        request, quote_id, csrf_token, ("admin",), lambda u: delete_quote(quote_id), redirect="/dashboard"
    )
    # the quote's part rows go with it
    query_cache.invalidate(PARTS_KEY)
    return response


@router.post("/quotes/{quote_id}/parts")
def add_part_action(quote_id: int, request: Request, name: str = Form(""), number: str = Form(""), csrf_token: str = Form("")):
    response = _quote_post(
        request,
        quote_id,
        csrf_token,
        PRICING_ROLES,
        lambda u: add_part_to_quote(quote_id, {"name": name, "number": number}, u["id"]),
    )
    query_cache.invalidate(PARTS_KEY)
    return response


@router.post("/quotes/{quote_id}/parts/{part_id}")
def update_part_action(quote_id: int, part_id: int, request: Request, part_number: str = Form(""), csrf_token: str = Form("")):
    response = _quote_post(
        request,
        quote_id,
        csrf_token,
        PRICING_ROLES,
        lambda u: update_part(part_id, {"part_number": part_number}, u["id"]),
    )
    query_cache.invalidate(PARTS_KEY)
    return response


@router.post("/quotes/{quote_id}/parts/{part_id}/remove")
def remove_part_action(quote_id: int, part_id: int, request: Request, csrf_token: str = Form("")):
    response = _quote_post(
        request, quote_id, csrf_token, PRICING_ROLES, lambda u: remove_part_from_quote(quote_id, part_id, u["id"])
    )
    query_cache.invalidate(PARTS_KEY)
    return response


@router.post("/quotes/{quote_id}/parts/{part_id}/variants")
def add_variant_action(
    quote_id: int,
    part_id: int,
    request: Request,
    final_price: str = Form(""),
    note: str = Form(""),
    csrf_token: str = Form(""),
):
    return _quote_post(
        request,
        quote_id,
        csrf_token,
        PRICING_ROLES,
        lambda u: add_variant(quote_id, part_id, final_price, note, u["id"]),
    )


@router.post("/quotes/{quote_id}/parts/{part_id}/variants/{variant_id}/default")
def default_variant_action(quote_id: int, part_id: int, variant_id: str, request: Request, csrf_token: str = Form("")):
    return _quote_post(
        request,
        quote_id,
        csrf_token,
        PRICING_ROLES,
        lambda u: set_default_variant(quote_id, part_id, variant_id, u["id"]),
    )


@router.post("/quotes/{quote_id}/parts/{part_id}/variants/{variant_id}/delete")
def delete_variant_action(quote_id: int, part_id: int, variant_id: str, request: Request, csrf_token: str = Form("")):
    return _quote_post(
        request,
        quote_id,
        csrf_token,
        PRICING_ROLES,
        lambda u: delete_variant(quote_id, part_id, variant_id, u["id"]),
    )
