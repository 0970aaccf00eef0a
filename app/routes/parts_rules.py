from fastapi import APIRouter, Body, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from app.auth_utils import ADMIN_ROLES, require_api_user, require_page_user
from app.cache import PARTS_RULES_KEY, query_cache
from app.layout import escape, render_page
from app.queries import parts_rules_list, quote_counts
from app.security import attach_csrf_cookie, csrf_field, issue_csrf_token, validate_csrf
from core.database import (
    RULE_TYPES,
    create_parts_rule,
    delete_parts_rule,
    is_part_available_for_brand,
    update_parts_rule,
)
from core.errors import QuoteDeskError

router = APIRouter()


def _rule_type_options(selected: str = "none") -> str:
    return "".join(
        f'<option value="{t}"{" selected" if t == selected else ""}>{t}</option>' for t in RULE_TYPES
    )


@router.get("/parts-rules", response_class=HTMLResponse)
def parts_rules_page(request: Request, error: str = ""):
    user, denied = require_page_user(request, ADMIN_ROLES)
    if denied:
        return denied

    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    rows_html = ""
    for rule in parts_rules_list():
        rows_html += f"""
        <tr>
          <td>{escape(rule['part_name'])}</td>
          <td>{escape(rule['rule_type'])}</td>
          <td>{escape(', '.join(rule.get('brands') or []))}</td>
          <td>{escape(rule.get('description'))}</td>
          <td>
            <form method="post" action="/parts-rules/{rule['id']}/delete"
                  onsubmit="return confirm('Delete this rule?');">
              {csrf_field(csrf_token)}
              <button type="submit" class="danger">Delete</button>
            </form>
          </td>
        </tr>
        """
    if not rows_html:
        rows_html = '<tr><td colspan="5">No rules yet.</td></tr>'

    error_html = f'<p class="error">{escape(error)}</p>' if error else ""
    body = f"""
    <div class="card">
      <h2>Add rule</h2>
      {error_html}
      <form method="post" action="/parts-rules">
        <div class="grid">
          <div><label>Part name</label><input name="part_name" required /></div>
          <div><label>Rule</label><select name="rule_type">{_rule_type_options("required_for")}</select></div>
          <div><label>Brands (comma separated)</label><input name="brands" /></div>
          <div><label>Description</label><input name="description" /></div>
        </div>
        {csrf_field(csrf_token)}
        <button type="submit">Save rule</button>
      </form>
    </div>
    <div class="card">
      <table>
        <thead><tr><th>Part</th><th>Rule</th><th>Brands</th><th>Description</th><th></th></tr></thead>
        <tbody>{rows_html}</tbody>
      </table>
    </div>
    """
    resp = render_page("Parts rules", body, user=user, counts=quote_counts())
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/parts-rules")
def create_rule_form(
    request: Request,
    part_name: str = Form(""),
    rule_type: str = Form("none"),
    brands: str = Form(""),
    description: str = Form(""),
    csrf_token: str = Form(""),
):
    user, denied = require_page_user(request, ADMIN_ROLES)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    try:
        create_parts_rule(
            {"part_name": part_name, "rule_type": rule_type, "brands": brands, "description": description},
            created_by=user["id"],
        )
    except QuoteDeskError as exc:
        return parts_rules_page(request, error=str(exc))
    query_cache.invalidate(PARTS_RULES_KEY)
    return RedirectResponse(url="/parts-rules", status_code=303)


@router.post("/parts-rules/{rule_id}/delete")
def delete_rule_form(rule_id: int, request: Request, csrf_token: str = Form("")):
    user, denied = require_page_user(request, ADMIN_ROLES)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    try:
        delete_parts_rule(rule_id)
    except QuoteDeskError as exc:
        return parts_rules_page(request, error=str(exc))
    query_cache.invalidate(PARTS_RULES_KEY)
    return RedirectResponse(url="/parts-rules", status_code=303)


# ---------- JSON ----------


@router.get("/api/parts-rules")
def list_rules_api(request: Request):
    user, denied = require_api_user(request)
    if denied:
        return denied
    return {"rules": parts_rules_list()}


@router.get("/api/parts-rules/available")
def available_parts_api(request: Request, brand: str = ""):
    user, denied = require_api_user(request)
    if denied:
        return denied
    names = [r["part_name"] for r in parts_rules_list() if is_part_available_for_brand(r, brand)]
    return {"brand": brand, "parts": names}


def _check_rule_payload(payload: dict):
    if not payload.get("part_name") or not payload.get("rule_type"):
        return JSONResponse({"error": "part_name and rule_type are required"}, status_code=400)
    if payload["rule_type"] not in RULE_TYPES:
        return JSONResponse({"error": "Invalid rule_type"}, status_code=400)
    return None


@router.post("/api/parts-rules", status_code=201)
def create_rule_api(request: Request, payload: dict = Body(...)):
    user, denied = require_api_user(request, ADMIN_ROLES)
    if denied:
        return denied
    invalid = _check_rule_payload(payload)
    if invalid:
        return invalid
    rule = create_parts_rule(payload, created_by=user["id"])
    query_cache.invalidate(PARTS_RULES_KEY)
    return {"rule": rule}


@router.put("/api/parts-rules/{rule_id}")
def update_rule_api(rule_id: int, request: Request, payload: dict = Body(...)):
    user, denied = require_api_user(request, ADMIN_ROLES)
    if denied:
        return denied
    invalid = _check_rule_payload(payload)
    if invalid:
        return invalid
    rule = update_parts_rule(rule_id, payload)
    query_cache.invalidate(PARTS_RULES_KEY)
    return {"rule": rule}


@router.delete("/api/parts-rules/{rule_id}")
def delete_rule_api(rule_id: int, request: Request):
    user, denied = require_api_user(request, ADMIN_ROLES)
    if denied:
        return denied
    delete_parts_rule(rule_id)
    query_cache.invalidate(PARTS_RULES_KEY)
    return {"success": True}
