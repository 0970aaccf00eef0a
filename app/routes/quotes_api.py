"""
JSON API over the quote and part stores. Store errors (QuoteDeskError) are
turned into {"error": ...} responses by the app-level handler.
"""
from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse

from app.auth_utils import ADMIN_ROLES, PRICING_ROLES, VERIFY_ROLES, require_api_user
from app.cache import PARTS_KEY, invalidate_quotes, query_cache
from app.queries import parts_list, quote_counts, quote_detail, quotes_page
from core.database import (
    add_part,
    add_variant,
    create_quote,
    delete_part,
    delete_quote,
    get_available_parts_for_brand,
    mark_quote_as_ordered,
    mark_quote_completed,
    mark_quote_delivered,
    mark_quote_wrong,
    update_part,
    update_quote,
    verify_quote_price,
)
from core.quick_fill import parse_quote_data

router = APIRouter(prefix="/api")


def _status_filter(status: str | None):
    if not status:
        return None
    statuses = [s.strip() for s in status.split(",") if s.strip()]
    return statuses[0] if len(statuses) == 1 else statuses


@router.get("/quotes")
def list_quotes(
    request: Request,
    status: str | None = None,
    search: str | None = None,
    created_by: int | None = None,
    page: int = 1,
    limit: int = 50,
    order: str = "newest",
):
    user, denied = require_api_user(request)
    if denied:
        return denied
    return quotes_page(
        status=_status_filter(status), search=search, created_by=created_by, page=page, limit=limit, order=order
    )


@router.post("/quotes", status_code=201)
def create_quote_api(request: Request, payload: dict = Body(...)):
    user, denied = require_api_user(request)
    if denied:
        return denied
    quote = create_quote(
        customer=payload.get("customer") or {},
        vehicle=payload.get("vehicle") or {},
        parts=payload.get("parts") or [],
        notes=payload.get("notes"),
        required_by=payload.get("required_by"),
        quote_ref=payload.get("quote_ref"),
        created_by=user["id"],
    )
    invalidate_quotes()
    query_cache.invalidate(PARTS_KEY)
    return quote


@router.get("/quote-counts")
def quote_counts_api(request: Request):
    user, denied = require_api_user(request)
    if denied:
        return denied
    return quote_counts()


@router.get("/quotes/{quote_id}")
def get_quote_api(quote_id: int, request: Request):
    user, denied = require_api_user(request)
    if denied:
        return denied
    return quote_detail(quote_id)


@router.patch("/quotes/{quote_id}")
def update_quote_api(quote_id: int, request: Request, payload: dict = Body(...)):
    user, denied = require_api_user(request)
    if denied:
        return denied
    quote = update_quote(quote_id, payload)
    invalidate_quotes(quote_id)
    return quote


@router.delete("/quotes/{quote_id}")
def delete_quote_api(quote_id: int, request: Request):
    user, denied = require_api_user(request, ADMIN_ROLES)
    if denied:
        return denied
    if not delete_quote(quote_id):
        return JSONResponse({"error": f"Quote {quote_id} not found"}, status_code=404)
    invalidate_quotes(quote_id)
    query_cache.invalidate(PARTS_KEY)
    return {"deleted": True}


@router.post("/quotes/{quote_id}/verify")
def verify_quote_api(quote_id: int, request: Request):
    user, denied = require_api_user(request, VERIFY_ROLES)
    if denied:
        return denied
    quote = verify_quote_price(quote_id, user["id"])
    invalidate_quotes(quote_id)
    return quote


@router.post("/quotes/{quote_id}/complete")
def complete_quote_api(quote_id: int, request: Request):
    user, denied = require_api_user(request)
    if denied:
        return denied
    quote = mark_quote_completed(quote_id, user["id"])
    invalidate_quotes(quote_id)
    return quote


@router.post("/quotes/{quote_id}/order")
def order_quote_api(quote_id: int, request: Request, payload: dict = Body(...)):
    user, denied = require_api_user(request)
    if denied:
        return denied
    quote = mark_quote_as_ordered(
        quote_id,
        payload.get("tax_invoice_number") or "",
        payload.get("selected_part_ids"),
        user["id"],
    )
    invalidate_quotes(quote_id)
    return quote


@router.post("/quotes/{quote_id}/wrong")
def wrong_quote_api(quote_id: int, request: Request):
    user, denied = require_api_user(request)
    if denied:
        return denied
    quote = mark_quote_wrong(quote_id, user["id"])
    invalidate_quotes(quote_id)
    return quote


@router.post("/quotes/{quote_id}/delivered")
def delivered_quote_api(quote_id: int, request: Request):
    user, denied = require_api_user(request)
    if denied:
        return denied
    quote = mark_quote_delivered(quote_id, user["id"])
    invalidate_quotes(quote_id)
    return quote


@router.post("/quotes/{quote_id}/parts/{part_id}/variants", status_code=201)
def add_variant_api(quote_id: int, part_id: int, request: Request, payload: dict = Body(...)):
    user, denied = require_api_user(request, PRICING_ROLES)
    if denied:
        return denied
    variant = add_variant(quote_id, part_id, payload.get("final_price"), payload.get("note") or "", user["id"])
    invalidate_quotes(quote_id)
    query_cache.invalidate(PARTS_KEY)
    return variant


@router.get("/parts")
def list_parts_api(request: Request):
    user, denied = require_api_user(request)
    if denied:
        return denied
    return parts_list()


@router.post("/parts", status_code=201)
def add_part_api(request: Request, payload: dict = Body(...)):
    user, denied = require_api_user(request, PRICING_ROLES)
    if denied:
        return denied
    part = add_part(payload)
    query_cache.invalidate(PARTS_KEY)
    return part


@router.patch("/parts/{part_id}")
def update_part_api(part_id: int, request: Request, payload: dict = Body(...)):
    user, denied = require_api_user(request, PRICING_ROLES)
    if denied:
        return denied
    part = update_part(part_id, payload, user["id"])
    query_cache.invalidate(PARTS_KEY)
    invalidate_quotes()
    return part


@router.delete("/parts/{part_id}")
def delete_part_api(part_id: int, request: Request):
    user, denied = require_api_user(request, PRICING_ROLES)
    if denied:
        return denied
    if not delete_part(part_id, user["id"]):
        return JSONResponse({"error": f"Part {part_id} not found"}, status_code=404)
    query_cache.invalidate(PARTS_KEY)
    invalidate_quotes()
    return {"deleted": True}


@router.post("/quick-fill")
def quick_fill_api(request: Request, payload: dict = Body(...)):
    user, denied = require_api_user(request)
    if denied:
        return denied
    data = parse_quote_data(payload.get("text") or "")
    available = get_available_parts_for_brand(data["make"]) if data.get("make") else []
    return {"data": data, "available_parts": available}
