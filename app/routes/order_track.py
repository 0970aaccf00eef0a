"""
Endpoints called by the supplier-portal userscript. They run cross-origin
and without a session, so every response carries the CORS headers, errors
included.
"""
import logging
from typing import Callable

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from core.database import get_order_track, get_priced_quote_refs, upsert_order_track
from core.errors import QuoteDeskError

router = APIRouter(prefix="/api/tampermonkey")
log = logging.getLogger("order_track")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _json(content, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content, status_code=status_code, headers=CORS_HEADERS)


def _run(action: Callable[[], object]) -> JSONResponse:
    try:
        return _json(action())
    except QuoteDeskError as exc:
        return _json({"error": str(exc)}, status_code=exc.status_code)
    except Exception:
        log.exception("Order tracking request failed")
        return _json({"error": "Internal server error"}, status_code=500)


@router.options("/orders")
def orders_preflight():
    return _json({})


@router.post("/orders")
async def record_order_open(request: Request):
    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    # the userscript may send numeric refs
    quote_ref = str(payload.get("quote_ref") or "").strip()
    opened_by = str(payload.get("opened_by") or "").strip()
    if not quote_ref or not opened_by:
        return _json({"error": "quote_ref and opened_by are required"}, status_code=400)

    log.info("Quote %s opened by %s", quote_ref, opened_by)
    return _run(lambda: upsert_order_track(quote_ref, opened_by))


@router.get("/orders")
def order_open_lookup(quote_ref: str = ""):
    if not quote_ref.strip():
        return _json({"error": "quote_ref is required"}, status_code=400)
    return _run(lambda: get_order_track(quote_ref))


@router.options("/completed")
def completed_preflight():
    return _json({})


@router.get("/completed")
def priced_quote_refs():
    return _run(lambda: [{"quote_ref": ref} for ref in get_priced_quote_refs()])
