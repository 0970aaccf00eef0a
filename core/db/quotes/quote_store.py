"""
Quote storage: creation across customers/vehicles/parts, listing, field
updates routed to the right table, and the status workflow.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from psycopg.types.json import Jsonb

from core.db.base import get_conn, now_iso
from core.db.quote_actions.actions_store import record_action
from core.errors import InvalidTransition, QuoteNotFound, ValidationError
from core.quoting import QUOTE_STATUSES, clean_part_number, derive_status, sort_quotes

log = logging.getLogger("quotes")

QUOTE_FIELDS = {"status", "notes", "tax_invoice_number", "required_by", "quote_ref"}
VEHICLE_FIELDS = {
    "make": "make",
    "model": "model",
    "series": "series",
    "vin": "vin",
    "rego": "rego",
    "year": "year",
    "mthyr": "year",
    "color": "color",
    "body": "body",
    "auto": "auto",
    "vehicle_notes": "notes",
}
CUSTOMER_FIELDS = {"customer": "name", "name": "name", "phone": "phone", "address": "address"}

_QUOTE_SELECT = """
    SELECT q.id, q.quote_ref, q.status, q.notes, q.required_by, q.tax_invoice_number,
           q.parts_requested, q.created_by, q.created_at, q.updated_at,
           q.customer_id, c.name AS customer, c.phone, c.address,
           q.vehicle_id, v.rego, v.make, v.model, v.series, v.year, v.vin,
           v.color, v.auto, v.body, v.notes AS vehicle_notes
    FROM quotes q
    LEFT JOIN customers c ON c.id = q.customer_id
    LEFT JOIN vehicles v ON v.id = q.vehicle_id
"""

_AU_DATETIME = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})(?:\s+(\d{1,2}):?(\d{2})\s*(am|pm)?)?$", re.IGNORECASE)


def parse_australian_datetime(value: str | None) -> Optional[str]:
    """
    "19/08/2025", "19/08/2025 12:00pm" or "19/08/2025 1200pm"
    -> "2025-08-19T12:00:00+00:00".
    Returns None when the text is not in that shape or is out of range.
    """
    if not value:
        return None
    match = _AU_DATETIME.match(value.strip())
    if not match:
        return None
    day, month, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
    hour = minute = 0
    if match.group(4):
        hour, minute = int(match.group(4)), int(match.group(5))
        meridiem = (match.group(6) or "").lower()
        if meridiem == "pm" and hour < 12:
            hour += 12
        if meridiem == "am" and hour == 12:
            hour = 0
    try:
        parsed = datetime(year, month, day, hour, minute)
    except ValueError:
        return None
    return parsed.isoformat(timespec="seconds") + "+00:00"


def _normalise_required_by(value: str | None) -> Optional[str]:
    if not value:
        return None
    return parse_australian_datetime(value) or value


def coerce_price(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid price: {value!r}")
    if price < 0:
        raise ValidationError("Price cannot be negative")
    return round(price, 2)


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on", "auto")
    return bool(value)


# ---------- reads ----------


def _load_parts(cur, part_ids: Iterable[int]) -> Dict[int, Dict]:
    ids = sorted({int(pid) for pid in part_ids if pid is not None})
    if not ids:
        return {}
    cur.execute(
        """
        SELECT id, vehicle_id, part_name, part_number, price, list_price, note, created_at
        FROM parts
        WHERE id = ANY(?)
        """,
        (ids,),
    )
    return {row["id"]: dict(row) for row in cur.fetchall()}


def resolve_parts(entries: List[Dict], parts_by_id: Dict[int, Dict]) -> List[Dict]:
    """Merge parts_requested entries with their part rows (variants attached)."""
    resolved = []
    for entry in entries or []:
        part_id = entry.get("part_id")
        part = parts_by_id.get(part_id)
        if part is None:
            part = {
                "id": part_id,
                "part_name": "Unknown Part",
                "part_number": "N/A",
                "price": None,
                "list_price": None,
                "note": "",
            }
        resolved.append(
            {
                **part,
                "variants": list(entry.get("variants") or []),
                "ordered": bool(entry.get("ordered")),
            }
        )
    return resolved


def _attach_parts(cur, quotes: List[Dict]) -> List[Dict]:
    part_ids = [e.get("part_id") for q in quotes for e in (q.get("parts_requested") or [])]
    parts_by_id = _load_parts(cur, part_ids)
    for quote in quotes:
        quote["parts"] = resolve_parts(quote.get("parts_requested") or [], parts_by_id)
    return quotes


def get_quote(quote_id: int) -> Dict:
    """One quote with customer, vehicle and resolved parts. Raises QuoteNotFound."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(_QUOTE_SELECT + " WHERE q.id = ?", (quote_id,))
    row = cur.fetchone()
    if not row:
        conn.close()
        raise QuoteNotFound(f"Quote {quote_id} not found")
    quote = _attach_parts(cur, [dict(row)])[0]
    conn.close()
    return quote


def get_quotes(
    status: str | List[str] | None = None,
    search: str | None = None,
    created_by: int | None = None,
    page: int = 1,
    limit: int = 50,
    order: str = "newest",
) -> Dict:
    """
    Paginated quote list.
    `status` may be one status or a list of them. `order` is "newest"
    (created_at desc) or "priority" (status priority, then deadline, then
    newest); priority ordering ranks the whole filtered set before paging.
    """
    if order not in ("newest", "priority"):
        raise ValidationError(f"Unknown order: {order}")
    conditions = []
    params: List = []

    if status:
        statuses = [status] if isinstance(status, str) else list(status)
        unknown = [s for s in statuses if s not in QUOTE_STATUSES]
        if unknown:
            raise ValidationError(f"Unknown status: {', '.join(unknown)}")
        conditions.append("q.status = ANY(?)")
        params.append(statuses)
    if created_by is not None:
        conditions.append("q.created_by = ?")
        params.append(created_by)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        conditions.append(
            "(q.quote_ref ILIKE ? OR v.vin ILIKE ? OR v.rego ILIKE ? OR v.make ILIKE ?"
            " OR v.model ILIKE ? OR c.name ILIKE ?)"
        )
        params.extend([pattern] * 6)

    where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
    page = max(1, int(page or 1))
    limit = max(1, min(int(limit or 50), 500))
    offset = (page - 1) * limit

    conn = get_conn()
    cur = conn.cursor()
    # deadline priority depends on the current time, so rank the keys here
    cur.execute(
        """
        SELECT q.id, q.status, q.required_by, q.created_at
        FROM quotes q
        LEFT JOIN customers c ON c.id = q.customer_id
        LEFT JOIN vehicles v ON v.id = q.vehicle_id
        """
        + where
        + " ORDER BY q.created_at DESC, q.id DESC",
        params,
    )
    keys = [dict(r) for r in cur.fetchall()]
    if order == "priority":
        keys = sort_quotes(keys)
    page_ids = [k["id"] for k in keys[offset:offset + limit]]

    quotes: List[Dict] = []
    if page_ids:
        cur.execute(_QUOTE_SELECT + " WHERE q.id = ANY(?)", (page_ids,))
        by_id = {row["id"]: dict(row) for row in cur.fetchall()}
        quotes = _attach_parts(cur, [by_id[i] for i in page_ids if i in by_id])
    conn.close()

    return {"quotes": quotes, "total": len(keys), "page": page, "limit": limit}


def get_quote_counts() -> Dict[str, int]:
    """Number of quotes per status (every status present, zero when empty)."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("SELECT status, COUNT(*) AS count FROM quotes GROUP BY status")
    rows = cur.fetchall()
    conn.close()

    counts = {status: 0 for status in QUOTE_STATUSES}
    for row in rows:
        counts[row["status"]] = row["count"]
    return counts


def count_wrong_quotes_for_user(user_id: int) -> int:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "SELECT COUNT(*) AS count FROM quotes WHERE status = 'wrong' AND created_by = ?",
        (user_id,),
    )
    row = cur.fetchone()
    conn.close()
    return row["count"] if row else 0


def get_priced_quote_refs() -> List[str]:
    """Quote refs of quotes waiting to be completed (priced, ref set)."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT quote_ref FROM quotes
        WHERE status = 'priced' AND quote_ref IS NOT NULL AND quote_ref <> ''
        ORDER BY created_at DESC
        """
    )
    rows = cur.fetchall()
    conn.close()
    return [row["quote_ref"] for row in rows]


# ---------- writes ----------


def _find_or_create_customer(cur, customer: Dict, now: str) -> int:
    name = (customer.get("name") or "").strip()
    if not name:
        raise ValidationError("Customer name is required")
    phone = (customer.get("phone") or "").strip()
    address = (customer.get("address") or "").strip()

    if phone:
        cur.execute("SELECT id FROM customers WHERE phone = ? ORDER BY id LIMIT 1", (phone,))
        existing = cur.fetchone()
        if existing:
            cur.execute(
                "UPDATE customers SET name = ?, address = ?, updated_at = ? WHERE id = ?",
                (name, address, now, existing["id"]),
            )
            return existing["id"]

    cur.execute(
        """
        INSERT INTO customers (name, phone, address, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        RETURNING id
        """,
        (name, phone or None, address, now, now),
    )
    return cur.fetchone()["id"]


def _create_vehicle(cur, vehicle: Dict, now: str) -> int:
    make = (vehicle.get("make") or "").strip()
    if not make:
        raise ValidationError("Vehicle make is required")
    auto = vehicle.get("auto")
    cur.execute(
        """
        INSERT INTO vehicles (rego, make, model, series, year, vin, color, auto, body, notes, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        RETURNING id
        """,
        (
            vehicle.get("rego") or None,
            make,
            vehicle.get("model") or "",
            vehicle.get("series") or None,
            vehicle.get("year") or vehicle.get("mthyr") or None,
            (vehicle.get("vin") or "").strip().upper() or None,
            vehicle.get("color") or None,
            True if auto is None else _as_bool(auto),
            vehicle.get("body") or None,
            vehicle.get("notes") or None,
            now,
        ),
    )
    return cur.fetchone()["id"]


def insert_part(cur, vehicle_id: Optional[int], part: Dict, now: str) -> Dict:
    name = (part.get("name") or part.get("part_name") or "").strip()
    if not name:
        raise ValidationError("Part name is required")
    number = part.get("number", part.get("part_number"))
    cur.execute(
        """
        INSERT INTO parts (vehicle_id, part_name, part_number, price, list_price, note, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        RETURNING id, vehicle_id, part_name, part_number, price, list_price, note, created_at
        """,
        (
            vehicle_id,
            name,
            clean_part_number(number),
            coerce_price(part.get("price")),
            coerce_price(part.get("list_price")),
            part.get("note") or "",
            now,
        ),
    )
    return dict(cur.fetchone())


def create_quote(
    customer: Dict,
    vehicle: Dict,
    parts: List[Dict],
    notes: str | None = None,
    required_by: str | None = None,
    quote_ref: str | None = None,
    created_by: int | None = None,
) -> Dict:
    """
    Create customer (re-used by phone), vehicle, quote and parts in one
    transaction. The quote starts unpriced with an empty variant list per part.
    """
    now = now_iso()
    conn = get_conn()
    cur = conn.cursor()
    try:
        customer_id = _find_or_create_customer(cur, customer or {}, now)
        vehicle_id = _create_vehicle(cur, vehicle or {}, now)

        cur.execute(
            """
            INSERT INTO quotes (quote_ref, customer_id, vehicle_id, status, notes, required_by,
                                parts_requested, created_by, created_at, updated_at)
            VALUES (?, ?, ?, 'unpriced', ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                (quote_ref or "").strip() or None,
                customer_id,
                vehicle_id,
                notes or None,
                _normalise_required_by(required_by),
                Jsonb([]),
                created_by,
                now,
                now,
            ),
        )
        quote_id = cur.fetchone()["id"]

        if not (quote_ref or "").strip():
            cur.execute("UPDATE quotes SET quote_ref = ? WHERE id = ?", (f"Q{quote_id:06d}", quote_id))

        entries = []
        for part in parts or []:
            created = insert_part(cur, vehicle_id, part, now)
            entries.append({"part_id": created["id"], "variants": []})
        if entries:
            cur.execute(
                "UPDATE quotes SET parts_requested = ? WHERE id = ?",
                (Jsonb(entries), quote_id),
            )

        record_action(cur, quote_id, "CREATED", created_by)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    log.info("Created quote id=%s parts=%s by user=%s", quote_id, len(parts or []), created_by)
    return get_quote(quote_id)


def update_quote(quote_id: int, fields: Dict) -> Dict:
    """
    Apply a flat dict of edits, sending each field to quotes, vehicles or
    customers. Unknown keys are ignored.
    """
    quote_updates: Dict = {}
    vehicle_updates: Dict = {}
    customer_updates: Dict = {}

    for key, value in (fields or {}).items():
        if key in QUOTE_FIELDS:
            if key == "status" and value not in QUOTE_STATUSES:
                raise ValidationError(f"Unknown status: {value}")
            if key == "required_by":
                value = _normalise_required_by(value)
            quote_updates[key] = value
        elif key in VEHICLE_FIELDS:
            if key == "auto":
                value = _as_bool(value)
            vehicle_updates[VEHICLE_FIELDS[key]] = value
        elif key in CUSTOMER_FIELDS:
            customer_updates[CUSTOMER_FIELDS[key]] = value

    now = now_iso()
    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute("SELECT id, vehicle_id, customer_id FROM quotes WHERE id = ?", (quote_id,))
        row = cur.fetchone()
        if not row:
            raise QuoteNotFound(f"Quote {quote_id} not found")

        quote_updates["updated_at"] = now
        assignments = ", ".join(f"{column} = ?" for column in quote_updates)
        cur.execute(f"UPDATE quotes SET {assignments} WHERE id = ?", (*quote_updates.values(), quote_id))

        if vehicle_updates and row["vehicle_id"]:
            assignments = ", ".join(f"{column} = ?" for column in vehicle_updates)
            cur.execute(
                f"UPDATE vehicles SET {assignments} WHERE id = ?",
                (*vehicle_updates.values(), row["vehicle_id"]),
            )
        if customer_updates and row["customer_id"]:
            customer_updates["updated_at"] = now
            assignments = ", ".join(f"{column} = ?" for column in customer_updates)
            cur.execute(
                f"UPDATE customers SET {assignments} WHERE id = ?",
                (*customer_updates.values(), row["customer_id"]),
            )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    return get_quote(quote_id)


def delete_quote(quote_id: int) -> bool:
    """Delete a quote together with the parts it requested."""
    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute("DELETE FROM quotes WHERE id = ? RETURNING parts_requested", (quote_id,))
        row = cur.fetchone()
        if not row:
            conn.rollback()
            return False
        part_ids = [e.get("part_id") for e in (row["parts_requested"] or []) if e.get("part_id")]
        if part_ids:
            cur.execute("DELETE FROM parts WHERE id = ANY(?)", (part_ids,))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    log.info("Deleted quote id=%s", quote_id)
    return True


# ---------- status workflow ----------

OPEN_STATUSES = ("unpriced", "waiting_verification", "priced")


def _transition(
    quote_id: int,
    allowed_from: Iterable[str],
    target: str,
    action_type: str | None,
    user_id: int | None,
    extra: Dict | None = None,
) -> Dict:
    allowed_from = tuple(allowed_from)
    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute("SELECT status FROM quotes WHERE id = ? FOR UPDATE", (quote_id,))
        row = cur.fetchone()
        if not row:
            raise QuoteNotFound(f"Quote {quote_id} not found")
        if row["status"] not in allowed_from:
            raise InvalidTransition(f"Cannot move quote from {row['status']} to {target}")

        updates = {"status": target, "updated_at": now_iso(), **(extra or {})}
        assignments = ", ".join(f"{column} = ?" for column in updates)
        cur.execute(f"UPDATE quotes SET {assignments} WHERE id = ?", (*updates.values(), quote_id))
        if action_type:
            record_action(cur, quote_id, action_type, user_id)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    log.info("Quote id=%s %s -> %s by user=%s", quote_id, row["status"], target, user_id)
    return get_quote(quote_id)


def mark_quote_waiting_verification(quote_id: int, user_id: int | None = None) -> Dict:
    """unpriced -> waiting_verification, only once every part carries a price."""
    quote = get_quote(quote_id)
    if not quote["parts"] or derive_status(quote["parts"], "unpriced") != "waiting_verification":
        raise InvalidTransition("Every part needs a price before verification")
    return _transition(quote_id, ["unpriced"], "waiting_verification", "PRICED", user_id)


def verify_quote_price(quote_id: int, user_id: int | None = None) -> Dict:
    return _transition(quote_id, ["waiting_verification"], "priced", "VERIFIED", user_id)


def mark_quote_completed(quote_id: int, user_id: int | None = None) -> Dict:
    return _transition(quote_id, ["priced"], "completed", "COMPLETED", user_id)


def _part_id_set(values) -> set:
    if isinstance(values, (str, bytes)) or not isinstance(values, (list, tuple, set)):
        raise ValidationError("selected_part_ids must be a list of part ids")
    try:
        return {int(v) for v in values}
    except (TypeError, ValueError):
        raise ValidationError("selected_part_ids must be a list of part ids") from None


def mark_quote_as_ordered(
    quote_id: int,
    tax_invoice_number: str,
    selected_part_ids: List[int] | None = None,
    user_id: int | None = None,
) -> Dict:
    """
    Order a priced or completed quote against a tax invoice. When
    `selected_part_ids` is given only those parts are flagged as ordered.
    """
    invoice = str(tax_invoice_number or "").strip()
    if not invoice:
        raise ValidationError("Tax invoice number is required")

    extra: Dict = {"tax_invoice_number": invoice}
    if selected_part_ids is not None:
        selected = _part_id_set(selected_part_ids)
        if not selected:
            raise ValidationError("Select at least one part to order")
        entries = get_quote(quote_id).get("parts_requested") or []
        known = {e.get("part_id") for e in entries}
        if not selected <= known:
            raise ValidationError("Selected parts do not belong to this quote")
        extra["parts_requested"] = Jsonb(
            [{**e, "ordered": e.get("part_id") in selected} for e in entries]
        )

    return _transition(quote_id, ["priced", "completed"], "ordered", "ORDERED", user_id, extra)


def mark_quote_delivered(quote_id: int, user_id: int | None = None) -> Dict:
    return _transition(quote_id, ["ordered"], "delivered", None, user_id)


def mark_quote_wrong(quote_id: int, user_id: int | None = None) -> Dict:
    return _transition(quote_id, OPEN_STATUSES, "wrong", "MARKED_WRONG", user_id)


def refresh_quote_status(quote_id: int, user_id: int | None = None) -> str:
    """
    Recompute an open quote's status from its parts and store it.
    Moving to waiting_verification is recorded as a PRICED action.
    """
    quote = get_quote(quote_id)
    current = quote["status"]
    new_status = derive_status(quote["parts"], current)
    if new_status == current:
        return current

    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute(
            "UPDATE quotes SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
            (new_status, now_iso(), quote_id, current),
        )
        if cur.rowcount and new_status == "waiting_verification":
            record_action(cur, quote_id, "PRICED", user_id)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    log.info("Quote id=%s status %s -> %s (parts changed)", quote_id, current, new_status)
    return new_status


__all__ = [
    "parse_australian_datetime",
    "coerce_price",
    "resolve_parts",
    "insert_part",
    "get_quote",
    "get_quotes",
    "get_quote_counts",
    "count_wrong_quotes_for_user",
    "get_priced_quote_refs",
    "create_quote",
    "update_quote",
    "delete_quote",
    "mark_quote_waiting_verification",
    "verify_quote_price",
    "mark_quote_completed",
    "mark_quote_as_ordered",
    "mark_quote_delivered",
    "mark_quote_wrong",
    "refresh_quote_status",
]
