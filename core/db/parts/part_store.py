"""
Parts and the price variants a quote keeps for each of them.

Variants live inside quotes.parts_requested; the part row's price always
mirrors the default variant so list pages and stats can read it directly.
"""
from __future__ import annotations

import logging
import uuid
from typing import Dict, List, Optional

from psycopg.types.json import Jsonb

from core.db.base import get_conn, now_iso
from core.db.quotes.quote_store import coerce_price, insert_part, refresh_quote_status
from core.errors import PartNotFound, QuoteNotFound, ValidationError
from core.quoting import clean_part_number, default_variant

log = logging.getLogger("parts")

_PART_COLUMNS = "id, vehicle_id, part_name, part_number, price, list_price, note, created_at"
_FIELD_NAMES = {
    "name": "part_name",
    "part_name": "part_name",
    "number": "part_number",
    "part_number": "part_number",
    "price": "price",
    "list_price": "list_price",
    "note": "note",
    "vehicle_id": "vehicle_id",
}


def fetch_parts() -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"SELECT {_PART_COLUMNS} FROM parts ORDER BY created_at DESC, id DESC")
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_part(part_id: int) -> Dict:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"SELECT {_PART_COLUMNS} FROM parts WHERE id = ?", (part_id,))
    row = cur.fetchone()
    conn.close()
    if not row:
        raise PartNotFound(f"Part {part_id} not found")
    return dict(row)


def add_part(part_data: Dict) -> Dict:
    conn = get_conn()
    cur = conn.cursor()
    try:
        part = insert_part(cur, part_data.get("vehicle_id"), part_data, now_iso())
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    return part


def _quote_ids_for_part(cur, part_id: int) -> List[int]:
    cur.execute(
        "SELECT id FROM quotes WHERE parts_requested @> ?",
        (Jsonb([{"part_id": part_id}]),),
    )
    return [row["id"] for row in cur.fetchall()]


def _update_part_row(cur, part_id: int, updates: Dict) -> Dict:
    columns: Dict = {}
    for key, value in (updates or {}).items():
        column = _FIELD_NAMES.get(key)
        if not column:
            continue
        if column == "part_number":
            value = clean_part_number(value)
        elif column in ("price", "list_price"):
            value = coerce_price(value)
        elif column == "part_name":
            value = (value or "").strip()
            if not value:
                raise ValidationError("Part name is required")
        columns[column] = value

    if columns:
        assignments = ", ".join(f"{column} = ?" for column in columns)
        cur.execute(
            f"UPDATE parts SET {assignments} WHERE id = ? RETURNING {_PART_COLUMNS}",
            (*columns.values(), part_id),
        )
    else:
        cur.execute(f"SELECT {_PART_COLUMNS} FROM parts WHERE id = ?", (part_id,))
    row = cur.fetchone()
    if not row:
        raise PartNotFound(f"Part {part_id} not found")
    return dict(row)


def _refresh_quotes(quote_ids: List[int], user_id: Optional[int]) -> None:
    for quote_id in quote_ids:
        refresh_quote_status(quote_id, user_id)


def update_part(part_id: int, updates: Dict, user_id: int | None = None) -> Dict:
    """Edit a part and re-derive the status of every quote that uses it."""
    conn = get_conn()
    cur = conn.cursor()
    try:
        part = _update_part_row(cur, part_id, updates)
        quote_ids = _quote_ids_for_part(cur, part_id)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    _refresh_quotes(quote_ids, user_id)
    return part


def update_multiple_parts(updates: List[Dict], user_id: int | None = None) -> List[Dict]:
    """
    Apply [{"id": part_id, "updates": {...}}, ...] in one transaction, then
    refresh each affected quote once.
    """
    conn = get_conn()
    cur = conn.cursor()
    parts = []
    quote_ids: List[int] = []
    try:
        for item in updates or []:
            if "id" not in item:
                raise ValidationError("Each update needs a part id")
            part_id = int(item["id"])
            parts.append(_update_part_row(cur, part_id, item.get("updates") or {}))
            for quote_id in _quote_ids_for_part(cur, part_id):
                if quote_id not in quote_ids:
                    quote_ids.append(quote_id)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    _refresh_quotes(quote_ids, user_id)
    return parts


def delete_part(part_id: int, user_id: int | None = None) -> bool:
    """Delete a part and drop it from every quote's parts list."""
    conn = get_conn()
    cur = conn.cursor()
    try:
        quote_ids = _quote_ids_for_part(cur, part_id)
        for quote_id in quote_ids:
            entries = _load_entries(cur, quote_id)
            _save_entries(cur, quote_id, [e for e in entries if e.get("part_id") != part_id])
        cur.execute("DELETE FROM parts WHERE id = ?", (part_id,))
        deleted = cur.rowcount > 0
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    _refresh_quotes(quote_ids, user_id)
    return deleted


# ---------- quote parts list ----------


def _load_entries(cur, quote_id: int) -> List[Dict]:
    cur.execute("SELECT parts_requested FROM quotes WHERE id = ? FOR UPDATE", (quote_id,))
    row = cur.fetchone()
    if not row:
        raise QuoteNotFound(f"Quote {quote_id} not found")
    return list(row["parts_requested"] or [])


def _save_entries(cur, quote_id: int, entries: List[Dict]) -> None:
    cur.execute(
        "UPDATE quotes SET parts_requested = ?, updated_at = ? WHERE id = ?",
        (Jsonb(entries), now_iso(), quote_id),
    )


def _find_entry(entries: List[Dict], part_id: int) -> Dict:
    for entry in entries:
        if entry.get("part_id") == part_id:
            return entry
    raise PartNotFound(f"Part {part_id} is not on this quote")


def add_part_to_quote(quote_id: int, part_data: Dict, user_id: int | None = None) -> Dict:
    """Create a part for the quote's vehicle and append it to the quote."""
    conn = get_conn()
    cur = conn.cursor()
    try:
        entries = _load_entries(cur, quote_id)
        cur.execute("SELECT vehicle_id FROM quotes WHERE id = ?", (quote_id,))
        vehicle_id = cur.fetchone()["vehicle_id"]
        part = insert_part(cur, vehicle_id, part_data, now_iso())
        entries.append({"part_id": part["id"], "variants": []})
        _save_entries(cur, quote_id, entries)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    refresh_quote_status(quote_id, user_id)
    return part


def remove_part_from_quote(quote_id: int, part_id: int, user_id: int | None = None) -> bool:
    conn = get_conn()
    cur = conn.cursor()
    try:
        entries = _load_entries(cur, quote_id)
        remaining = [e for e in entries if e.get("part_id") != part_id]
        removed = len(remaining) != len(entries)
        if removed:
            _save_entries(cur, quote_id, remaining)
            cur.execute("DELETE FROM parts WHERE id = ?", (part_id,))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    if removed:
        refresh_quote_status(quote_id, user_id)
    return removed


# ---------- variants ----------


def _sync_part_price(cur, entry: Dict) -> None:
    chosen = default_variant(entry.get("variants"))
    price = chosen.get("final_price") if chosen else None
    cur.execute("UPDATE parts SET price = ? WHERE id = ?", (price, entry["part_id"]))


def _change_variants(quote_id: int, part_id: int, mutate, user_id: Optional[int]):
    """Load the entry, apply `mutate(entry)`, mirror the price, refresh status."""
    conn = get_conn()
    cur = conn.cursor()
    try:
        entries = _load_entries(cur, quote_id)
        entry = _find_entry(entries, part_id)
        entry.setdefault("variants", [])
        result = mutate(entry)
        _save_entries(cur, quote_id, entries)
        _sync_part_price(cur, entry)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    refresh_quote_status(quote_id, user_id)
    return result


def _find_variant(entry: Dict, variant_id: str) -> Dict:
    for variant in entry["variants"]:
        if variant.get("id") == variant_id:
            return variant
    raise ValidationError(f"Variant {variant_id} not found")


def add_variant(
    quote_id: int,
    part_id: int,
    final_price,
    note: str = "",
    user_id: int | None = None,
) -> Dict:
    """Append a priced variant. The first variant of a part becomes its default."""
    price = coerce_price(final_price)
    if price is None:
        raise ValidationError("A variant needs a final price")

    def mutate(entry):
        variant = {
            "id": uuid.uuid4().hex,
            "final_price": price,
            "note": note or "",
            "created_at": now_iso(),
            "is_default": not entry["variants"],
        }
        entry["variants"].append(variant)
        return variant

    variant = _change_variants(quote_id, part_id, mutate, user_id)
    log.info("Priced part=%s on quote=%s at %s", part_id, quote_id, price)
    return variant


def update_variant(
    quote_id: int,
    part_id: int,
    variant_id: str,
    final_price=None,
    note: str | None = None,
    user_id: int | None = None,
) -> Dict:
    price = coerce_price(final_price)

    def mutate(entry):
        variant = _find_variant(entry, variant_id)
        if price is not None:
            variant["final_price"] = price
        if note is not None:
            variant["note"] = note
        return variant

    return _change_variants(quote_id, part_id, mutate, user_id)


def set_default_variant(quote_id: int, part_id: int, variant_id: str, user_id: int | None = None) -> Dict:
    def mutate(entry):
        chosen = _find_variant(entry, variant_id)
        for variant in entry["variants"]:
            variant["is_default"] = variant is chosen
        return chosen

    return _change_variants(quote_id, part_id, mutate, user_id)


def delete_variant(quote_id: int, part_id: int, variant_id: str, user_id: int | None = None) -> bool:
    def mutate(entry):
        variant = _find_variant(entry, variant_id)
        entry["variants"] = [v for v in entry["variants"] if v is not variant]
        if variant.get("is_default") and entry["variants"]:
            entry["variants"][0]["is_default"] = True
        return True

    return _change_variants(quote_id, part_id, mutate, user_id)


__all__ = [
    "fetch_parts",
    "get_part",
    "add_part",
    "update_part",
    "update_multiple_parts",
    "delete_part",
    "add_part_to_quote",
    "remove_part_from_quote",
    "add_variant",
    "update_variant",
    "set_default_variant",
    "delete_variant",
]
