"""
Who opened which quote in the supplier portal (fed by a browser userscript).
"""
from __future__ import annotations

from typing import Dict, List

from core.db.base import get_conn, now_iso
from core.errors import ValidationError


def upsert_order_track(quote_ref: str, opened_by: str) -> List[Dict]:
    """Insert or overwrite the row for quote_ref. Returns the stored row(s)."""
    quote_ref = (quote_ref or "").strip()
    opened_by = (opened_by or "").strip()
    if not quote_ref or not opened_by:
        raise ValidationError("quote_ref and opened_by are required")

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO order_track (quote_ref, opened_by, opened_at)
        VALUES (?, ?, ?)
        ON CONFLICT (quote_ref) DO UPDATE
            SET opened_by = EXCLUDED.opened_by, opened_at = EXCLUDED.opened_at
        RETURNING id, quote_ref, opened_by, opened_at
        """,
        (quote_ref, opened_by, now_iso()),
    )
    row = cur.fetchone()
    conn.commit()
    conn.close()
    return [dict(row)]


def get_order_track(quote_ref: str) -> Dict:
    """
    {opened_by, total_count}: who opened quote_ref and how many quotes that
    person has opened in total. Unknown refs give {None, 0}.
    """
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("SELECT opened_by FROM order_track WHERE quote_ref = ?", ((quote_ref or "").strip(),))
    row = cur.fetchone()
    if not row or not row["opened_by"]:
        conn.close()
        return {"opened_by": None, "total_count": 0}

    opened_by = row["opened_by"]
    cur.execute("SELECT COUNT(*) AS count FROM order_track WHERE opened_by = ?", (opened_by,))
    count_row = cur.fetchone()
    conn.close()
    return {"opened_by": opened_by, "total_count": count_row["count"] if count_row else 0}


__all__ = ["upsert_order_track", "get_order_track"]
