"""
Audit trail of who did what to which quote, and the per-user stats built on it.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from core.db.base import get_conn, now_iso
from core.errors import ValidationError

ACTION_TYPES = ("CREATED", "PRICED", "VERIFIED", "COMPLETED", "ORDERED", "MARKED_WRONG")


def record_action(cur, quote_id: int, action_type: str, user_id: Optional[int]) -> None:
    """Insert an action row using an open cursor (caller commits)."""
    cur.execute(
        """
        INSERT INTO quote_actions (quote_id, user_id, action_type, timestamp)
        VALUES (?, ?, ?, ?)
        """,
        (quote_id, user_id, action_type, now_iso()),
    )


def track_quote_action(quote_id: int, action_type: str, user_id: Optional[int] = None) -> Dict:
    """Record an action outside of a store transaction and return the row."""
    if action_type not in ACTION_TYPES:
        raise ValidationError(f"Unknown action type: {action_type}")

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO quote_actions (quote_id, user_id, action_type, timestamp)
        VALUES (?, ?, ?, ?)
        RETURNING id, quote_id, user_id, action_type, timestamp
        """,
        (quote_id, user_id, action_type, now_iso()),
    )
    row = cur.fetchone()
    conn.commit()
    conn.close()
    return dict(row)


def get_quote_actions(filters: Optional[Dict] = None) -> List[Dict]:
    """
    Actions newest first. Supported filters: user_id, action_type, quote_id,
    start_date, end_date (ISO strings, inclusive).
    """
    filters = filters or {}
    sql = """
        SELECT qa.id, qa.quote_id, qa.user_id, qa.action_type, qa.timestamp,
               u.email AS user_email, COALESCE(u.full_name, u.email) AS user_name,
               q.quote_ref
        FROM quote_actions qa
        LEFT JOIN users u ON u.id = qa.user_id
        LEFT JOIN quotes q ON q.id = qa.quote_id
    """
    conditions = []
    params: List = []
    for column in ("user_id", "action_type", "quote_id"):
        if filters.get(column) not in (None, ""):
            conditions.append(f"qa.{column} = ?")
            params.append(filters[column])
    if filters.get("start_date"):
        conditions.append("qa.timestamp >= ?")
        params.append(filters["start_date"])
    if filters.get("end_date"):
        conditions.append("qa.timestamp <= ?")
        params.append(filters["end_date"])
    if conditions:
        sql += " WHERE " + " AND ".join(conditions)
    sql += " ORDER BY qa.timestamp DESC, qa.id DESC"

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(sql, params)
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_quote_actions_by_quote_id(quote_id: int) -> List[Dict]:
    """History of one quote, oldest first."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT qa.id, qa.quote_id, qa.user_id, qa.action_type, qa.timestamp,
               u.email AS user_email, COALESCE(u.full_name, u.email) AS user_name
        FROM quote_actions qa
        LEFT JOIN users u ON u.id = qa.user_id
        WHERE qa.quote_id = ?
        ORDER BY qa.timestamp ASC, qa.id ASC
        """,
        (quote_id,),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_recent_activity(limit: int = 50) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT qa.id, qa.quote_id, qa.user_id, qa.action_type, qa.timestamp,
               COALESCE(u.full_name, u.email) AS user_name, q.quote_ref
        FROM quote_actions qa
        LEFT JOIN users u ON u.id = qa.user_id
        LEFT JOIN quotes q ON q.id = qa.quote_id
        ORDER BY qa.timestamp DESC, qa.id DESC
        LIMIT ?
        """,
        (limit,),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_user_stats(start_date: str | None = None, end_date: str | None = None) -> List[Dict]:
    """
    Per-user action counts within an optional date window.
    Users without actions in the window are still listed with zeros.
    """
    window = ""
    params: List = []
    if start_date:
        window += " AND qa.timestamp >= ?"
        params.append(start_date)
    if end_date:
        window += " AND qa.timestamp <= ?"
        params.append(end_date)

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT
            u.id AS user_id,
            u.email AS user_email,
            COALESCE(u.full_name, u.email) AS user_name,
            COUNT(qa.id) FILTER (WHERE qa.action_type = 'CREATED') AS quotes_created,
            COUNT(qa.id) FILTER (WHERE qa.action_type = 'PRICED') AS quotes_priced,
            COUNT(qa.id) FILTER (WHERE qa.action_type = 'VERIFIED') AS quotes_verified,
            COUNT(qa.id) FILTER (WHERE qa.action_type = 'COMPLETED') AS quotes_completed,
            COUNT(qa.id) FILTER (WHERE qa.action_type = 'ORDERED') AS quotes_ordered,
            COUNT(qa.id) FILTER (WHERE qa.action_type = 'MARKED_WRONG') AS quotes_marked_wrong,
            COUNT(qa.id) AS total_actions
        FROM users u
        LEFT JOIN quote_actions qa ON qa.user_id = u.id {window}
        GROUP BY u.id, u.email, u.full_name
        ORDER BY total_actions DESC, quotes_created DESC, u.id
        """,
        params,
    )
    rows = [dict(r) for r in cur.fetchall()]

    value_window = ""
    value_params: List = []
    if start_date:
        value_window += " AND q.created_at >= ?"
        value_params.append(start_date)
    if end_date:
        value_window += " AND q.created_at <= ?"
        value_params.append(end_date)

    # value of the quotes each user created, priced parts only
    cur.execute(
        f"""
        SELECT q.created_by AS user_id, COALESCE(SUM(p.price), 0) AS total_value
        FROM quotes q
        CROSS JOIN LATERAL jsonb_array_elements(q.parts_requested) AS entry
        JOIN parts p ON p.id = (entry->>'part_id')::int
        WHERE q.created_by IS NOT NULL {value_window}
        GROUP BY q.created_by
        """,
        value_params,
    )
    values = {r["user_id"]: float(r["total_value"] or 0) for r in cur.fetchall()}
    conn.close()

    for row in rows:
        row["total_value"] = round(values.get(row["user_id"], 0.0), 2)
    return rows


def get_activity_summary(now: datetime | None = None) -> Dict:
    now = now or datetime.utcnow()
    today = now.strftime("%Y-%m-%d")
    week_ago = (now - timedelta(days=7)).isoformat(timespec="seconds")
    month_ago = (now - timedelta(days=30)).isoformat(timespec="seconds")

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT
            COUNT(*) AS total_actions,
            COUNT(*) FILTER (WHERE LEFT(timestamp, 10) = ?) AS actions_today,
            COUNT(*) FILTER (WHERE timestamp >= ?) AS actions_this_week,
            COUNT(*) FILTER (WHERE timestamp >= ?) AS actions_this_month
        FROM quote_actions
        """,
        (today, week_ago, month_ago),
    )
    row = cur.fetchone()
    conn.close()

    if not row:
        return {"total_actions": 0, "actions_today": 0, "actions_this_week": 0, "actions_this_month": 0}
    return dict(row)


__all__ = [
    "ACTION_TYPES",
    "record_action",
    "track_quote_action",
    "get_quote_actions",
    "get_quote_actions_by_quote_id",
    "get_recent_activity",
    "get_user_stats",
    "get_activity_summary",
]
