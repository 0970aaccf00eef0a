"""
Login sessions.

Sessions slide: every authenticated request pushes expires_at forward by
SESSION_TIMEOUT_MINUTES. Expired rows are purged whenever a lookup runs.
"""
from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import Dict, Optional

from core.db.base import get_conn

SESSION_TIMEOUT_MINUTES = 30


def _stamp(moment: datetime) -> str:
    return moment.isoformat(timespec="seconds")


def _expiry_from(moment: datetime) -> str:
    return _stamp(moment + timedelta(minutes=SESSION_TIMEOUT_MINUTES))


def create_session(user_id: int) -> str:
    """Open a session for user_id and return its token."""
    token = secrets.token_urlsafe(32)
    started = datetime.utcnow()

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO sessions (id, user_id, created_at, last_seen_at, expires_at) VALUES (?, ?, ?, ?, ?)",
        (token, user_id, _stamp(started), _stamp(started), _expiry_from(started)),
    )
    conn.commit()
    conn.close()
    return token


def get_session(token: str) -> Optional[Dict]:
    """Return the live session for token, or None once it has lapsed."""
    if not token:
        return None

    conn = get_conn()
    cur = conn.cursor()
    # ISO strings of one format compare in time order
    cur.execute("DELETE FROM sessions WHERE expires_at < ?", (_stamp(datetime.utcnow()),))
    cur.execute(
        "SELECT id, user_id, created_at, last_seen_at, expires_at FROM sessions WHERE id = ?",
        (token,),
    )
    row = cur.fetchone()
    conn.commit()
    conn.close()
    return dict(row) if row else None


def touch_session(token: str) -> None:
    if not token:
        return
    seen = datetime.utcnow()
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "UPDATE sessions SET last_seen_at = ?, expires_at = ? WHERE id = ?",
        (_stamp(seen), _expiry_from(seen), token),
    )
    conn.commit()
    conn.close()


def delete_session(token: str) -> None:
    if not token:
        return
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("DELETE FROM sessions WHERE id = ?", (token,))
    conn.commit()
    conn.close()


def delete_sessions_for_user(user_id: int) -> None:
    """Sign a user out everywhere (used when an account is deactivated)."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("DELETE FROM sessions WHERE user_id = ?", (user_id,))
    conn.commit()
    conn.close()


__all__ = [
    "SESSION_TIMEOUT_MINUTES",
    "create_session",
    "delete_session",
    "delete_sessions_for_user",
    "get_session",
    "touch_session",
]
