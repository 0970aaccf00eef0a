"""
Staff account CRUD.
"""
from __future__ import annotations

from typing import Dict, List, Optional

from core.db.base import get_conn, now_iso
from core.db.users.auth import hash_password, validate_password, validate_role
from core.errors import DuplicateUser, ValidationError

_USER_COLUMNS = "id, email, password_hash, username, full_name, role, active, created_at, updated_at"


def create_user(
    email: str,
    raw_password: str,
    username: str | None = None,
    full_name: str | None = None,
    role: str = "quote_creator",
) -> int:
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("Email is required")
    role = validate_role(role)
    validate_password(raw_password)
    if get_user_by_email(email):
        raise DuplicateUser("A user with this email already exists")

    conn = get_conn()
    cur = conn.cursor()
    now = now_iso()

    cur.execute(
        """
        INSERT INTO users (email, password_hash, username, full_name, role, active, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, 1, ?, ?)
        RETURNING id
        """,
        (email, hash_password(raw_password), username, full_name, role, now, now),
    )
    row = cur.fetchone()
    user_id = int(row["id"]) if row else 0

    conn.commit()
    conn.close()
    return user_id


def get_user_by_email(email: str) -> Dict | None:
    conn = get_conn()
    cur = conn.cursor()

    cur.execute(
        f"SELECT {_USER_COLUMNS} FROM users WHERE email = ?",
        ((email or "").strip().lower(),),
    )
    row = cur.fetchone()
    conn.close()

    return dict(row) if row else None


def get_user_by_id(user_id: int) -> Optional[Dict]:
    """Look up a user by numeric id. Returns dict or None."""
    conn = get_conn()
    cur = conn.cursor()

    cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (user_id,))
    row = cur.fetchone()
    conn.close()

    return dict(row) if row else None


def list_users() -> List[Dict]:
    """All users without their password hashes, newest first."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, email, username, full_name, role, active, created_at, updated_at
        FROM users
        ORDER BY created_at DESC, id DESC
        """
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def list_users_by_role(role: str) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, email, username, full_name, role, active
        FROM users
        WHERE role = ? AND active = 1
        ORDER BY full_name, email
        """,
        (role,),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def update_user(user_id: int, fields: Dict) -> Optional[Dict]:
    """
    Update role / active / username / full_name / password.
    Unknown keys are ignored. Returns the updated user or None if missing.
    """
    updates: Dict = {}
    if "role" in fields and fields["role"] is not None:
        updates["role"] = validate_role(fields["role"])
    if "active" in fields and fields["active"] is not None:
        updates["active"] = 1 if fields["active"] else 0
    for key in ("username", "full_name"):
        if key in fields and fields[key] is not None:
            updates[key] = fields[key]
    if fields.get("password"):
        updates["password_hash"] = hash_password(validate_password(fields["password"]))

    if not updates:
        return get_user_by_id(user_id)

    updates["updated_at"] = now_iso()
    assignments = ", ".join(f"{column} = ?" for column in updates)

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"UPDATE users SET {assignments} WHERE id = ?",
        (*updates.values(), user_id),
    )
    changed = cur.rowcount
    conn.commit()
    conn.close()

    if not changed:
        return None
    return get_user_by_id(user_id)


def update_user_password(user_id: int, raw_password: str) -> None:
    update_user(user_id, {"password": raw_password})


def delete_user(user_id: int) -> bool:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("DELETE FROM users WHERE id = ?", (user_id,))
    deleted = cur.rowcount > 0
    conn.commit()
    conn.close()
    return deleted


def public_user(user: Dict | None) -> Dict | None:
    """Drop secrets before a user dict leaves the server."""
    if not user:
        return None
    return {k: v for k, v in user.items() if k != "password_hash"}


__all__ = [
    "create_user",
    "get_user_by_email",
    "get_user_by_id",
    "list_users",
    "list_users_by_role",
    "update_user",
    "update_user_password",
    "delete_user",
    "public_user",
]
