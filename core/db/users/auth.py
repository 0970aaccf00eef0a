"""
Password hashing, verification and the staff role list.
"""
from __future__ import annotations

import bcrypt

from core.errors import ValidationError

ROLES = ("quote_creator", "price_manager", "quality_controller", "admin", "driver")

MIN_PASSWORD_LENGTH = 8


def hash_password(raw_password: str) -> str:
    return bcrypt.hashpw(raw_password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(raw_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(raw_password.encode("utf-8"), password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def validate_role(role: str) -> str:
    role = (role or "").strip()
    if role not in ROLES:
        raise ValidationError("Invalid role")
    return role


def validate_password(raw_password: str) -> str:
    if not raw_password or len(raw_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return raw_password


__all__ = [
    "ROLES",
    "hash_password",
    "verify_password",
    "validate_role",
    "validate_password",
]
