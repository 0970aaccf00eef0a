"""
User-related storage helpers, split by responsibility.
"""
from core.db.users.auth import (
    ROLES,
    hash_password,
    validate_password,
    validate_role,
    verify_password,
)
from core.db.users.user_store import (
    create_user,
    delete_user,
    get_user_by_email,
    get_user_by_id,
    list_users,
    list_users_by_role,
    public_user,
    update_user,
    update_user_password,
)
from core.db.users.sessions import (
    create_session,
    delete_session,
    delete_sessions_for_user,
    get_session,
    touch_session,
    SESSION_TIMEOUT_MINUTES,
)

__all__ = [
    "ROLES",
    "hash_password",
    "verify_password",
    "validate_role",
    "validate_password",
    "create_user",
    "delete_user",
    "get_user_by_email",
    "get_user_by_id",
    "list_users",
    "list_users_by_role",
    "public_user",
    "update_user",
    "update_user_password",
    "create_session",
    "delete_session",
    "delete_sessions_for_user",
    "get_session",
    "touch_session",
    "SESSION_TIMEOUT_MINUTES",
]
