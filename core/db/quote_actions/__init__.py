"""
Quote action history re-exports.
"""
from core.db.quote_actions.actions_store import (
    ACTION_TYPES,
    get_activity_summary,
    get_quote_actions,
    get_quote_actions_by_quote_id,
    get_recent_activity,
    get_user_stats,
    record_action,
    track_quote_action,
)

__all__ = [
    "ACTION_TYPES",
    "get_activity_summary",
    "get_quote_actions",
    "get_quote_actions_by_quote_id",
    "get_recent_activity",
    "get_user_stats",
    "record_action",
    "track_quote_action",
]
