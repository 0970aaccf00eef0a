"""
Quote storage re-exports.
"""
from core.db.quotes.quote_store import (
    coerce_price,
    count_wrong_quotes_for_user,
    create_quote,
    delete_quote,
    get_priced_quote_refs,
    get_quote,
    get_quote_counts,
    get_quotes,
    mark_quote_as_ordered,
    mark_quote_completed,
    mark_quote_delivered,
    mark_quote_waiting_verification,
    mark_quote_wrong,
    parse_australian_datetime,
    refresh_quote_status,
    resolve_parts,
    update_quote,
    verify_quote_price,
)

__all__ = [
    "coerce_price",
    "count_wrong_quotes_for_user",
    "create_quote",
    "delete_quote",
    "get_priced_quote_refs",
    "get_quote",
    "get_quote_counts",
    "get_quotes",
    "mark_quote_as_ordered",
    "mark_quote_completed",
    "mark_quote_delivered",
    "mark_quote_waiting_verification",
    "mark_quote_wrong",
    "parse_australian_datetime",
    "refresh_quote_status",
    "resolve_parts",
    "update_quote",
    "verify_quote_price",
]
