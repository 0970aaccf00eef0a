"""
Cached reads used by the pages and the JSON API. Each function pairs a
query key with the store call that fills it.
"""
from __future__ import annotations

from typing import Dict, List

from app.cache import (
    DELIVERIES_KEY,
    PARTS_KEY,
    PARTS_RULES_KEY,
    QUOTE_COUNTS_KEY,
    query_cache,
    quote_detail_key,
    quotes_key,
)
from core.database import (
    fetch_parts,
    get_parts_rules,
    get_quote,
    get_quote_counts,
    get_quotes,
    list_deliveries,
)


def quote_counts() -> Dict[str, int]:
    return query_cache.fetch(QUOTE_COUNTS_KEY, get_quote_counts)


def quotes_page(
    status=None, search=None, created_by=None, page: int = 1, limit: int = 50, order: str = "newest"
) -> Dict:
    key = quotes_key(status, search, created_by, page, limit, order)
    return query_cache.fetch(
        key,
        lambda: get_quotes(
            status=status, search=search, created_by=created_by, page=page, limit=limit, order=order
        ),
    )


def quote_detail(quote_id: int) -> Dict:
    return query_cache.fetch(quote_detail_key(quote_id), lambda: get_quote(quote_id))


def parts_list() -> List[Dict]:
    return query_cache.fetch(PARTS_KEY, fetch_parts)


def parts_rules_list() -> List[Dict]:
    return query_cache.fetch(PARTS_RULES_KEY, get_parts_rules)


def deliveries_list() -> List[Dict]:
    return query_cache.fetch(DELIVERIES_KEY, list_deliveries)
