"""
Quote status, deadline and money helpers shared by stores and pages.

Nothing in here touches the database; callers pass plain dicts shaped like
the rows the stores return.
"""
from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

QUOTE_STATUSES = (
    "unpriced",
    "waiting_verification",
    "priced",
    "completed",
    "ordered",
    "delivered",
    "wrong",
)

# Table ordering: work still to do comes first.
STATUS_PRIORITY = {
    "unpriced": 0,
    "waiting_verification": 1,
    "priced": 2,
    "completed": 3,
    "ordered": 4,
    "delivered": 5,
}

# Once a price has been verified the status is only moved by explicit actions.
LOCKED_STATUSES = frozenset({"priced", "completed", "ordered", "delivered"})

STATUS_LABELS = {
    "unpriced": "Unpriced",
    "waiting_verification": "Waiting verification",
    "priced": "Priced",
    "completed": "Completed",
    "ordered": "Ordered",
    "delivered": "Delivered",
    "wrong": "Wrong",
}

_PLACEHOLDER_PART_NUMBERS = {"L", "R"}


def clean_part_number(part_number: str | None) -> str:
    """
    Strip whitespace and punctuation from a part number and upper-case it.
    Comma separated lists are cleaned item by item and re-joined.
    """
    if not part_number:
        return ""
    if "," in part_number:
        cleaned = [clean_part_number(item) for item in part_number.split(",")]
        return ",".join(item for item in cleaned if item)
    return re.sub(r"[^A-Za-z0-9]", "", part_number).upper()


def is_valid_part_number(part_number: str | None) -> bool:
    value = (part_number or "").strip()
    if not value:
        return False
    return value.upper() not in _PLACEHOLDER_PART_NUMBERS


def default_variant(variants: Iterable[Dict] | None) -> Optional[Dict]:
    variants = list(variants or [])
    if not variants:
        return None
    for variant in variants:
        if variant.get("is_default"):
            return variant
    return variants[0]


def effective_price(part: Dict) -> Optional[float]:
    """Default variant price when there is one, else the part's own price."""
    variant = default_variant(part.get("variants"))
    if variant and variant.get("final_price") is not None:
        return float(variant["final_price"])
    price = part.get("price")
    return float(price) if price is not None else None


def is_priced(part: Dict) -> bool:
    price = effective_price(part)
    return price is not None and price > 0


def derive_status(parts: List[Dict], current_status: str | None = None) -> str:
    """
    Work out what a quote's status should be from its parts.

    - verified and later statuses are kept as they are;
    - a wrong quote stays wrong until every part carries a real part number,
      then it goes back to unpriced;
    - otherwise a quote whose parts are all priced waits for verification.
    """
    if current_status in LOCKED_STATUSES:
        return current_status
    if current_status == "wrong":
        if parts and all(is_valid_part_number(p.get("part_number")) for p in parts):
            return "unpriced"
        return "wrong"
    if not parts:
        return "unpriced"
    if all(is_priced(p) for p in parts):
        return "waiting_verification"
    return "unpriced"


def quote_total(parts: Iterable[Dict]) -> float:
    total = 0.0
    for part in parts:
        price = effective_price(part)
        if price:
            total += price
    return round(total, 2)


def _parse_iso(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def get_deadline_info(required_by: str | None, now: datetime | None = None) -> Optional[Dict]:
    """
    Deadline badge data for a quote.
    Overdue is priority 3, due within two days 2, within a week 1, else 0.
    """
    if not required_by:
        return None
    deadline = _parse_iso(required_by)
    if deadline is None:
        return None
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    diff_days = math.ceil((deadline - now).total_seconds() / 86400)
    is_overdue = diff_days < 0
    is_urgent = 0 <= diff_days <= 2

    if is_overdue:
        priority = 3
    elif is_urgent:
        priority = 2
    elif diff_days <= 7:
        priority = 1
    else:
        priority = 0

    return {
        "is_overdue": is_overdue,
        "is_urgent": is_urgent,
        "days_remaining": diff_days,
        "priority": priority,
    }


def deadline_priority(quote: Dict, now: datetime | None = None) -> int:
    info = get_deadline_info(quote.get("required_by"), now=now)
    return info["priority"] if info else 0


def sort_quotes(quotes: List[Dict], now: datetime | None = None) -> List[Dict]:
    """Status priority first, then the most pressing deadline, then newest."""
    by_newest = sorted(quotes, key=lambda q: q.get("created_at") or "", reverse=True)
    return sorted(
        by_newest,
        key=lambda q: (
            STATUS_PRIORITY.get(q.get("status") or "", 0),
            -deadline_priority(q, now=now),
        ),
    )


def format_currency(amount: float | None) -> str:
    if amount is None:
        return ""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_date(value: str | None) -> str:
    if not value:
        return ""
    parsed = _parse_iso(value)
    if parsed is None:
        return value
    return parsed.strftime("%d/%m/%Y")


__all__ = [
    "QUOTE_STATUSES",
    "STATUS_PRIORITY",
    "LOCKED_STATUSES",
    "STATUS_LABELS",
    "clean_part_number",
    "is_valid_part_number",
    "default_variant",
    "effective_price",
    "is_priced",
    "derive_status",
    "quote_total",
    "get_deadline_info",
    "deadline_priority",
    "sort_quotes",
    "format_currency",
    "format_date",
]
