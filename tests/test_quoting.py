from datetime import datetime, timedelta, timezone

from core.quoting import (
    clean_part_number,
    default_variant,
    derive_status,
    effective_price,
    format_currency,
    format_date,
    get_deadline_info,
    is_valid_part_number,
    quote_total,
    sort_quotes,
)


NOW = datetime(2025, 8, 19, 9, 0, tzinfo=timezone.utc)


def _part(price=None, number="ABC123", variants=None):
    return {"part_name": "Radiator", "part_number": number, "price": price, "variants": variants or []}


def test_clean_part_number_strips_punctuation_and_uppercases():
    assert clean_part_number(" ab-12 3.x ") == "AB123X"
    assert clean_part_number("ab-1, , cd 2") == "AB1,CD2"
    assert clean_part_number(None) == ""


def test_placeholder_part_numbers_are_not_valid():
    assert is_valid_part_number("12345") is True
    assert is_valid_part_number("L") is False
    assert is_valid_part_number(" r ") is False
    assert is_valid_part_number("") is False


def test_default_variant_falls_back_to_first():
    variants = [{"id": "a", "final_price": 10}, {"id": "b", "final_price": 20}]
    assert default_variant(variants)["id"] == "a"
    variants[1]["is_default"] = True
    assert default_variant(variants)["id"] == "b"
    assert default_variant([]) is None


def test_effective_price_prefers_default_variant():
    part = _part(price=50, variants=[{"id": "a", "final_price": 80.5, "is_default": True}])
    assert effective_price(part) == 80.5
    assert effective_price(_part(price=50)) == 50.0
    assert effective_price(_part()) is None


def test_derive_status_waits_for_verification_when_all_priced():
    parts = [_part(price=10), _part(variants=[{"final_price": 5, "is_default": True}])]
    assert derive_status(parts, "unpriced") == "waiting_verification"


def test_derive_status_zero_price_counts_as_unpriced():
    assert derive_status([_part(price=10), _part(price=0)], "unpriced") == "unpriced"
    assert derive_status([], "unpriced") == "unpriced"


def test_derive_status_drops_back_when_a_price_is_removed():
    assert derive_status([_part(price=None)], "waiting_verification") == "unpriced"


def test_derive_status_keeps_locked_statuses():
    for status in ("priced", "completed", "ordered", "delivered"):
        assert derive_status([_part(price=None)], status) == status


def test_wrong_quote_recovers_once_part_numbers_are_fixed():
    assert derive_status([_part(number="L")], "wrong") == "wrong"
    assert derive_status([_part(number="12345")], "wrong") == "unpriced"
    assert derive_status([], "wrong") == "wrong"


def test_quote_total_skips_unpriced_parts():
    parts = [_part(price=10.25), _part(), _part(variants=[{"final_price": 4.5}])]
    assert quote_total(parts) == 14.75


def test_deadline_info_priorities():
    overdue = get_deadline_info((NOW - timedelta(days=2)).isoformat(), now=NOW)
    assert overdue["is_overdue"] is True and overdue["priority"] == 3

    urgent = get_deadline_info((NOW + timedelta(days=1)).isoformat(), now=NOW)
    assert urgent["is_urgent"] is True and urgent["priority"] == 2

    soon = get_deadline_info((NOW + timedelta(days=5)).isoformat(), now=NOW)
    assert soon["priority"] == 1

    later = get_deadline_info((NOW + timedelta(days=30)).isoformat(), now=NOW)
    assert later["priority"] == 0 and later["days_remaining"] == 30

    assert get_deadline_info(None, now=NOW) is None
    assert get_deadline_info("not a date", now=NOW) is None


def test_sort_quotes_orders_by_status_then_deadline_then_newest():
    quotes = [
        {"id": 1, "status": "priced", "created_at": "2025-08-18T10:00:00"},
        {"id": 2, "status": "unpriced", "created_at": "2025-08-17T10:00:00"},
        {"id": 3, "status": "unpriced", "created_at": "2025-08-18T10:00:00"},
        {
            "id": 4,
            "status": "unpriced",
            "created_at": "2025-08-10T10:00:00",
            "required_by": (NOW - timedelta(days=1)).isoformat(),
        },
    ]
    assert [q["id"] for q in sort_quotes(quotes, now=NOW)] == [4, 3, 2, 1]


def test_format_helpers():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency(-3) == "-$3.00"
    assert format_currency(None) == ""
    assert format_date("2025-08-19T12:00:00+00:00") == "19/08/2025"
    assert format_date("garbage") == "garbage"
