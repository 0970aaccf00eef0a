from datetime import datetime

import pytest

from app.routes.quotes import parse_parts_text
from core.database import (
    coerce_price,
    compute_delivery_stats,
    is_overdue,
    is_part_available_for_brand,
    parse_australian_datetime,
    resolve_parts,
)
from core.errors import ValidationError


NOW = datetime(2025, 8, 20, 12, 0)


def test_parse_australian_datetime():
    assert parse_australian_datetime("19/08/2025") == "2025-08-19T00:00:00+00:00"
    assert parse_australian_datetime("19/08/2025 12:00pm") == "2025-08-19T12:00:00+00:00"
    assert parse_australian_datetime("1/2/2025 3:05 pm") == "2025-02-01T15:05:00+00:00"
    assert parse_australian_datetime("19/08/2025 12:30am") == "2025-08-19T00:30:00+00:00"
    assert parse_australian_datetime("19/08/2025 1200pm") == "2025-08-19T12:00:00+00:00"
    assert parse_australian_datetime("19/08/2025 930am") == "2025-08-19T09:30:00+00:00"
    assert parse_australian_datetime("31/02/2025") is None
    assert parse_australian_datetime("2025-08-19") is None
    assert parse_australian_datetime("") is None


def test_coerce_price():
    assert coerce_price("19.999") == 20.0
    assert coerce_price(0) == 0.0
    assert coerce_price("") is None
    assert coerce_price(None) is None
    with pytest.raises(ValidationError):
        coerce_price("twelve")
    with pytest.raises(ValidationError):
        coerce_price(-1)


def test_resolve_parts_keeps_order_and_marks_unknown():
    entries = [
        {"part_id": 2, "variants": [{"id": "v1", "final_price": 10, "is_default": True}], "ordered": True},
        {"part_id": 99, "variants": []},
    ]
    parts_by_id = {2: {"id": 2, "part_name": "Bonnet", "part_number": "B1", "price": 10}}

    resolved = resolve_parts(entries, parts_by_id)

    assert [p["part_name"] for p in resolved] == ["Bonnet", "Unknown Part"]
    assert resolved[0]["variants"][0]["id"] == "v1"
    assert resolved[0]["ordered"] is True
    assert resolved[1]["part_number"] == "N/A"
    assert resolved[1]["ordered"] is False


def test_parse_parts_text():
    text = "Radiator | 16400-0T040\n\n  Bonnet  \nHeadlight L |"
    assert parse_parts_text(text) == [
        {"name": "Radiator", "number": "16400-0T040"},
        {"name": "Bonnet", "number": ""},
        {"name": "Headlight L", "number": ""},
    ]
    assert parse_parts_text("") == []


@pytest.mark.parametrize(
    "rule,brand,expected",
    [
        (None, "Toyota", True),
        ({"rule_type": "none", "brands": []}, "Toyota", True),
        ({"rule_type": "required_for", "brands": ["BMW", " Audi "]}, "audi", True),
        ({"rule_type": "required_for", "brands": ["BMW"]}, "Toyota", False),
        ({"rule_type": "not_required_for", "brands": ["Tesla"]}, "TESLA", False),
        ({"rule_type": "not_required_for", "brands": ["Tesla"]}, "Kia", True),
    ],
)
def test_is_part_available_for_brand(rule, brand, expected):
    assert is_part_available_for_brand(rule, brand) is expected


def test_is_overdue_only_for_old_pending_deliveries():
    assert is_overdue({"status": "pending", "created_at": "2025-08-19T11:00:00"}, NOW) is True
    assert is_overdue({"status": "pending", "created_at": "2025-08-19T13:00:00"}, NOW) is False
    assert is_overdue({"status": "assigned", "created_at": "2025-08-01T00:00:00"}, NOW) is False
    assert is_overdue({"status": "pending", "created_at": None}, NOW) is False


def test_compute_delivery_stats():
    deliveries = [
        {"status": "pending", "created_at": "2025-08-18T12:00:00"},
        {"status": "assigned", "created_at": "2025-08-20T10:00:00"},
        {"status": "delivered", "created_at": "2025-08-19T08:00:00", "delivered_at": "2025-08-19T10:00:00"},
        {"status": "delivered", "created_at": "2025-08-19T08:00:00", "delivered_at": "2025-08-19T12:00:00"},
    ]
    stats = compute_delivery_stats(deliveries, NOW)
    assert stats == {
        "total_deliveries": 4,
        "pending_deliveries": 1,
        "assigned_deliveries": 1,
        "delivered_deliveries": 2,
        "overdue_deliveries": 1,
        "delivery_rate": 50.0,
        "average_delivery_time": 3.0,
    }


def test_compute_delivery_stats_empty():
    stats = compute_delivery_stats([], NOW)
    assert stats["total_deliveries"] == 0
    assert stats["delivery_rate"] == 0.0
    assert stats["average_delivery_time"] == 0.0
