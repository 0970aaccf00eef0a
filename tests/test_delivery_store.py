import pytest

from core.database import (
    add_delivery,
    add_delivery_customer,
    assign_delivery,
    get_customer_by_account_number,
    get_delivery,
    get_delivery_stats,
    list_deliveries,
    list_delivery_customers,
    mark_as_delivered,
    update_delivery,
)
from core.errors import DeliveryNotFound, InvalidTransition, ValidationError


def test_new_delivery_starts_pending(clean_db):
    delivery = add_delivery({"customer_name": "Smith Panels", "address": "12 Main St", "status": "delivered"})
    assert delivery["status"] == "pending"
    assert delivery["driver_name"] is None
    assert list_deliveries(status="pending")[0]["id"] == delivery["id"]

    with pytest.raises(ValidationError):
        add_delivery({"customer_name": "  "})


def test_assign_then_deliver(staff):
    driver = staff["driver"]
    delivery = add_delivery({"customer_name": "Northside Repairs", "invoice_number": "INV-9"})

    assigned = assign_delivery(delivery["id"], driver["id"])
    assert assigned["status"] == "assigned"
    assert assigned["assigned_to"] == driver["id"]
    assert assigned["driver_name"] == driver["full_name"]
    assert assigned["assigned_at"]
    assert list_deliveries(assigned_to=driver["id"])[0]["id"] == delivery["id"]

    with pytest.raises(ValidationError):
        mark_as_delivered(delivery["id"], None, "")

    done = mark_as_delivered(delivery["id"], "https://photos.example.com/1.jpg", "Jo at front desk")
    assert done["status"] == "delivered"
    assert done["receiver_name"] == "Jo at front desk"
    assert done["photo_proof"] == "https://photos.example.com/1.jpg"
    assert done["delivered_at"]

    with pytest.raises(InvalidTransition):
        assign_delivery(delivery["id"], driver["id"])
    with pytest.raises(InvalidTransition):
        mark_as_delivered(delivery["id"], None, "Again")


def test_update_delivery_checks_status(clean_db):
    delivery = add_delivery({"customer_name": "Smith Panels"})
    updated = update_delivery(delivery["id"], {"delivery_round": "PM", "id": 500})
    assert updated["delivery_round"] == "PM"
    assert updated["id"] == delivery["id"]

    with pytest.raises(ValidationError):
        update_delivery(delivery["id"], {"status": "lost"})
    with pytest.raises(DeliveryNotFound):
        get_delivery(999999)


def test_stats_from_stored_rows(staff):
    first = add_delivery({"customer_name": "A"})
    add_delivery({"customer_name": "B"})
    assign_delivery(first["id"], staff["driver"]["id"])
    mark_as_delivered(first["id"], None, "Sam")

    stats = get_delivery_stats()
    assert stats["total_deliveries"] == 2
    assert stats["delivered_deliveries"] == 1
    assert stats["pending_deliveries"] == 1
    assert stats["delivery_rate"] == 50.0
    assert stats["overdue_deliveries"] == 0


def test_delivery_customers_are_unique_by_account(clean_db):
    created = add_delivery_customer({"account_number": "ACC-1", "customer_name": "Smith Panels", "address": "12 Main St"})
    assert created["account_number"] == "ACC-1"
    assert get_customer_by_account_number("acc-1")["customer_name"] == "Smith Panels"
    assert get_customer_by_account_number("ACC-404") is None

    with pytest.raises(ValidationError):
        add_delivery_customer({"account_number": "ACC-1", "customer_name": "Someone Else"})
    with pytest.raises(ValidationError):
        add_delivery_customer({"account_number": "", "customer_name": "No Account"})

    assert [c["account_number"] for c in list_delivery_customers()] == ["ACC-1"]


def test_only_assigned_deliveries_can_be_closed(staff):
    driver = staff["driver"]
    delivery = add_delivery({"customer_name": "Smith Panels"})

    with pytest.raises(InvalidTransition):
        mark_as_delivered(delivery["id"], None, "Jo")

    assign_delivery(delivery["id"], driver["id"])
    with pytest.raises(InvalidTransition):
        mark_as_delivered(delivery["id"], None, "Jo", driver_id=driver["id"] + 1000)
    assert get_delivery(delivery["id"])["status"] == "assigned"

    done = mark_as_delivered(delivery["id"], None, "Jo", driver_id=driver["id"])
    assert done["status"] == "delivered"


def test_assign_needs_an_active_driver(staff):
    delivery = add_delivery({"customer_name": "Smith Panels"})

    with pytest.raises(ValidationError):
        assign_delivery(delivery["id"], staff["price_manager"]["id"])
    with pytest.raises(ValidationError):
        assign_delivery(delivery["id"], 999999)
    assert get_delivery(delivery["id"])["status"] == "pending"
