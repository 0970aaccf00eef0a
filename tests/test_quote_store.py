import pytest

from core.database import (
    add_variant,
    count_wrong_quotes_for_user,
    create_quote,
    delete_quote,
    get_priced_quote_refs,
    get_quote,
    get_quote_actions_by_quote_id,
    get_quote_counts,
    get_quotes,
    mark_quote_as_ordered,
    mark_quote_completed,
    mark_quote_delivered,
    mark_quote_waiting_verification,
    mark_quote_wrong,
    update_quote,
    verify_quote_price,
)
from core.errors import InvalidTransition, QuoteNotFound, ValidationError


def _new_quote(user_id=None, parts=None, **kwargs):
    return create_quote(
        customer={"name": "Smith Panels", "phone": "0400111222", "address": "12 Main St"},
        vehicle={"make": "Toyota", "model": "Hilux", "rego": "1ABC234", "vin": "jtn123"},
        parts=parts if parts is not None else [{"name": "Radiator", "number": "16400-0t040"}, {"name": "Bonnet"}],
        created_by=user_id,
        **kwargs,
    )


def _price_everything(quote, user_id=None):
    for part in quote["parts"]:
        add_variant(quote["id"], part["id"], 120, "OEM", user_id)
    return get_quote(quote["id"])


def _actions(quote_id):
    return [a["action_type"] for a in get_quote_actions_by_quote_id(quote_id)]


def test_create_quote_builds_customer_vehicle_and_parts(staff):
    creator = staff["quote_creator"]
    quote = _new_quote(creator["id"], required_by="21/08/2025 2:00pm", notes="Urgent")

    assert quote["status"] == "unpriced"
    assert quote["quote_ref"] == f"Q{quote['id']:06d}"
    assert quote["customer"] == "Smith Panels"
    assert quote["make"] == "Toyota"
    assert quote["vin"] == "JTN123"
    assert quote["required_by"] == "2025-08-21T14:00:00+00:00"
    assert [p["part_name"] for p in quote["parts"]] == ["Radiator", "Bonnet"]
    assert quote["parts"][0]["part_number"] == "164000T040"
    assert all(p["variants"] == [] for p in quote["parts"])
    assert _actions(quote["id"]) == ["CREATED"]


def test_customer_is_reused_by_phone(clean_db):
    first = _new_quote()
    second = create_quote(
        customer={"name": "Smith Panels Pty", "phone": "0400111222"},
        vehicle={"make": "Mazda"},
        parts=[],
        quote_ref="EXT-1",
    )
    assert second["customer_id"] == first["customer_id"]
    assert second["customer"] == "Smith Panels Pty"
    assert second["quote_ref"] == "EXT-1"


def test_create_quote_requires_customer_and_make(clean_db):
    with pytest.raises(ValidationError):
        create_quote(customer={}, vehicle={"make": "Toyota"}, parts=[])
    with pytest.raises(ValidationError):
        create_quote(customer={"name": "Smith"}, vehicle={}, parts=[])
    assert get_quotes()["total"] == 0


def test_full_workflow_records_each_action(staff):
    creator, pricer, checker = staff["quote_creator"], staff["price_manager"], staff["quality_controller"]
    quote = _new_quote(creator["id"])

    quote = _price_everything(quote, pricer["id"])
    assert quote["status"] == "waiting_verification"

    quote = verify_quote_price(quote["id"], checker["id"])
    assert quote["status"] == "priced"

    quote = mark_quote_completed(quote["id"], creator["id"])
    assert quote["status"] == "completed"

    quote = mark_quote_as_ordered(quote["id"], "INV-100", user_id=creator["id"])
    assert quote["status"] == "ordered"
    assert quote["tax_invoice_number"] == "INV-100"

    quote = mark_quote_delivered(quote["id"], creator["id"])
    assert quote["status"] == "delivered"

    assert _actions(quote["id"]) == ["CREATED", "PRICED", "VERIFIED", "COMPLETED", "ORDERED"]


def test_transitions_are_checked(clean_db):
    quote = _new_quote()
    with pytest.raises(InvalidTransition):
        verify_quote_price(quote["id"])
    with pytest.raises(InvalidTransition):
        mark_quote_completed(quote["id"])
    with pytest.raises(InvalidTransition):
        mark_quote_as_ordered(quote["id"], "INV-1")
    with pytest.raises(InvalidTransition):
        mark_quote_waiting_verification(quote["id"])
    with pytest.raises(QuoteNotFound):
        verify_quote_price(999999)


def test_ordering_needs_an_invoice_and_known_parts(clean_db):
    quote = _price_everything(_new_quote())
    quote = verify_quote_price(quote["id"])

    with pytest.raises(ValidationError):
        mark_quote_as_ordered(quote["id"], "  ")
    with pytest.raises(ValidationError):
        mark_quote_as_ordered(quote["id"], "INV-2", selected_part_ids=[])
    with pytest.raises(ValidationError):
        mark_quote_as_ordered(quote["id"], "INV-2", selected_part_ids=[424242])

    first_part = quote["parts"][0]["id"]
    ordered = mark_quote_as_ordered(quote["id"], "INV-2", selected_part_ids=[first_part])
    assert ordered["status"] == "ordered"
    assert [p["ordered"] for p in ordered["parts"]] == [True, False]


def test_mark_wrong_only_from_open_statuses(staff):
    creator = staff["quote_creator"]
    quote = _new_quote(creator["id"])
    wrong = mark_quote_wrong(quote["id"], staff["price_manager"]["id"])
    assert wrong["status"] == "wrong"
    assert count_wrong_quotes_for_user(creator["id"]) == 1
    assert "MARKED_WRONG" in _actions(quote["id"])

    with pytest.raises(InvalidTransition):
        mark_quote_wrong(quote["id"])


def test_get_quotes_filters_searches_and_paginates(staff):
    creator = staff["quote_creator"]
    for i in range(3):
        _new_quote(creator["id"], quote_ref=f"REF-{i}")
    create_quote(customer={"name": "Other Garage"}, vehicle={"make": "Ford", "rego": "ZZZ999"}, parts=[])
    priced = _price_everything(_new_quote())
    verify_quote_price(priced["id"])

    assert get_quotes()["total"] == 5
    assert get_quotes(status="priced")["total"] == 1
    assert get_quotes(status=["unpriced", "priced"])["total"] == 5
    assert get_quotes(search="zzz9")["quotes"][0]["make"] == "Ford"
    assert get_quotes(search="other garage")["total"] == 1
    assert get_quotes(created_by=creator["id"])["total"] == 3

    page = get_quotes(page=2, limit=2)
    assert page["page"] == 2 and page["limit"] == 2 and len(page["quotes"]) == 2

    with pytest.raises(ValidationError):
        get_quotes(status="lost")


def test_priority_order_ranks_before_paging(clean_db):
    for i in range(30):
        # only the oldest quote is overdue
        _new_quote(quote_ref=f"REF-{i:02d}", required_by="01/01/2020" if i == 0 else None)

    newest = get_quotes(status="unpriced", page=1, limit=25)
    assert "REF-00" not in [q["quote_ref"] for q in newest["quotes"]]

    first = get_quotes(status="unpriced", page=1, limit=25, order="priority")
    assert first["total"] == 30
    assert first["quotes"][0]["quote_ref"] == "REF-00"
    assert first["quotes"][1]["quote_ref"] == "REF-29"

    second = get_quotes(status="unpriced", page=2, limit=25, order="priority")
    assert [q["quote_ref"] for q in second["quotes"]] == [f"REF-{i:02d}" for i in range(5, 0, -1)]

    with pytest.raises(ValidationError):
        get_quotes(order="cheapest")


def test_counts_include_every_status(clean_db):
    _new_quote()
    counts = get_quote_counts()
    assert counts["unpriced"] == 1
    assert counts["delivered"] == 0
    assert counts["wrong"] == 0


def test_priced_refs_for_userscript(clean_db):
    quote = _price_everything(_new_quote(quote_ref="PC-1"))
    assert get_priced_quote_refs() == []
    verify_quote_price(quote["id"])
    assert get_priced_quote_refs() == ["PC-1"]


def test_update_quote_routes_fields(clean_db):
    quote = _new_quote()
    updated = update_quote(
        quote["id"],
        {"notes": "Call first", "rego": "NEW123", "phone": "0499000000", "required_by": "01/09/2025", "ignored": 1},
    )
    assert updated["notes"] == "Call first"
    assert updated["rego"] == "NEW123"
    assert updated["phone"] == "0499000000"
    assert updated["required_by"] == "2025-09-01T00:00:00+00:00"

    with pytest.raises(ValidationError):
        update_quote(quote["id"], {"status": "lost"})
    with pytest.raises(QuoteNotFound):
        update_quote(999999, {"notes": "x"})


def test_delete_quote_removes_it(clean_db):
    quote = _new_quote()
    assert delete_quote(quote["id"]) is True
    assert delete_quote(quote["id"]) is False
    with pytest.raises(QuoteNotFound):
        get_quote(quote["id"])
