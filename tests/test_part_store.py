import pytest

from core.database import (
    add_part,
    add_part_to_quote,
    add_variant,
    create_quote,
    delete_part,
    delete_variant,
    fetch_parts,
    get_part,
    get_quote,
    mark_quote_wrong,
    remove_part_from_quote,
    set_default_variant,
    update_multiple_parts,
    update_part,
    update_variant,
)
from core.errors import PartNotFound, QuoteNotFound, ValidationError


def _quote(parts=None):
    return create_quote(
        customer={"name": "Northside Repairs"},
        vehicle={"make": "Mazda", "model": "CX-5"},
        parts=parts if parts is not None else [{"name": "Headlight", "number": "L"}],
    )


def _only_part(quote_id):
    return get_quote(quote_id)["parts"][0]


def test_first_variant_becomes_default_and_sets_price(clean_db):
    quote = _quote()
    part_id = quote["parts"][0]["id"]

    first = add_variant(quote["id"], part_id, "250.00", "Genuine")
    second = add_variant(quote["id"], part_id, 180, "Aftermarket")

    assert first["is_default"] is True
    assert second["is_default"] is False
    part = _only_part(quote["id"])
    assert [v["note"] for v in part["variants"]] == ["Genuine", "Aftermarket"]
    assert part["price"] == 250.0
    assert get_quote(quote["id"])["status"] == "waiting_verification"


def test_switching_default_moves_the_price(clean_db):
    quote = _quote()
    part_id = quote["parts"][0]["id"]
    add_variant(quote["id"], part_id, 250)
    cheap = add_variant(quote["id"], part_id, 180)

    set_default_variant(quote["id"], part_id, cheap["id"])

    part = _only_part(quote["id"])
    assert [v["is_default"] for v in part["variants"]] == [False, True]
    assert part["price"] == 180.0


def test_update_variant_changes_price_and_note(clean_db):
    quote = _quote()
    part_id = quote["parts"][0]["id"]
    variant = add_variant(quote["id"], part_id, 100)

    update_variant(quote["id"], part_id, variant["id"], final_price="95.5", note="Price match")

    part = _only_part(quote["id"])
    assert part["variants"][0]["final_price"] == 95.5
    assert part["variants"][0]["note"] == "Price match"
    assert part["price"] == 95.5


def test_deleting_default_promotes_next_variant(clean_db):
    quote = _quote()
    part_id = quote["parts"][0]["id"]
    first = add_variant(quote["id"], part_id, 300)
    add_variant(quote["id"], part_id, 200)

    assert delete_variant(quote["id"], part_id, first["id"]) is True

    part = _only_part(quote["id"])
    assert len(part["variants"]) == 1
    assert part["variants"][0]["is_default"] is True
    assert part["price"] == 200.0


def test_removing_last_variant_unprices_the_quote(clean_db):
    quote = _quote()
    part_id = quote["parts"][0]["id"]
    only = add_variant(quote["id"], part_id, 300)
    assert get_quote(quote["id"])["status"] == "waiting_verification"

    delete_variant(quote["id"], part_id, only["id"])

    assert get_quote(quote["id"])["status"] == "unpriced"
    assert _only_part(quote["id"])["price"] is None


def test_variant_errors(clean_db):
    quote = _quote()
    part_id = quote["parts"][0]["id"]
    with pytest.raises(ValidationError):
        add_variant(quote["id"], part_id, None)
    with pytest.raises(ValidationError):
        add_variant(quote["id"], part_id, -5)
    with pytest.raises(ValidationError):
        set_default_variant(quote["id"], part_id, "missing")
    with pytest.raises(PartNotFound):
        add_variant(quote["id"], 424242, 10)
    with pytest.raises(QuoteNotFound):
        add_variant(999999, part_id, 10)


def test_adding_an_unpriced_part_sends_quote_back(clean_db):
    quote = _quote()
    add_variant(quote["id"], quote["parts"][0]["id"], 99)
    assert get_quote(quote["id"])["status"] == "waiting_verification"

    part = add_part_to_quote(quote["id"], {"name": "Grille", "number": "gr-1"})

    refreshed = get_quote(quote["id"])
    assert refreshed["status"] == "unpriced"
    assert refreshed["parts"][-1]["id"] == part["id"]
    assert part["part_number"] == "GR1"

    assert remove_part_from_quote(quote["id"], part["id"]) is True
    assert get_quote(quote["id"])["status"] == "waiting_verification"
    assert remove_part_from_quote(quote["id"], part["id"]) is False


def test_fixing_part_numbers_recovers_wrong_quote(clean_db):
    quote = _quote()
    mark_quote_wrong(quote["id"])
    part_id = quote["parts"][0]["id"]

    updated = update_part(part_id, {"part_number": " 84-100 k"})

    assert updated["part_number"] == "84100K"
    assert get_quote(quote["id"])["status"] == "unpriced"


def test_update_multiple_parts(clean_db):
    quote = _quote(parts=[{"name": "Bumper"}, {"name": "Grille"}])
    ids = [p["id"] for p in quote["parts"]]

    updated = update_multiple_parts(
        [{"id": ids[0], "updates": {"price": 50}}, {"id": ids[1], "updates": {"note": "chrome"}}]
    )

    assert [p["id"] for p in updated] == ids
    assert get_part(ids[0])["price"] == 50.0
    assert get_part(ids[1])["note"] == "chrome"

    with pytest.raises(ValidationError):
        update_multiple_parts([{"updates": {"price": 1}}])


def test_delete_part_detaches_it_from_quotes(clean_db):
    quote = _quote(parts=[{"name": "Bumper"}, {"name": "Grille"}])
    bumper, grille = (p["id"] for p in quote["parts"])
    add_variant(quote["id"], grille, 40)

    assert delete_part(bumper) is True

    refreshed = get_quote(quote["id"])
    assert [p["id"] for p in refreshed["parts"]] == [grille]
    assert refreshed["status"] == "waiting_verification"
    with pytest.raises(PartNotFound):
        get_part(bumper)
    assert delete_part(bumper) is False


def test_catalogue_crud(clean_db):
    part = add_part({"part_name": "Wiper blade", "part_number": "wb 600", "price": "12.50"})
    assert part["part_number"] == "WB600"
    assert [p["id"] for p in fetch_parts()] == [part["id"]]
    with pytest.raises(ValidationError):
        add_part({"part_name": ""})
    with pytest.raises(PartNotFound):
        update_part(424242, {"price": 1})
