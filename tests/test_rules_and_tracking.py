import pytest

from core.database import (
    create_parts_rule,
    delete_parts_rule,
    get_available_parts_for_brand,
    get_order_track,
    get_parts_rule_by_part_name,
    get_parts_rules,
    update_parts_rule,
    upsert_order_track,
)
from core.errors import DuplicatePartsRule, PartsRuleNotFound, ValidationError


def test_parts_rule_crud(staff):
    admin = staff["admin"]
    rule = create_parts_rule(
        {"part_name": "Radar sensor", "rule_type": "required_for", "brands": "BMW, Audi ,", "description": "ADAS"},
        created_by=admin["id"],
    )
    assert rule["brands"] == ["BMW", "Audi"]
    assert rule["created_by"] == admin["id"]
    assert get_parts_rule_by_part_name("radar SENSOR")["id"] == rule["id"]

    updated = update_parts_rule(rule["id"], {"rule_type": "not_required_for", "brands": ["Tesla"]})
    assert updated["rule_type"] == "not_required_for"
    assert updated["brands"] == ["Tesla"]
    assert updated["part_name"] == "Radar sensor"

    delete_parts_rule(rule["id"])
    assert get_parts_rules() == []
    with pytest.raises(PartsRuleNotFound):
        delete_parts_rule(rule["id"])
    with pytest.raises(PartsRuleNotFound):
        update_parts_rule(rule["id"], {"description": "gone"})


def test_parts_rule_validation(clean_db):
    create_parts_rule({"part_name": "Oil cooler", "rule_type": "none"})
    with pytest.raises(DuplicatePartsRule):
        create_parts_rule({"part_name": "Oil cooler", "rule_type": "none"})
    with pytest.raises(ValidationError):
        create_parts_rule({"part_name": "", "rule_type": "none"})
    with pytest.raises(ValidationError):
        create_parts_rule({"part_name": "Spoiler", "rule_type": "maybe"})


def test_available_parts_for_brand(clean_db):
    create_parts_rule({"part_name": "Radar sensor", "rule_type": "required_for", "brands": ["BMW"]})
    create_parts_rule({"part_name": "Oil cooler", "rule_type": "not_required_for", "brands": ["Subaru"]})
    create_parts_rule({"part_name": "Bonnet", "rule_type": "none"})

    assert get_available_parts_for_brand("bmw") == ["Bonnet", "Oil cooler", "Radar sensor"]
    assert get_available_parts_for_brand("Subaru") == ["Bonnet"]


def test_order_track_upsert_and_counts(clean_db):
    rows = upsert_order_track("Q000001", "sam")
    assert rows[0]["quote_ref"] == "Q000001"
    upsert_order_track("Q000002", "sam")
    upsert_order_track("Q000001", "alex")

    assert get_order_track("Q000001") == {"opened_by": "alex", "total_count": 1}
    assert get_order_track("Q000002") == {"opened_by": "sam", "total_count": 1}
    assert get_order_track("Q404") == {"opened_by": None, "total_count": 0}

    with pytest.raises(ValidationError):
        upsert_order_track("", "sam")
