"""
Parts rule storage re-exports.
"""
from core.db.parts_rules.rules_store import (
    RULE_TYPES,
    create_parts_rule,
    delete_parts_rule,
    get_available_parts_for_brand,
    get_parts_rule_by_part_name,
    get_parts_rules,
    is_part_available_for_brand,
    update_parts_rule,
)

__all__ = [
    "RULE_TYPES",
    "create_parts_rule",
    "delete_parts_rule",
    "get_available_parts_for_brand",
    "get_parts_rule_by_part_name",
    "get_parts_rules",
    "is_part_available_for_brand",
    "update_parts_rule",
]
