"""
Part and variant storage re-exports.
"""
from core.db.parts.part_store import (
    add_part,
    add_part_to_quote,
    add_variant,
    delete_part,
    delete_variant,
    fetch_parts,
    get_part,
    remove_part_from_quote,
    set_default_variant,
    update_multiple_parts,
    update_part,
    update_variant,
)
from core.quoting import clean_part_number

__all__ = [
    "add_part",
    "add_part_to_quote",
    "add_variant",
    "clean_part_number",
    "delete_part",
    "delete_variant",
    "fetch_parts",
    "get_part",
    "remove_part_from_quote",
    "set_default_variant",
    "update_multiple_parts",
    "update_part",
    "update_variant",
]
