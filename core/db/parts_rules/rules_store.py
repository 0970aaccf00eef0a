"""
Brand availability rules for parts (e.g. "Oil Cooler" is not needed on a Subaru).
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from psycopg.errors import UniqueViolation

from core.db.base import get_conn, now_iso
from core.errors import DuplicatePartsRule, PartsRuleNotFound, ValidationError

RULE_TYPES = ("required_for", "not_required_for", "none")

_RULE_COLUMNS = "id, part_name, rule_type, brands, description, created_by, created_at, updated_at"


def _clean_brands(brands: Iterable[str] | str | None) -> List[str]:
    if brands is None:
        return []
    if isinstance(brands, str):
        brands = brands.split(",")
    return [b.strip() for b in brands if b and b.strip()]


def _validate(rule: Dict, partial: bool = False) -> Dict:
    cleaned: Dict = {}
    if not partial or "part_name" in rule:
        name = (rule.get("part_name") or "").strip()
        if not name:
            raise ValidationError("Part name is required")
        cleaned["part_name"] = name
    if not partial or "rule_type" in rule:
        rule_type = rule.get("rule_type") or "none"
        if rule_type not in RULE_TYPES:
            raise ValidationError(f"Unknown rule type: {rule_type}")
        cleaned["rule_type"] = rule_type
    if not partial or "brands" in rule:
        cleaned["brands"] = _clean_brands(rule.get("brands"))
    if not partial or "description" in rule:
        cleaned["description"] = rule.get("description") or None
    return cleaned


def get_parts_rules() -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"SELECT {_RULE_COLUMNS} FROM parts_rules ORDER BY part_name")
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_parts_rule_by_part_name(part_name: str) -> Optional[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"SELECT {_RULE_COLUMNS} FROM parts_rules WHERE LOWER(part_name) = LOWER(?)",
        ((part_name or "").strip(),),
    )
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def create_parts_rule(rule: Dict, created_by: int | None = None) -> Dict:
    data = _validate(rule)
    now = now_iso()

    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute(
            f"""
            INSERT INTO parts_rules (part_name, rule_type, brands, description, created_by, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING {_RULE_COLUMNS}
            """,
            (data["part_name"], data["rule_type"], data["brands"], data["description"], created_by, now, now),
        )
        row = cur.fetchone()
        conn.commit()
    except UniqueViolation:
        conn.rollback()
        raise DuplicatePartsRule(f"A rule for {data['part_name']} already exists")
    finally:
        conn.close()
    return dict(row)


def update_parts_rule(rule_id: int, updates: Dict) -> Dict:
    data = _validate(updates or {}, partial=True)
    data["updated_at"] = now_iso()
    assignments = ", ".join(f"{column} = ?" for column in data)

    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute(
            f"UPDATE parts_rules SET {assignments} WHERE id = ? RETURNING {_RULE_COLUMNS}",
            (*data.values(), rule_id),
        )
        row = cur.fetchone()
        conn.commit()
    except UniqueViolation:
        conn.rollback()
        raise DuplicatePartsRule(f"A rule for {data.get('part_name')} already exists")
    finally:
        conn.close()

    if not row:
        raise PartsRuleNotFound(f"Parts rule {rule_id} not found")
    return dict(row)


def delete_parts_rule(rule_id: int) -> None:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("DELETE FROM parts_rules WHERE id = ?", (rule_id,))
    deleted = cur.rowcount > 0
    conn.commit()
    conn.close()
    if not deleted:
        raise PartsRuleNotFound(f"Parts rule {rule_id} not found")


def is_part_available_for_brand(rule: Optional[Dict], brand: str | None) -> bool:
    """
    No rule, or rule_type "none": always available.
    required_for: only the listed brands. not_required_for: all but the listed.
    Brand comparison ignores case and surrounding spaces.
    """
    if not rule or rule.get("rule_type", "none") == "none":
        return True
    listed = {b.strip().lower() for b in rule.get("brands") or []}
    brand_key = (brand or "").strip().lower()
    if rule["rule_type"] == "required_for":
        return brand_key in listed
    if rule["rule_type"] == "not_required_for":
        return brand_key not in listed
    return True


def get_available_parts_for_brand(brand: str | None) -> List[str]:
    """Names of the ruled parts a vehicle of `brand` should be quoted for."""
    return [r["part_name"] for r in get_parts_rules() if is_part_available_for_brand(r, brand)]


__all__ = [
    "RULE_TYPES",
    "get_parts_rules",
    "get_parts_rule_by_part_name",
    "create_parts_rule",
    "update_parts_rule",
    "delete_parts_rule",
    "is_part_available_for_brand",
    "get_available_parts_for_brand",
]
