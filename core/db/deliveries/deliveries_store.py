"""
Deliveries: jobs created in the office, assigned to a driver, then closed
with proof of delivery. Delivery customers are keyed by account number.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from core.db.base import get_conn, now_iso
from core.db.users.user_store import get_user_by_id
from core.errors import DeliveryNotFound, InvalidTransition, ValidationError

log = logging.getLogger("deliveries")

DELIVERY_STATUSES = ("pending", "assigned", "delivered")
OVERDUE_AFTER = timedelta(hours=24)

_DELIVERY_COLUMNS = (
    "d.id, d.account_number, d.customer_name, d.address, d.delivery_round, d.invoice_number, "
    "d.status, d.assigned_to, d.assigned_at, d.delivered_at, d.photo_proof, d.receiver_name, "
    "d.signature, d.created_at, d.updated_at"
)
_EDITABLE = ("account_number", "customer_name", "address", "delivery_round", "invoice_number", "status")


def _select(where: str = "", params: tuple = ()) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {_DELIVERY_COLUMNS}, COALESCE(u.full_name, u.email) AS driver_name
        FROM deliveries d
        LEFT JOIN users u ON u.id = d.assigned_to
        {where}
        ORDER BY d.created_at DESC, d.id DESC
        """,
        params,
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def list_deliveries(status: str | None = None, assigned_to: int | None = None) -> List[Dict]:
    conditions = []
    params: List = []
    if status:
        conditions.append("d.status = ?")
        params.append(status)
    if assigned_to is not None:
        conditions.append("d.assigned_to = ?")
        params.append(assigned_to)
    where = ("WHERE " + " AND ".join(conditions)) if conditions else ""
    return _select(where, tuple(params))


def get_delivery(delivery_id: int) -> Dict:
    rows = _select("WHERE d.id = ?", (delivery_id,))
    if not rows:
        raise DeliveryNotFound(f"Delivery {delivery_id} not found")
    return rows[0]


def add_delivery(data: Dict) -> Dict:
    """New deliveries always start pending."""
    customer_name = (data.get("customer_name") or "").strip()
    if not customer_name:
        raise ValidationError("Customer name is required")
    now = now_iso()

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO deliveries (account_number, customer_name, address, delivery_round,
                                invoice_number, status, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, 'pending', ?, ?)
        RETURNING id
        """,
        (
            (data.get("account_number") or "").strip() or None,
            customer_name,
            data.get("address") or "",
            data.get("delivery_round") or "",
            data.get("invoice_number") or "",
            now,
            now,
        ),
    )
    delivery_id = cur.fetchone()["id"]
    conn.commit()
    conn.close()

    log.info("Created delivery id=%s for %s", delivery_id, customer_name)
    return get_delivery(delivery_id)


def _apply(delivery_id: int, updates: Dict) -> Dict:
    updates = {**updates, "updated_at": now_iso()}
    assignments = ", ".join(f"{column} = ?" for column in updates)

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"UPDATE deliveries SET {assignments} WHERE id = ?", (*updates.values(), delivery_id))
    changed = cur.rowcount
    conn.commit()
    conn.close()

    if not changed:
        raise DeliveryNotFound(f"Delivery {delivery_id} not found")
    return get_delivery(delivery_id)


def update_delivery(delivery_id: int, updates: Dict) -> Dict:
    fields = {k: v for k, v in (updates or {}).items() if k in _EDITABLE}
    if "status" in fields and fields["status"] not in DELIVERY_STATUSES:
        raise ValidationError(f"Unknown delivery status: {fields['status']}")
    return _apply(delivery_id, fields)


def assign_delivery(delivery_id: int, driver_id: int) -> Dict:
    driver = get_user_by_id(driver_id)
    if not driver or driver.get("role") != "driver" or not driver.get("active"):
        raise ValidationError(f"User {driver_id} is not an active driver")
    current = get_delivery(delivery_id)
    if current["status"] == "delivered":
        raise InvalidTransition("Delivery has already been delivered")
    return _apply(
        delivery_id,
        {"status": "assigned", "assigned_to": driver_id, "assigned_at": now_iso()},
    )


def mark_as_delivered(
    delivery_id: int,
    photo_proof: str | None,
    receiver_name: str,
    signature: str | None = None,
    driver_id: int | None = None,
) -> Dict:
    """
    Close an assigned delivery. With `driver_id` set, only the driver it is
    assigned to may close it; admins pass None.
    """
    receiver_name = (receiver_name or "").strip()
    if not receiver_name:
        raise ValidationError("Receiver name is required")
    current = get_delivery(delivery_id)
    if current["status"] == "delivered":
        raise InvalidTransition("Delivery has already been delivered")
    if current["status"] != "assigned":
        raise InvalidTransition("Delivery must be assigned to a driver before it is delivered")
    if driver_id is not None and current.get("assigned_to") != driver_id:
        raise InvalidTransition("Delivery is assigned to another driver")
    return _apply(
        delivery_id,
        {
            "status": "delivered",
            "delivered_at": now_iso(),
            "photo_proof": photo_proof or None,
            "receiver_name": receiver_name,
            "signature": signature or None,
        },
    )


def _parse(value: str | None) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def is_overdue(delivery: Dict, now: datetime | None = None) -> bool:
    """Pending for more than a day."""
    now = now or datetime.utcnow()
    created = _parse(delivery.get("created_at"))
    return delivery.get("status") == "pending" and created is not None and created < now - OVERDUE_AFTER


def get_overdue_deliveries(now: datetime | None = None) -> List[Dict]:
    return [d for d in list_deliveries(status="pending") if is_overdue(d, now)]


def compute_delivery_stats(deliveries: List[Dict], now: datetime | None = None) -> Dict:
    """
    Totals per status, overdue count, delivery rate (% delivered) and the
    average hours from creation to delivery.
    """
    total = len(deliveries)
    by_status = {status: 0 for status in DELIVERY_STATUSES}
    hours: List[float] = []
    for delivery in deliveries:
        by_status[delivery.get("status")] = by_status.get(delivery.get("status"), 0) + 1
        created = _parse(delivery.get("created_at"))
        delivered = _parse(delivery.get("delivered_at"))
        if delivery.get("status") == "delivered" and created and delivered:
            hours.append((delivered - created).total_seconds() / 3600)

    return {
        "total_deliveries": total,
        "pending_deliveries": by_status["pending"],
        "assigned_deliveries": by_status["assigned"],
        "delivered_deliveries": by_status["delivered"],
        "overdue_deliveries": sum(1 for d in deliveries if is_overdue(d, now)),
        "delivery_rate": round(by_status["delivered"] / total * 100, 1) if total else 0.0,
        "average_delivery_time": round(sum(hours) / len(hours), 1) if hours else 0.0,
    }


def get_delivery_stats(now: datetime | None = None) -> Dict:
    return compute_delivery_stats(list_deliveries(), now)


# ---------- delivery customers ----------


def list_delivery_customers() -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, account_number, customer_name, address, phone, email, created_at
        FROM delivery_customers
        ORDER BY customer_name
        """
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def add_delivery_customer(data: Dict) -> Dict:
    account_number = (data.get("account_number") or "").strip()
    customer_name = (data.get("customer_name") or "").strip()
    if not account_number or not customer_name:
        raise ValidationError("Account number and customer name are required")
    if get_customer_by_account_number(account_number):
        raise ValidationError(f"Account {account_number} already exists")

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO delivery_customers (account_number, customer_name, address, phone, email, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        RETURNING id, account_number, customer_name, address, phone, email, created_at
        """,
        (
            account_number,
            customer_name,
            data.get("address") or "",
            data.get("phone") or None,
            data.get("email") or None,
            now_iso(),
        ),
    )
    row = cur.fetchone()
    conn.commit()
    conn.close()
    return dict(row)


def get_customer_by_account_number(account_number: str) -> Optional[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, account_number, customer_name, address, phone, email, created_at
        FROM delivery_customers
        WHERE LOWER(account_number) = LOWER(?)
        """,
        ((account_number or "").strip(),),
    )
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


__all__ = [
    "DELIVERY_STATUSES",
    "list_deliveries",
    "get_delivery",
    "add_delivery",
    "update_delivery",
    "assign_delivery",
    "mark_as_delivered",
    "is_overdue",
    "get_overdue_deliveries",
    "compute_delivery_stats",
    "get_delivery_stats",
    "list_delivery_customers",
    "add_delivery_customer",
    "get_customer_by_account_number",
]
