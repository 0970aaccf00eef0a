"""
Delivery storage re-exports.
"""
from core.db.deliveries.deliveries_store import (
    DELIVERY_STATUSES,
    add_delivery,
    add_delivery_customer,
    assign_delivery,
    compute_delivery_stats,
    get_customer_by_account_number,
    get_delivery,
    get_delivery_stats,
    get_overdue_deliveries,
    is_overdue,
    list_deliveries,
    list_delivery_customers,
    mark_as_delivered,
    update_delivery,
)

__all__ = [
    "DELIVERY_STATUSES",
    "add_delivery",
    "add_delivery_customer",
    "assign_delivery",
    "compute_delivery_stats",
    "get_customer_by_account_number",
    "get_delivery",
    "get_delivery_stats",
    "get_overdue_deliveries",
    "is_overdue",
    "list_deliveries",
    "list_delivery_customers",
    "mark_as_delivered",
    "update_delivery",
]
