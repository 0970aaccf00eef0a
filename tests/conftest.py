import os

import pytest

from app import security
from app.cache import query_cache


_TABLES = [
    "order_track",
    "deliveries",
    "delivery_customers",
    "parts_rules",
    "quote_actions",
    "quotes",
    "parts",
    "vehicles",
    "customers",
    "sessions",
    "users",
]


def _truncate_all():
    from core.db.base import get_conn

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "TRUNCATE " + ", ".join(_TABLES) + " RESTART IDENTITY CASCADE"
    )
    conn.commit()
    conn.close()


@pytest.fixture(autouse=True)
def _reset_process_state():
    query_cache.clear()
    security.reset_rate_limits()
    yield
    query_cache.clear()
    security.reset_rate_limits()


@pytest.fixture
def clean_db():
    if not os.getenv("DATABASE_URL"):
        pytest.skip("DATABASE_URL must be set for Postgres-only tests.")
    from core.db.schema import init_db

    init_db()
    _truncate_all()
    yield
    _truncate_all()


@pytest.fixture
def staff(clean_db):
    """One account per role, keyed by role name."""
    from core.database import create_user, get_user_by_id

    users = {}
    for role in ("quote_creator", "price_manager", "quality_controller", "admin", "driver"):
        user_id = create_user(f"{role}@example.com", "Passw0rd1", username=role, full_name=role.title(), role=role)
        users[role] = get_user_by_id(user_id)
    return users
