"""
Schema and migration helpers for Postgres.
"""
from __future__ import annotations

import logging
import os

from core.db.base import get_conn, now_iso
from core.db.users import create_user, get_user_by_email, hash_password

log = logging.getLogger("db")

# Channel the change-notification triggers publish on.
CHANGES_CHANNEL = "table_changes"

# Tables whose row changes are broadcast to listeners.
NOTIFY_TABLES = ["quotes", "parts", "vehicles", "customers", "deliveries", "parts_rules"]

# --- Brand-based part availability, seeded on first start ---
# Editable afterwards through /api/parts-rules.
DEFAULT_PARTS_RULES = [
    {
        "part_name": "Fan Assembly",
        "rule_type": "required_for",
        "brands": ["Kia", "Hyundai", "Mazda", "Holden", "Nissan"],
        "description": "Required for Asian and Australian brands",
    },
    {
        "part_name": "Oil Cooler",
        "rule_type": "not_required_for",
        "brands": ["Subaru"],
        "description": "Not required for Subaru",
    },
    {
        "part_name": "Intercooler",
        "rule_type": "not_required_for",
        "brands": ["Subaru"],
        "description": "Not required for Subaru",
    },
    {
        "part_name": "Parking Sensor",
        "rule_type": "required_for",
        "brands": ["Nissan", "Mitsubishi"],
        "description": "Only required for Nissan and Mitsubishi",
    },
    {
        "part_name": "Left Blindspot Sensor",
        "rule_type": "required_for",
        "brands": ["Kia", "Hyundai", "BMW", "Audi", "Volkswagen", "Mercedes", "Porsche", "Volvo", "Jaguar", "Land Rover"],
        "description": "Required for Korean, European, and premium brands",
    },
    {
        "part_name": "Right Blindspot Sensor",
        "rule_type": "required_for",
        "brands": ["Kia", "Hyundai", "BMW", "Audi", "Volkswagen", "Mercedes", "Porsche", "Volvo", "Jaguar", "Land Rover"],
        "description": "Required for Korean, European, and premium brands",
    },
    {
        "part_name": "Camera",
        "rule_type": "required_for",
        "brands": ["Volkswagen", "Skoda", "Seat", "Cupra", "Audi", "BMW", "MG", "LDV", "Ssang Yong"],
        "description": "Required for European and Chinese brands",
    },
    {
        "part_name": "Auxiliary Radiator",
        "rule_type": "required_for",
        "brands": ["Land Rover", "Mercedes", "Audi", "BMW", "Volkswagen", "Porsche", "Volvo", "Jaguar"],
        "description": "Required for European luxury brands",
    },
    {
        "part_name": "Left Intercooler",
        "rule_type": "required_for",
        "brands": ["Mercedes", "Land Rover", "BMW"],
        "description": "Required for Mercedes, Land Rover, and BMW",
    },
    {
        "part_name": "Right Intercooler",
        "rule_type": "required_for",
        "brands": ["Mercedes", "Land Rover", "BMW"],
        "description": "Required for Mercedes, Land Rover, and BMW",
    },
    {
        "part_name": "Add Cooler",
        "rule_type": "required_for",
        "brands": ["Mercedes", "Land Rover", "BMW"],
        "description": "Required for Mercedes, Land Rover, and BMW",
    },
    {
        "part_name": "Left Rear Lamp",
        "rule_type": "required_for",
        "brands": ["Kia", "Hyundai", "Toyota"],
        "description": "Rear combination lamp required for Kia, Hyundai, and Toyota",
    },
    {
        "part_name": "Right Rear Lamp",
        "rule_type": "required_for",
        "brands": ["Kia", "Hyundai", "Toyota"],
        "description": "Rear combination lamp required for Kia, Hyundai, and Toyota",
    },
]


def init_db() -> None:
    """Create every table, the change-notification triggers, and seed defaults."""
    conn = get_conn()
    cur = conn.cursor()

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS users(
            id SERIAL PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            username TEXT,
            full_name TEXT,
            role TEXT NOT NULL DEFAULT 'quote_creator',
            active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT,
            updated_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS sessions(
            id TEXT PRIMARY KEY,
            user_id INTEGER NOT NULL,
            created_at TEXT NOT NULL,
            last_seen_at TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS customers(
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            phone TEXT,
            address TEXT,
            created_at TEXT,
            updated_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS vehicles(
            id SERIAL PRIMARY KEY,
            rego TEXT,
            make TEXT,
            model TEXT,
            series TEXT,
            year TEXT,
            vin TEXT,
            color TEXT,
            auto BOOLEAN NOT NULL DEFAULT TRUE,
            body TEXT,
            notes TEXT,
            created_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS parts(
            id SERIAL PRIMARY KEY,
            vehicle_id INTEGER,
            part_name TEXT NOT NULL,
            part_number TEXT,
            price DOUBLE PRECISION,
            list_price DOUBLE PRECISION,
            note TEXT,
            created_at TEXT,
            FOREIGN KEY(vehicle_id) REFERENCES vehicles(id) ON DELETE SET NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS quotes(
            id SERIAL PRIMARY KEY,
            quote_ref TEXT,
            customer_id INTEGER,
            vehicle_id INTEGER,
            status TEXT NOT NULL DEFAULT 'unpriced',
            notes TEXT,
            required_by TEXT,
            tax_invoice_number TEXT,
            parts_requested JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_by INTEGER,
            created_at TEXT NOT NULL,
            updated_at TEXT,
            FOREIGN KEY(customer_id) REFERENCES customers(id) ON DELETE SET NULL,
            FOREIGN KEY(vehicle_id) REFERENCES vehicles(id) ON DELETE SET NULL,
            FOREIGN KEY(created_by) REFERENCES users(id) ON DELETE SET NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS quote_actions(
            id SERIAL PRIMARY KEY,
            quote_id INTEGER NOT NULL,
            user_id INTEGER,
            action_type TEXT NOT NULL,
            timestamp TEXT NOT NULL,
            FOREIGN KEY(quote_id) REFERENCES quotes(id) ON DELETE CASCADE,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE SET NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS parts_rules(
            id SERIAL PRIMARY KEY,
            part_name TEXT NOT NULL UNIQUE,
            rule_type TEXT NOT NULL DEFAULT 'none',
            brands TEXT[] NOT NULL DEFAULT '{}',
            description TEXT,
            created_by INTEGER,
            created_at TEXT,
            updated_at TEXT,
            FOREIGN KEY(created_by) REFERENCES users(id) ON DELETE SET NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS delivery_customers(
            id SERIAL PRIMARY KEY,
            account_number TEXT NOT NULL UNIQUE,
            customer_name TEXT NOT NULL,
            address TEXT,
            phone TEXT,
            email TEXT,
            created_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS deliveries(
            id SERIAL PRIMARY KEY,
            account_number TEXT,
            customer_name TEXT NOT NULL,
            address TEXT,
            delivery_round TEXT,
            invoice_number TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            assigned_to INTEGER,
            assigned_at TEXT,
            delivered_at TEXT,
            photo_proof TEXT,
            receiver_name TEXT,
            signature TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT,
            FOREIGN KEY(assigned_to) REFERENCES users(id) ON DELETE SET NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS order_track(
            id SERIAL PRIMARY KEY,
            quote_ref TEXT NOT NULL UNIQUE,
            opened_by TEXT NOT NULL,
            opened_at TEXT NOT NULL
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_quotes_status ON quotes(status)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_quote_actions_quote ON quote_actions(quote_id)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_order_track_opened_by ON order_track(opened_by)")

    conn.commit()
    conn.close()

    install_change_triggers()
    seed_default_parts_rules()
    ensure_admin_from_env()


def install_change_triggers() -> None:
    """
    Publish every insert/update/delete on NOTIFY_TABLES as a JSON payload
    {"table", "event", "id"} on CHANGES_CHANNEL.
    """
    conn = get_conn()
    cur = conn.cursor()

    cur.execute(
        f"""
        CREATE OR REPLACE FUNCTION notify_table_change() RETURNS trigger AS $$
        DECLARE
            row_id INTEGER;
        BEGIN
            IF TG_OP = 'DELETE' THEN
                row_id := OLD.id;
            ELSE
                row_id := NEW.id;
            END IF;
            PERFORM pg_notify(
                '{CHANGES_CHANNEL}',
                json_build_object('table', TG_TABLE_NAME, 'event', TG_OP, 'id', row_id)::text
            );
            RETURN NULL;
        END;
        $$ LANGUAGE plpgsql
        """
    )
    for table in NOTIFY_TABLES:
        cur.execute(f"DROP TRIGGER IF EXISTS {table}_changes ON {table}")
        cur.execute(
            f"""
            CREATE TRIGGER {table}_changes
            AFTER INSERT OR UPDATE OR DELETE ON {table}
            FOR EACH ROW EXECUTE FUNCTION notify_table_change()
            """
        )

    conn.commit()
    conn.close()


def seed_default_parts_rules() -> None:
    """Insert DEFAULT_PARTS_RULES (idempotent, existing rules are left alone)."""
    conn = get_conn()
    cur = conn.cursor()
    now = now_iso()

    for rule in DEFAULT_PARTS_RULES:
        cur.execute(
            """
            INSERT INTO parts_rules (part_name, rule_type, brands, description, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (part_name) DO NOTHING
            """,
            (
                rule["part_name"],
                rule["rule_type"],
                rule["brands"],
                rule.get("description"),
                now,
                now,
            ),
        )

    conn.commit()
    conn.close()


def ensure_admin_from_env() -> None:
    """
    Optionally seed/update an admin account from environment variables.
    Set ADMIN_EMAIL and ADMIN_PASSWORD before startup to use.
    """
    admin_email = os.getenv("ADMIN_EMAIL")
    admin_password = os.getenv("ADMIN_PASSWORD")

    if not admin_email or not admin_password:
        return

    existing = get_user_by_email(admin_email)

    if existing:
        conn = get_conn()
        cur = conn.cursor()
        cur.execute(
            "UPDATE users SET role='admin', active=1, password_hash=?, updated_at=? WHERE email=?",
            (hash_password(admin_password), now_iso(), admin_email.strip().lower()),
        )
        conn.commit()
        conn.close()
        return

    create_user(admin_email, admin_password, username="admin", full_name="Administrator", role="admin")
    log.info("Seeded admin account %s", admin_email)


__all__ = [
    "CHANGES_CHANNEL",
    "NOTIFY_TABLES",
    "DEFAULT_PARTS_RULES",
    "init_db",
    "install_change_triggers",
    "seed_default_parts_rules",
    "ensure_admin_from_env",
]
