"""
Run a query against the app database (DATABASE_URL required).

Usage:
  DATABASE_URL=... python scripts/db_shell.py                               # row counts per table
  DATABASE_URL=... python scripts/db_shell.py "SELECT * FROM quotes LIMIT 5"  # run a custom query
"""
from __future__ import annotations

import sys

from core.database import get_conn

TABLES = (
    "users",
    "sessions",
    "customers",
    "vehicles",
    "parts",
    "quotes",
    "quote_actions",
    "parts_rules",
    "delivery_customers",
    "deliveries",
    "order_track",
)


def _table_counts(cur) -> None:
    for table in TABLES:
        cur.execute(f"SELECT COUNT(*) AS count FROM {table}")
        print(f"{table:20} {cur.fetchone()['count']}")


def main() -> None:
    query = " ".join(sys.argv[1:]).strip()

    try:
        conn = get_conn()
    except RuntimeError as exc:
        raise SystemExit(str(exc)) from exc

    cur = conn.cursor()
    try:
        if not query:
            _table_counts(cur)
            return
        cur.execute(query)
        if query.lstrip().lower().startswith(("select", "with")) or " returning " in query.lower():
            for row in cur.fetchall():
                print(dict(row))
        else:
            conn.commit()
            print(f"OK ({cur.rowcount} row(s) affected)")
    except Exception as exc:
        conn.rollback()
        raise SystemExit(f"Error running query: {exc}") from exc
    finally:
        conn.close()


if __name__ == "__main__":
    main()
