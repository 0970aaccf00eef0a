"""
Postgres connection helpers.

Store modules write SQL with ``?`` placeholders; the wrappers below rewrite
them to psycopg's ``%s`` style so queries stay short and uniform.
"""
from __future__ import annotations

import os
from datetime import datetime
from typing import Iterable

import psycopg
from psycopg.rows import dict_row


def resolve_database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set")
    if not url.startswith(("postgres://", "postgresql://")):
        raise RuntimeError("DATABASE_URL must start with postgres:// or postgresql://")
    return url


class _CursorWrapper:
    def __init__(self, cursor):
        self._cursor = cursor

    def execute(self, sql: str, params: Iterable | None = None):
        sql = sql.replace("?", "%s")
        if params is None:
            return self._cursor.execute(sql)
        return self._cursor.execute(sql, params)

    def fetchone(self):
        return self._cursor.fetchone()

    def fetchall(self):
        return self._cursor.fetchall()

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount


class _ConnWrapper:
    def __init__(self, conn):
        self._conn = conn

    def cursor(self):
        return _CursorWrapper(self._conn.cursor())

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def get_conn():
    """Open a connection whose rows come back as dicts."""
    return _ConnWrapper(psycopg.connect(resolve_database_url(), row_factory=dict_row))


def get_listen_conn():
    """Raw autocommit connection for LISTEN/NOTIFY; no placeholder rewriting."""
    return psycopg.connect(resolve_database_url(), autocommit=True)


def now_iso() -> str:
    """Current UTC time as an ISO string (seconds precision)."""
    return datetime.utcnow().isoformat(timespec="seconds")


__all__ = ["get_conn", "get_listen_conn", "resolve_database_url", "now_iso"]
