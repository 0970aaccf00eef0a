"""
Postgres LISTEN/NOTIFY listener that keeps the query cache honest when rows
change outside this process (other workers, scripts, psql).

Triggers installed by init_db publish {"table", "event", "id"} on
CHANGES_CHANNEL; each payload is dispatched to the handlers registered for
its table.
"""
from __future__ import annotations

import json
import logging
import os
import threading
from typing import Callable, Dict, List, Optional

from app.cache import (
    DELIVERIES_KEY,
    PARTS_KEY,
    PARTS_RULES_KEY,
    QUOTE_COUNTS_KEY,
    QUOTES_KEY,
    QueryCache,
    quote_detail_key,
)
from core.database import CHANGES_CHANNEL, get_listen_conn

log = logging.getLogger("realtime")

Handler = Callable[[Dict], None]

POLL_TIMEOUT_SECONDS = 1.0
MAX_BACKOFF_SECONDS = 30


def realtime_enabled() -> bool:
    return os.getenv("REALTIME_ENABLED", "true").lower() not in ("0", "false", "no", "off")


def parse_payload(payload: str | None) -> Optional[Dict]:
    """Decode a notification payload; None when it is not a change event."""
    if not payload:
        return None
    try:
        change = json.loads(payload)
    except ValueError:
        log.warning("Ignoring non-JSON notification: %r", payload)
        return None
    if not isinstance(change, dict) or not change.get("table") or not change.get("event"):
        log.warning("Ignoring malformed change event: %r", payload)
        return None
    return change


def build_cache_handlers(cache: QueryCache) -> Dict[str, List[Handler]]:
    """Which cache prefixes go stale when a table changes."""

    def on_quotes(change: Dict) -> None:
        cache.invalidate(QUOTES_KEY)
        cache.invalidate(QUOTE_COUNTS_KEY)
        if change.get("id") is not None:
            cache.invalidate(quote_detail_key(change["id"]))

    def on_parts(change: Dict) -> None:
        cache.invalidate(PARTS_KEY)
        cache.invalidate(QUOTES_KEY)

    def on_quote_context(change: Dict) -> None:
        cache.invalidate(QUOTES_KEY)

    def on_deliveries(change: Dict) -> None:
        cache.invalidate(DELIVERIES_KEY)

    def on_parts_rules(change: Dict) -> None:
        cache.invalidate(PARTS_RULES_KEY)

    return {
        "quotes": [on_quotes],
        "parts": [on_parts],
        "vehicles": [on_quote_context],
        "customers": [on_quote_context],
        "deliveries": [on_deliveries],
        "parts_rules": [on_parts_rules],
    }


def backoff_delay(attempt: int) -> float:
    return min(2 ** attempt, MAX_BACKOFF_SECONDS)


class RealtimeListener:
    """Background thread: LISTEN, dispatch, reconnect with capped backoff."""

    def __init__(
        self,
        handlers: Dict[str, List[Handler]] | None = None,
        channel: str = CHANGES_CHANNEL,
        connect: Callable = get_listen_conn,
        poll_timeout: float = POLL_TIMEOUT_SECONDS,
    ):
        self.channel = channel
        self.poll_timeout = poll_timeout
        self._connect = connect
        self._handlers: Dict[str, List[Handler]] = {}
        for table, funcs in (handlers or {}).items():
            for func in funcs:
                self.subscribe(table, func)
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._events_seen = 0
        self._reconnects = 0

    def subscribe(self, table: str, handler: Handler) -> None:
        self._handlers.setdefault(table, []).append(handler)

    def dispatch(self, payload: str | None) -> bool:
        """Run the handlers for one payload. Returns False if it was ignored."""
        change = parse_payload(payload)
        if change is None:
            return False
        self._events_seen += 1
        for handler in self._handlers.get(change["table"], []):
            try:
                handler(change)
            except Exception:
                log.exception("Handler for %s %s failed", change["table"], change["event"])
        return True

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def status(self) -> dict:
        return {
            "running": self.running,
            "channel": self.channel,
            "events_seen": self._events_seen,
            "reconnects": self._reconnects,
        }

    def start(self) -> None:
        if self.running:
            log.warning("Realtime listener already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name="realtime-listener")
        self._thread.start()
        log.info("Realtime listener started on channel %s", self.channel)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
        self._thread = None
        log.info("Realtime listener stopped (events=%d, reconnects=%d)", self._events_seen, self._reconnects)

    def _listen(self) -> None:
        conn = self._connect()
        try:
            conn.execute(f"LISTEN {self.channel}")
            log.info("Listening for table changes on %s", self.channel)
            while not self._stop_event.is_set():
                for notify in conn.notifies(timeout=self.poll_timeout):
                    self.dispatch(notify.payload)
                    if self._stop_event.is_set():
                        break
        finally:
            conn.close()

    def _run_loop(self) -> None:
        attempt = 0
        while not self._stop_event.is_set():
            try:
                self._listen()
                attempt = 0
            except Exception as exc:
                delay = backoff_delay(attempt)
                self._reconnects += 1
                log.error("Realtime connection lost (%s), reconnecting in %ss", exc, delay)
                self._stop_event.wait(delay)
                attempt += 1


__all__ = [
    "RealtimeListener",
    "build_cache_handlers",
    "parse_payload",
    "backoff_delay",
    "realtime_enabled",
]
