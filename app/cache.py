"""
Server-side query cache for the read paths behind the pages and JSON API.

Entries are keyed by tuples such as ("quotes", "priced", "", None, 1, 50, "newest").
Fresh entries are served as-is; stale or invalidated ones are refetched.
Invalidation works on key prefixes so ("quotes",) covers every quote list
and detail entry. The realtime listener and the mutating routes both
invalidate here.
"""
from __future__ import annotations

import logging
import os
import threading
import time
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from core.errors import QuoteDeskError

log = logging.getLogger("cache")

DEFAULT_STALE_SECONDS = 300
DEFAULT_GC_SECONDS = 600
DEFAULT_RETRIES = 3
MAX_RETRY_DELAY_SECONDS = 30

QUOTES_KEY = ("quotes",)
PARTS_KEY = ("parts",)
PARTS_RULES_KEY = ("parts-rules",)
DELIVERIES_KEY = ("deliveries",)
QUOTE_COUNTS_KEY = ("quote-counts",)

Key = Tuple[Hashable, ...]


def quotes_key(
    status=None, search=None, created_by=None, page: int = 1, limit: int = 50, order: str = "newest"
) -> Key:
    if isinstance(status, (list, tuple)):
        status = tuple(status)
    return ("quotes", status, search or "", created_by, page, limit, order)


def quote_detail_key(quote_id: int) -> Key:
    return ("quotes", "detail", quote_id)


def retry_delay(attempt: int) -> float:
    """1s, 2s, 4s ... capped at 30s."""
    return min(1 * 2 ** attempt, MAX_RETRY_DELAY_SECONDS)


class _Entry:
    __slots__ = ("data", "updated_at", "last_used", "stale_time", "invalidated")

    def __init__(self, data: Any, now: float, stale_time: float):
        self.data = data
        self.updated_at = now
        self.last_used = now
        self.stale_time = stale_time
        self.invalidated = False


class QueryCache:
    def __init__(
        self,
        stale_time: float = DEFAULT_STALE_SECONDS,
        gc_time: float = DEFAULT_GC_SECONDS,
        retries: int = DEFAULT_RETRIES,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.stale_time = stale_time
        self.gc_time = gc_time
        self.retries = retries
        self._clock = clock
        self._sleep = sleep
        self._entries: Dict[Key, _Entry] = {}
        # one flag per running fetch, set when an invalidation lands mid-fetch
        self._inflight: Dict[Key, List[List[bool]]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key) -> bool:
        return tuple(key) in self._entries

    def is_stale(self, key) -> bool:
        entry = self._entries.get(tuple(key))
        if entry is None:
            return True
        return entry.invalidated or self._clock() - entry.updated_at >= entry.stale_time

    def get(self, key) -> Optional[Any]:
        """Cached data regardless of freshness, or None."""
        with self._lock:
            entry = self._entries.get(tuple(key))
            if entry is None:
                return None
            entry.last_used = self._clock()
            return entry.data

    def set(self, key, data: Any, stale_time: float | None = None) -> None:
        with self._lock:
            self._put(tuple(key), data, stale_time)

    def _put(self, key: Key, data: Any, stale_time: float | None) -> _Entry:
        entry = _Entry(data, self._clock(), self.stale_time if stale_time is None else stale_time)
        self._entries[key] = entry
        return entry

    def fetch(self, key, fn: Callable[[], Any], stale_time: float | None = None) -> Any:
        """
        Return fresh cached data for `key`, else call `fn` (retrying failures)
        and cache its result.
        """
        key = tuple(key)
        if not self.is_stale(key):
            return self.get(key)

        self.collect_garbage()
        flag = [False]
        with self._lock:
            self._inflight.setdefault(key, []).append(flag)
        try:
            data = self._call_with_retry(key, fn)
        except Exception:
            with self._lock:
                self._release(key, flag)
            raise
        with self._lock:
            self._release(key, flag)
            # rows read before a concurrent write must not be served as fresh
            self._put(key, data, stale_time).invalidated = flag[0]
        return data

    def _release(self, key: Key, flag: List[bool]) -> None:
        running = [f for f in self._inflight.get(key, []) if f is not flag]
        if running:
            self._inflight[key] = running
        else:
            self._inflight.pop(key, None)

    def _flag_inflight(self, prefix: Key) -> None:
        for key, flags in self._inflight.items():
            if key[: len(prefix)] == prefix:
                for flag in flags:
                    flag[0] = True

    def _call_with_retry(self, key: Key, fn: Callable[[], Any]) -> Any:
        attempt = 0
        while True:
            try:
                return fn()
            except QuoteDeskError:
                # not-found and validation errors will not change on retry
                raise
            except Exception as exc:
                if attempt >= self.retries:
                    log.error("Query %s failed after %s retries: %s", key, attempt, exc)
                    raise
                delay = retry_delay(attempt)
                log.warning("Query %s failed (%s), retrying in %ss", key, exc, delay)
                self._sleep(delay)
                attempt += 1

    def _matching(self, prefix) -> list:
        prefix = tuple(prefix)
        return [k for k in self._entries if k[: len(prefix)] == prefix]

    def invalidate(self, prefix=()) -> int:
        """Mark every key starting with `prefix` stale. Returns how many."""
        with self._lock:
            keys = self._matching(prefix)
            for key in keys:
                self._entries[key].invalidated = True
            self._flag_inflight(tuple(prefix))
        if keys:
            log.debug("Invalidated %s cache entries for %s", len(keys), tuple(prefix))
        return len(keys)

    def remove(self, prefix=()) -> int:
        with self._lock:
            keys = self._matching(prefix)
            for key in keys:
                del self._entries[key]
            self._flag_inflight(tuple(prefix))
        return len(keys)

    def collect_garbage(self) -> int:
        """Drop entries nobody has read for longer than gc_time."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now - e.last_used > self.gc_time]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._flag_inflight(())


def _env_seconds(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("Ignoring invalid %s=%r", name, raw)
        return default


query_cache = QueryCache(
    stale_time=_env_seconds("QUOTE_CACHE_STALE_SECONDS", DEFAULT_STALE_SECONDS),
    gc_time=_env_seconds("QUOTE_CACHE_GC_SECONDS", DEFAULT_GC_SECONDS),
)


def invalidate_quotes(quote_id: int | None = None) -> None:
    """After any quote or part write: lists, detail and the nav counts."""
    query_cache.invalidate(QUOTES_KEY)
    query_cache.invalidate(QUOTE_COUNTS_KEY)
    if quote_id is not None:
        query_cache.invalidate(quote_detail_key(quote_id))


__all__ = [
    "QueryCache",
    "query_cache",
    "quotes_key",
    "quote_detail_key",
    "retry_delay",
    "invalidate_quotes",
    "QUOTES_KEY",
    "PARTS_KEY",
    "PARTS_RULES_KEY",
    "DELIVERIES_KEY",
    "QUOTE_COUNTS_KEY",
]
