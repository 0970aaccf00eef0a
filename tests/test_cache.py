import pytest

from app.cache import QueryCache, invalidate_quotes, query_cache, quote_detail_key, quotes_key, retry_delay
from core.errors import QuoteNotFound


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _cache(**kwargs):
    clock = FakeClock()
    sleeps = []
    cache = QueryCache(clock=clock, sleep=sleeps.append, **kwargs)
    return cache, clock, sleeps


def test_fresh_entry_is_served_from_cache():
    cache, clock, _ = _cache(stale_time=300)
    calls = []

    def fetch():
        calls.append(1)
        return {"n": len(calls)}

    assert cache.fetch(("quotes",), fetch) == {"n": 1}
    clock.now += 299
    assert cache.fetch(("quotes",), fetch) == {"n": 1}
    clock.now += 1
    assert cache.fetch(("quotes",), fetch) == {"n": 2}


def test_invalidate_marks_prefix_stale():
    cache, _, _ = _cache()
    cache.set(quotes_key("priced"), ["a"])
    cache.set(quote_detail_key(7), {"id": 7})
    cache.set(("parts",), [])

    assert cache.invalidate(("quotes",)) == 2
    assert cache.is_stale(quotes_key("priced"))
    assert cache.is_stale(quote_detail_key(7))
    assert not cache.is_stale(("parts",))
    # stale data is still readable until refetched
    assert cache.get(quotes_key("priced")) == ["a"]


def test_retries_with_backoff_then_succeeds():
    cache, _, sleeps = _cache(retries=3)
    attempts = {"n": 0}

    def flaky():
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise ConnectionError("db went away")
        return "ok"

    assert cache.fetch(("quotes",), flaky) == "ok"
    assert sleeps == [1, 2]


def test_gives_up_after_retries():
    cache, _, sleeps = _cache(retries=2)

    def broken():
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        cache.fetch(("quotes",), broken)
    assert sleeps == [1, 2]
    assert ("quotes",) not in cache


def test_domain_errors_are_not_retried():
    cache, _, sleeps = _cache(retries=3)

    def missing():
        raise QuoteNotFound("Quote 1 not found")

    with pytest.raises(QuoteNotFound):
        cache.fetch(quote_detail_key(1), missing)
    assert sleeps == []


def test_retry_delay_is_capped():
    assert [retry_delay(a) for a in range(7)] == [1, 2, 4, 8, 16, 30, 30]


def test_garbage_collection_drops_unused_entries():
    cache, clock, _ = _cache(gc_time=600)
    cache.set(("parts",), [1])
    cache.set(("quotes",), [2])
    clock.now += 500
    cache.get(("quotes",))
    clock.now += 200

    assert cache.collect_garbage() == 1
    assert ("parts",) not in cache
    assert ("quotes",) in cache


def test_refetch_sweeps_unused_entries():
    cache, clock, _ = _cache(gc_time=600)
    cache.set(("parts",), [1])
    clock.now += 601

    assert cache.fetch(("quotes",), lambda: [2]) == [2]
    assert ("parts",) not in cache


def test_invalidation_during_fetch_is_not_lost():
    cache, _, _ = _cache()
    rows = ["before write"]

    def read_then_write_lands():
        snapshot = list(rows)
        # a mutation commits and invalidates while this read is in flight
        rows[0] = "after write"
        cache.invalidate(("quotes",))
        return snapshot

    assert cache.fetch(quotes_key("priced"), read_then_write_lands) == ["before write"]
    assert cache.is_stale(quotes_key("priced"))
    assert cache.fetch(quotes_key("priced"), lambda: list(rows)) == ["after write"]
    assert not cache.is_stale(quotes_key("priced"))


def test_unrelated_invalidation_keeps_fetch_fresh():
    cache, _, _ = _cache()

    def read():
        cache.invalidate(("parts",))
        return ["q"]

    cache.fetch(quotes_key("priced"), read)
    assert not cache.is_stale(quotes_key("priced"))


def test_quotes_key_normalises_status_lists():
    assert quotes_key(["ordered", "delivered"]) == quotes_key(("ordered", "delivered"))
    assert quotes_key(None, None) == ("quotes", None, "", None, 1, 50, "newest")


def test_invalidate_quotes_covers_lists_counts_and_detail():
    query_cache.set(quotes_key("unpriced"), [])
    query_cache.set(("quote-counts",), {})
    query_cache.set(quote_detail_key(3), {})
    query_cache.set(("deliveries",), [])

    invalidate_quotes(3)

    assert query_cache.is_stale(quotes_key("unpriced"))
    assert query_cache.is_stale(("quote-counts",))
    assert query_cache.is_stale(quote_detail_key(3))
    assert not query_cache.is_stale(("deliveries",))
