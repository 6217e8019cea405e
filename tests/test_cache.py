import asyncio
import os

from crypto_signal_scanner.cache import Cache, safe_key


class _Clock:
    def __init__(self, now: int = 1_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


def _counting_producer(value="v"):
    calls = []

    async def produce():
        calls.append(1)
        return value

    return produce, calls


def test_ttl_hit_then_expiry(tmp_path):
    clock = _Clock()
    cache = Cache(str(tmp_path), clock=clock)
    produce, calls = _counting_producer([1, 2, 3])

    async def _run():
        a = await cache.with_cache("k", produce, ttl_ms=1000)
        clock.now += 500
        b = await cache.with_cache("k", produce, ttl_ms=1000)
        clock.now += 600
        c = await cache.with_cache("k", produce, ttl_ms=1000)
        return a, b, c

    a, b, c = asyncio.run(_run())
    assert a == b == c == [1, 2, 3]
    assert len(calls) == 2


def test_concurrent_misses_run_producer_once(tmp_path):
    cache = Cache(str(tmp_path), clock=_Clock())
    calls = []

    async def slow():
        calls.append(1)
        await asyncio.sleep(0.01)
        return "x"

    async def _run():
        return await asyncio.gather(*[cache.with_cache("same", slow, ttl_ms=60_000) for _ in range(5)])

    assert asyncio.run(_run()) == ["x"] * 5
    assert len(calls) == 1


def test_persist_survives_new_instance(tmp_path):
    clock = _Clock()
    first = Cache(str(tmp_path), clock=clock)
    produce, calls = _counting_producer({"a": 1})
    key = "short_reversal_1d_binance_futures_80"

    asyncio.run(first.with_cache(key, produce, ttl_ms=60_000, persist=True))
    assert os.path.exists(first.cache_path(key))

    second = Cache(str(tmp_path), clock=clock)
    out = asyncio.run(second.with_cache(key, produce, ttl_ms=60_000, persist=True))
    assert out == {"a": 1}
    assert len(calls) == 1

    clock.now += 120_000
    asyncio.run(Cache(str(tmp_path), clock=clock).with_cache(key, produce, ttl_ms=60_000, persist=True))
    assert len(calls) == 2


def test_persist_with_codec(tmp_path):
    cache = Cache(str(tmp_path), clock=_Clock())

    async def produce():
        return (1, 2)

    asyncio.run(cache.with_cache("t", produce, 60_000, persist=True, encode=list, decode=tuple))
    fresh = Cache(str(tmp_path), clock=_Clock())
    got = asyncio.run(fresh.with_cache("t", produce, 60_000, persist=True, encode=list, decode=tuple))
    assert got == (1, 2)


def test_clear_key_and_all(tmp_path):
    cache = Cache(str(tmp_path), clock=_Clock())
    produce, calls = _counting_producer()

    async def _run():
        await cache.with_cache("a", produce, 60_000, persist=True)
        await cache.with_cache("b", produce, 60_000, persist=True)
        cache.clear("a")
        await cache.with_cache("a", produce, 60_000, persist=True)
        await cache.with_cache("b", produce, 60_000, persist=True)
        cache.clear()
        await cache.with_cache("b", produce, 60_000)

    asyncio.run(_run())
    assert len(calls) == 4
    assert not os.path.exists(cache.cache_path("a"))


def test_disabled_cache_always_produces(tmp_path):
    cache = Cache(str(tmp_path), enabled=False, clock=_Clock())
    produce, calls = _counting_producer()

    async def _run():
        await cache.with_cache("k", produce, 60_000)
        await cache.with_cache("k", produce, 60_000)

    asyncio.run(_run())
    assert len(calls) == 2


def test_producer_error_is_not_cached(tmp_path):
    cache = Cache(str(tmp_path), clock=_Clock())
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return "ok"

    async def _run():
        try:
            await cache.with_cache("k", flaky, 60_000)
        except RuntimeError:
            pass
        return await cache.with_cache("k", flaky, 60_000)

    assert asyncio.run(_run()) == "ok"
    assert len(calls) == 2


def test_safe_key():
    assert safe_key("short_reversal_1d_Binance-Futures_80") == "short_reversal_1d_binance_futures_80"
    assert safe_key("signals:bybit/15m") == "signals_bybit_15m"


def test_undecodable_persisted_entry_falls_through_to_producer(tmp_path):
    import json

    from crypto_signal_scanner.models import signals_from_json, signals_to_json

    clock = _Clock()
    cache = Cache(str(tmp_path), clock=clock)
    key = "short_reversal_1d_binance_futures_80"
    with open(cache.cache_path(key), "w", encoding="utf-8") as f:
        json.dump({"timestamp": clock.now, "data": [{"symbol": "BTC"}]}, f)

    produce, calls = _counting_producer([])
    out = asyncio.run(
        cache.with_cache(key, produce, 60_000, persist=True, encode=signals_to_json, decode=signals_from_json)
    )
    assert out == []
    assert len(calls) == 1

    # the stale file was replaced by the fresh result
    with open(cache.cache_path(key), "r", encoding="utf-8") as f:
        assert json.load(f)["data"] == []
