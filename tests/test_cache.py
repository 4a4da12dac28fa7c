import asyncio

from stockdraft.market import MarketStatus
from stockdraft.storage import CachedPrice, MemoryPriceStore, PriceCache, PriceSnapshot
from stockdraft.storage.cache import SNAPSHOT_KEY

OPEN = MarketStatus(is_open=True, message="Market Open")
CLOSED = MarketStatus(is_open=False, message="After Hours")


class Ticker:
    def __init__(self, start: float = 0.0):
        self.value = start

    def __call__(self) -> float:
        return self.value


def _price(value: float, at: int = 0) -> CachedPrice:
    return CachedPrice(price=value, updated_at=at)


def test_update_merges_over_existing_tickers(clock, cache) -> None:
    async def run():
        await cache.update({"AAPL": _price(110.0), "MSFT": _price(190.0)}, OPEN)
        clock.advance(60)
        await cache.update({"AAPL": _price(111.0)}, OPEN)
        return await cache.get()

    snapshot = asyncio.run(run())

    assert snapshot.prices["AAPL"].price == 111.0
    assert snapshot.prices["MSFT"].price == 190.0
    assert snapshot.timestamp == clock.ms()


def test_repeated_update_is_idempotent_apart_from_timestamp(clock, cache) -> None:
    prices = {"AAPL": _price(110.0)}

    async def run():
        first = await cache.update(prices, OPEN)
        second = await cache.update(prices, OPEN)
        return first, second

    first, second = asyncio.run(run())

    assert first.prices == second.prices
    assert first.market_status == second.market_status


def test_get_returns_none_when_empty(cache) -> None:
    assert asyncio.run(cache.get()) is None


def test_unreadable_snapshot_discarded(cache) -> None:
    async def run():
        await cache.store.set(SNAPSHOT_KEY, "{not json")
        return await cache.get()

    assert asyncio.run(run()) is None


def test_freshness_window(clock, cache) -> None:
    snapshot = asyncio.run(cache.update({"AAPL": _price(110.0)}, OPEN))

    assert cache.is_fresh(snapshot, OPEN)
    clock.advance(299)
    assert cache.is_fresh(snapshot, OPEN)
    clock.advance(1)
    assert not cache.is_fresh(snapshot, OPEN)


def test_never_fresh_when_market_closed_or_empty(cache) -> None:
    snapshot = asyncio.run(cache.update({"AAPL": _price(110.0)}, OPEN))
    empty = PriceSnapshot(prices={}, timestamp=snapshot.timestamp, market_status=OPEN)

    assert not cache.is_fresh(snapshot, CLOSED)
    assert not cache.is_fresh(empty, OPEN)
    assert not cache.is_fresh(None, OPEN)


def test_freshness_ttl_override(clock, cache) -> None:
    snapshot = asyncio.run(cache.update({"AAPL": _price(110.0)}, OPEN))
    clock.advance(61)

    assert cache.is_fresh(snapshot, OPEN)
    assert not cache.is_fresh(snapshot, OPEN, ttl_seconds=60)


def test_batch_groups_alternate(cache) -> None:
    async def run():
        return [await cache.next_batch_group(2) for _ in range(4)]

    assert asyncio.run(run()) == [1, 0, 1, 0]


def test_batch_counter_shared_through_store(clock) -> None:
    store = MemoryPriceStore()
    first = PriceCache(store, clock=clock.ms)
    second = PriceCache(store, clock=clock.ms)

    async def run():
        return await first.next_batch_group(2), await second.next_batch_group(2)

    assert asyncio.run(run()) == (1, 0)


def test_memory_store_expires_entries() -> None:
    ticker = Ticker()
    store = MemoryPriceStore(clock=ticker)

    async def run():
        await store.set("k", "v", ttl_seconds=10)
        ticker.value = 9.5
        before = await store.get("k")
        ticker.value = 10.0
        after = await store.get("k")
        return before, after

    assert asyncio.run(run()) == ("v", None)


def test_memory_store_source_label(cache) -> None:
    assert cache.source == "cron"


def test_snapshot_stored_with_camel_case_keys(cache) -> None:
    async def run():
        await cache.update({"AAPL": CachedPrice(price=1.0, change_percent=2.0, updated_at=5)}, OPEN)
        return await cache.store.get(SNAPSHOT_KEY)

    raw = asyncio.run(run())

    assert '"marketStatus"' in raw
    assert '"changePercent"' in raw
    assert '"updatedAt"' in raw
