from datetime import datetime, timedelta

from phishfinder.services.cache import MemoryCache, StoreCache, TieredCache


class Clock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


async def test_memory_cache_serves_until_ttl_elapses():
    clock = Clock()
    cache = MemoryCache(timedelta(hours=1), clock=clock)

    await cache.set("spf:example.com", {"state": "found"})
    clock.advance(minutes=59)
    assert await cache.get("spf:example.com") == {"state": "found"}

    clock.advance(minutes=1)
    assert await cache.get("spf:example.com") is None
    assert len(cache) == 0


async def test_memory_cache_per_entry_ttl_and_delete():
    clock = Clock()
    cache = MemoryCache(timedelta(hours=1), clock=clock)

    await cache.set("short", 1, ttl=timedelta(seconds=10))
    await cache.set("long", 2)
    clock.advance(seconds=11)

    assert await cache.get("short") is None
    assert await cache.get("long") == 2

    await cache.delete("long")
    assert await cache.get("long") is None


async def test_store_cache_round_trip_and_expiry(store):
    clock = Clock()
    cache = StoreCache(store, "whois", timedelta(days=7), clock=clock)

    assert await cache.get("example.com") is None

    await cache.set("example.com", {"registrar": "Example Registrar"})
    clock.advance(days=6)
    assert await cache.get("example.com") == {"registrar": "Example Registrar"}

    clock.advance(days=1)
    assert await cache.get("example.com") is None


async def test_store_cache_last_write_wins(store):
    clock = Clock()
    cache = StoreCache(store, "domain_authentication", timedelta(hours=1), clock=clock)

    await cache.set("dmarc:example.com", {"state": "missing", "record": None})
    await cache.set("dmarc:example.com", {"state": "found", "record": "v=DMARC1; p=none"})

    assert await cache.get("dmarc:example.com") == {"state": "found", "record": "v=DMARC1; p=none"}


async def test_tiered_cache_backfills_faster_tiers(store):
    clock = Clock()
    memory = MemoryCache(timedelta(hours=1), clock=clock)
    stored = StoreCache(store, "domain_authentication", timedelta(hours=24), clock=clock)
    cache = TieredCache(memory, stored)

    await stored.set("spf:example.com", {"state": "found", "record": "v=spf1 -all"})
    assert await memory.get("spf:example.com") is None

    assert await cache.get("spf:example.com") == {"state": "found", "record": "v=spf1 -all"}
    assert await memory.get("spf:example.com") == {"state": "found", "record": "v=spf1 -all"}


async def test_tiered_cache_set_writes_every_tier(store):
    memory = MemoryCache(timedelta(hours=1))
    stored = StoreCache(store, "domain_authentication", timedelta(hours=24))
    cache = TieredCache(memory, stored)

    await cache.set("dkim:example.com", {"state": "missing", "record": None})

    assert await memory.get("dkim:example.com") == {"state": "missing", "record": None}
    assert await stored.get("dkim:example.com") == {"state": "missing", "record": None}


async def test_tiered_cache_copy_never_outlives_the_stored_entry(store):
    clock = Clock()
    memory = MemoryCache(timedelta(hours=1), clock=clock)
    stored = StoreCache(store, "domain_authentication", timedelta(hours=24), clock=clock)
    cache = TieredCache(memory, stored)

    await stored.set("dmarc:example.com", {"state": "found", "record": "v=DMARC1; p=reject"})
    clock.advance(hours=23, minutes=59)
    assert await cache.get("dmarc:example.com") == {"state": "found", "record": "v=DMARC1; p=reject"}

    clock.advance(minutes=1)
    assert await stored.get("dmarc:example.com") is None
    assert await memory.get("dmarc:example.com") is None

    clock.advance(minutes=29)
    assert await cache.get("dmarc:example.com") is None


async def test_tiered_cache_reports_remaining_lifetime(store):
    clock = Clock()
    memory = MemoryCache(timedelta(hours=1), clock=clock)
    stored = StoreCache(store, "domain_authentication", timedelta(hours=24), clock=clock)
    cache = TieredCache(memory, stored)

    await stored.set("spf:example.com", {"state": "found"})
    clock.advance(hours=2)

    value, remaining = await cache.get_entry("spf:example.com")
    assert value == {"state": "found"}
    assert remaining == timedelta(hours=22)
    assert (await memory.get_entry("spf:example.com"))[1] == timedelta(hours=1)


async def test_memory_cache_sweeps_expired_entries_on_write():
    clock = Clock()
    cache = MemoryCache(timedelta(seconds=1), clock=clock)

    for i in range(1000):
        await cache.set(f"spf:host{i}.example.com", {"state": "missing"})
    assert len(cache) == 1000

    clock.advance(days=1)
    await cache.set("spf:example.com", {"state": "found"})

    assert len(cache) == 1
    assert await cache.get("spf:example.com") == {"state": "found"}


async def test_memory_cache_sweep_waits_for_check_period():
    clock = Clock()
    cache = MemoryCache(timedelta(seconds=1), clock=clock, check_period=timedelta(minutes=2))

    await cache.set("a", 1)
    clock.advance(seconds=30)
    await cache.set("b", 2)
    assert len(cache) == 2

    clock.advance(minutes=2)
    await cache.set("c", 3)
    assert len(cache) == 1
