"""Tests for the tiered cache and its durable stores."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

from nutrition_lookup.adapters.file_cache_store import JsonFileCacheStore
from nutrition_lookup.adapters.supabase_cache_store import SupabaseCacheStore
from nutrition_lookup.domain.nutrition import ReconciledResult
from nutrition_lookup.services.cache import TieredCache, normalize_key
from tests.fakes import BrokenCacheStore, FakeClock, FakeSupabaseClient, make_record


def _result(calories: float = 165) -> ReconciledResult:
    record = make_record("usda", calories, protein=31, carbs=0, fat=3.6)
    return ReconciledResult(
        chosen=record,
        agreeing_sources=frozenset({"usda"}),
        confidence=1.0,
        all_candidates=(record,),
    )


def test_normalize_key_collapses_case_and_whitespace() -> None:
    assert normalize_key("  Chicken \t  Breast ") == "chicken breast"


def test_put_then_get_and_expiry(clock: FakeClock) -> None:
    cache = TieredCache(clock=clock)
    value = _result()

    cache.put("name:chicken breast", value, ttl_seconds=60)

    assert cache.get("name:chicken breast") == value
    clock.advance(60)
    assert cache.get("name:chicken breast") is None
    assert len(cache) == 0


def test_keys_differing_by_case_and_spacing_hit_same_entry(clock: FakeClock) -> None:
    cache = TieredCache(clock=clock)
    value = _result()

    cache.put("Chicken  Breast", value, ttl_seconds=60)

    assert cache.get("chicken breast") == value
    cache.evict("CHICKEN BREAST")
    assert cache.get("Chicken  Breast") is None


def test_l1_is_lru_bounded(clock: FakeClock) -> None:
    cache = TieredCache(max_entries=2, clock=clock)
    cache.put("a", _result(1), ttl_seconds=60)
    cache.put("b", _result(2), ttl_seconds=60)
    cache.get("a")
    cache.put("c", _result(3), ttl_seconds=60)

    assert cache.get("a") is not None
    assert cache.get("b") is None
    assert cache.get("c") is not None


def test_l2_hit_is_promoted_into_fresh_l1(tmp_path, clock: FakeClock) -> None:
    store = JsonFileCacheStore.create(tmp_path)
    value = _result()
    TieredCache(store=store, clock=clock).put("name:rice", value, ttl_seconds=120)

    restarted = TieredCache(store=store, clock=clock)
    assert len(restarted) == 0

    cached = restarted.get("name:rice")

    assert cached == value
    assert cached.chosen.raw_payload == {"source": "usda"}
    assert len(restarted) == 1


def test_expired_l2_entry_is_a_miss_and_removed(tmp_path, clock: FakeClock) -> None:
    store = JsonFileCacheStore.create(tmp_path)
    TieredCache(store=store, clock=clock).put("name:rice", _result(), ttl_seconds=10)
    clock.advance(11)

    assert TieredCache(store=store, clock=clock).get("name:rice") is None
    assert store.get("name:rice") is None


def test_l2_failures_do_not_fail_cache_operations(clock: FakeClock) -> None:
    cache = TieredCache(store=BrokenCacheStore(), clock=clock)
    value = _result()

    cache.put("name:rice", value, ttl_seconds=60)

    assert cache.get("name:rice") == value
    assert cache.get("name:beans") is None
    cache.evict("name:rice")
    cache.clear()


def test_clear_empties_both_tiers(tmp_path, clock: FakeClock) -> None:
    store = JsonFileCacheStore.create(tmp_path)
    cache = TieredCache(store=store, clock=clock)
    cache.put("a", _result(), ttl_seconds=60)
    cache.put("b", _result(), ttl_seconds=60)

    cache.clear()

    assert cache.get("a") is None
    assert list(tmp_path.glob("*.json")) == []


def test_file_store_roundtrip(tmp_path, clock: FakeClock) -> None:
    store = JsonFileCacheStore.create(tmp_path / "nested")
    expires_at = clock() + timedelta(minutes=5)

    store.set("name:oats", {"value": 1}, expires_at)

    assert store.get("name:oats") == {
        "value": {"value": 1},
        "expires_at": expires_at.isoformat(),
    }
    store.delete("name:oats")
    assert store.get("name:oats") is None
    store.delete("name:oats")


def test_supabase_store_upserts_and_deletes(clock: FakeClock) -> None:
    client = FakeSupabaseClient()
    store = SupabaseCacheStore(client)
    expires_at = clock() + timedelta(minutes=5)

    store.set("name:oats", {"confidence": 1.0}, expires_at)
    store.set("name:oats", {"confidence": 0.5}, expires_at)

    assert store.get("name:oats") == {
        "value": {"confidence": 0.5},
        "expires_at": expires_at.isoformat(),
    }
    assert len(client.table("nutrition_cache").rows) == 1

    store.delete("name:oats")
    assert store.get("name:oats") is None

    store.set("a", {}, expires_at)
    store.set("b", {}, expires_at)
    store.clear()
    assert client.table("nutrition_cache").rows == {}


def test_tiered_cache_over_supabase_store(clock: FakeClock) -> None:
    store = SupabaseCacheStore(FakeSupabaseClient())
    value = _result()
    TieredCache(store=store, clock=clock).put("barcode:5000112126619", value, 60)

    assert TieredCache(store=store, clock=clock).get("barcode:5000112126619") == value


def test_get_tolerates_eviction_by_put_on_another_key(clock: FakeClock) -> None:
    cache = TieredCache(max_entries=1, clock=clock)
    value = _result()
    cache.put("rice", value, ttl_seconds=60)
    interleave = [True]

    def clock_with_interleaved_put() -> datetime:
        if interleave:
            interleave.clear()
            cache.put("other", _result(2), ttl_seconds=60)
        return clock()

    cache.clock = clock_with_interleaved_put

    assert cache.get("rice") == value
    assert cache.get("rice") is None
    assert cache.get("other") is not None
    assert len(cache) == 1


def test_l1_survives_concurrent_access_across_keys(clock: FakeClock) -> None:
    cache = TieredCache(max_entries=4, clock=clock)

    def work(index: int) -> None:
        key = f"name:food {index % 16}"
        cache.put(key, _result(index), ttl_seconds=60)
        cache.get(key)
        cache.get(f"name:food {(index + 1) % 16}")
        if index % 25 == 0:
            cache.clear()

    with ThreadPoolExecutor(max_workers=16) as pool:
        list(pool.map(work, range(400)))

    assert len(cache) <= 4
