"""Cache stores and the ResultCache facade."""
import typing
from unittest.mock import MagicMock

import redis

from engine.errors import CacheUnavailable
from storage.cache import (
    TAG_PREFIX, CacheStore, MemoryCacheStore, RedisCacheStore, ResultCache,
    build_store, category_tag,
)


class FakeTimer:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class BrokenStore(CacheStore):
    def get(self, key):
        raise CacheUnavailable("down")

    def set(self, key, value, ttl):
        raise CacheUnavailable("down")

    def delete(self, *keys):
        raise CacheUnavailable("down")

    def tag(self, tag, key, ttl):
        raise CacheUnavailable("down")

    def tagged(self, tag):
        raise CacheUnavailable("down")


class TestMemoryCacheStore:
    def test_entries_expire_after_their_ttl(self):
        timer = FakeTimer()
        store = MemoryCacheStore(max_size=16, timer=timer)
        store.set("short", "a", 50)
        store.set("long", "b", 120)

        timer.now = 60

        assert store.get("short") is None
        assert store.get("long") == "b"

    def test_tag_index_collects_keys(self):
        store = MemoryCacheStore()
        store.tag("results", "k1", 50)
        store.tag("results", "k2", 50)

        assert store.tagged("results") == {"k1", "k2"}
        assert store.tagged("other") == set()

    def test_hot_key_stays_invalidatable_under_eviction(self):
        cache = ResultCache(MemoryCacheStore(max_size=2))
        cache.set_json("hot", 1, 50, tags=["results"])

        for key in ("a", "b", "c"):
            assert cache.get_json("hot") == 1
            cache.set_json(key, 0, 50)
        assert cache.get_json("hot") == 1

        cache.invalidate("results")

        assert cache.get_json("hot") is None


class TestResultCache:
    def test_round_trips_json(self):
        cache = ResultCache(MemoryCacheStore())
        cache.set_json("k", {"data": [1, 2]}, 50)

        assert cache.get_json("k") == {"data": [1, 2]}

    def test_invalidate_drops_only_tagged_keys(self):
        cache = ResultCache(MemoryCacheStore())
        cache.set_json("delhi:month", 1, 50, tags=[category_tag("Delhi")])
        cache.set_json("mumbai:month", 2, 50, tags=[category_tag("Mumbai")])

        cache.invalidate(category_tag("delhi"))

        assert cache.get_json("delhi:month") is None
        assert cache.get_json("mumbai:month") == 2

    def test_outage_behaves_like_a_miss(self):
        cache = ResultCache(BrokenStore())

        cache.set_json("k", {"a": 1}, 50, tags=["t"])
        cache.invalidate("t")
        cache.delete("k")
        assert cache.get_json("k") is None

    def test_undecodable_entry_is_dropped(self):
        store = MemoryCacheStore()
        store.set("k", "{not json", 50)

        assert ResultCache(store).get_json("k") is None
        assert store.get("k") is None


class TestRedisCacheStore:
    def test_set_uses_expiry(self):
        client = MagicMock()
        RedisCacheStore(client).set("k", "v", 50)

        client.set.assert_called_once_with("k", "v", ex=50)

    def test_tag_writes_set_and_expiry(self):
        client = MagicMock()
        pipe = client.pipeline.return_value

        RedisCacheStore(client).tag("results", "k", 50)

        pipe.sadd.assert_called_once_with(TAG_PREFIX + "results", "k")
        pipe.execute.assert_called_once()

    def test_redis_errors_become_cache_unavailable(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("refused")

        assert ResultCache(RedisCacheStore(client)).get_json("k") is None


def test_store_interface_annotations_resolve():
    hints = typing.get_type_hints(CacheStore.tagged)

    assert hints["return"] == set[str]


def test_build_store_without_url_is_in_memory():
    assert isinstance(build_store(""), MemoryCacheStore)
