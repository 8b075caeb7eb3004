"""Cache store, key builder and invalidation tests"""

import threading
import time
from unittest.mock import MagicMock

import pytest
import redis

from recipe_match.schemas import RecipeQuery
from recipe_match.services.cache import (
    TTL_FILTERED_LISTING,
    TTL_PLAIN_LISTING,
    CacheKeys,
    CacheStore,
    ScanInvalidator,
    listing_ttl,
)


class TestCacheRoundTrip:
    def test_setex_then_get(self, cache, fake_redis):
        value = {"recipes": [{"id": 1, "tags": ["a"]}], "total": 1, "hasMore": False}

        assert cache.setex("recipes:x", 60, value)

        assert cache.get("recipes:x") == value
        assert fake_redis.ttls["recipes:x"] == 60

    def test_delete_makes_miss(self, cache):
        cache.setex("k", 60, [1, 2])

        assert cache.delete("k") == 1
        assert cache.get("k") is None

    def test_corrupt_entry_is_miss(self, cache, fake_redis):
        fake_redis.set("k", "{not json")

        assert cache.get("k") is None

    def test_get_or_compute_writes_back(self, cache):
        calls = []

        def compute():
            calls.append(1)
            return {"n": 1}

        assert cache.get_or_compute("k", 60, compute) == {"n": 1}
        assert cache.get_or_compute("k", 60, compute) == {"n": 1}
        assert len(calls) == 1

    def test_get_or_compute_keeps_falsy_values(self, cache):
        assert cache.get_or_compute("count", 60, lambda: 0) == 0
        assert cache.get("count") == 0

    def test_none_is_not_cached(self, cache, fake_redis):
        assert cache.get_or_compute("missing", 60, lambda: None) is None
        assert "missing" not in fake_redis.data


class TestFailOpen:
    def _broken_store(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("down")
        client.setex.side_effect = redis.ConnectionError("down")
        client.delete.side_effect = redis.ConnectionError("down")
        return CacheStore(client)

    def test_errors_become_misses(self):
        store = self._broken_store()

        assert store.get("k") is None
        assert store.setex("k", 60, 1) is False
        assert store.delete("k") == 0

    def test_compute_still_runs(self):
        store = self._broken_store()

        assert store.get_or_compute("k", 60, lambda: [1]) == [1]

    def test_undecodable_entry_is_miss(self):
        client = MagicMock()
        client.get.side_effect = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        store = CacheStore(client)

        assert store.get("k") is None
        assert store.get_or_compute("k", 60, lambda: {"n": 1}) == {"n": 1}
        client.setex.assert_called_once()


class TestSingleFlight:
    def test_concurrent_misses_compute_once(self, cache):
        calls = []
        results = []
        start = threading.Barrier(8)

        def compute():
            calls.append(1)
            time.sleep(0.2)
            return {"recipes": [], "total": 0}

        def worker():
            start.wait()
            results.append(cache.get_or_compute("recipes:plain:en:20:0:::", 60, compute))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(calls) == 1
        assert results == [{"recipes": [], "total": 0}] * 8
        assert cache._inflight == {}

    def test_lock_released_when_compute_fails(self, cache):
        def compute():
            raise RuntimeError("store down")

        with pytest.raises(RuntimeError):
            cache.get_or_compute("k", 60, compute)

        assert cache._inflight == {}
        assert cache.get_or_compute("k", 60, lambda: 1) == 1


class TestCacheKeys:
    def test_id_order_does_not_matter(self):
        a = RecipeQuery(language="en", ingredient_ids=[3, 1, 2], diet_tag_ids=[5, 4])
        b = RecipeQuery(language="en", ingredient_ids=[1, 2, 3, 3], diet_tag_ids=[4, 5])

        assert CacheKeys.recipe_listing(a) == CacheKeys.recipe_listing(b)
        assert CacheKeys.match_count(a) == CacheKeys.match_count(b)

    def test_listing_key_grammar(self):
        q = RecipeQuery(language="en", ingredient_ids=[2, 1], meal_type_ids=[7], search="Rice", limit=10)

        assert CacheKeys.recipe_listing(q) == "recipes:en:10:0:1,2::7::rice"

    def test_plain_listing(self):
        q = RecipeQuery(language="en", kitchen_ids=[2])

        assert CacheKeys.recipe_listing(q) == "recipes:plain:en:20:0:::2"
        assert listing_ttl(q) == TTL_PLAIN_LISTING

    def test_filtered_listing_ttl(self):
        assert listing_ttl(RecipeQuery(language="en", ingredient_ids=[1])) == TTL_FILTERED_LISTING
        assert listing_ttl(RecipeQuery(language="en", search="x")) == TTL_FILTERED_LISTING

    def test_pagination_is_part_of_key(self):
        a = RecipeQuery(language="en", offset=0)
        b = RecipeQuery(language="en", offset=20)

        assert CacheKeys.recipe_listing(a) != CacheKeys.recipe_listing(b)

    def test_saved_keys(self):
        assert CacheKeys.saved_recipes(7, False) == "saved_recipes:7"
        assert CacheKeys.saved_recipes(7, True) == "saved_recipes:7:full"


class TestInvalidation:
    def test_scan_clears_prefix_in_batches(self, fake_redis):
        for i in range(5):
            fake_redis.setex(f"recipes:{i}", 60, "1")
        fake_redis.setex("tags:all", 60, "[]")

        removed = ScanInvalidator(fake_redis, batch_size=2).clear_prefix("recipes:")

        assert removed == 5
        assert list(fake_redis.data) == ["tags:all"]

    def test_clear_actions(self, cache, fake_redis):
        for key in ("recipes:a", "recipe_count:plain:en", "categories:en", "grouped_ingredients:en",
                    "tags:all", "ingredient_stats:popular:10"):
            fake_redis.setex(key, 60, "1")

        assert cache.run_admin_action("clear-ingredients") == {"success": True, "cleared": 2}
        assert cache.run_admin_action("clear-recipe-counts")["cleared"] == 1
        assert cache.run_admin_action("clear-recipes")["cleared"] == 1
        assert sorted(fake_redis.data) == ["ingredient_stats:popular:10", "tags:all"]

    def test_stats_and_clear_all(self, cache, fake_redis):
        fake_redis.setex("a", 60, "1")

        stats = cache.run_admin_action("stats")
        assert stats["stats"] == {"keys": 1, "usedMemory": "1.00M"}

        assert cache.run_admin_action("clear-all")["success"] is True
        assert fake_redis.data == {}

    def test_custom_invalidator(self, fake_redis):
        invalidator = MagicMock()
        invalidator.clear_prefix.return_value = 3
        store = CacheStore(fake_redis, invalidator=invalidator)

        assert store.run_admin_action("clear-tags") == {"success": True, "cleared": 3}
        invalidator.clear_prefix.assert_called_once_with("tags:")
