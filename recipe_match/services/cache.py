"""
Read-through cache in front of the relational store.

Redis is used as a blind byte store: values are JSON strings written with a
TTL. Every request-path call fails open, so a Redis outage or an unparsable
entry behaves like a miss and the caller falls through to the store.

Keys are built here and only here. Id lists are sorted and deduplicated and
fields keep a fixed order, so logically identical queries share one key.
"""
import json
import threading
from typing import Any, Callable, Iterable, Protocol

import redis
import structlog

from recipe_match.config import Settings
from recipe_match.schemas import RecipeQuery

log = structlog.get_logger(__name__)

ONE_HOUR = 3600
SIX_HOURS = 21600
SEVEN_DAYS = 604800

TTL_CATEGORIES = SEVEN_DAYS
TTL_GROUPED_INGREDIENTS = SEVEN_DAYS
TTL_TAGS = SEVEN_DAYS
TTL_RECIPE_DETAIL = SEVEN_DAYS
TTL_FILTERED_LISTING = SEVEN_DAYS
TTL_PLAIN_LISTING = ONE_HOUR
TTL_PLAIN_COUNT = ONE_HOUR
TTL_MATCH_COUNT = SEVEN_DAYS
TTL_SAVED_RECIPES = ONE_HOUR
TTL_POPULAR_RECIPES = ONE_HOUR
TTL_POPULAR_INGREDIENTS = SIX_HOURS

# admin action -> key prefixes it clears
CLEAR_ACTIONS: dict[str, tuple[str, ...]] = {
    "clear-recipes": ("recipes:",),
    "clear-ingredients": ("categories:", "grouped_ingredients:"),
    "clear-tags": ("tags:",),
    "clear-ingredient-stats": ("ingredient_stats:",),
    "clear-recipe-counts": ("recipe_count:",),
}
GLOBAL_ACTIONS = ("clear-all", "flush-all")
ADMIN_ACTIONS = ("stats", *CLEAR_ACTIONS, *GLOBAL_ACTIONS)


def _join_ids(ids: Iterable[int]) -> str:
    return ",".join(str(i) for i in sorted(set(ids)))


class CacheKeys:
    """Canonical key grammar: ``<resource-kind>:<parameter tuple>``."""

    @staticmethod
    def categories(language: str) -> str:
        return f"categories:{language}"

    @staticmethod
    def grouped_ingredients(language: str) -> str:
        return f"grouped_ingredients:{language}"

    @staticmethod
    def tags() -> str:
        return "tags:all"

    @staticmethod
    def recipe_detail(recipe_id: int, ingredient_ids: Iterable[int], language: str | None = None) -> str:
        return f"recipes:detail:{recipe_id}:{_join_ids(ingredient_ids)}:{language or ''}"

    @staticmethod
    def _tag_tuple(q: RecipeQuery) -> str:
        return f"{_join_ids(q.diet_tag_ids)}:{_join_ids(q.meal_type_ids)}:{_join_ids(q.kitchen_ids)}"

    @classmethod
    def recipe_listing(cls, q: RecipeQuery) -> str:
        if q.is_plain:
            return f"recipes:plain:{q.language}:{q.limit}:{q.offset}:{cls._tag_tuple(q)}"
        search = (q.search or "").lower()
        return (
            f"recipes:{q.language}:{q.limit}:{q.offset}:{_join_ids(q.ingredient_ids)}:"
            f"{cls._tag_tuple(q)}:{search}"
        )

    @classmethod
    def plain_count(cls, q: RecipeQuery) -> str:
        return f"recipe_count:plain:{q.language}:{cls._tag_tuple(q)}:{(q.search or '').lower()}"

    @classmethod
    def match_count(cls, q: RecipeQuery) -> str:
        return (
            f"recipe_count:match:{_join_ids(q.ingredient_ids)}:{cls._tag_tuple(q)}:"
            f"{q.language}:{(q.search or '').lower()}"
        )

    @staticmethod
    def saved_recipes(user_id: int, full: bool) -> str:
        return f"saved_recipes:{user_id}{':full' if full else ''}"

    @staticmethod
    def popular_recipes(language: str, limit: int) -> str:
        return f"recipes:popular:{language}:{limit}"

    @staticmethod
    def popular_ingredients(limit: int) -> str:
        return f"ingredient_stats:popular:{limit}"


def listing_ttl(q: RecipeQuery) -> int:
    return TTL_PLAIN_LISTING if q.is_plain else TTL_FILTERED_LISTING


class KeyInvalidator(Protocol):
    def clear_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``; return how many were removed."""
        ...


class ScanInvalidator:
    """Walks the keyspace with SCAN and deletes matches in batches."""

    def __init__(self, client: redis.Redis, batch_size: int = 500):
        self.client = client
        self.batch_size = batch_size

    def clear_prefix(self, prefix: str) -> int:
        removed = 0
        batch: list[str] = []
        for key in self.client.scan_iter(match=f"{prefix}*", count=self.batch_size):
            batch.append(key)
            if len(batch) >= self.batch_size:
                removed += self.client.delete(*batch)
                batch = []
        if batch:
            removed += self.client.delete(*batch)
        return removed


class CacheStore:
    def __init__(self, client: redis.Redis, invalidator: KeyInvalidator | None = None):
        self.client = client
        self.invalidator = invalidator or ScanInvalidator(client)
        self._inflight: dict[str, threading.Lock] = {}
        self._inflight_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheStore":
        client = redis.Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_socket_timeout,
        )
        return cls(client)

    # ---- request path: fail open ----

    def get(self, key: str) -> Any | None:
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            log.warning("cache_get_failed", key=key, error=str(e))
            return None
        except UnicodeDecodeError:
            # decode_responses clients decode inside get()
            log.warning("cache_corrupt_entry", key=key)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            log.warning("cache_corrupt_entry", key=key)
            return None

    def setex(self, key: str, ttl: int, value: Any) -> bool:
        payload = json.dumps(value)
        try:
            self.client.setex(key, ttl, payload)
            return True
        except redis.RedisError as e:
            log.warning("cache_set_failed", key=key, error=str(e))
            return False

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(self.client.delete(*keys))
        except redis.RedisError as e:
            log.warning("cache_delete_failed", keys=list(keys), error=str(e))
            return 0

    def _lock_for(self, key: str) -> threading.Lock:
        with self._inflight_guard:
            lock = self._inflight.get(key)
            if lock is None:
                lock = self._inflight[key] = threading.Lock()
            return lock

    def _release(self, key: str, lock: threading.Lock) -> None:
        with self._inflight_guard:
            if not lock.locked() and self._inflight.get(key) is lock:
                del self._inflight[key]

    def get_or_compute(self, key: str, ttl: int, compute: Callable[[], Any]) -> Any:
        """
        Read-through lookup. ``compute`` runs on a miss and its result is written
        back unless it is None. Concurrent misses on one key in this process wait
        for the first computation instead of all hitting the store.
        """
        cached = self.get(key)
        if cached is not None:
            log.debug("cache_hit", key=key)
            return cached
        lock = self._lock_for(key)
        try:
            with lock:
                cached = self.get(key)
                if cached is not None:
                    log.debug("cache_hit", key=key, after_wait=True)
                    return cached
                log.debug("cache_miss", key=key)
                value = compute()
                if value is not None:
                    self.setex(key, ttl, value)
                return value
        finally:
            self._release(key, lock)

    # ---- admin path: errors propagate to the caller ----

    def clear_by_pattern(self, prefix: str) -> int:
        return self.invalidator.clear_prefix(prefix)

    def stats(self) -> dict[str, Any]:
        keys = self.client.dbsize()
        info = self.client.info("memory")
        return {"keys": int(keys), "usedMemory": info.get("used_memory_human", "unknown")}

    def flush_db(self) -> None:
        self.client.flushdb()

    def flush_all(self) -> None:
        self.client.flushall()

    def run_admin_action(self, action: str) -> dict[str, Any]:
        if action == "stats":
            return {"success": True, "stats": self.stats()}
        if action in CLEAR_ACTIONS:
            cleared = sum(self.clear_by_pattern(p) for p in CLEAR_ACTIONS[action])
            log.info("cache_cleared", action=action, cleared=cleared)
            return {"success": True, "cleared": cleared}
        if action == "clear-all":
            self.flush_db()
        elif action == "flush-all":
            self.flush_all()
        else:
            raise ValueError(f"Invalid action. Use: {', '.join(ADMIN_ACTIONS)}")
        log.info("cache_cleared", action=action)
        return {"success": True, "message": "All cache cleared"}
