"""
Engine facade: the only surface callers use.

Each operation validates its input, goes through the read-through cache and
returns a ``Result``. Validation problems, missing rows and store failures
come back as typed errors so the caller can tell them apart without catching
exceptions.
"""
from typing import Any, Callable, Dict, Iterable, List, Mapping

import redis
import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from recipe_match.config import Settings
from recipe_match.database import Database
from recipe_match.errors import ErrorKind, Result, StoreUnavailable
from recipe_match.schemas import RecipeQuery
from recipe_match.services import ingredient_service, recipe_service, saved_service
from recipe_match.services.cache import (
    ADMIN_ACTIONS,
    TTL_CATEGORIES,
    TTL_GROUPED_INGREDIENTS,
    TTL_POPULAR_INGREDIENTS,
    TTL_POPULAR_RECIPES,
    TTL_RECIPE_DETAIL,
    TTL_SAVED_RECIPES,
    CacheKeys,
    CacheStore,
    listing_ttl,
)
from recipe_match.services.counting import CountEstimator
from recipe_match.services.tags import TagResolver

log = structlog.get_logger(__name__)

POPULAR_LIMIT = 10


class RecipeEngine:
    def __init__(self, db: Database, cache: CacheStore):
        self.db = db
        self.cache = cache
        self.tags = TagResolver(db, cache)
        self.counter = CountEstimator(cache)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RecipeEngine":
        return cls(Database.from_settings(settings), CacheStore.from_settings(settings))

    def _run(self, op: str, fn: Callable[[], Any]) -> Result:
        try:
            return Result.success(fn())
        except (SQLAlchemyError, StoreUnavailable) as e:
            log.exception("store_failure", op=op)
            return Result.failure(ErrorKind.TRANSIENT, f"Failed to {op}", detail=e.__class__.__name__)

    # ------------------------------
    # listings
    # ------------------------------

    def find_recipes(self, params: RecipeQuery | Mapping[str, Any]) -> Result:
        """Ranked, paginated recipes: ``{"recipes": [...], "total": int, "hasMore": bool}``."""
        try:
            q = params if isinstance(params, RecipeQuery) else RecipeQuery.model_validate(params)
        except ValidationError as e:
            return Result.failure(
                ErrorKind.VALIDATION,
                "Invalid recipe query",
                detail=e.errors(include_url=False, include_context=False),
            )
        key = CacheKeys.recipe_listing(q)
        return self._run(
            "fetch recipes",
            lambda: self.cache.get_or_compute(key, listing_ttl(q), lambda: self._compute_listing(q)),
        )

    def _compute_listing(self, q: RecipeQuery) -> Dict[str, Any]:
        lookup = self.tags.lookup()
        with self.db.session() as session:
            page, has_more = recipe_service.list_recipes(session, q, lookup)
            total = self.counter.total(session, q)
        log.info(
            "recipes_listed",
            language=q.language,
            ingredients=len(q.ingredient_ids),
            search=q.search,
            returned=len(page),
            total=total,
            has_more=has_more,
        )
        return {"recipes": page, "total": total, "hasMore": has_more}

    def popular_recipes(self, language: str, limit: int = POPULAR_LIMIT) -> Result:
        if not language or not language.strip():
            return Result.failure(ErrorKind.VALIDATION, 'Missing or invalid "lang" parameter')
        language = language.strip()
        limit = min(max(limit, 1), 40)

        def compute():
            with self.db.session() as session:
                return recipe_service.popular_recipes(session, language, limit)

        return self._run(
            "fetch popular recipes",
            lambda: self.cache.get_or_compute(CacheKeys.popular_recipes(language, limit), TTL_POPULAR_RECIPES, compute),
        )

    # ------------------------------
    # single recipe
    # ------------------------------

    def get_recipe(self, recipe_id: int, ingredient_ids: Iterable[int] = (), language: str | None = None) -> Result:
        ids = sorted(set(ingredient_ids))
        key = CacheKeys.recipe_detail(recipe_id, ids, language)

        def compute():
            lookup = self.tags.lookup()
            with self.db.session() as session:
                return recipe_service.get_recipe_by_id(session, recipe_id, ids, language, lookup)

        result = self._run(
            "fetch recipe",
            lambda: self.cache.get_or_compute(key, TTL_RECIPE_DETAIL, compute),
        )
        if not result.ok:
            return result
        if result.value is None:
            return Result.not_found("Recipe not found")
        self._count_view(recipe_id)
        return result

    def _count_view(self, recipe_id: int) -> None:
        try:
            with self.db.session() as session:
                recipe_service.increment_views(session, recipe_id)
        except SQLAlchemyError as e:
            log.warning("view_count_failed", recipe_id=recipe_id, error=e.__class__.__name__)

    # ------------------------------
    # reference data
    # ------------------------------

    def list_tags(self) -> Result:
        return self._run("fetch tags", lambda: {"tags": self.tags.all_tags()})

    def categories(self, language: str = "en") -> Result:
        def compute():
            with self.db.session() as session:
                return ingredient_service.get_categories(session, language)

        return self._run(
            "fetch categories",
            lambda: self.cache.get_or_compute(CacheKeys.categories(language), TTL_CATEGORIES, compute),
        )

    def grouped_ingredients(self, language: str = "en") -> Result:
        def compute():
            with self.db.session() as session:
                return ingredient_service.get_grouped_ingredients(session, language)

        return self._run(
            "fetch grouped ingredients",
            lambda: self.cache.get_or_compute(
                CacheKeys.grouped_ingredients(language), TTL_GROUPED_INGREDIENTS, compute
            ),
        )

    def popular_ingredients(self, limit: int = POPULAR_LIMIT) -> Result:
        limit = min(max(limit, 1), 100)

        def compute():
            with self.db.session() as session:
                return ingredient_service.get_popular_ingredients(session, limit)

        return self._run(
            "fetch popular ingredients",
            lambda: self.cache.get_or_compute(
                CacheKeys.popular_ingredients(limit), TTL_POPULAR_INGREDIENTS, compute
            ),
        )

    # ------------------------------
    # saved recipes
    # ------------------------------

    def saved_recipes(self, user_id: int, full: bool = False) -> Result:
        def compute() -> List[Dict[str, Any]]:
            lookup = self.tags.lookup() if full else None
            with self.db.session() as session:
                recipes = saved_service.get_saved_recipes(session, user_id)
                if not full:
                    return [recipe_service.recipe_to_dict(r) for r in recipes]
                return recipe_service.hydrate(session, recipes, [], None, lookup)

        return self._run(
            "fetch saved recipes",
            lambda: self.cache.get_or_compute(CacheKeys.saved_recipes(user_id, full), TTL_SAVED_RECIPES, compute),
        )

    def _invalidate_saved(self, user_id: int) -> None:
        self.cache.delete(CacheKeys.saved_recipes(user_id, False), CacheKeys.saved_recipes(user_id, True))

    def save_recipe(self, user_id: int, recipe_id: int) -> Result:
        def run():
            with self.db.session() as session:
                return saved_service.save_recipe(session, user_id, recipe_id)

        result = self._run("save recipe", run)
        if not result.ok:
            return result
        if result.value is None:
            return Result.not_found("Recipe not found")
        self._invalidate_saved(user_id)
        return result

    def unsave_recipe(self, user_id: int, recipe_id: int) -> Result:
        def run():
            with self.db.session() as session:
                return saved_service.unsave_recipe(session, user_id, recipe_id)

        result = self._run("unsave recipe", run)
        if result.ok:
            self._invalidate_saved(user_id)
            return Result.success({"message": "Recipe unsaved", "removed": result.value})
        return result

    # ------------------------------
    # cache administration
    # ------------------------------

    def manage_cache(self, action: str) -> Result:
        if action not in ADMIN_ACTIONS:
            return Result.failure(
                ErrorKind.VALIDATION,
                f"Invalid action. Use: {', '.join(ADMIN_ACTIONS)}",
            )
        try:
            return Result.success(self.cache.run_admin_action(action))
        except redis.RedisError as e:
            log.exception("cache_admin_failed", action=action)
            return Result.failure(ErrorKind.TRANSIENT, "Failed to manage cache", detail=e.__class__.__name__)
