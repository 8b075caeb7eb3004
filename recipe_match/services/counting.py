"""
Total counts for recipe listings, cached apart from the listings themselves.

Without ingredients, ``total`` is every recipe passing the language, tag and
search filters. With ingredients, ``total`` is only the recipes the caller
can make completely (every scorable ingredient covered), even though the
listing pages also show partial matches.
"""
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from recipe_match.models import Recipe
from recipe_match.schemas import RecipeQuery
from recipe_match.services.cache import TTL_MATCH_COUNT, TTL_PLAIN_COUNT, CacheKeys, CacheStore
from recipe_match.services.filters import build_predicates
from recipe_match.services.recipe_service import with_search_fallback
from recipe_match.services.scoring import match_stats_subquery


def count_filtered(db: Session, q: RecipeQuery, search_mode: str) -> int:
    stmt = select(func.count()).select_from(Recipe).where(*build_predicates(q, search_mode))
    return int(db.execute(stmt).scalar_one())


def count_perfect_matches(db: Session, q: RecipeQuery, search_mode: str) -> int:
    stats = match_stats_subquery(q.ingredient_ids)
    stmt = (
        select(func.count())
        .select_from(Recipe)
        .join(stats, stats.c.recipe_id == Recipe.id)
        .where(*build_predicates(q, search_mode), stats.c.matched_count == stats.c.total_count)
    )
    return int(db.execute(stmt).scalar_one())


class CountEstimator:
    def __init__(self, cache: CacheStore):
        self.cache = cache

    def total(self, db: Session, q: RecipeQuery) -> int:
        if q.has_ingredients:
            key, ttl, counter = CacheKeys.match_count(q), TTL_MATCH_COUNT, count_perfect_matches
        else:
            key, ttl, counter = CacheKeys.plain_count(q), TTL_PLAIN_COUNT, count_filtered
        return int(self.cache.get_or_compute(key, ttl, lambda: with_search_fallback(db, q, lambda mode: counter(db, q, mode))))
