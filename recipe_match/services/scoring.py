"""
Ingredient match scoring.

A recipe's score covers every associated ingredient row, required or
optional; rows whose ingredient could not be resolved (null id) are left out
of both sides of the ratio. The SQL aggregate and the Python scorer below
implement the same rule so ordering and displayed percentages agree.
"""
from typing import Any, Dict, Iterable, List

from sqlalchemy import Subquery, case, func, select

from recipe_match.models import RecipeIngredient


def match_percentage(matched: int, total: int) -> int:
    """Rounded half-up, 0 when there is nothing to score."""
    if total <= 0:
        return 0
    return (200 * matched + total) // (2 * total)


def score_rows(rows: Iterable[Dict[str, Any]], ingredient_ids: Iterable[int]) -> Dict[str, Any]:
    wanted = set(ingredient_ids)
    scorable = [r for r in rows if r.get("ingredientId") is not None]
    missing: List[Dict[str, Any]] = [r for r in scorable if r["ingredientId"] not in wanted]
    matched = len(scorable) - len(missing)
    return {
        "matchedCount": matched,
        "totalCount": len(scorable),
        "matchPercentage": match_percentage(matched, len(scorable)),
        "missingIngredients": missing,
    }


def match_stats_subquery(ingredient_ids: List[int]) -> Subquery:
    """(recipe_id, matched_count, total_count) for every recipe with scorable rows."""
    return (
        select(
            RecipeIngredient.recipe_id.label("recipe_id"),
            func.sum(case((RecipeIngredient.ingredient_id.in_(ingredient_ids), 1), else_=0)).label("matched_count"),
            func.count(RecipeIngredient.id).label("total_count"),
        )
        .where(RecipeIngredient.ingredient_id.is_not(None))
        .group_by(RecipeIngredient.recipe_id)
        .subquery("match_stats")
    )


def match_pct_column(stats: Subquery):
    return func.round(stats.c.matched_count * 100.0 / stats.c.total_count).label("match_pct")
