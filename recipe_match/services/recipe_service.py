# recipe_match/services/recipe_service.py
from typing import Any, Callable, Dict, List, Tuple, TypeVar

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from recipe_match.models import TAG_AXES, Ingredient, IngredientTranslation, Recipe, RecipeIngredient
from recipe_match.schemas import RecipeQuery
from recipe_match.services.filters import FULL_TEXT, SUBSTRING, build_predicates
from recipe_match.services.scoring import match_pct_column, match_stats_subquery, score_rows

log = structlog.get_logger(__name__)

T = TypeVar("T")

TagLookup = Dict[str, Dict[int, Dict[str, Any]]]

# tag kind -> key in the recipe payload
TAG_FIELDS = {"diet": "dietTags", "meal_type": "mealTypes", "kitchen": "kitchens"}


def recipe_to_dict(r: Recipe) -> Dict[str, Any]:
    return {
        "id": r.id,
        "title": r.title,
        "description": r.description,
        "prepTime": r.prep_time_min,
        "rating": r.rating,
        "difficulty": r.difficulty,
        "imageUrl": r.image_url,
        "instructions": list(r.instructions or []),
        "language": r.language,
        "sourceUrl": r.source_url,
        "viewed": r.viewed or 0,
        "createdAt": r.created_at.isoformat() if r.created_at else None,
    }


def with_search_fallback(db: Session, q: RecipeQuery, run: Callable[[str], T]) -> T:
    """Run with full-text search; if the store rejects it, retry as a title substring match."""
    if not q.search:
        return run(FULL_TEXT)
    try:
        return run(FULL_TEXT)
    except SQLAlchemyError as e:
        db.rollback()
        log.info("fts_fallback", search=q.search, error=e.__class__.__name__)
        return run(SUBSTRING)


# ------------------------------
# batched association loading
# ------------------------------

def load_recipe_ingredients(
    db: Session, recipe_ids: List[int], language: str | None
) -> Dict[int, List[Dict[str, Any]]]:
    """All ingredient rows for the given recipes in one query, names resolved for ``language``."""
    if not recipe_ids:
        return {}
    tr = aliased(IngredientTranslation)
    rows = db.execute(
        select(RecipeIngredient, Ingredient.name, tr.name)
        .outerjoin(Ingredient, RecipeIngredient.ingredient_id == Ingredient.id)
        .outerjoin(tr, and_(tr.ingredient_id == Ingredient.id, tr.language == language))
        .where(RecipeIngredient.recipe_id.in_(recipe_ids))
        .order_by(RecipeIngredient.recipe_id, RecipeIngredient.id)
    ).all()

    out: Dict[int, List[Dict[str, Any]]] = {rid: [] for rid in recipe_ids}
    for ri, primary_name, translated_name in rows:
        out[ri.recipe_id].append({
            "id": ri.id,
            "ingredientId": ri.ingredient_id,
            "name": translated_name or primary_name,
            "amount": ri.amount,
            "line": ri.line,
            "isRequired": bool(ri.is_required),
        })
    return out


def load_tag_links(db: Session, recipe_ids: List[int]) -> Dict[str, Dict[int, List[int]]]:
    """kind -> {recipe id: [tag ids]}, one query per tag axis."""
    links: Dict[str, Dict[int, List[int]]] = {kind: {} for kind in TAG_AXES}
    if not recipe_ids:
        return links
    for kind, (_, link_model) in TAG_AXES.items():
        rows = db.execute(
            select(link_model.recipe_id, link_model.tag_id)
            .where(link_model.recipe_id.in_(recipe_ids))
            .order_by(link_model.recipe_id, link_model.tag_id)
        ).all()
        for rid, tag_id in rows:
            links[kind].setdefault(rid, []).append(tag_id)
    return links


def compose(
    recipes: List[Recipe],
    ingredients: Dict[int, List[Dict[str, Any]]],
    tag_links: Dict[str, Dict[int, List[int]]],
    tag_lookup: TagLookup,
    ingredient_ids: List[int],
) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for r in recipes:
        rows = ingredients.get(r.id, [])
        score = score_rows(rows, ingredient_ids)
        item = recipe_to_dict(r)
        item["ingredients"] = rows
        item["matchedCount"] = score["matchedCount"]
        item["totalCount"] = score["totalCount"]
        item["matchPercentage"] = score["matchPercentage"]
        item["missingIngredients"] = score["missingIngredients"]
        for kind, field in TAG_FIELDS.items():
            known = tag_lookup.get(kind, {})
            item[field] = [known[t] for t in tag_links[kind].get(r.id, []) if t in known]
        out.append(item)
    return out


def hydrate(
    db: Session, recipes: List[Recipe], ingredient_ids: List[int], language: str | None, tag_lookup: TagLookup
) -> List[Dict[str, Any]]:
    ids = [r.id for r in recipes]
    return compose(
        recipes,
        load_recipe_ingredients(db, ids, language),
        load_tag_links(db, ids),
        tag_lookup,
        ingredient_ids,
    )


# ------------------------------
# listings
# ------------------------------

def fetch_page(db: Session, q: RecipeQuery, search_mode: str) -> Tuple[List[Recipe], bool]:
    """One page of recipes, requested as limit+1 rows to derive hasMore."""
    preds = build_predicates(q, search_mode)
    if not q.has_ingredients:
        stmt = select(Recipe).where(*preds).order_by(Recipe.id.desc())
        rows = list(db.execute(stmt.limit(q.limit + 1).offset(q.offset)).scalars().all())
    else:
        stats = match_stats_subquery(q.ingredient_ids)
        pct = match_pct_column(stats)
        stmt = (
            select(Recipe, pct)
            .join(stats, stats.c.recipe_id == Recipe.id)
            .where(*preds, stats.c.matched_count > 0)
            .order_by(pct.desc(), Recipe.id.asc())
        )
        rows = [r for r, _ in db.execute(stmt.limit(q.limit + 1).offset(q.offset)).all()]

    has_more = len(rows) > q.limit
    return rows[: q.limit], has_more


def list_recipes(db: Session, q: RecipeQuery, tag_lookup: TagLookup) -> Tuple[List[Dict[str, Any]], bool]:
    recipes, has_more = with_search_fallback(db, q, lambda mode: fetch_page(db, q, mode))
    return hydrate(db, recipes, q.ingredient_ids, q.language, tag_lookup), has_more


# ------------------------------
# single recipe
# ------------------------------

def get_recipe_by_id(
    db: Session, recipe_id: int, ingredient_ids: List[int], language: str | None, tag_lookup: TagLookup
) -> Dict[str, Any] | None:
    r = db.get(Recipe, recipe_id)
    if not r:
        return None
    [item] = hydrate(db, [r], ingredient_ids, language or r.language, tag_lookup)
    return item


def increment_views(db: Session, recipe_id: int) -> None:
    db.execute(update(Recipe).where(Recipe.id == recipe_id).values(viewed=Recipe.viewed + 1))
    db.commit()


def popular_recipes(db: Session, language: str, limit: int) -> List[Dict[str, Any]]:
    rows = db.execute(
        select(Recipe)
        .where(Recipe.language == language)
        .order_by(Recipe.viewed.desc(), Recipe.id.asc())
        .limit(limit)
    ).scalars().all()
    return [recipe_to_dict(r) for r in rows]
