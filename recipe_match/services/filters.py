"""
Predicate assembly for recipe listings.

Tag axes are OR'd within an axis and AND'd across axes. Text search comes in
two flavours: full-text (PostgreSQL ``simple`` configuration) and a title
substring match used when the store rejects the full-text form.
"""
from typing import List

from sqlalchemy import ColumnElement, exists, func, literal_column, select

from recipe_match.models import Recipe, RecipeDiet, RecipeKitchen, RecipeMealType
from recipe_match.schemas import RecipeQuery

FULL_TEXT = "fts"
SUBSTRING = "substring"

_SIMPLE_CONFIG = literal_column("'simple'::regconfig")


def _tag_exists(link_model, tag_ids: List[int]) -> ColumnElement[bool]:
    return exists(
        select(link_model.recipe_id).where(
            link_model.recipe_id == Recipe.id,
            link_model.tag_id.in_(tag_ids),
        )
    )


def search_predicate(search: str, mode: str = FULL_TEXT) -> ColumnElement[bool]:
    if mode == FULL_TEXT:
        return func.to_tsvector(_SIMPLE_CONFIG, Recipe.title).bool_op("@@")(
            func.plainto_tsquery(_SIMPLE_CONFIG, search)
        )
    return Recipe.title.icontains(search, autoescape=True)


def build_predicates(q: RecipeQuery, search_mode: str = FULL_TEXT) -> List[ColumnElement[bool]]:
    preds: List[ColumnElement[bool]] = [Recipe.language == q.language]
    for link_model, ids in (
        (RecipeDiet, q.diet_tag_ids),
        (RecipeMealType, q.meal_type_ids),
        (RecipeKitchen, q.kitchen_ids),
    ):
        if ids:
            preds.append(_tag_exists(link_model, ids))
    if q.search:
        preds.append(search_predicate(q.search, search_mode))
    return preds

