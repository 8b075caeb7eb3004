from typing import Any, Dict, List

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session, aliased

from recipe_match.models import (
    Ingredient,
    IngredientCategory,
    IngredientCategoryLink,
    IngredientCategoryTranslation,
    IngredientTranslation,
    RecipeIngredient,
)


def get_categories(db: Session, language: str) -> List[Dict[str, Any]]:
    rows = db.execute(
        select(IngredientCategory, IngredientCategoryTranslation)
        .join(
            IngredientCategoryTranslation,
            and_(
                IngredientCategoryTranslation.category_id == IngredientCategory.id,
                IngredientCategoryTranslation.language == language,
            ),
        )
        .where(IngredientCategory.is_active.is_(True))
        .order_by(IngredientCategory.sort_order, IngredientCategory.id)
    ).all()
    return [
        {"id": c.id, "name": t.name, "description": t.description, "icon": c.icon}
        for c, t in rows
    ]


def get_grouped_ingredients(db: Session, language: str) -> List[Dict[str, Any]]:
    """Active ingredients grouped under their categories, names resolved for ``language``."""
    cat_tr = aliased(IngredientCategoryTranslation)
    ing_tr = aliased(IngredientTranslation)
    rows = db.execute(
        select(
            IngredientCategory.id,
            IngredientCategory.icon,
            cat_tr.name,
            Ingredient.id,
            Ingredient.name,
            ing_tr.name,
        )
        .join(IngredientCategoryLink, IngredientCategoryLink.category_id == IngredientCategory.id)
        .join(Ingredient, Ingredient.id == IngredientCategoryLink.ingredient_id)
        .outerjoin(cat_tr, and_(cat_tr.category_id == IngredientCategory.id, cat_tr.language == language))
        .outerjoin(ing_tr, and_(ing_tr.ingredient_id == Ingredient.id, ing_tr.language == language))
        .where(Ingredient.is_active.is_(True), IngredientCategory.is_active.is_(True))
        .order_by(IngredientCategory.sort_order, IngredientCategory.id, Ingredient.id)
    ).all()

    grouped: Dict[int, Dict[str, Any]] = {}
    for cat_id, icon, cat_name, ing_id, primary_name, translated_name in rows:
        group = grouped.setdefault(
            cat_id,
            {"id": cat_id, "name": cat_name or "Unknown", "icon": icon, "ingredients": []},
        )
        group["ingredients"].append({"id": ing_id, "name": translated_name or primary_name})
    return list(grouped.values())


def get_popular_ingredients(db: Session, limit: int) -> List[Dict[str, Any]]:
    recipe_count = func.count(RecipeIngredient.id).label("recipe_count")
    rows = db.execute(
        select(Ingredient.id, Ingredient.name, recipe_count)
        .join(RecipeIngredient, RecipeIngredient.ingredient_id == Ingredient.id)
        .where(Ingredient.is_active.is_(True))
        .group_by(Ingredient.id, Ingredient.name)
        .order_by(recipe_count.desc(), Ingredient.id)
        .limit(limit)
    ).all()
    return [{"id": i, "name": n, "recipeCount": int(c)} for i, n, c in rows]
