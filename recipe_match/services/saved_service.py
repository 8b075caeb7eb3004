from typing import Any, Dict, List

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recipe_match.models import Recipe, SavedRecipe

SAVED_LIMIT = 100


def get_saved_recipes(db: Session, user_id: int, limit: int = SAVED_LIMIT) -> List[Recipe]:
    return list(
        db.execute(
            select(Recipe)
            .join(SavedRecipe, SavedRecipe.recipe_id == Recipe.id)
            .where(SavedRecipe.user_id == user_id)
            .order_by(SavedRecipe.created_at.desc(), SavedRecipe.id.desc())
            .limit(limit)
        ).scalars().all()
    )


def _saved_to_dict(s: SavedRecipe) -> Dict[str, Any]:
    return {
        "id": s.id,
        "userId": s.user_id,
        "recipeId": s.recipe_id,
        "createdAt": s.created_at.isoformat() if s.created_at else None,
    }


def _find(db: Session, user_id: int, recipe_id: int) -> SavedRecipe | None:
    return db.execute(
        select(SavedRecipe).where(SavedRecipe.user_id == user_id, SavedRecipe.recipe_id == recipe_id)
    ).scalar_one_or_none()


def save_recipe(db: Session, user_id: int, recipe_id: int) -> Dict[str, Any] | None:
    """Idempotent. None when the recipe does not exist."""
    if db.get(Recipe, recipe_id) is None:
        return None
    existing = _find(db, user_id, recipe_id)
    if existing:
        return _saved_to_dict(existing)
    row = SavedRecipe(user_id=user_id, recipe_id=recipe_id)
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        # saved concurrently by another request
        db.rollback()
        existing = _find(db, user_id, recipe_id)
        # recipe deleted underneath us
        return _saved_to_dict(existing) if existing else None
    db.refresh(row)
    return _saved_to_dict(row)


def unsave_recipe(db: Session, user_id: int, recipe_id: int) -> bool:
    res = db.execute(
        delete(SavedRecipe).where(SavedRecipe.user_id == user_id, SavedRecipe.recipe_id == recipe_id)
    )
    db.commit()
    return bool(res.rowcount)
