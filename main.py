from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from recipe_match.config import get_settings
from recipe_match.engine import RecipeEngine
from recipe_match.errors import ErrorKind, Result
from recipe_match.logging_setup import configure_logging
from recipe_match.schemas import SaveRecipeRequest

app = FastAPI(title="Fridge → Recipes API", version="0.2.0")

STATUS = {ErrorKind.VALIDATION: 400, ErrorKind.NOT_FOUND: 404, ErrorKind.TRANSIENT: 503}

_engine: RecipeEngine | None = None


def get_engine() -> RecipeEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        configure_logging(settings.log_level, settings.log_json)
        _engine = RecipeEngine.from_settings(settings)
        _engine.db.connect()
    return _engine


def _respond(result: Result):
    if result.ok:
        return result.value
    err = result.error
    return JSONResponse(status_code=STATUS[err.kind], content={"message": err.message, "detail": err.detail})


def _ids(values: Optional[List[str]]) -> List[int]:
    """Accept both ?x=1&x=2 and ?x=1,2."""
    out: List[int] = []
    for raw in values or []:
        for part in raw.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                out.append(int(part))
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Invalid id: {part!r}")
    return out


@app.get("/health")
def health(): return {"status": "ok"}


@app.get("/recipes")
def recipes(
    lang: Optional[str] = None,
    ingredients: Optional[List[str]] = Query(None),
    dietTags: Optional[List[str]] = Query(None),
    mealType: Optional[List[str]] = Query(None),
    country: Optional[List[str]] = Query(None),
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    engine: RecipeEngine = Depends(get_engine),
):
    if not lang:
        raise HTTPException(status_code=400, detail='Missing or invalid "lang" parameter')
    return _respond(engine.find_recipes({
        "language": lang,
        "ingredient_ids": _ids(ingredients),
        "diet_tag_ids": _ids(dietTags),
        "meal_type_ids": _ids(mealType),
        "kitchen_ids": _ids(country),
        "search": search,
        "limit": limit,
        "offset": offset,
    }))


@app.get("/recipes/popular")
def popular_recipes(lang: str, limit: int = 10, engine: RecipeEngine = Depends(get_engine)):
    return _respond(engine.popular_recipes(lang, limit))


@app.get("/recipes/{rid}")
def recipe_detail(
    rid: int,
    ingredients: Optional[List[str]] = Query(None),
    lang: Optional[str] = None,
    engine: RecipeEngine = Depends(get_engine),
):
    return _respond(engine.get_recipe(rid, _ids(ingredients), lang))


@app.get("/tags")
def tags(engine: RecipeEngine = Depends(get_engine)):
    return _respond(engine.list_tags())


@app.get("/ingredients/categories")
def categories(language: str = "en", engine: RecipeEngine = Depends(get_engine)):
    return _respond(engine.categories(language))


@app.get("/ingredients/grouped")
def grouped_ingredients(lang: str = "en", engine: RecipeEngine = Depends(get_engine)):
    return _respond(engine.grouped_ingredients(lang))


@app.get("/ingredients/popular")
def popular_ingredients(limit: int = 10, engine: RecipeEngine = Depends(get_engine)):
    return _respond(engine.popular_ingredients(limit))


# user id comes from the auth layer in front of this service
@app.get("/users/{user_id}/saved")
def saved_recipes(user_id: int, full: bool = False, engine: RecipeEngine = Depends(get_engine)):
    return _respond(engine.saved_recipes(user_id, full))


@app.post("/users/{user_id}/saved")
def save_recipe(user_id: int, body: SaveRecipeRequest, engine: RecipeEngine = Depends(get_engine)):
    return _respond(engine.save_recipe(user_id, body.recipe_id))


@app.delete("/users/{user_id}/saved/{recipe_id}")
def unsave_recipe(user_id: int, recipe_id: int, engine: RecipeEngine = Depends(get_engine)):
    return _respond(engine.unsave_recipe(user_id, recipe_id))


@app.post("/admin/cache")
def manage_cache(action: str, engine: RecipeEngine = Depends(get_engine)):
    return _respond(engine.manage_cache(action))
