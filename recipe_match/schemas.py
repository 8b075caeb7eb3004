from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

MAX_LIMIT = 40
MAX_OFFSET = 10000
DEFAULT_LIMIT = 20


def _canonical_ids(values: List[int]) -> List[int]:
    return sorted(set(values))


class RecipeQuery(BaseModel):
    """Validated, canonical listing parameters. Id lists are deduplicated and sorted."""

    ingredient_ids: List[int] = Field(default_factory=list)
    diet_tag_ids: List[int] = Field(default_factory=list)
    meal_type_ids: List[int] = Field(default_factory=list)
    kitchen_ids: List[int] = Field(default_factory=list)
    language: str
    search: Optional[str] = None
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    @field_validator("ingredient_ids", "diet_tag_ids", "meal_type_ids", "kitchen_ids")
    @classmethod
    def _ids(cls, v: List[int]) -> List[int]:
        return _canonical_ids(v)

    @field_validator("language")
    @classmethod
    def _language(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("language must be a non-empty string")
        return v

    @field_validator("search")
    @classmethod
    def _search(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("limit")
    @classmethod
    def _limit(cls, v: int) -> int:
        return min(max(v, 1), MAX_LIMIT)

    @field_validator("offset")
    @classmethod
    def _offset(cls, v: int) -> int:
        return min(max(v, 0), MAX_OFFSET)

    @property
    def has_ingredients(self) -> bool:
        return bool(self.ingredient_ids)

    @property
    def is_plain(self) -> bool:
        return not self.ingredient_ids and self.search is None


class SaveRecipeRequest(BaseModel):
    recipe_id: int
