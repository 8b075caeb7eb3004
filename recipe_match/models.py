from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    true,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase): ...


class Recipe(Base):
    __tablename__ = "recipes"
    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[str | None] = mapped_column(String(64), unique=True)
    title: Mapped[str] = mapped_column(String(300), index=True)
    description: Mapped[str | None] = mapped_column(Text)
    prep_time_min: Mapped[int | None] = mapped_column(Integer)
    rating: Mapped[int | None] = mapped_column(Integer)
    difficulty: Mapped[str | None] = mapped_column(String(40))
    image_url: Mapped[str | None] = mapped_column(String(500))
    instructions: Mapped[list[str] | None] = mapped_column(JSON)
    language: Mapped[str | None] = mapped_column(String(8))
    source_url: Mapped[str | None] = mapped_column(String(500))
    viewed: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())
    ingredients: Mapped[list["RecipeIngredient"]] = relationship(back_populates="recipe", cascade="all, delete-orphan")
    __table_args__ = (Index("ix_recipe_language_id", "language", "id"),)


class Ingredient(Base):
    __tablename__ = "ingredients"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    nutritional_data: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    translations: Mapped[list["IngredientTranslation"]] = relationship(cascade="all, delete-orphan")


class IngredientTranslation(Base):
    __tablename__ = "ingredient_translations"
    id: Mapped[int] = mapped_column(primary_key=True)
    ingredient_id: Mapped[int] = mapped_column(ForeignKey("ingredients.id", ondelete="CASCADE"))
    language: Mapped[str] = mapped_column(String(8))
    name: Mapped[str] = mapped_column(String(200))
    __table_args__ = (UniqueConstraint("ingredient_id", "language", name="uq_ingredient_language"),)


class IngredientCategory(Base):
    __tablename__ = "ingredient_categories"
    id: Mapped[int] = mapped_column(primary_key=True)
    icon: Mapped[str | None] = mapped_column(String(100))
    sort_order: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())


class IngredientCategoryTranslation(Base):
    __tablename__ = "ingredient_category_translations"
    id: Mapped[int] = mapped_column(primary_key=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("ingredient_categories.id", ondelete="CASCADE"))
    language: Mapped[str] = mapped_column(String(8))
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text)
    __table_args__ = (UniqueConstraint("category_id", "language", name="uq_category_language"),)


class IngredientCategoryLink(Base):
    __tablename__ = "ingredient_category_links"
    ingredient_id: Mapped[int] = mapped_column(ForeignKey("ingredients.id", ondelete="CASCADE"), primary_key=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("ingredient_categories.id", ondelete="CASCADE"), primary_key=True)


class RecipeIngredient(Base):
    __tablename__ = "recipe_ingredients"
    id: Mapped[int] = mapped_column(primary_key=True)
    recipe_id: Mapped[int] = mapped_column(ForeignKey("recipes.id", ondelete="CASCADE"), index=True)
    # null when the parsed line did not resolve to a known ingredient
    ingredient_id: Mapped[int | None] = mapped_column(ForeignKey("ingredients.id", ondelete="SET NULL"), index=True)
    amount: Mapped[str | None] = mapped_column(String(100))
    line: Mapped[str | None] = mapped_column(String(300))
    is_required: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    recipe: Mapped["Recipe"] = relationship(back_populates="ingredients")
    __table_args__ = (Index("ix_recipe_ingredient_pair", "recipe_id", "ingredient_id"),)


class _TagColumns:
    id: Mapped[int] = mapped_column(primary_key=True)
    tag: Mapped[str] = mapped_column(String(100), unique=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True)
    name: Mapped[str] = mapped_column(String(200))


class Diet(_TagColumns, Base):
    __tablename__ = "diets"


class MealType(_TagColumns, Base):
    __tablename__ = "meal_types"


class Kitchen(_TagColumns, Base):
    __tablename__ = "kitchens"


class RecipeDiet(Base):
    __tablename__ = "recipe_diets"
    recipe_id: Mapped[int] = mapped_column(ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True)
    tag_id: Mapped[int] = mapped_column("diet_id", ForeignKey("diets.id", ondelete="CASCADE"), primary_key=True)


class RecipeMealType(Base):
    __tablename__ = "recipe_meal_types"
    recipe_id: Mapped[int] = mapped_column(ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True)
    tag_id: Mapped[int] = mapped_column("meal_type_id", ForeignKey("meal_types.id", ondelete="CASCADE"), primary_key=True)


class RecipeKitchen(Base):
    __tablename__ = "recipe_kitchens"
    recipe_id: Mapped[int] = mapped_column(ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True)
    tag_id: Mapped[int] = mapped_column("kitchen_id", ForeignKey("kitchens.id", ondelete="CASCADE"), primary_key=True)


class SavedRecipe(Base):
    __tablename__ = "saved_recipes"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    recipe_id: Mapped[int] = mapped_column(ForeignKey("recipes.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())
    recipe: Mapped["Recipe"] = relationship()
    __table_args__ = (UniqueConstraint("user_id", "recipe_id", name="uq_saved_user_recipe"),)


# tag kind -> (tag model, link model)
TAG_AXES = {
    "diet": (Diet, RecipeDiet),
    "meal_type": (MealType, RecipeMealType),
    "kitchen": (Kitchen, RecipeKitchen),
}
