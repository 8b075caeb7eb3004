"""Shared fixtures: in-memory SQLite store, seeded recipes, in-memory Redis double."""

from fnmatch import fnmatchcase

import pytest

from recipe_match.database import Database, build_engine
from recipe_match.engine import RecipeEngine
from recipe_match.models import (
    Base,
    Diet,
    Ingredient,
    IngredientCategory,
    IngredientCategoryLink,
    IngredientCategoryTranslation,
    IngredientTranslation,
    Kitchen,
    MealType,
    Recipe,
    RecipeDiet,
    RecipeIngredient,
    RecipeKitchen,
    RecipeMealType,
)
from recipe_match.services.cache import CacheStore


class InMemoryRedis:
    """The slice of the redis-py client the cache uses. TTLs are recorded, not enforced."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def set(self, key, value):
        self.data[key] = value
        return True

    def delete(self, *keys):
        removed = 0
        for k in keys:
            if k in self.data:
                del self.data[k]
                self.ttls.pop(k, None)
                removed += 1
        return removed

    def scan_iter(self, match=None, count=None):
        for k in list(self.data):
            if match is None or fnmatchcase(k, match):
                yield k

    def dbsize(self):
        return len(self.data)

    def info(self, section=None):
        return {"used_memory_human": "1.00M"}

    def flushdb(self):
        self.data.clear()
        self.ttls.clear()

    def flushall(self):
        self.flushdb()


# ingredient ids
EGG, MILK, BUTTER, FLOUR, SUGAR, RICE = 1, 2, 3, 4, 5, 6


def seed(session):
    session.add_all([
        Ingredient(id=EGG, name="egg"),
        Ingredient(id=MILK, name="milk"),
        Ingredient(id=BUTTER, name="butter"),
        Ingredient(id=FLOUR, name="flour"),
        Ingredient(id=SUGAR, name="sugar"),
        Ingredient(id=RICE, name="rice"),
        Diet(id=1, tag="vegetarian", slug="vegetarian", name="Vegetarian"),
        Diet(id=2, tag="vegan", slug="vegan", name="Vegan"),
        MealType(id=1, tag="breakfast", slug="breakfast", name="Breakfast"),
        MealType(id=2, tag="dessert", slug="dessert", name="Dessert"),
        Kitchen(id=1, tag="french", slug="french", name="French"),
        Kitchen(id=2, tag="american", slug="american", name="American"),
        IngredientCategory(id=1, icon="cheese", sort_order=1),
        IngredientCategory(id=2, icon="wheat", sort_order=2),
    ])
    session.flush()
    session.add_all([
        IngredientTranslation(ingredient_id=EGG, language="fr", name="œuf"),
        IngredientTranslation(ingredient_id=MILK, language="fr", name="lait"),
        IngredientCategoryTranslation(category_id=1, language="en", name="Dairy & Eggs"),
        IngredientCategoryTranslation(category_id=1, language="fr", name="Produits laitiers"),
        IngredientCategoryTranslation(category_id=2, language="en", name="Grains"),
        IngredientCategoryLink(ingredient_id=EGG, category_id=1),
        IngredientCategoryLink(ingredient_id=MILK, category_id=1),
        IngredientCategoryLink(ingredient_id=BUTTER, category_id=1),
        IngredientCategoryLink(ingredient_id=FLOUR, category_id=2),
        IngredientCategoryLink(ingredient_id=RICE, category_id=2),
        Recipe(id=1, title="Pancakes", language="en", instructions=["Mix", "Fry"], prep_time_min=20),
        Recipe(id=2, title="Scrambled Eggs", language="en", instructions=["Whisk", "Cook"]),
        Recipe(id=3, title="Rice Pudding", language="en"),
        Recipe(id=4, title="Plain Rice", language="en"),
        Recipe(id=5, title="Crêpes", language="fr"),
        Recipe(id=6, title="Butter Toast", language="en"),
    ])
    session.flush()
    rows = {
        1: [EGG, MILK, BUTTER, FLOUR],
        2: [EGG, MILK],
        3: [RICE, MILK, SUGAR, None],
        4: [RICE],
        5: [EGG, MILK, FLOUR],
        6: [BUTTER, None],
    }
    for rid, ings in rows.items():
        for ing in ings:
            session.add(RecipeIngredient(
                recipe_id=rid,
                ingredient_id=ing,
                amount="1",
                line=f"1 {ing or 'mystery'}",
                is_required=ing != SUGAR,
            ))
    session.add_all([
        RecipeDiet(recipe_id=1, tag_id=1),
        RecipeDiet(recipe_id=2, tag_id=1),
        RecipeDiet(recipe_id=3, tag_id=1),
        RecipeMealType(recipe_id=1, tag_id=1),
        RecipeMealType(recipe_id=2, tag_id=1),
        RecipeMealType(recipe_id=3, tag_id=2),
        RecipeMealType(recipe_id=6, tag_id=1),
        RecipeKitchen(recipe_id=1, tag_id=2),
        RecipeKitchen(recipe_id=5, tag_id=1),
        RecipeKitchen(recipe_id=6, tag_id=2),
    ])
    session.commit()


@pytest.fixture
def database():
    db = Database(build_engine("sqlite://"), retries=1, retry_delay=0)
    Base.metadata.create_all(db.engine)
    with db.session() as session:
        seed(session)
    yield db
    db.dispose()


@pytest.fixture
def fake_redis():
    return InMemoryRedis()


@pytest.fixture
def cache(fake_redis):
    return CacheStore(fake_redis)


@pytest.fixture
def engine(database, cache):
    return RecipeEngine(database, cache)
