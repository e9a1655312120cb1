"""Tests for Supabase adapter implementations."""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from nutrition_assistant.adapters.supabase_conversation_repository import (
    SupabaseConversationRepository,
)
from nutrition_assistant.adapters.supabase_day_classification_repository import (
    SupabaseDayClassificationRepository,
)
from nutrition_assistant.adapters.supabase_food_log_repository import (
    SupabaseFoodLogRepository,
)
from nutrition_assistant.adapters.supabase_goal_repository import (
    SupabaseGoalRepository,
)
from nutrition_assistant.adapters.supabase_memory_repository import (
    SupabaseMemoryRepository,
)
from nutrition_assistant.adapters.supabase_nutrition_cache_repository import (
    SupabaseNutritionCacheRepository,
)
from nutrition_assistant.adapters.supabase_profile_repository import (
    SupabaseProfileRepository,
)
from nutrition_assistant.adapters.supabase_recipe_repository import (
    SupabaseRecipeRepository,
)
from nutrition_assistant.domain.goals import Goal
from nutrition_assistant.domain.recipes import Ingredient, ParsedRecipe
from nutrition_assistant.domain.users import HealthConstraint


@dataclass
class FakeResponse:
    data: list[dict[str, object]] | None


@dataclass
class FakeTable:
    name: str
    response_queue: dict[str, list[list[dict[str, object]]]] = field(
        default_factory=lambda: {
            "select": [],
            "insert": [],
            "update": [],
            "upsert": [],
            "delete": [],
        }
    )
    last_payload: object | None = None
    last_on_conflict: str | None = None
    last_filters: list[tuple[str, object]] = field(default_factory=list)

    def queue(self, action: str, data: list[dict[str, object]]) -> None:
        self.response_queue[action].append(data)

    def select(self, *_args) -> "FakeTable":
        self._action = "select"
        return self

    def insert(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "insert"
        self.last_payload = payload
        return self

    def update(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "update"
        self.last_payload = payload
        return self

    def upsert(  # type: ignore[no-untyped-def]
        self, payload, on_conflict: str | None = None
    ) -> "FakeTable":
        self._action = "upsert"
        self.last_payload = payload
        self.last_on_conflict = on_conflict
        return self

    def delete(self) -> "FakeTable":
        self._action = "delete"
        return self

    def eq(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def in_(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def ilike(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def limit(self, _count: int) -> "FakeTable":
        return self

    def order(self, _column: str, desc: bool = False) -> "FakeTable":
        return self

    def gte(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def lte(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def lt(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def execute(self) -> FakeResponse:
        action = getattr(self, "_action", "select")
        queue = self.response_queue.get(action, [])
        data = queue.pop(0) if queue else []
        return FakeResponse(data=data)


@dataclass
class FakeSupabaseClient:
    tables: dict[str, FakeTable] = field(default_factory=dict)

    def table(self, name: str) -> FakeTable:
        if name not in self.tables:
            self.tables[name] = FakeTable(name=name)
        return self.tables[name]


def test_supabase_conversation_repository() -> None:
    client = FakeSupabaseClient()
    table = client.table("chat_session_state")
    user_id = uuid4()
    table.queue("select", [{"state": {"recent_foods": ["toast"]}}])
    table.queue("upsert", [{"user_id": str(user_id)}])

    repository = SupabaseConversationRepository(client)
    state = repository.get_state(user_id)
    repository.save_state(user_id, {"recent_foods": []})

    assert state == {"recent_foods": ["toast"]}
    assert repository.get_state(user_id) is None
    assert table.last_on_conflict == "user_id"
    assert table.last_payload["state"] == {"recent_foods": []}  # type: ignore[index]


def test_supabase_conversation_repository_raises_when_save_fails() -> None:
    repository = SupabaseConversationRepository(FakeSupabaseClient())

    with pytest.raises(RuntimeError):
        repository.save_state(uuid4(), {})


def test_supabase_food_log_repository() -> None:
    client = FakeSupabaseClient()
    table = client.table("food_log")
    user_id = uuid4()
    recipe_id = uuid4()
    logged_at = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)
    table.queue("insert", [{"id": str(uuid4())}])
    table.queue(
        "select",
        [
            {
                "id": str(uuid4()),
                "food_name": "Chili",
                "portion": "1 serving(s)",
                "log_time": logged_at.isoformat(),
                "calories": 450,
                "protein_g": 30.5,
                "recipe_id": str(recipe_id),
                "extras": {"caffeine_mg": 0, "note": "spicy"},
            }
        ],
    )

    repository = SupabaseFoodLogRepository(client)
    repository.insert_entries(user_id, [{"food_name": "Chili", "calories": 450}])
    [entry] = repository.list_entries(
        user_id, logged_at, logged_at + timedelta(days=1)
    )

    assert table.last_payload == [
        {"user_id": str(user_id), "food_name": "Chili", "calories": 450}
    ]
    assert entry.calories == 450
    assert entry.nutrients["caffeine_mg"] == 0.0
    assert "note" not in entry.nutrients
    assert entry.recipe_id == recipe_id
    assert entry.log_time == logged_at


def test_supabase_goal_repository() -> None:
    client = FakeSupabaseClient()
    table = client.table("user_goals")
    user_id = uuid4()
    table.queue(
        "select",
        [
            {
                "nutrient": "sodium_mg",
                "target_value": 2300,
                "unit": "mg",
                "goal_type": "limit",
                "yellow_min": None,
                "green_min": 0.5,
                "red_min": None,
            }
        ],
    )
    table.queue("upsert", [{"nutrient": "protein_g"}])

    repository = SupabaseGoalRepository(client)
    [goal] = repository.list_goals(user_id)
    repository.upsert_goals(
        user_id, [Goal(nutrient="protein_g", target_value=150, unit="g")]
    )
    repository.delete_goals(user_id, ["fiber_g"])

    assert goal.goal_type == "limit"
    assert goal.thresholds() == {"green_min": 0.5}
    assert table.last_on_conflict == "user_id,nutrient"
    assert ("nutrient", ["fiber_g"]) in table.last_filters


def test_supabase_memory_repository() -> None:
    client = FakeSupabaseClient()
    table = client.table("user_learned_context")
    memory_id = uuid4()
    table.queue(
        "select",
        [{"id": str(memory_id), "category": "food", "fact": "Hates cilantro"}],
    )
    table.queue("insert", [{"id": str(uuid4())}])

    repository = SupabaseMemoryRepository(client)
    [memory] = repository.list_memories(uuid4(), ("food", "health"))
    repository.save_memory(uuid4(), "habits", "Skips breakfast", None)

    assert memory.id == memory_id
    assert memory.source_message is None
    assert ("category", ["food", "health"]) in table.last_filters
    assert table.last_payload["active"] is True  # type: ignore[index]


def test_supabase_nutrition_cache_repository() -> None:
    client = FakeSupabaseClient()
    foods = client.table("food_products")
    conversions = client.table("unit_conversions")
    failures = client.table("analytics_failed_lookups")
    foods.queue(
        "select",
        [{"product_name": "Greek Yogurt", "nutrition_data": {"calories": 59}}],
    )
    foods.queue("insert", [{"id": 1}])
    conversions.queue("select", [{"multiplier": 2}])

    repository = SupabaseNutritionCacheRepository(client)
    cached = repository.find_food("greek yogurt")
    repository.save_food(
        "oat milk", {"food_name": "Oat milk", "calories": 120}, "agent"
    )
    multiplier = repository.find_conversion("Rice", " Cup", "g")
    repository.save_conversion("rice", "cup", "g", 1.85)
    repository.log_failed_lookup(None, "unobtainium", "1 cup", "no data")

    assert cached == {"calories": 59, "food_name": "Greek Yogurt"}
    assert foods.last_payload["source"] == "agent"  # type: ignore[index]
    assert foods.last_payload["calories"] == 120  # type: ignore[index]
    assert multiplier == 2.0
    assert ("from_unit", "cup") in conversions.last_filters
    details = failures.last_payload["details"]  # type: ignore[index]
    assert details == {"reason": "no data"}


def test_supabase_profile_repository() -> None:
    client = FakeSupabaseClient()
    profiles = client.table("user_profiles")
    constraints = client.table("user_health_constraints")
    user_id = uuid4()
    profiles.queue(
        "select",
        [
            {
                "id": str(user_id),
                "weight_kg": 70,
                "goal": None,
                "created_at": "2024-01-01",
            }
        ],
    )
    profiles.queue("update", [{"id": str(user_id)}])
    constraints.queue(
        "select",
        [{"category": "peanuts", "constraint_type": "allergy", "severity": "critical"}],
    )
    constraints.queue("upsert", [{"category": "lactose"}])

    repository = SupabaseProfileRepository(client)
    profile = repository.get_profile(user_id)
    repository.update_profile(user_id, {"weight_kg": 71})
    [constraint] = repository.list_health_constraints(user_id)
    repository.upsert_health_constraint(
        user_id, HealthConstraint(category=" Lactose ", constraint_type="intolerance")
    )

    assert profile is not None
    assert profile.attributes == {"weight_kg": 70}
    assert constraint.severity == "critical"
    assert constraint.active is True
    assert constraints.last_payload["category"] == "lactose"  # type: ignore[index]
    assert constraints.last_on_conflict == "user_id,category"


def test_supabase_recipe_repository() -> None:
    client = FakeSupabaseClient()
    recipes = client.table("user_recipes")
    ingredients = client.table("recipe_ingredients")
    user_id = uuid4()
    recipe_id = uuid4()
    row = {
        "id": str(recipe_id),
        "user_id": str(user_id),
        "recipe_name": "Chili",
        "servings": 4,
        "nutrition_data": {"calories": 2000},
        "ingredient_fingerprint": "bean,beef",
        "recipe_ingredients": [
            {"ingredient_name": "beans", "quantity": 2, "unit": "cup"},
            {"ingredient_name": "beef", "quantity": None, "unit": None},
        ],
    }
    recipes.queue("select", [row])
    recipes.queue("insert", [row])
    ingredients.queue("insert", [{"id": 1}])

    repository = SupabaseRecipeRepository(client)
    fetched = repository.find_by_fingerprint(user_id, "bean,beef")
    created = repository.create_recipe(
        user_id,
        ParsedRecipe(
            name="Chili",
            ingredients=[Ingredient(name="beans", quantity=2, unit="cup")],
            servings=4,
            fingerprint="bean,beef",
        ),
        {"calories": 2000.0},
        {"calories": 500.0},
    )

    assert fetched is not None
    assert fetched.calories_per_serving == 500
    assert [item.quantity for item in fetched.ingredients] == [2.0, 1.0]
    assert fetched.ingredients[1].unit == ""
    assert created.id == recipe_id
    assert recipes.last_payload["per_serving_nutrition"] == {  # type: ignore[index]
        "calories": 500.0
    }
    assert ingredients.last_payload == [
        {
            "recipe_id": str(recipe_id),
            "ingredient_name": "beans",
            "quantity": 2,
            "unit": "cup",
            "nutrition_data": None,
        }
    ]


def test_supabase_recipe_repository_matches_every_word() -> None:
    client = FakeSupabaseClient()
    recipes = client.table("user_recipes")

    repository = SupabaseRecipeRepository(client)
    assert repository.find_by_words(uuid4(), ["chicken", "curry"]) == []

    assert ("recipe_name", "%chicken%") in recipes.last_filters
    assert ("recipe_name", "%curry%") in recipes.last_filters


def test_supabase_day_classification_repository() -> None:
    client = FakeSupabaseClient()
    table = client.table("daily_classification")
    user_id = uuid4()
    table.queue("upsert", [{"date": "2024-05-01"}])
    table.queue(
        "select",
        [{"date": "2024-05-01", "day_type": "travel", "notes": "flight"}],
    )

    repository = SupabaseDayClassificationRepository(client)
    repository.set_classification(user_id, date(2024, 5, 1), "travel", "flight")
    [day] = repository.list_classifications(
        user_id, date(2024, 4, 25), date(2024, 5, 1)
    )

    assert table.last_on_conflict == "user_id,date"
    assert day.day == date(2024, 5, 1)
    assert day.day_type == "travel"
    assert ("date", "2024-05-01") in table.last_filters
    assert repository.get_classification(UUID(int=0), date(2024, 5, 2)) is None
