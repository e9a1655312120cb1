"""Supabase implementation for saved recipes and their ingredients."""

from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from nutrition_assistant.domain.recipes import Ingredient, ParsedRecipe, RecipeRecord
from nutrition_assistant.services.recipes import RecipeRepository

_RECIPE_COLUMNS = "*, recipe_ingredients(*)"


@dataclass
class SupabaseRecipeRepository(RecipeRepository):
    """Supabase-backed repository for user recipes."""

    client: Client

    def find_by_fingerprint(
        self, user_id: UUID, fingerprint: str
    ) -> RecipeRecord | None:
        """Return the newest recipe with this ingredient fingerprint."""
        response = (
            self.client.table("user_recipes")
            .select(_RECIPE_COLUMNS)
            .eq("user_id", str(user_id))
            .eq("ingredient_fingerprint", fingerprint)
            .order("updated_at", desc=True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_recipe(response.data[0])

    def find_by_name(
        self, user_id: UUID, pattern: str, limit: int = 5
    ) -> list[RecipeRecord]:
        """Return recipes whose name matches an ilike pattern."""
        response = (
            self.client.table("user_recipes")
            .select(_RECIPE_COLUMNS)
            .eq("user_id", str(user_id))
            .ilike("recipe_name", pattern)
            .order("updated_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_parse_recipe(row) for row in response.data or []]

    def find_by_words(
        self, user_id: UUID, words: list[str], limit: int = 5
    ) -> list[RecipeRecord]:
        """Return recipes whose name contains every word."""
        query = (
            self.client.table("user_recipes")
            .select(_RECIPE_COLUMNS)
            .eq("user_id", str(user_id))
        )
        for word in words:
            query = query.ilike("recipe_name", f"%{word}%")
        response = query.order("updated_at", desc=True).limit(limit).execute()
        return [_parse_recipe(row) for row in response.data or []]

    def get_recipe(self, recipe_id: UUID) -> RecipeRecord | None:
        """Return a recipe with its ingredients, if present."""
        response = (
            self.client.table("user_recipes")
            .select(_RECIPE_COLUMNS)
            .eq("id", str(recipe_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_recipe(response.data[0])

    def create_recipe(
        self,
        user_id: UUID,
        parsed: ParsedRecipe,
        nutrition: dict[str, float],
        per_serving: dict[str, float],
    ) -> RecipeRecord:
        """Insert a recipe and its ingredients."""
        response = (
            self.client.table("user_recipes")
            .insert(
                {
                    "user_id": str(user_id),
                    **_recipe_payload(parsed, nutrition, per_serving),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create recipe")
        row = response.data[0]
        self._insert_ingredients(UUID(row["id"]), parsed.ingredients)
        return _parse_recipe(row, parsed.ingredients)

    def update_recipe(  # noqa: PLR0913
        self,
        recipe_id: UUID,
        user_id: UUID,
        parsed: ParsedRecipe,
        nutrition: dict[str, float],
        per_serving: dict[str, float],
    ) -> RecipeRecord:
        """Replace a recipe and its ingredients."""
        response = (
            self.client.table("user_recipes")
            .update(_recipe_payload(parsed, nutrition, per_serving))
            .eq("id", str(recipe_id))
            .eq("user_id", str(user_id))
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to update recipe")
        self.client.table("recipe_ingredients").delete().eq(
            "recipe_id", str(recipe_id)
        ).execute()
        self._insert_ingredients(recipe_id, parsed.ingredients)
        return _parse_recipe(response.data[0], parsed.ingredients)

    def _insert_ingredients(
        self, recipe_id: UUID, ingredients: list[Ingredient]
    ) -> None:
        if not ingredients:
            return
        response = (
            self.client.table("recipe_ingredients")
            .insert(
                [
                    {
                        "recipe_id": str(recipe_id),
                        "ingredient_name": ingredient.name,
                        "quantity": ingredient.quantity,
                        "unit": ingredient.unit,
                        "nutrition_data": ingredient.nutrition,
                    }
                    for ingredient in ingredients
                ]
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to save recipe ingredients")


def _recipe_payload(
    parsed: ParsedRecipe, nutrition: dict[str, float], per_serving: dict[str, float]
) -> dict[str, object]:
    return {
        "recipe_name": parsed.name,
        "servings": parsed.servings,
        "total_batch_size": parsed.total_batch_size,
        "total_batch_grams": parsed.total_batch_grams,
        "serving_size": parsed.serving_size,
        "instructions": parsed.instructions,
        "nutrition_data": nutrition,
        "per_serving_nutrition": per_serving,
        "ingredient_fingerprint": parsed.fingerprint,
    }


def _parse_ingredient(row: dict[str, object]) -> Ingredient:
    quantity = row.get("quantity")
    nutrition = row.get("nutrition_data")
    return Ingredient(
        name=str(row.get("ingredient_name") or ""),
        quantity=float(quantity) if isinstance(quantity, int | float) else 1.0,
        unit=str(row.get("unit") or ""),
        nutrition=dict(nutrition) if isinstance(nutrition, dict) else None,
    )


def _parse_recipe(
    row: dict[str, object], ingredients: list[Ingredient] | None = None
) -> RecipeRecord:
    if ingredients is None:
        ingredients = [
            _parse_ingredient(item) for item in row.get("recipe_ingredients") or []
        ]
    grams = row.get("total_batch_grams")
    return RecipeRecord(
        id=UUID(str(row["id"])),
        user_id=UUID(str(row["user_id"])),
        name=str(row["recipe_name"]),
        servings=int(row.get("servings") or 1),
        nutrition_data=dict(row.get("nutrition_data") or {}),
        per_serving_nutrition=dict(row.get("per_serving_nutrition") or {}),
        fingerprint=str(row.get("ingredient_fingerprint") or ""),
        ingredients=list(ingredients),
        total_batch_grams=float(grams) if isinstance(grams, int | float) else 0.0,
        serving_size=row.get("serving_size"),
        instructions=row.get("instructions"),
    )
