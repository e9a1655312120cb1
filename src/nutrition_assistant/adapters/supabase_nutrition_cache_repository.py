"""Supabase implementation of the shared food and conversion caches."""

import logging
from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from nutrition_assistant.services.nutrition import NutritionCacheRepository
from nutrition_assistant.services.portions import ConversionRepository

_logger = logging.getLogger(__name__)


@dataclass
class SupabaseNutritionCacheRepository(NutritionCacheRepository, ConversionRepository):
    """Resolved foods, portion conversions and failed lookups."""

    client: Client

    def find_food(self, search_term: str) -> dict[str, object] | None:
        """Return cached flat nutrition data for a normalized name."""
        response = (
            self.client.table("food_products")
            .select("product_name, nutrition_data")
            .ilike("search_term", search_term)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        nutrition = dict(row.get("nutrition_data") or {})
        nutrition.setdefault("food_name", row.get("product_name") or search_term)
        return nutrition

    def save_food(
        self,
        search_term: str,
        nutrition: dict[str, object],
        source: str,
        brand: str | None = None,
    ) -> None:
        """Insert a resolved food; core macros are also stored as columns."""
        response = (
            self.client.table("food_products")
            .insert(
                {
                    "product_name": nutrition.get("food_name") or search_term,
                    "search_term": search_term,
                    "nutrition_data": nutrition,
                    "calories": nutrition.get("calories"),
                    "protein_g": nutrition.get("protein_g"),
                    "carbs_g": nutrition.get("carbs_g"),
                    "fat_total_g": nutrition.get("fat_total_g"),
                    "source": source,
                    "brand": brand,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to cache food")

    def log_failed_lookup(
        self, user_id: UUID | None, query: str, portion: str, reason: str
    ) -> None:
        """Record a lookup that no stage could resolve."""
        self.client.table("analytics_failed_lookups").insert(
            {
                "user_id": str(user_id) if user_id else None,
                "query": query,
                "portion": portion,
                "failure_type": "no_data",
                "details": {"reason": reason},
            }
        ).execute()

    def find_conversion(
        self, food_name: str, from_unit: str, to_unit: str
    ) -> float | None:
        """Return a cached multiplier, if present."""
        response = (
            self.client.table("unit_conversions")
            .select("multiplier")
            .eq("food_name", food_name.lower().strip())
            .eq("from_unit", from_unit.lower().strip())
            .eq("to_unit", to_unit.lower().strip())
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        multiplier = response.data[0].get("multiplier")
        return float(multiplier) if multiplier is not None else None

    def save_conversion(
        self, food_name: str, from_unit: str, to_unit: str, multiplier: float
    ) -> None:
        """Store a multiplier for later lookups."""
        response = (
            self.client.table("unit_conversions")
            .insert(
                {
                    "food_name": food_name.lower().strip(),
                    "from_unit": from_unit.lower().strip(),
                    "to_unit": to_unit.lower().strip(),
                    "multiplier": multiplier,
                }
            )
            .execute()
        )
        if not response.data:
            _logger.warning(
                "Conversion %s -> %s for %s was not stored",
                from_unit,
                to_unit,
                food_name,
            )
