"""Supabase repository for committed food logs."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from nutrition_assistant.domain.logs import FoodLogEntry
from nutrition_assistant.domain.nutrients import NUTRIENTS
from nutrition_assistant.services.progress import FoodLogRepository


@dataclass
class SupabaseFoodLogRepository(FoodLogRepository):
    """Supabase implementation for the food_log table."""

    client: Client

    def insert_entries(self, user_id: UUID, rows: list[dict[str, object]]) -> None:
        """Insert food log rows for a user."""
        if not rows:
            return
        response = (
            self.client.table("food_log")
            .insert([{"user_id": str(user_id), **row} for row in rows])
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to insert food log entries")

    def list_entries(
        self, user_id: UUID, start: datetime, end: datetime
    ) -> list[FoodLogEntry]:
        """Return entries logged in the time range, oldest first."""
        response = (
            self.client.table("food_log")
            .select("*")
            .eq("user_id", str(user_id))
            .gte("log_time", start.isoformat())
            .lt("log_time", end.isoformat())
            .order("log_time", desc=False)
            .execute()
        )
        return [_parse_row(row) for row in response.data or []]


def _parse_row(row: dict[str, object]) -> FoodLogEntry:
    nutrients = {
        key: float(row[key])
        for key in NUTRIENTS
        if isinstance(row.get(key), int | float)
    }
    extras = row.get("extras")
    if isinstance(extras, dict):
        for key, value in extras.items():
            if isinstance(value, int | float):
                nutrients.setdefault(key, float(value))
    log_time_raw = row.get("log_time")
    log_time = (
        datetime.fromisoformat(log_time_raw)
        if isinstance(log_time_raw, str) and log_time_raw
        else datetime.min
    )
    recipe_id = row.get("recipe_id")
    return FoodLogEntry(
        id=UUID(str(row["id"])) if row.get("id") else None,
        food_name=str(row.get("food_name") or ""),
        portion=str(row.get("portion") or ""),
        log_time=log_time,
        nutrients=nutrients,
        recipe_id=UUID(str(recipe_id)) if recipe_id else None,
    )
