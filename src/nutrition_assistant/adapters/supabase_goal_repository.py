"""Supabase repository for nutrition goals."""

from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from nutrition_assistant.domain.goals import Goal
from nutrition_assistant.services.goals import GoalRepository

_GOAL_COLUMNS = (
    "nutrient, target_value, unit, goal_type, yellow_min, green_min, red_min"
)


@dataclass
class SupabaseGoalRepository(GoalRepository):
    """Supabase implementation for the user_goals table."""

    client: Client

    def list_goals(self, user_id: UUID) -> list[Goal]:
        """Return every goal of a user."""
        response = (
            self.client.table("user_goals")
            .select(_GOAL_COLUMNS)
            .eq("user_id", str(user_id))
            .execute()
        )
        return [_parse_goal(row) for row in response.data or []]

    def upsert_goals(self, user_id: UUID, goals: list[Goal]) -> None:
        """Insert or replace goals keyed by nutrient."""
        if not goals:
            return
        response = (
            self.client.table("user_goals")
            .upsert(
                [
                    {
                        "user_id": str(user_id),
                        "nutrient": goal.nutrient,
                        "target_value": goal.target_value,
                        "unit": goal.unit,
                        "goal_type": goal.goal_type,
                        "yellow_min": goal.yellow_min,
                        "green_min": goal.green_min,
                        "red_min": goal.red_min,
                    }
                    for goal in goals
                ],
                on_conflict="user_id,nutrient",
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to save goals")

    def delete_goals(self, user_id: UUID, nutrients: list[str]) -> None:
        """Remove goals for the given nutrients."""
        if not nutrients:
            return
        self.client.table("user_goals").delete().eq("user_id", str(user_id)).in_(
            "nutrient", nutrients
        ).execute()


def _optional_float(value: object) -> float | None:
    return float(value) if isinstance(value, int | float) else None


def _parse_goal(row: dict[str, object]) -> Goal:
    return Goal(
        nutrient=str(row["nutrient"]),
        target_value=float(row.get("target_value") or 0.0),
        unit=str(row.get("unit") or ""),
        goal_type=str(row.get("goal_type") or "goal"),
        yellow_min=_optional_float(row.get("yellow_min")),
        green_min=_optional_float(row.get("green_min")),
        red_min=_optional_float(row.get("red_min")),
    )
