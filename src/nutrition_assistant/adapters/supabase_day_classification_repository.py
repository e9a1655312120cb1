"""Supabase repository for day classifications."""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from supabase import Client

from nutrition_assistant.domain.users import DayClassification
from nutrition_assistant.services.context import DayClassificationRepository


@dataclass
class SupabaseDayClassificationRepository(DayClassificationRepository):
    """Supabase implementation for the daily_classification table."""

    client: Client

    def get_classification(
        self, user_id: UUID, day: date
    ) -> DayClassification | None:
        """Return the classification of one day, if set."""
        response = (
            self.client.table("daily_classification")
            .select("date, day_type, notes")
            .eq("user_id", str(user_id))
            .eq("date", day.isoformat())
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_row(response.data[0])

    def set_classification(
        self, user_id: UUID, day: date, day_type: str, notes: str | None
    ) -> None:
        """Insert or replace the classification of one day."""
        response = (
            self.client.table("daily_classification")
            .upsert(
                {
                    "user_id": str(user_id),
                    "date": day.isoformat(),
                    "day_type": day_type,
                    "notes": notes,
                },
                on_conflict="user_id,date",
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to save day classification")

    def list_classifications(
        self, user_id: UUID, start: date, end: date
    ) -> list[DayClassification]:
        """Return classifications within an inclusive date range."""
        response = (
            self.client.table("daily_classification")
            .select("date, day_type, notes")
            .eq("user_id", str(user_id))
            .gte("date", start.isoformat())
            .lte("date", end.isoformat())
            .execute()
        )
        return [_parse_row(row) for row in response.data or []]


def _parse_row(row: dict[str, object]) -> DayClassification:
    return DayClassification(
        day=date.fromisoformat(str(row["date"])),
        day_type=str(row.get("day_type") or "normal"),
        notes=row.get("notes"),
    )
