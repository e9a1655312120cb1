"""Food log storage and per-day totals in the user's timezone."""

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Protocol
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from nutrition_assistant.domain.logs import DailyTotals, FoodLogEntry


class FoodLogRepository(Protocol):
    """Persistence interface for committed food logs."""

    def insert_entries(self, user_id: UUID, rows: list[dict[str, object]]) -> None:
        """Insert food log rows."""

    def list_entries(
        self, user_id: UUID, start: datetime, end: datetime
    ) -> list[FoodLogEntry]:
        """Return entries logged within a time range."""


@dataclass
class ProgressService:
    """Computes totals for a user's local days."""

    repository: FoodLogRepository

    def get_today(self, user_id: UUID, timezone_name: str) -> DailyTotals:
        """Return today's totals in the user's timezone."""
        tz = resolve_timezone(timezone_name)
        start = _local_midnight(datetime.now(tz=tz))
        end = start + timedelta(days=1)
        entries = self.repository.list_entries(
            user_id, start.astimezone(UTC), end.astimezone(UTC)
        )
        return _aggregate_day(start.date(), entries, tz)

    def get_daily_totals(
        self, user_id: UUID, timezone_name: str, days: int = 7
    ) -> list[DailyTotals]:
        """Return one entry per local day, oldest first, ending today."""
        tz = resolve_timezone(timezone_name)
        today = _local_midnight(datetime.now(tz=tz))
        start = today - timedelta(days=max(days, 1) - 1)
        end = today + timedelta(days=1)
        entries = self.repository.list_entries(
            user_id, start.astimezone(UTC), end.astimezone(UTC)
        )
        return [
            _aggregate_day((start + timedelta(days=offset)).date(), entries, tz)
            for offset in range((end - start).days)
        ]

    def get_history(
        self,
        user_id: UUID,
        timezone_name: str,
        *,
        day: date | None = None,
        days: int = 1,
    ) -> list[FoodLogEntry]:
        """Return entries for one local day or the last few days."""
        tz = resolve_timezone(timezone_name)
        if day is not None:
            start = datetime(day.year, day.month, day.day, tzinfo=tz)
            end = start + timedelta(days=1)
        else:
            end = _local_midnight(datetime.now(tz=tz)) + timedelta(days=1)
            start = end - timedelta(days=max(days, 1))
        return self.repository.list_entries(
            user_id, start.astimezone(UTC), end.astimezone(UTC)
        )


def resolve_timezone(timezone_name: str | None) -> ZoneInfo:
    """Return the named zone, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(timezone_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def local_today(timezone_name: str | None) -> date:
    return datetime.now(tz=resolve_timezone(timezone_name)).date()


def _local_midnight(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _aggregate_day(
    day: date, entries: list[FoodLogEntry], tz: ZoneInfo
) -> DailyTotals:
    totals: dict[str, float] = {}
    items: list[str] = []
    for entry in entries:
        if entry.log_time.astimezone(tz).date() != day:
            continue
        for key, value in entry.nutrients.items():
            totals[key] = totals.get(key, 0.0) + value
        items.append(entry.food_name)
    return DailyTotals(day=day, totals=totals, items=items)
