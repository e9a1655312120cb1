"""Domain models for food logs and daily totals."""

from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID


@dataclass(frozen=True)
class FoodLogEntry:
    """A committed food log row."""

    id: UUID | None
    food_name: str
    portion: str
    log_time: datetime
    nutrients: dict[str, float] = field(default_factory=dict)
    recipe_id: UUID | None = None

    @property
    def calories(self) -> float:
        return self.nutrients.get("calories", 0.0)

    def to_dict(self) -> dict[str, object]:
        return {
            "food_name": self.food_name,
            "portion": self.portion,
            "log_time": self.log_time.isoformat(),
            **self.nutrients,
        }


@dataclass(frozen=True)
class DailyTotals:
    """Summed nutrients for one local day."""

    day: date
    totals: dict[str, float] = field(default_factory=dict)
    items: list[str] = field(default_factory=list)
    day_type: str | None = None

    def get(self, key: str) -> float:
        return self.totals.get(key, 0.0)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "date": self.day.isoformat(),
            **{key: round(value, 1) for key, value in self.totals.items()},
            "items": list(self.items),
        }
        if self.day_type:
            payload["day_type"] = self.day_type
        return payload
