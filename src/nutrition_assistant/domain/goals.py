"""Domain models for nutrition goals."""

from dataclasses import dataclass
from enum import StrEnum

from nutrition_assistant.domain.nutrients import (
    default_unit_for,
    normalize_nutrient_key,
)


class GoalAction(StrEnum):
    """What a goal change does to the stored goal."""

    SET = "set"
    REMOVE = "remove"


def clean_goal_type(raw: object) -> str:
    """Return "goal" or "limit", reading loose values like "max"."""
    text = str(raw or "goal").lower().strip()
    if text in ("goal", "limit"):
        return text
    if "limit" in text or "max" in text:
        return "limit"
    return "goal"


@dataclass(frozen=True)
class Goal:
    """A stored daily target or limit for one nutrient."""

    nutrient: str
    target_value: float
    unit: str
    goal_type: str = "goal"
    yellow_min: float | None = None
    green_min: float | None = None
    red_min: float | None = None

    def thresholds(self) -> dict[str, float]:
        """Only the thresholds that were set."""
        values = {
            "yellow_min": self.yellow_min,
            "green_min": self.green_min,
            "red_min": self.red_min,
        }
        return {key: value for key, value in values.items() if value is not None}

    def to_dict(self) -> dict[str, object]:
        return {
            "nutrient": self.nutrient,
            "target_value": self.target_value,
            "unit": self.unit,
            "goal_type": self.goal_type,
            **self.thresholds(),
        }


@dataclass(frozen=True)
class GoalChange:
    """A proposed change to one goal."""

    nutrient: str
    action: GoalAction = GoalAction.SET
    target_value: float | None = None
    unit: str | None = None
    goal_type: str = "goal"
    yellow_min: float | None = None
    green_min: float | None = None
    red_min: float | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "GoalChange":
        nutrient = normalize_nutrient_key(str(payload.get("nutrient") or ""))
        target = payload.get("target_value")
        if target is None:
            target = payload.get("value")
        action = str(payload.get("action") or GoalAction.SET.value).lower()
        return cls(
            nutrient=nutrient,
            action=GoalAction.REMOVE if action == "remove" else GoalAction.SET,
            target_value=_optional_float(target),
            unit=str(payload["unit"]) if payload.get("unit") else None,
            goal_type=clean_goal_type(payload.get("goal_type")),
            yellow_min=_optional_float(payload.get("yellow_min")),
            green_min=_optional_float(payload.get("green_min")),
            red_min=_optional_float(payload.get("red_min")),
        )

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "nutrient": self.nutrient,
            "action": self.action.value,
            "target_value": self.target_value,
            "unit": self.unit or default_unit_for(self.nutrient),
            "goal_type": self.goal_type,
        }
        for key in ("yellow_min", "green_min", "red_min"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload

    def to_goal(self) -> Goal:
        """Build the stored goal, which requires a target value."""
        if self.target_value is None:
            raise ValueError(f"Missing target_value for nutrient {self.nutrient}")
        return Goal(
            nutrient=self.nutrient,
            target_value=self.target_value,
            unit=self.unit or default_unit_for(self.nutrient),
            goal_type=self.goal_type,
            yellow_min=self.yellow_min,
            green_min=self.green_min,
            red_min=self.red_min,
        )


def _optional_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
