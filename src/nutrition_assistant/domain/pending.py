"""Pending actions awaiting user confirmation."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import ClassVar
from uuid import UUID, uuid4

from nutrition_assistant.domain.goals import GoalChange
from nutrition_assistant.domain.nutrients import (
    CONFIDENCE_LEVELS,
    NUTRIENTS,
    NutrientVector,
)
from nutrition_assistant.domain.recipes import (
    DuplicateChoice,
    RecipeCandidate,
    RecipeFlowState,
)


class PendingKind(StrEnum):
    """Kinds of proposals a user can confirm."""

    FOOD_LOG = "food_log"
    RECIPE_LOG = "recipe_log"
    GOAL_UPDATE = "goal_update"
    BULK_GOAL_UPDATE = "bulk_goal_update"
    RECIPE_SAVE = "recipe_save"
    RECIPE_SELECTION = "recipe_selection"


def new_proposal_id(prefix: str) -> str:
    """Return a unique proposal id such as "food_3f2a..."."""
    return f"{prefix}_{uuid4().hex[:12]}"


@dataclass(frozen=True)
class FoodLogItem:
    """One food ready to be written to the log."""

    food_name: str
    portion: str
    nutrients: dict[str, float]
    confidence: str = "medium"
    error_sources: tuple[str, ...] = ()
    health_flags: tuple[str, ...] = ()
    recipe_id: UUID | None = None
    extras: dict[str, float] = field(default_factory=dict)

    @property
    def calories(self) -> float:
        return self.nutrients.get("calories", 0.0)

    @classmethod
    def from_vector(cls, vector: NutrientVector, portion: str) -> "FoodLogItem":
        return cls(
            food_name=vector.food_name,
            portion=portion,
            nutrients=dict(vector.values),
            confidence=vector.confidence,
            error_sources=vector.error_sources,
        )

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "food_name": self.food_name,
            "portion": self.portion,
            **self.nutrients,
            "confidence": self.confidence,
            "error_sources": list(self.error_sources),
            "health_flags": list(self.health_flags),
        }
        if self.recipe_id is not None:
            payload["recipe_id"] = str(self.recipe_id)
        if self.extras:
            payload["extras"] = dict(self.extras)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "FoodLogItem":
        vector = NutrientVector.from_dict(payload)
        recipe_id = payload.get("recipe_id")
        confidence = payload.get("confidence")
        return cls(
            food_name=str(payload.get("food_name") or "Unknown Food"),
            portion=str(
                payload.get("portion") or payload.get("serving_size") or "1 serving"
            ),
            nutrients=dict(vector.values),
            confidence=confidence if confidence in CONFIDENCE_LEVELS else "medium",
            error_sources=vector.error_sources,
            health_flags=tuple(
                str(flag) for flag in payload.get("health_flags") or ()
            ),
            recipe_id=UUID(str(recipe_id)) if recipe_id else None,
            extras=_extra_numbers(payload),
        )


@dataclass(frozen=True)
class FoodLogAction:
    """One or more foods to log together."""

    kind: ClassVar[PendingKind] = PendingKind.FOOD_LOG

    items: list[FoodLogItem]
    proposal_id: str = field(default_factory=lambda: new_proposal_id("food"))

    def to_data(self) -> dict[str, object]:
        return {"items": [item.to_dict() for item in self.items]}

    @classmethod
    def from_data(cls, data: dict[str, object], proposal_id: str) -> "FoodLogAction":
        raw_items = data.get("items")
        if raw_items is None:
            raw_items = [data]
        return cls(
            items=[
                FoodLogItem.from_dict(item)
                for item in raw_items
                if isinstance(item, dict)
            ],
            proposal_id=proposal_id,
        )


@dataclass(frozen=True)
class RecipeLogAction:
    """Servings of a saved recipe to log."""

    kind: ClassVar[PendingKind] = PendingKind.RECIPE_LOG

    recipe_id: UUID | None
    recipe_name: str
    servings: float
    nutrients: dict[str, float]
    proposal_id: str = field(default_factory=lambda: new_proposal_id("recipe"))

    @property
    def portion(self) -> str:
        return f"{self.servings:g} serving(s)"

    def to_data(self) -> dict[str, object]:
        return {
            "recipe_id": str(self.recipe_id) if self.recipe_id else None,
            "recipe_name": self.recipe_name,
            "servings": self.servings,
            **self.nutrients,
        }

    @classmethod
    def from_data(
        cls, data: dict[str, object], proposal_id: str
    ) -> "RecipeLogAction":
        recipe_id = data.get("recipe_id")
        servings = data.get("servings")
        return cls(
            recipe_id=UUID(str(recipe_id)) if recipe_id else None,
            recipe_name=str(data.get("recipe_name") or "Recipe"),
            servings=float(servings) if isinstance(servings, int | float) else 1.0,
            nutrients=dict(NutrientVector.from_dict(data).values),
            proposal_id=proposal_id,
        )


@dataclass(frozen=True)
class GoalUpdateAction:
    """A change to a single goal."""

    kind: ClassVar[PendingKind] = PendingKind.GOAL_UPDATE

    change: GoalChange
    proposal_id: str = field(default_factory=lambda: new_proposal_id("goal"))

    def to_data(self) -> dict[str, object]:
        return self.change.to_dict()

    @classmethod
    def from_data(
        cls, data: dict[str, object], proposal_id: str
    ) -> "GoalUpdateAction":
        return cls(change=GoalChange.from_dict(data), proposal_id=proposal_id)


@dataclass(frozen=True)
class BulkGoalUpdateAction:
    """Several goal changes confirmed at once."""

    kind: ClassVar[PendingKind] = PendingKind.BULK_GOAL_UPDATE

    changes: list[GoalChange]
    proposal_id: str = field(default_factory=lambda: new_proposal_id("bulk_goal"))

    def to_data(self) -> dict[str, object]:
        return {"goals": [change.to_dict() for change in self.changes]}

    @classmethod
    def from_data(
        cls, data: dict[str, object], proposal_id: str
    ) -> "BulkGoalUpdateAction":
        return cls(
            changes=[
                GoalChange.from_dict(goal)
                for goal in data.get("goals") or []
                if isinstance(goal, dict)
            ],
            proposal_id=proposal_id,
        )


@dataclass(frozen=True)
class RecipeSaveAction:
    """An in-progress recipe capture."""

    kind: ClassVar[PendingKind] = PendingKind.RECIPE_SAVE

    flow_state: RecipeFlowState
    choice: DuplicateChoice | None = None
    portion: str | None = None
    custom_name: str | None = None
    proposal_id: str = field(default_factory=lambda: new_proposal_id("recipe_save"))

    def to_data(self) -> dict[str, object]:
        return {
            "flow_state": self.flow_state.to_dict(),
            "choice": self.choice.value if self.choice else None,
            "portion": self.portion,
            "custom_name": self.custom_name,
        }

    @classmethod
    def from_data(
        cls, data: dict[str, object], proposal_id: str
    ) -> "RecipeSaveAction":
        choice = data.get("choice")
        return cls(
            flow_state=RecipeFlowState.from_dict(data.get("flow_state") or {}),
            choice=DuplicateChoice(str(choice)) if choice else None,
            portion=str(data["portion"]) if data.get("portion") else None,
            custom_name=str(data["custom_name"]) if data.get("custom_name") else None,
            proposal_id=proposal_id,
        )


@dataclass(frozen=True)
class RecipeSelectionAction:
    """Several saved recipes matched; the user picks one."""

    kind: ClassVar[PendingKind] = PendingKind.RECIPE_SELECTION

    candidates: list[RecipeCandidate]
    query: str
    portion: str | None = None
    proposal_id: str = field(default_factory=lambda: new_proposal_id("selection"))

    def to_data(self) -> dict[str, object]:
        return {
            "recipes": [candidate.to_dict() for candidate in self.candidates],
            "query": self.query,
            "original_portion": self.portion,
        }

    @classmethod
    def from_data(
        cls, data: dict[str, object], proposal_id: str
    ) -> "RecipeSelectionAction":
        return cls(
            candidates=[
                RecipeCandidate.from_dict(item)
                for item in data.get("recipes") or []
                if isinstance(item, dict)
            ],
            query=str(data.get("query") or ""),
            portion=(
                str(data["original_portion"]) if data.get("original_portion") else None
            ),
            proposal_id=proposal_id,
        )


PendingAction = (
    FoodLogAction
    | RecipeLogAction
    | GoalUpdateAction
    | BulkGoalUpdateAction
    | RecipeSaveAction
    | RecipeSelectionAction
)

_PENDING_TYPES: dict[PendingKind, type] = {
    PendingKind.FOOD_LOG: FoodLogAction,
    PendingKind.RECIPE_LOG: RecipeLogAction,
    PendingKind.GOAL_UPDATE: GoalUpdateAction,
    PendingKind.BULK_GOAL_UPDATE: BulkGoalUpdateAction,
    PendingKind.RECIPE_SAVE: RecipeSaveAction,
    PendingKind.RECIPE_SELECTION: RecipeSelectionAction,
}


def pending_to_dict(action: PendingAction) -> dict[str, object]:
    """Serialize a pending action for the session store."""
    return {
        "type": action.kind.value,
        "proposal_id": action.proposal_id,
        "data": action.to_data(),
    }


def pending_from_dict(payload: dict[str, object]) -> PendingAction:
    """Rebuild a pending action; raises ValueError for unknown kinds."""
    kind = PendingKind(str(payload.get("type")))
    data = payload.get("data")
    if isinstance(data, list):
        data = {"items": data}
    if not isinstance(data, dict):
        data = {}
    proposal_id = str(payload.get("proposal_id") or new_proposal_id(kind.value))
    return _PENDING_TYPES[kind].from_data(data, proposal_id)


_NON_EXTRA_KEYS = frozenset({"servings", "quantity", "amount"})


def _extra_numbers(payload: dict[str, object]) -> dict[str, float]:
    """Numeric values outside the master vocabulary, kept alongside the log."""
    extras = payload.get("extras")
    found: dict[str, float] = {}
    if isinstance(extras, dict):
        found = {
            str(key): float(value)
            for key, value in extras.items()
            if isinstance(value, int | float) and not isinstance(value, bool)
        }
    for key, value in payload.items():
        if (
            key not in NUTRIENTS
            and key not in _NON_EXTRA_KEYS
            and isinstance(value, int | float)
            and not isinstance(value, bool)
        ):
            found[key] = float(value)
    return found
