"""Domain models for recipes and the recipe capture flow."""

from dataclasses import dataclass, field, replace
from enum import StrEnum
from uuid import UUID


class FlowStep(StrEnum):
    """Steps of a resumable recipe capture."""

    PARSE = "parse"
    PENDING_BATCH_CONFIRM = "pending_batch_confirm"
    PENDING_SERVINGS_CONFIRM = "pending_servings_confirm"
    PENDING_DUPLICATE_CONFIRM = "pending_duplicate_confirm"
    PENDING_RECIPE_SELECTION = "pending_recipe_selection"
    READY_TO_SAVE = "ready_to_save"


class DuplicateChoice(StrEnum):
    """What to do when a new recipe matches a saved one."""

    LOG = "log"
    UPDATE = "update"
    NEW = "new"


@dataclass(frozen=True)
class Ingredient:
    """One recipe line with its resolved nutrition, once known."""

    name: str
    quantity: float
    unit: str
    nutrition: dict[str, float] | None = None

    @property
    def portion(self) -> str:
        """Quantity and unit as a portion string."""
        quantity = f"{self.quantity:g}"
        return f"{quantity} {self.unit}".strip()

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "quantity": self.quantity,
            "unit": self.unit,
            "nutrition": self.nutrition,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "Ingredient":
        quantity = payload.get("quantity")
        nutrition = payload.get("nutrition")
        return cls(
            name=str(payload.get("name") or ""),
            quantity=float(quantity) if isinstance(quantity, int | float) else 1.0,
            unit=str(payload.get("unit") or ""),
            nutrition=dict(nutrition) if isinstance(nutrition, dict) else None,
        )


@dataclass(frozen=True)
class ParsedRecipe:
    """Recipe extracted from free text."""

    name: str
    ingredients: list[Ingredient]
    servings: int = 1
    fingerprint: str = ""
    total_batch_size: str | None = None
    total_batch_grams: float = 0.0
    serving_size: str | None = None
    instructions: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "recipe_name": self.name,
            "ingredients": [ingredient.to_dict() for ingredient in self.ingredients],
            "servings": self.servings,
            "fingerprint": self.fingerprint,
            "total_batch_size": self.total_batch_size,
            "total_batch_grams": self.total_batch_grams,
            "serving_size": self.serving_size,
            "instructions": self.instructions,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "ParsedRecipe":
        servings = payload.get("servings")
        grams = payload.get("total_batch_grams")
        return cls(
            name=str(payload.get("recipe_name") or ""),
            ingredients=[
                Ingredient.from_dict(item)
                for item in payload.get("ingredients") or []
                if isinstance(item, dict)
            ],
            servings=int(servings) if isinstance(servings, int | float) else 1,
            fingerprint=str(payload.get("fingerprint") or ""),
            total_batch_size=_optional_str(payload.get("total_batch_size")),
            total_batch_grams=float(grams) if isinstance(grams, int | float) else 0.0,
            serving_size=_optional_str(payload.get("serving_size")),
            instructions=_optional_str(payload.get("instructions")),
        )


@dataclass(frozen=True)
class RecipeFlowState:
    """Resumable state of one recipe capture."""

    step: FlowStep
    parsed: ParsedRecipe
    batch_size_grams: float = 0.0
    suggested_servings: int = 1
    batch_nutrition: dict[str, float] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    existing_recipe_id: UUID | None = None
    existing_recipe_name: str | None = None
    exact_match: bool = False
    confirmed_batch_size: str | None = None
    confirmed_servings: int | None = None
    candidates: list["RecipeCandidate"] = field(default_factory=list)

    def advance(self, step: FlowStep, **changes: object) -> "RecipeFlowState":
        """Return a copy at a new step."""
        return replace(self, step=step, **changes)

    def to_dict(self) -> dict[str, object]:
        return {
            "step": self.step.value,
            "parsed": self.parsed.to_dict(),
            "batch_size_grams": self.batch_size_grams,
            "suggested_servings": self.suggested_servings,
            "batch_nutrition": dict(self.batch_nutrition),
            "warnings": list(self.warnings),
            "existing_recipe_id": (
                str(self.existing_recipe_id) if self.existing_recipe_id else None
            ),
            "existing_recipe_name": self.existing_recipe_name,
            "exact_match": self.exact_match,
            "confirmed_batch_size": self.confirmed_batch_size,
            "confirmed_servings": self.confirmed_servings,
            "candidates": [candidate.to_dict() for candidate in self.candidates],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "RecipeFlowState":
        existing_id = payload.get("existing_recipe_id")
        grams = payload.get("batch_size_grams")
        suggested = payload.get("suggested_servings")
        confirmed = payload.get("confirmed_servings")
        return cls(
            step=FlowStep(str(payload.get("step") or FlowStep.PARSE.value)),
            parsed=ParsedRecipe.from_dict(payload.get("parsed") or {}),
            batch_size_grams=float(grams) if isinstance(grams, int | float) else 0.0,
            suggested_servings=(
                int(suggested) if isinstance(suggested, int | float) else 1
            ),
            batch_nutrition={
                key: float(value)
                for key, value in (payload.get("batch_nutrition") or {}).items()
                if isinstance(value, int | float) and not isinstance(value, bool)
            },
            warnings=[str(item) for item in payload.get("warnings") or []],
            existing_recipe_id=UUID(str(existing_id)) if existing_id else None,
            existing_recipe_name=_optional_str(payload.get("existing_recipe_name")),
            exact_match=bool(payload.get("exact_match")),
            confirmed_batch_size=_optional_str(payload.get("confirmed_batch_size")),
            confirmed_servings=(
                int(confirmed) if isinstance(confirmed, int | float) else None
            ),
            candidates=[
                RecipeCandidate.from_dict(item)
                for item in payload.get("candidates") or []
                if isinstance(item, dict)
            ],
        )


@dataclass(frozen=True)
class RecipeRecord:
    """A recipe saved by a user."""

    id: UUID
    user_id: UUID
    name: str
    servings: int
    nutrition_data: dict[str, float]
    per_serving_nutrition: dict[str, float]
    fingerprint: str
    ingredients: list[Ingredient] = field(default_factory=list)
    total_batch_grams: float = 0.0
    serving_size: str | None = None
    instructions: str | None = None

    @property
    def calories_per_serving(self) -> int:
        """Rounded calories in one serving."""
        return round(self.nutrition_data.get("calories", 0.0) / (self.servings or 1))


@dataclass(frozen=True)
class RecipeCandidate:
    """Summary of a saved recipe offered for selection."""

    id: UUID
    name: str
    servings: int
    calories_per_serving: int
    ingredients: str

    @classmethod
    def from_record(cls, record: RecipeRecord) -> "RecipeCandidate":
        return cls(
            id=record.id,
            name=record.name,
            servings=record.servings,
            calories_per_serving=record.calories_per_serving,
            ingredients=", ".join(item.name for item in record.ingredients),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": str(self.id),
            "recipe_name": self.name,
            "servings": self.servings,
            "calories_per_serving": self.calories_per_serving,
            "ingredients": self.ingredients,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "RecipeCandidate":
        servings = payload.get("servings")
        calories = payload.get("calories_per_serving")
        return cls(
            id=UUID(str(payload["id"])),
            name=str(payload.get("recipe_name") or ""),
            servings=int(servings) if isinstance(servings, int | float) else 1,
            calories_per_serving=(
                int(calories) if isinstance(calories, int | float) else 0
            ),
            ingredients=str(payload.get("ingredients") or ""),
        )


def _optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
