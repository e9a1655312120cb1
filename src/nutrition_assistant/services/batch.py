"""Recipe batch size and servings estimation."""

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from nutrition_assistant.domain.recipes import Ingredient
from nutrition_assistant.services.units import (
    WORD_AMOUNTS,
    normalize_unit,
    to_grams,
    to_ml,
    volume_to_grams,
)

# Average weights in grams for items usually counted rather than weighed.
COUNTABLE_WEIGHTS: dict[str, float] = {
    "egg": 50,
    "eggs": 50,
    "egg white": 33,
    "egg yolk": 17,
    "banana": 118,
    "apple": 182,
    "orange": 131,
    "lemon": 58,
    "lime": 44,
    "tomato": 123,
    "potato": 170,
    "sweet potato": 130,
    "onion": 110,
    "garlic clove": 3,
    "clove": 3,
    "cloves": 3,
    "carrot": 61,
    "celery stalk": 40,
    "stalk": 40,
    "avocado": 200,
    "chicken breast": 174,
    "chicken thigh": 116,
    "slice": 30,
    "piece": 100,
}

BATCH_CONFIRM_PHRASES = (
    "yes",
    "yeah",
    "yep",
    "correct",
    "that's right",
    "looks good",
    "ok",
    "okay",
)

_SIZE_CORRECTION = re.compile(
    r"(\d+\.?\d*)\s*(kg|g|grams?|liters?|l|ml|oz|pounds?|lb|cups?)", re.IGNORECASE
)
_SERVINGS_NUMBER = re.compile(r"(\d+)")

# Dishes usually portioned into many small pieces.
_PIECE_DISHES = (
    "muffin",
    "cookie",
    "cupcake",
    "brownie",
    "bar",
    "ball",
    "bite",
    "pancake",
)
_DEFAULT_PIECE_SERVINGS = 12
_GRAMS_PER_MEAL_SERVING = 350
MAX_SUGGESTED_SERVINGS = 16


@dataclass(frozen=True)
class IngredientWeight:
    """How one ingredient contributed to the batch total."""

    name: str
    grams: float | None
    ml: float | None
    note: str | None = None


@dataclass(frozen=True)
class BatchSize:
    """Estimated total size of a recipe."""

    total_grams: float
    total_ml: float
    confidence: str
    converted: int
    total: int
    breakdown: list[IngredientWeight] = field(default_factory=list)
    unconverted: list[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        """Human readable batch size."""
        return format_batch_size(self.total_grams, self.total_ml)


@dataclass(frozen=True)
class BatchSizeResponse:
    """A user's reply to the batch size prompt."""

    confirmed: bool
    corrected_size: str | None = None
    grams: float | None = None
    ml: float | None = None


@dataclass(frozen=True)
class ServingsSuggestion:
    """Suggested number of servings and where it came from."""

    servings: int
    reason: str


def find_countable_weight(ingredient_name: str, unit: str) -> float | None:
    """Return the average weight of one counted item, if known."""
    unit_key = unit.lower().strip()
    if unit_key in COUNTABLE_WEIGHTS:
        return COUNTABLE_WEIGHTS[unit_key]
    name = ingredient_name.lower().strip()
    if not name:
        return None
    contained = [key for key in COUNTABLE_WEIGHTS if key in name]
    if contained:
        return COUNTABLE_WEIGHTS[max(contained, key=len)]
    containing = [key for key in COUNTABLE_WEIGHTS if name in key]
    if containing:
        return COUNTABLE_WEIGHTS[min(containing, key=len)]
    return None


def calculate_batch_size(ingredients: Sequence[Ingredient]) -> BatchSize:
    """Sum ingredient weights using weight, volume and count conversions."""
    total_grams = 0.0
    total_ml = 0.0
    breakdown: list[IngredientWeight] = []
    unconverted: list[str] = []
    for ingredient in ingredients:
        unit = normalize_unit(ingredient.unit)
        grams = to_grams(ingredient.quantity, unit)
        ml = None
        note = None
        if grams is None:
            ml = to_ml(ingredient.quantity, unit)
            if ml is not None:
                grams = volume_to_grams(ingredient.quantity, unit, ingredient.name)
                if grams is not None:
                    note = "Converted from volume using density estimate"
            else:
                weight = find_countable_weight(ingredient.name, unit)
                if weight is not None:
                    grams = ingredient.quantity * weight
                    note = f"Estimated weight: {weight:g}g each"
        if grams is not None:
            total_grams += grams
        if ml is not None:
            total_ml += ml
        if grams is None and ml is None:
            unconverted.append(ingredient.name)
        breakdown.append(
            IngredientWeight(name=ingredient.name, grams=grams, ml=ml, note=note)
        )

    total = len(ingredients)
    converted = total - len(unconverted)
    ratio = converted / total if total else 0.0
    if ratio >= 0.9:
        confidence = "high"
    elif ratio >= 0.6:
        confidence = "medium"
    else:
        confidence = "low"
    return BatchSize(
        total_grams=total_grams,
        total_ml=total_ml,
        confidence=confidence,
        converted=converted,
        total=total,
        breakdown=breakdown,
        unconverted=unconverted,
    )


def format_grams(grams: float) -> str:
    """Format a weight as grams or kilograms."""
    if grams >= 1000:
        return f"{grams / 1000:.1f}kg"
    return f"{round(grams)}g"


def format_batch_size(grams: float, ml: float) -> str:
    """Prefer weight, falling back to volume."""
    if grams > 0:
        return format_grams(grams)
    if ml >= 1000:
        return f"{ml / 1000:.1f}L"
    if ml > 0:
        return f"{round(ml)}ml"
    return "unknown size"


def batch_confirmation_prompt(batch: BatchSize) -> str:
    """Ask the user to confirm the estimated batch size."""
    prompt = f"I've calculated that this recipe makes about **{batch.label}** total."
    if batch.confidence == "low":
        missing = ", ".join(batch.unconverted)
        prompt += (
            f" (Note: I couldn't determine the weight of some ingredients: {missing})"
        )
    elif batch.confidence == "medium":
        prompt += " (Some estimates were used)"
    return (
        f"{prompt}\n\nIs this correct? If not, please tell me the actual total size "
        '(e.g., "it makes 2 liters" or "about 1.5kg").'
    )


def parse_batch_size_response(response: str) -> BatchSizeResponse:
    """Read a confirmation or a corrected size such as "no, about 1.5kg"."""
    lowered = response.lower().strip()
    if any(
        lowered == phrase or lowered.startswith(phrase)
        for phrase in BATCH_CONFIRM_PHRASES
    ):
        return BatchSizeResponse(confirmed=True)
    match = _SIZE_CORRECTION.search(lowered)
    if match:
        amount = float(match.group(1))
        unit = match.group(2)
        return BatchSizeResponse(
            confirmed=False,
            corrected_size=f"{amount:g} {unit}",
            grams=to_grams(amount, unit),
            ml=to_ml(amount, unit),
        )
    return BatchSizeResponse(confirmed=False)


def suggest_servings(
    ingredients: Sequence[Ingredient], name: str, batch_grams: float
) -> ServingsSuggestion:
    """Guess how many servings a batch yields."""
    lowered = name.lower()
    if any(re.search(rf"\b{word}s?\b", lowered) for word in _PIECE_DISHES):
        return ServingsSuggestion(_DEFAULT_PIECE_SERVINGS, "baked or portioned pieces")
    if batch_grams <= 0:
        return ServingsSuggestion(1, "unknown batch size")
    servings = round(batch_grams / _GRAMS_PER_MEAL_SERVING)
    servings = max(1, min(servings, MAX_SUGGESTED_SERVINGS))
    if len(ingredients) <= 2:
        servings = 1
    return ServingsSuggestion(servings, f"about {_GRAMS_PER_MEAL_SERVING}g per serving")


def servings_prompt(suggestion: ServingsSuggestion, batch_label: str) -> str:
    """Ask the user to confirm the servings count."""
    return (
        f"This batch ({batch_label}) looks like about **{suggestion.servings} "
        f"serving(s)** ({suggestion.reason}). Is that right, or how many servings "
        "does it make?"
    )


def parse_servings_response(response: str, suggested: int) -> int | None:
    """Return the servings a reply confirms or states, if any."""
    lowered = response.lower().strip()
    match = _SERVINGS_NUMBER.search(lowered)
    if match:
        servings = int(match.group(1))
        return servings if servings > 0 else None
    for word in lowered.split():
        amount = WORD_AMOUNTS.get(word, 0)
        if amount >= 1 and word not in ("a", "an"):
            return int(amount)
    if any(
        lowered == phrase or lowered.startswith(phrase)
        for phrase in BATCH_CONFIRM_PHRASES
    ):
        return suggested
    return None
