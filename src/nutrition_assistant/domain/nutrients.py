"""Nutrient vocabulary and nutrient vector models."""

import re
from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class NutrientInfo:
    """Display name and unit for a tracked nutrient."""

    name: str
    unit: str


NUTRIENTS: dict[str, NutrientInfo] = {
    "calories": NutrientInfo("Calories", "kcal"),
    "protein_g": NutrientInfo("Protein", "g"),
    "carbs_g": NutrientInfo("Carbs", "g"),
    "fat_total_g": NutrientInfo("Total Fat", "g"),
    "hydration_ml": NutrientInfo("Water", "ml"),
    "fat_saturated_g": NutrientInfo("Saturated Fat", "g"),
    "fat_poly_g": NutrientInfo("Polyunsaturated Fat", "g"),
    "fat_mono_g": NutrientInfo("Monounsaturated Fat", "g"),
    "fat_trans_g": NutrientInfo("Trans Fat", "g"),
    "omega_3_g": NutrientInfo("Omega-3 Fatty Acids", "g"),
    "omega_6_g": NutrientInfo("Omega-6 Fatty Acids", "g"),
    "omega_ratio": NutrientInfo("Omega 6:3 Ratio", ""),
    "fiber_g": NutrientInfo("Dietary Fiber", "g"),
    "fiber_soluble_g": NutrientInfo("Soluble Fiber", "g"),
    "sugar_g": NutrientInfo("Total Sugars", "g"),
    "sugar_added_g": NutrientInfo("Added Sugars", "g"),
    "cholesterol_mg": NutrientInfo("Cholesterol", "mg"),
    "sodium_mg": NutrientInfo("Sodium", "mg"),
    "potassium_mg": NutrientInfo("Potassium", "mg"),
    "calcium_mg": NutrientInfo("Calcium", "mg"),
    "iron_mg": NutrientInfo("Iron", "mg"),
    "magnesium_mg": NutrientInfo("Magnesium", "mg"),
    "phosphorus_mg": NutrientInfo("Phosphorus", "mg"),
    "zinc_mg": NutrientInfo("Zinc", "mg"),
    "copper_mg": NutrientInfo("Copper", "mg"),
    "manganese_mg": NutrientInfo("Manganese", "mg"),
    "selenium_mcg": NutrientInfo("Selenium", "mcg"),
    "vitamin_a_mcg": NutrientInfo("Vitamin A", "mcg"),
    "vitamin_c_mg": NutrientInfo("Vitamin C", "mg"),
    "vitamin_d_mcg": NutrientInfo("Vitamin D", "mcg"),
    "vitamin_e_mg": NutrientInfo("Vitamin E", "mg"),
    "vitamin_k_mcg": NutrientInfo("Vitamin K", "mcg"),
    "thiamin_mg": NutrientInfo("Thiamin (B1)", "mg"),
    "riboflavin_mg": NutrientInfo("Riboflavin (B2)", "mg"),
    "niacin_mg": NutrientInfo("Niacin (B3)", "mg"),
    "pantothenic_acid_mg": NutrientInfo("Pantothenic Acid (B5)", "mg"),
    "vitamin_b6_mg": NutrientInfo("Vitamin B6", "mg"),
    "biotin_mcg": NutrientInfo("Biotin (B7)", "mcg"),
    "folate_mcg": NutrientInfo("Folate (B9)", "mcg"),
    "vitamin_b12_mcg": NutrientInfo("Vitamin B12", "mcg"),
}

CORE_NUTRIENTS = ("calories", "protein_g", "carbs_g", "fat_total_g")

# Always carried on food-log proposals, tracked or not.
STANDARD_LOG_NUTRIENTS = (
    "calories",
    "protein_g",
    "carbs_g",
    "fat_total_g",
    "hydration_ml",
    "fiber_g",
    "sugar_g",
    "sodium_mg",
    "cholesterol_mg",
    "potassium_mg",
    "fat_saturated_g",
    "fat_trans_g",
    "fat_mono_g",
    "fat_poly_g",
)

NUTRIENT_ALIASES: dict[str, str] = {
    "calories": "calories",
    "calorie": "calories",
    "cal": "calories",
    "cals": "calories",
    "kcal": "calories",
    "energy": "calories",
    "protein": "protein_g",
    "carbs": "carbs_g",
    "carb": "carbs_g",
    "carbohydrate": "carbs_g",
    "carbohydrates": "carbs_g",
    "fat": "fat_total_g",
    "fat_g": "fat_total_g",
    "total fat": "fat_total_g",
    "water": "hydration_ml",
    "hydration": "hydration_ml",
    "liquid": "hydration_ml",
    "fluids": "hydration_ml",
    "fiber": "fiber_g",
    "fibre": "fiber_g",
    "sugar": "sugar_g",
    "sugars": "sugar_g",
    "sodium": "sodium_mg",
    "cholesterol": "cholesterol_mg",
    "sat fat": "fat_saturated_g",
    "saturated fat": "fat_saturated_g",
    "trans fat": "fat_trans_g",
    "omega 3": "omega_3_g",
    "omega-3": "omega_3_g",
    "omega 6": "omega_6_g",
    "omega-6": "omega_6_g",
}

# Ordered most specific first; every term must appear in the lowered name.
_SUBSTRING_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("fat", "poly"), "fat_poly_g"),
    (("fat", "mono"), "fat_mono_g"),
    (("fat", "sat"), "fat_saturated_g"),
    (("fat", "trans"), "fat_trans_g"),
    (("omega", "3"), "omega_3_g"),
    (("omega", "6"), "omega_6_g"),
    (("added", "sugar"), "sugar_added_g"),
    (("soluble", "fiber"), "fiber_soluble_g"),
    (("protein",), "protein_g"),
    (("carb",), "carbs_g"),
    (("fiber",), "fiber_g"),
    (("sugar",), "sugar_g"),
    (("sodium",), "sodium_mg"),
    (("fat",), "fat_total_g"),
)

CONFIDENCE_LEVELS = ("low", "medium", "high")


def normalize_nutrient_key(name: str) -> str:
    """Map a free-form nutrient name to its canonical key."""
    lowered = name.lower().strip()
    if lowered in NUTRIENT_ALIASES:
        return NUTRIENT_ALIASES[lowered]
    if lowered in NUTRIENTS:
        return lowered
    for key, info in NUTRIENTS.items():
        if info.name.lower() == lowered:
            return key
    if len(lowered) > 4:
        candidates = [
            (len(info.name), key)
            for key, info in NUTRIENTS.items()
            if lowered in info.name.lower()
        ]
        if candidates:
            return min(candidates, key=lambda item: item[0])[1]
    for terms, key in _SUBSTRING_RULES:
        if all(term in lowered for term in terms):
            return key
    slug = re.sub(r"[^a-z0-9_]+", "_", lowered)
    return re.sub(r"_+", "_", slug).strip("_")


def default_unit_for(key: str) -> str:
    """Return the storage unit for a canonical nutrient key."""
    info = NUTRIENTS.get(key)
    if info is not None and info.unit:
        return info.unit
    return "g"


def downgrade_confidence(confidence: str) -> str:
    """Lower confidence by one step, bottoming out at low."""
    if confidence not in CONFIDENCE_LEVELS:
        return "low"
    index = CONFIDENCE_LEVELS.index(confidence)
    return CONFIDENCE_LEVELS[max(index - 1, 0)]


def round1(value: float) -> float:
    """Round to one decimal place."""
    return round(float(value) * 10) / 10


@dataclass(frozen=True)
class NutrientVector:
    """Nutrient values for one food at one portion."""

    food_name: str
    values: dict[str, float] = field(default_factory=dict)
    serving_size: str | None = None
    confidence: str = "medium"
    error_sources: tuple[str, ...] = ()

    def get(self, key: str, default: float = 0.0) -> float:
        """Return a nutrient value or the default."""
        return self.values.get(key, default)

    def with_values(self, values: dict[str, float]) -> "NutrientVector":
        """Return a copy carrying new values."""
        return replace(self, values=dict(values))

    def with_error_source(self, source: str) -> "NutrientVector":
        """Return a copy tagged with an additional error source."""
        if source in self.error_sources:
            return self
        return replace(self, error_sources=(*self.error_sources, source))

    def to_dict(self) -> dict[str, object]:
        """Flatten into the payload shape used by tools and proposals."""
        payload: dict[str, object] = {"food_name": self.food_name}
        if self.serving_size is not None:
            payload["serving_size"] = self.serving_size
        payload.update(self.values)
        payload["confidence"] = self.confidence
        payload["error_sources"] = list(self.error_sources)
        return payload

    @classmethod
    def from_dict(
        cls, payload: dict[str, object], food_name: str | None = None
    ) -> "NutrientVector":
        """Build a vector from a flat payload, keeping master keys only."""
        values: dict[str, float] = {}
        for key in NUTRIENTS:
            number = _to_number(payload.get(key))
            if number is not None:
                values[key] = number
        serving_size = payload.get("serving_size")
        confidence = payload.get("confidence")
        error_sources = payload.get("error_sources") or ()
        return cls(
            food_name=str(payload.get("food_name") or food_name or "Unknown food"),
            values=values,
            serving_size=str(serving_size) if serving_size else None,
            confidence=(
                confidence if confidence in CONFIDENCE_LEVELS else "medium"
            ),
            error_sources=tuple(str(source) for source in error_sources),
        )


def _to_number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None
