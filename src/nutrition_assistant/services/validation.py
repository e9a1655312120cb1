"""Nutrient hierarchy, macro consistency and density checks."""

import logging
import re
from dataclasses import dataclass, replace

from nutrition_assistant.domain.nutrients import (
    NutrientVector,
    downgrade_confidence,
    round1,
)

_logger = logging.getLogger(__name__)

FAT_SUBTYPES = ("fat_saturated_g", "fat_mono_g", "fat_poly_g", "fat_trans_g")
MACRO_TOLERANCE = 0.10
DENSITY_TOLERANCE = 0.25

LIKELY_CALORIC = re.compile(
    r"oil|butter|fat|sugar|syrup|honey|flour|rice|pasta|bread|meat|chicken|beef"
    r"|pork|fish|egg|cheese|nut|seed|avocado",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class HierarchyResult:
    """Outcome of a nutrient hierarchy check."""

    valid: bool
    violations: list[str]


@dataclass(frozen=True)
class DensityBand:
    """Expected calories per gram for a food category."""

    category: str
    keywords: tuple[str, ...]
    min_kcal_per_g: float
    max_kcal_per_g: float


@dataclass(frozen=True)
class DensityCheck:
    """Result of comparing an estimate with its density band."""

    band: DensityBand
    kcal_per_gram: float
    deviation: float

    @property
    def is_outlier(self) -> bool:
        """True when the estimate misses the band by more than the tolerance."""
        return self.deviation > DENSITY_TOLERANCE

    def guidance(self) -> str:
        """Describe the expected range for a corrective prompt."""
        return (
            f"{self.band.category} typically has {self.band.min_kcal_per_g}-"
            f"{self.band.max_kcal_per_g} kcal per gram, but your estimate implies "
            f"{self.kcal_per_gram:.2f} kcal per gram."
        )


# Checked in order; more specific categories come before broader ones.
DENSITY_BANDS: tuple[DensityBand, ...] = (
    DensityBand("broth or soup", ("broth", "stock", "soup", "bouillon"), 0.05, 1.0),
    DensityBand("peanut butter", ("peanut butter", "almond butter"), 5.5, 6.6),
    DensityBand("oil", ("oil",), 8.0, 9.0),
    DensityBand("butter", ("butter", "ghee"), 6.5, 9.0),
    DensityBand("chicken", ("chicken", "turkey"), 1.1, 2.0),
    DensityBand("beef", ("beef", "steak"), 1.5, 3.3),
    DensityBand("pork", ("pork", "bacon", "ham"), 1.2, 5.5),
    DensityBand("fish", ("fish", "salmon", "tuna", "cod", "tilapia"), 0.8, 2.3),
    DensityBand("egg", ("egg",), 1.3, 2.0),
    DensityBand("cheese", ("cheese",), 2.5, 4.2),
    DensityBand("nuts", ("nut", "almond", "cashew", "pecan", "walnut"), 5.5, 7.2),
    DensityBand("bread", ("bread", "toast", "bagel"), 2.3, 3.2),
    DensityBand("rice", ("rice",), 1.1, 3.7),
    DensityBand("pasta", ("pasta", "spaghetti", "noodle"), 1.3, 3.8),
    DensityBand("sugar", ("sugar",), 3.8, 4.0),
    DensityBand("flour", ("flour",), 3.3, 3.8),
    DensityBand("milk", ("milk",), 0.3, 0.7),
    DensityBand("yogurt", ("yogurt",), 0.5, 1.5),
    DensityBand("potato", ("potato",), 0.7, 1.5),
    DensityBand("fruit", ("apple", "banana", "orange", "berry", "berries"), 0.3, 1.0),
    DensityBand("leafy vegetable", ("lettuce", "spinach", "kale"), 0.1, 0.5),
)


def validate_nutrient_hierarchy(values: dict[str, object]) -> HierarchyResult:
    """Check that child nutrients never exceed their parents."""
    violations: list[str] = []
    carbs = _num(values, "carbs_g")
    sugar = _num(values, "sugar_g")
    fiber = _num(values, "fiber_g")
    added_sugar = _num(values, "sugar_added_g")
    fat_total = _num(values, "fat_total_g")
    fat_poly = _num(values, "fat_poly_g")

    if sugar > carbs:
        violations.append(f"Sugar ({sugar}g) exceeds Carbs ({carbs}g)")
    if fiber > carbs:
        violations.append(f"Fiber ({fiber}g) exceeds Carbs ({carbs}g)")
    if sugar + fiber > carbs + 1:
        violations.append(
            f"Sugar + Fiber ({round1(sugar + fiber)}g) exceeds Carbs ({carbs}g)"
        )
    if added_sugar > sugar:
        violations.append(
            f"Added Sugar ({added_sugar}g) exceeds Total Sugar ({sugar}g)"
        )

    subtype_sum = 0.0
    for key in FAT_SUBTYPES:
        amount = _num(values, key)
        subtype_sum += amount
        if amount > fat_total:
            violations.append(f"{key} ({amount}g) exceeds Total Fat ({fat_total}g)")
    if subtype_sum > fat_total + 1:
        violations.append(
            f"Sum of fat subtypes ({round1(subtype_sum)}g) exceeds Total Fat "
            f"({fat_total}g)"
        )
    for key in ("omega_3_g", "omega_6_g"):
        amount = _num(values, key)
        if amount > fat_poly:
            violations.append(
                f"{key} ({amount}g) exceeds Polyunsaturated Fat ({fat_poly}g)"
            )

    return HierarchyResult(valid=not violations, violations=violations)


def sanitize_nutrient_hierarchy(values: dict[str, float]) -> dict[str, float]:
    """Cap children at their parents."""
    cleaned = dict(values)
    carbs = cleaned.get("carbs_g", 0.0)
    if cleaned.get("sugar_g", 0.0) > carbs:
        cleaned["sugar_g"] = carbs
    if cleaned.get("fiber_g", 0.0) > carbs:
        cleaned["fiber_g"] = carbs
    if cleaned.get("sugar_added_g", 0.0) > cleaned.get("sugar_g", 0.0):
        cleaned["sugar_added_g"] = cleaned.get("sugar_g", 0.0)
    fat_total = cleaned.get("fat_total_g", 0.0)
    for key in FAT_SUBTYPES:
        if cleaned.get(key, 0.0) > fat_total:
            cleaned[key] = fat_total
    fat_poly = cleaned.get("fat_poly_g", 0.0)
    for key in ("omega_3_g", "omega_6_g"):
        if cleaned.get(key, 0.0) > fat_poly:
            cleaned[key] = fat_poly
    return cleaned


def holistic_sanitize(values: dict[str, float]) -> dict[str, float]:
    """Lift parents so they cover the sum of their children."""
    cleaned = dict(values)
    if cleaned.get("sugar_added_g", 0.0) > cleaned.get("sugar_g", 0.0):
        cleaned["sugar_g"] = round1(cleaned["sugar_added_g"])
    carb_floor = cleaned.get("sugar_g", 0.0) + cleaned.get("fiber_g", 0.0)
    if carb_floor > cleaned.get("carbs_g", 0.0):
        cleaned["carbs_g"] = round1(carb_floor)
    omega_floor = cleaned.get("omega_3_g", 0.0) + cleaned.get("omega_6_g", 0.0)
    if omega_floor > cleaned.get("fat_poly_g", 0.0):
        cleaned["fat_poly_g"] = round1(omega_floor)
    fat_floor = sum(cleaned.get(key, 0.0) for key in FAT_SUBTYPES)
    if fat_floor > cleaned.get("fat_total_g", 0.0):
        cleaned["fat_total_g"] = round1(fat_floor)
    return cleaned


def macro_calories(values: dict[str, float]) -> float:
    """Calories implied by protein, carbs and fat."""
    return (
        values.get("protein_g", 0.0) * 4
        + values.get("carbs_g", 0.0) * 4
        + values.get("fat_total_g", 0.0) * 9
    )


def reconcile_calories(vector: NutrientVector) -> NutrientVector:
    """Recompute calories from macros when missing or inconsistent."""
    derived = macro_calories(vector.values)
    if derived <= 0:
        return vector
    calories = vector.get("calories")
    if calories <= 0:
        source = "calculated_from_macros"
    elif abs(calories - derived) / calories > MACRO_TOLERANCE:
        source = "calories_macro_mismatch"
    else:
        return vector
    _logger.info(
        "Recomputing calories for %s from macros: %s -> %s",
        vector.food_name,
        calories,
        round(derived),
    )
    values = dict(vector.values)
    values["calories"] = float(round(derived))
    tagged = vector.with_error_source(source)
    return replace(
        tagged,
        values=values,
        confidence=downgrade_confidence(vector.confidence),
    )


def has_hollow_fat(values: dict[str, object]) -> bool:
    """True when total fat is non-trivial but no subtypes are reported."""
    if _num(values, "fat_total_g") <= 1:
        return False
    subtypes = (
        _num(values, "fat_saturated_g")
        + _num(values, "fat_mono_g")
        + _num(values, "fat_poly_g")
    )
    return subtypes < 0.1


def is_valid_nutrition(values: dict[str, object] | None, food_name: str) -> bool:
    """Reject empty, implausibly low-calorie or hollow-fat data."""
    if not values:
        return False
    if values.get("calories") is None and values.get("protein_g") is None:
        return False
    if _num(values, "calories") < 5 and LIKELY_CALORIC.search(food_name):
        _logger.warning(
            "%s has %s calories, which seems too low",
            food_name,
            values.get("calories"),
        )
        return False
    if has_hollow_fat(values):
        _logger.warning("Hollow fat detected for %s", food_name)
        return False
    return True


def find_density_band(food_name: str) -> DensityBand | None:
    """Return the first band whose keywords appear in the food name."""
    name = food_name.lower()
    for band in DENSITY_BANDS:
        if any(keyword in name for keyword in band.keywords):
            return band
    return None


def check_density(food_name: str, calories: float, grams: float) -> DensityCheck | None:
    """Compare calories per gram against the food's category band."""
    band = find_density_band(food_name)
    if band is None or grams <= 0:
        return None
    density = calories / grams
    if density < band.min_kcal_per_g:
        deviation = (band.min_kcal_per_g - density) / band.min_kcal_per_g
    elif density > band.max_kcal_per_g:
        deviation = (density - band.max_kcal_per_g) / band.max_kcal_per_g
    else:
        deviation = 0.0
    return DensityCheck(band=band, kcal_per_gram=density, deviation=deviation)


def _num(values: dict[str, object], key: str) -> float:
    value = values.get(key)
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        return float(value)
    return 0.0
