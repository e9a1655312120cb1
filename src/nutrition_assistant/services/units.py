"""Quantity parsing and unit conversion tables."""

import re
from dataclasses import dataclass

UNIT_ALIASES: dict[str, str] = {
    "cup": "cup",
    "cups": "cup",
    "c": "cup",
    "tablespoon": "tbsp",
    "tablespoons": "tbsp",
    "tbsp": "tbsp",
    "tbs": "tbsp",
    "tb": "tbsp",
    "teaspoon": "tsp",
    "teaspoons": "tsp",
    "tsp": "tsp",
    "ts": "tsp",
    "t": "tsp",
    "liter": "liter",
    "liters": "liter",
    "litre": "liter",
    "litres": "liter",
    "l": "liter",
    "milliliter": "ml",
    "milliliters": "ml",
    "millilitre": "ml",
    "millilitres": "ml",
    "ml": "ml",
    "fluid ounce": "fl oz",
    "fluid ounces": "fl oz",
    "fl oz": "fl oz",
    "fl. oz": "fl oz",
    "floz": "fl oz",
    "ounce": "oz",
    "ounces": "oz",
    "oz": "oz",
    "quart": "quart",
    "quarts": "quart",
    "qt": "quart",
    "pint": "pint",
    "pints": "pint",
    "pt": "pint",
    "gallon": "gallon",
    "gallons": "gallon",
    "gal": "gallon",
    "gram": "g",
    "grams": "g",
    "gr": "g",
    "g": "g",
    "milligram": "mg",
    "milligrams": "mg",
    "mg": "mg",
    "kilogram": "kg",
    "kilograms": "kg",
    "kilo": "kg",
    "kilos": "kg",
    "kg": "kg",
    "pound": "lb",
    "pounds": "lb",
    "lb": "lb",
    "lbs": "lb",
    "piece": "piece",
    "pieces": "piece",
    "pc": "piece",
    "pcs": "piece",
    "slice": "slice",
    "slices": "slice",
    "whole": "whole",
    "each": "each",
    "serving": "serving",
    "servings": "serving",
    "glasses": "glass",
}

TO_GRAMS: dict[str, float] = {
    "g": 1.0,
    "mg": 0.001,
    "kg": 1000.0,
    "lb": 453.592,
    "oz": 28.3495,
    "scoop": 30.0,
    "heaping scoop": 45.0,
    "large scoop": 45.0,
    "small scoop": 15.0,
}

# Cups follow the 240 ml nutrition-label convention.
TO_ML: dict[str, float] = {
    "ml": 1.0,
    "liter": 1000.0,
    "cup": 240.0,
    "tbsp": 14.787,
    "tsp": 4.929,
    "fl oz": 29.5735,
    "quart": 946.353,
    "pint": 473.176,
    "gallon": 3785.41,
    "bowl": 500.0,
    "large bowl": 750.0,
    "small bowl": 300.0,
    "glass": 240.0,
    "mug": 350.0,
}

STANDARD_UNITS = frozenset(
    {
        "g",
        "mg",
        "kg",
        "lb",
        "oz",
        "ml",
        "liter",
        "cup",
        "tbsp",
        "tsp",
        "fl oz",
        "quart",
        "pint",
        "gallon",
    }
)

INGREDIENT_DENSITIES: dict[str, float] = {
    "water": 1.0,
    "milk": 1.03,
    "cream": 0.99,
    "oil": 0.92,
    "olive oil": 0.92,
    "vegetable oil": 0.92,
    "honey": 1.42,
    "flour": 0.53,
    "sugar": 0.85,
    "brown sugar": 0.93,
    "salt": 1.22,
    "butter": 0.91,
    "broth": 1.0,
    "stock": 1.0,
    "juice": 1.05,
    "rice": 0.75,
    "oats": 0.41,
    "pasta": 0.45,
    "chicken": 0.8,
    "beef": 0.9,
    "pork": 0.9,
    "meat": 0.9,
    "tofu": 0.95,
    "yogurt": 1.03,
}

_LIQUID_DENSITY_DEFAULTS: tuple[tuple[tuple[str, ...], float], ...] = (
    (("broth", "stock", "water"), 1.0),
    (("oil",), 0.92),
    (("milk", "cream"), 1.0),
)

LIQUID_KEYWORDS = (
    "water",
    "broth",
    "stock",
    "bouillon",
    "consomme",
    "soup",
    "milk",
    "juice",
    "tea",
    "coffee",
    "beer",
    "wine",
    "cider",
    "soda",
    "beverage",
    "drink",
)

WORD_AMOUNTS: dict[str, float] = {
    "a": 1,
    "an": 1,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "half": 0.5,
    "quarter": 0.25,
    "double": 2,
    "triple": 3,
    "couple": 2,
}

VULGAR_FRACTIONS: dict[str, str] = {
    "½": "0.5",
    "¼": "0.25",
    "¾": "0.75",
    "⅓": "0.333",
    "⅔": "0.667",
    "⅛": "0.125",
    "⅜": "0.375",
    "⅝": "0.625",
    "⅞": "0.875",
}

_ZERO_AMOUNT_PHRASES = ("to taste", "optional", "garnish", "for serving")
_AMOUNT_PATTERN = re.compile(r"^([\d/.\s-]+)\s*(.*)$")


@dataclass(frozen=True)
class ParsedAmount:
    """Amount and unit extracted from a quantity expression."""

    amount: float
    unit: str


def normalize_unit(unit: str | None) -> str:
    """Return the canonical spelling of a unit."""
    if not unit:
        return ""
    lowered = unit.lower().strip()
    return UNIT_ALIASES.get(lowered, lowered)


def singular_unit(unit: str) -> str:
    """Canonicalize a unit, dropping a plural suffix when unknown."""
    lowered = unit.lower().strip()
    if lowered in UNIT_ALIASES:
        return UNIT_ALIASES[lowered]
    if lowered.endswith("s") and not lowered.endswith("ss") and len(lowered) > 1:
        lowered = lowered[:-1]
    return UNIT_ALIASES.get(lowered, lowered)


def parse_unit_and_amount(text: str) -> ParsedAmount | None:
    """Parse "2 cups", "1 1/2 tbsp", "an egg" and similar expressions."""
    cleaned = text.lower().strip()
    if not cleaned:
        return None
    first_word = cleaned.split()[0]
    if first_word in WORD_AMOUNTS:
        rest = cleaned[len(first_word) :].strip()
        return ParsedAmount(
            amount=float(WORD_AMOUNTS[first_word]),
            unit=singular_unit(rest) if rest else "serving",
        )

    match = _AMOUNT_PATTERN.match(cleaned)
    if not match:
        return None
    amount = _parse_amount(match.group(1).strip())
    if amount is None:
        return None
    unit = match.group(2).strip()
    return ParsedAmount(amount=amount, unit=singular_unit(unit) if unit else "serving")


def parse_portion(text: str) -> ParsedAmount:
    """Parse a recipe portion, tolerating vulgar fractions and "to taste"."""
    work = text.lower().strip()
    for glyph, decimal in VULGAR_FRACTIONS.items():
        work = work.replace(glyph, f" {decimal}")
    work = work.strip()
    if any(phrase in work for phrase in _ZERO_AMOUNT_PHRASES):
        return ParsedAmount(amount=0.0, unit="to taste")
    parsed = parse_unit_and_amount(work)
    if parsed is not None:
        return parsed
    return ParsedAmount(amount=1.0, unit=singular_unit(work) if work else "piece")


def to_grams(amount: float, unit: str) -> float | None:
    """Convert a weight (or scoop) quantity to grams."""
    factor = TO_GRAMS.get(normalize_unit(unit))
    if factor is None:
        return None
    return amount * factor


def to_ml(amount: float, unit: str) -> float | None:
    """Convert a volume quantity to milliliters."""
    factor = TO_ML.get(normalize_unit(unit))
    if factor is None:
        return None
    return amount * factor


def density_for(food_name: str) -> float | None:
    """Return grams per milliliter for an ingredient, if known."""
    name = food_name.lower()
    matches = [key for key in INGREDIENT_DENSITIES if key in name]
    if matches:
        return INGREDIENT_DENSITIES[max(matches, key=len)]
    for keywords, density in _LIQUID_DENSITY_DEFAULTS:
        if any(keyword in name for keyword in keywords):
            return density
    return None


def volume_to_grams(amount: float, unit: str, food_name: str) -> float | None:
    """Convert a volume quantity to grams using the density table."""
    ml = to_ml(amount, unit)
    if ml is None:
        return None
    density = density_for(food_name)
    if density is None:
        return None
    return ml * density


def is_standard_unit(unit: str) -> bool:
    """True for weight and kitchen volume units."""
    return normalize_unit(unit) in STANDARD_UNITS


def is_count_unit(unit: str) -> bool:
    """True for items counted rather than measured ("egg", "slice")."""
    return not is_standard_unit(unit)


def hydration_ml_for(food_name: str, amount: float, unit: str) -> float:
    """Return water contributed by a drinkable liquid measured by volume."""
    name = food_name.lower()
    if not any(keyword in name for keyword in LIQUID_KEYWORDS):
        return 0.0
    return to_ml(amount, unit) or 0.0


def _parse_amount(raw: str) -> float | None:
    if "-" in raw and " " not in raw.strip():
        # "1-2" is a range; take the midpoint.
        bounds = [_parse_amount(part) for part in raw.split("-") if part]
        numbers = [bound for bound in bounds if bound is not None]
        if not numbers:
            return None
        return sum(numbers) / len(numbers)
    if " " in raw:
        total = 0.0
        for part in raw.split():
            value = _parse_amount(part)
            if value is None:
                return None
            total += value
        return total
    if "/" in raw:
        numerator, _, denominator = raw.partition("/")
        try:
            return float(numerator) / float(denominator)
        except (ValueError, ZeroDivisionError):
            return None
    try:
        return float(raw)
    except ValueError:
        return None
