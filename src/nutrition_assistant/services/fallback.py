"""Static per-100 g nutrition used when every other source fails."""

import logging
import re

_logger = logging.getLogger(__name__)

FALLBACK_SERVING = "100g"

# Values per 100 g, rounded from USDA SR Legacy entries.
NUTRITION_FALLBACKS: dict[str, dict[str, float]] = {
    "chicken breast": {
        "calories": 165,
        "protein_g": 31.0,
        "carbs_g": 0.0,
        "fat_total_g": 3.6,
        "fat_saturated_g": 1.0,
        "fat_mono_g": 1.2,
        "fat_poly_g": 0.8,
        "cholesterol_mg": 85,
        "sodium_mg": 74,
    },
    "ground beef": {
        "calories": 254,
        "protein_g": 17.2,
        "carbs_g": 0.0,
        "fat_total_g": 20.0,
        "fat_saturated_g": 7.6,
        "fat_mono_g": 8.9,
        "fat_poly_g": 0.5,
        "cholesterol_mg": 71,
        "sodium_mg": 66,
    },
    "salmon": {
        "calories": 208,
        "protein_g": 20.4,
        "carbs_g": 0.0,
        "fat_total_g": 13.4,
        "fat_saturated_g": 3.1,
        "fat_mono_g": 3.8,
        "fat_poly_g": 3.9,
        "omega_3_g": 2.5,
        "sodium_mg": 59,
    },
    "egg": {
        "calories": 143,
        "protein_g": 12.6,
        "carbs_g": 0.7,
        "fat_total_g": 9.5,
        "fat_saturated_g": 3.1,
        "fat_mono_g": 3.7,
        "fat_poly_g": 1.9,
        "cholesterol_mg": 372,
        "sodium_mg": 142,
    },
    "white rice": {
        "calories": 130,
        "protein_g": 2.7,
        "carbs_g": 28.2,
        "fat_total_g": 0.3,
        "fiber_g": 0.4,
        "sugar_g": 0.1,
    },
    "rice": {
        "calories": 130,
        "protein_g": 2.7,
        "carbs_g": 28.2,
        "fat_total_g": 0.3,
        "fiber_g": 0.4,
    },
    "pasta": {
        "calories": 158,
        "protein_g": 5.8,
        "carbs_g": 30.9,
        "fat_total_g": 0.9,
        "fiber_g": 1.8,
        "sugar_g": 0.6,
    },
    "bread": {
        "calories": 265,
        "protein_g": 9.0,
        "carbs_g": 49.0,
        "fat_total_g": 3.2,
        "fat_saturated_g": 0.7,
        "fat_mono_g": 0.6,
        "fat_poly_g": 1.4,
        "fiber_g": 2.7,
        "sugar_g": 5.0,
        "sodium_mg": 491,
    },
    "flour": {
        "calories": 364,
        "protein_g": 10.3,
        "carbs_g": 76.3,
        "fat_total_g": 1.0,
        "fiber_g": 2.7,
        "sugar_g": 0.3,
    },
    "sugar": {"calories": 387, "protein_g": 0.0, "carbs_g": 100.0, "sugar_g": 100.0},
    "butter": {
        "calories": 717,
        "protein_g": 0.9,
        "carbs_g": 0.1,
        "fat_total_g": 81.1,
        "fat_saturated_g": 51.4,
        "fat_mono_g": 21.0,
        "fat_poly_g": 3.0,
        "fat_trans_g": 3.3,
        "cholesterol_mg": 215,
    },
    "olive oil": {
        "calories": 884,
        "protein_g": 0.0,
        "carbs_g": 0.0,
        "fat_total_g": 100.0,
        "fat_saturated_g": 13.8,
        "fat_mono_g": 73.0,
        "fat_poly_g": 10.5,
    },
    "oil": {
        "calories": 884,
        "protein_g": 0.0,
        "carbs_g": 0.0,
        "fat_total_g": 100.0,
        "fat_saturated_g": 14.0,
        "fat_mono_g": 45.0,
        "fat_poly_g": 36.0,
    },
    "milk": {
        "calories": 61,
        "protein_g": 3.2,
        "carbs_g": 4.8,
        "fat_total_g": 3.3,
        "fat_saturated_g": 1.9,
        "fat_mono_g": 0.8,
        "fat_poly_g": 0.2,
        "sugar_g": 5.1,
        "calcium_mg": 113,
    },
    "cheddar cheese": {
        "calories": 403,
        "protein_g": 24.9,
        "carbs_g": 1.3,
        "fat_total_g": 33.1,
        "fat_saturated_g": 21.1,
        "fat_mono_g": 9.4,
        "fat_poly_g": 0.9,
        "sodium_mg": 621,
        "calcium_mg": 721,
    },
    "greek yogurt": {
        "calories": 59,
        "protein_g": 10.2,
        "carbs_g": 3.6,
        "fat_total_g": 0.4,
        "sugar_g": 3.2,
    },
    "banana": {
        "calories": 89,
        "protein_g": 1.1,
        "carbs_g": 22.8,
        "fat_total_g": 0.3,
        "fiber_g": 2.6,
        "sugar_g": 12.2,
        "potassium_mg": 358,
    },
    "apple": {
        "calories": 52,
        "protein_g": 0.3,
        "carbs_g": 13.8,
        "fat_total_g": 0.2,
        "fiber_g": 2.4,
        "sugar_g": 10.4,
    },
    "potato": {
        "calories": 77,
        "protein_g": 2.0,
        "carbs_g": 17.5,
        "fat_total_g": 0.1,
        "fiber_g": 2.2,
        "sugar_g": 0.8,
        "potassium_mg": 425,
    },
    "onion": {
        "calories": 40,
        "protein_g": 1.1,
        "carbs_g": 9.3,
        "fat_total_g": 0.1,
        "fiber_g": 1.7,
        "sugar_g": 4.2,
    },
    "tomato": {
        "calories": 18,
        "protein_g": 0.9,
        "carbs_g": 3.9,
        "fat_total_g": 0.2,
        "fiber_g": 1.2,
        "sugar_g": 2.6,
    },
    "spinach": {
        "calories": 23,
        "protein_g": 2.9,
        "carbs_g": 3.6,
        "fat_total_g": 0.4,
        "fiber_g": 2.2,
        "sugar_g": 0.4,
    },
    "oats": {
        "calories": 389,
        "protein_g": 16.9,
        "carbs_g": 66.3,
        "fat_total_g": 6.9,
        "fat_saturated_g": 1.2,
        "fat_mono_g": 2.2,
        "fat_poly_g": 2.5,
        "fiber_g": 10.6,
    },
    "peanut butter": {
        "calories": 588,
        "protein_g": 25.1,
        "carbs_g": 20.0,
        "fat_total_g": 50.4,
        "fat_saturated_g": 10.3,
        "fat_mono_g": 24.7,
        "fat_poly_g": 12.3,
        "fiber_g": 6.0,
        "sugar_g": 9.2,
    },
    "almonds": {
        "calories": 579,
        "protein_g": 21.2,
        "carbs_g": 21.6,
        "fat_total_g": 49.9,
        "fat_saturated_g": 3.8,
        "fat_mono_g": 31.6,
        "fat_poly_g": 12.3,
        "fiber_g": 12.5,
        "sugar_g": 4.4,
    },
    "honey": {"calories": 304, "protein_g": 0.3, "carbs_g": 82.4, "sugar_g": 82.1},
    "water": {"calories": 0, "protein_g": 0.0, "carbs_g": 0.0, "fat_total_g": 0.0},
    "salt": {"calories": 0, "protein_g": 0.0, "sodium_mg": 38758},
}

INGREDIENT_MODIFIERS = (
    "organic",
    "fresh",
    "frozen",
    "canned",
    "dried",
    "raw",
    "cooked",
    "low sodium",
    "low-sodium",
    "reduced sodium",
    "no salt added",
    "low fat",
    "low-fat",
    "reduced fat",
    "fat free",
    "fat-free",
    "high oleic",
    "extra virgin",
    "virgin",
    "pure",
    "natural",
    "whole",
    "chopped",
    "diced",
    "sliced",
    "minced",
    "crushed",
    "boneless",
    "skinless",
    "bone-in",
    "skin-on",
    "large",
    "medium",
    "small",
    "mini",
    "ripe",
    "unripe",
    "mature",
    "unsalted",
    "salted",
    "roasted",
    "toasted",
    "plain",
    "flavored",
    "sweetened",
    "unsweetened",
)


def strip_modifiers(name: str) -> str:
    """Remove preparation and size words from a food name."""
    simplified = name.lower().strip()
    for modifier in INGREDIENT_MODIFIERS:
        simplified = re.sub(rf"\b{re.escape(modifier)}\b", "", simplified)
    return " ".join(simplified.split())


def find_fallback_nutrition(search_term: str) -> dict[str, float] | None:
    """Match a food against the static table, loosest match last."""
    normalized = " ".join(search_term.lower().split())
    if normalized in NUTRITION_FALLBACKS:
        return dict(NUTRITION_FALLBACKS[normalized])

    simplified = strip_modifiers(normalized)
    if simplified in NUTRITION_FALLBACKS:
        _logger.info("Fallback match after removing modifiers: %s", simplified)
        return dict(NUTRITION_FALLBACKS[simplified])

    # Longest key first so "olive oil" wins over "oil".
    for key in sorted(NUTRITION_FALLBACKS, key=len, reverse=True):
        if key in normalized or (len(simplified) >= 3 and simplified in key):
            _logger.info("Fallback partial match: %s -> %s", normalized, key)
            return dict(NUTRITION_FALLBACKS[key])

    words = simplified.split()
    for index in range(len(words)):
        candidate = " ".join(words[index:])
        if candidate in NUTRITION_FALLBACKS:
            return dict(NUTRITION_FALLBACKS[candidate])
    return None
