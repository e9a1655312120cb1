"""Tests for ingredient fingerprints and fallback matching."""

from nutrition_assistant.services.fallback import (
    find_fallback_nutrition,
    strip_modifiers,
)
from nutrition_assistant.services.fingerprint import (
    calculate_fingerprint,
    canonical_ingredient,
)


def test_canonical_ingredient_drops_quantities_and_plurals() -> None:
    assert canonical_ingredient("2 cups flour") == "flour"
    assert canonical_ingredient("3 large eggs") == "egg"
    assert canonical_ingredient("Fresh Tomatoes, chopped") == "tomato"


def test_fingerprint_ignores_order_and_quantities() -> None:
    first = calculate_fingerprint(["2 cups flour", "3 eggs", "1 cup sugar"])
    second = calculate_fingerprint(["sugar", "eggs", "flour"])

    assert first == "egg,flour,sugar"
    assert first == second


def test_fingerprint_changes_with_ingredients() -> None:
    assert calculate_fingerprint(["flour", "eggs"]) != calculate_fingerprint(
        ["flour", "eggs", "butter"]
    )


def test_fallback_nutrition_matching() -> None:
    exact = find_fallback_nutrition("Chicken Breast")
    assert exact is not None
    assert exact["calories"] == 165

    assert strip_modifiers("boneless skinless chicken breast") == "chicken breast"
    assert find_fallback_nutrition("grilled chicken breast") == exact
    assert find_fallback_nutrition("unobtainium") is None
