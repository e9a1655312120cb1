"""Tests for quantity parsing and conversions."""

import pytest

from nutrition_assistant.services.units import (
    density_for,
    hydration_ml_for,
    normalize_unit,
    parse_portion,
    parse_unit_and_amount,
    singular_unit,
    to_grams,
    to_ml,
    volume_to_grams,
)


def test_parse_unit_and_amount_handles_fractions_and_words() -> None:
    mixed = parse_unit_and_amount("1 1/2 tbsp")
    assert mixed is not None
    assert mixed.amount == 1.5
    assert mixed.unit == "tbsp"

    word = parse_unit_and_amount("an egg")
    assert word is not None
    assert word.amount == 1
    assert word.unit == "egg"

    ranged = parse_unit_and_amount("1-2 cups")
    assert ranged is not None
    assert ranged.amount == 1.5
    assert ranged.unit == "cup"

    assert parse_unit_and_amount("") is None
    assert parse_unit_and_amount("some rice") is None


def test_parse_portion_vulgar_fraction_and_to_taste() -> None:
    half = parse_portion("½ cup")
    assert half.amount == 0.5
    assert half.unit == "cup"

    salt = parse_portion("salt to taste")
    assert salt.amount == 0
    assert salt.unit == "to taste"

    bare = parse_portion("pinch")
    assert bare.amount == 1
    assert bare.unit == "pinch"


def test_unit_normalization() -> None:
    assert normalize_unit("Tablespoons") == "tbsp"
    assert normalize_unit(None) == ""
    assert singular_unit("eggs") == "egg"
    assert singular_unit("glass") == "glass"


def test_conversions() -> None:
    assert to_ml(1, "cup") == 240.0
    assert to_grams(2, "kg") == 2000.0
    assert to_grams(1, "cup") is None
    assert to_ml(1, "pound") is None


def test_volume_to_grams_uses_longest_density_match() -> None:
    assert density_for("extra virgin olive oil") == 0.92
    assert density_for("gravel") is None
    assert volume_to_grams(1, "cup", "all purpose flour") == pytest.approx(127.2)
    assert volume_to_grams(1, "cup", "gravel") is None


def test_hydration_only_counts_drinkable_liquids() -> None:
    assert hydration_ml_for("orange juice", 1, "cup") == 240.0
    assert hydration_ml_for("rice", 1, "cup") == 0.0
