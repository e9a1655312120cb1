"""Tests for nutrient vocabulary and vectors."""

from nutrition_assistant.domain.nutrients import (
    NutrientVector,
    default_unit_for,
    downgrade_confidence,
    normalize_nutrient_key,
    round1,
)


def test_normalize_nutrient_key_aliases() -> None:
    assert normalize_nutrient_key("water") == "hydration_ml"
    assert normalize_nutrient_key("Sat Fat") == "fat_saturated_g"
    assert normalize_nutrient_key("kcal") == "calories"
    assert normalize_nutrient_key("carbs") == "carbs_g"
    assert normalize_nutrient_key("protein_g") == "protein_g"


def test_default_unit_for() -> None:
    assert default_unit_for("calories") == "kcal"
    assert default_unit_for("something_unknown") == "g"


def test_downgrade_confidence_bottoms_out() -> None:
    assert downgrade_confidence("high") == "medium"
    assert downgrade_confidence("medium") == "low"
    assert downgrade_confidence("low") == "low"
    assert downgrade_confidence("bogus") == "low"


def test_round1() -> None:
    assert round1(2.26) == 2.3
    assert round1(10) == 10.0


def test_vector_from_dict_keeps_known_numbers() -> None:
    vector = NutrientVector.from_dict(
        {
            "calories": "250",
            "protein_g": 20,
            "unknown_field": 5,
            "fiber_g": True,
            "confidence": "high",
            "error_sources": ["density_outlier"],
        },
        food_name="Oatmeal",
    )

    assert vector.food_name == "Oatmeal"
    assert vector.values == {"calories": 250.0, "protein_g": 20.0}
    assert vector.confidence == "high"
    assert vector.error_sources == ("density_outlier",)


def test_vector_with_error_source_is_idempotent() -> None:
    vector = NutrientVector(food_name="Toast").with_error_source("estimate")

    assert vector.with_error_source("estimate") is vector
    assert vector.error_sources == ("estimate",)
    assert vector.to_dict()["food_name"] == "Toast"
