"""Tests for portion multipliers and scaling."""

import asyncio

import pytest

from nutrition_assistant.domain.nutrients import NutrientVector
from nutrition_assistant.errors import ConversionOutOfRange
from nutrition_assistant.services.portions import (
    PortionScaler,
    scale_nutrition,
    scale_values,
)
from tests.conftest import FakePortionEstimator, InMemoryNutritionCacheRepository


def test_multiplier_matches_unit_core_across_annotations(
    scaler: PortionScaler,
) -> None:
    multiplier = asyncio.run(scaler.multiplier("2 eggs", "1 large egg (50g)", "egg"))

    assert multiplier == 2.0


def test_multiplier_uses_weight_and_volume_tables(scaler: PortionScaler) -> None:
    assert asyncio.run(scaler.multiplier("200g", "100g", "rice")) == 2.0
    assert asyncio.run(scaler.multiplier("1 lb", "100g", "beef")) == pytest.approx(
        4.53592
    )
    assert asyncio.run(scaler.multiplier("1 cup", "100 ml", "milk")) == 2.4


def test_multiplier_reads_parenthetical_serving(scaler: PortionScaler) -> None:
    multiplier = asyncio.run(scaler.multiplier("1 cup", "1 serving (240ml)", "soup"))

    assert multiplier == 1.0


def test_multiplier_uses_countable_weights(scaler: PortionScaler) -> None:
    multiplier = asyncio.run(scaler.multiplier("3 slices", "100g", "bread"))

    assert multiplier == pytest.approx(0.9)


def test_multiplier_estimates_unit_weight_and_memoizes(
    cache_repository: InMemoryNutritionCacheRepository,
    estimator: FakePortionEstimator,
    scaler: PortionScaler,
) -> None:
    estimator.unit_weights["plate"] = 400

    multiplier = asyncio.run(scaler.multiplier("1 plate", "100g", "Paella"))

    assert multiplier == 4.0
    assert cache_repository.conversions[("paella", "plate", "g")] == 400


def test_multiplier_falls_back_to_estimator_and_caches(
    cache_repository: InMemoryNutritionCacheRepository,
    estimator: FakePortionEstimator,
    scaler: PortionScaler,
) -> None:
    estimator.fixed_multiplier = 2.5

    first = asyncio.run(scaler.multiplier("1 plate", "100g", "mystery casserole"))
    second = asyncio.run(scaler.multiplier("1 plate", "100g", "mystery casserole"))

    assert first == second == 2.5
    assert len(estimator.multiplier_calls) == 1
    assert cache_repository.conversions[
        ("mystery casserole", "1 plate", "100g")
    ] == 2.5


def test_multiplier_out_of_range_uses_one(
    cache_repository: InMemoryNutritionCacheRepository,
    estimator: FakePortionEstimator,
    scaler: PortionScaler,
) -> None:
    estimator.fixed_multiplier = 50

    multiplier = asyncio.run(scaler.multiplier("1 plate", "100g", "mystery casserole"))

    assert multiplier == 1.0
    assert cache_repository.conversions == {}


def test_check_multiplier_rejects_tiny_count_items() -> None:
    scaler = PortionScaler(
        conversions=InMemoryNutritionCacheRepository(),
        estimator=FakePortionEstimator(),
        safe_min=0.01,
    )

    with pytest.raises(ConversionOutOfRange):
        scaler.check_multiplier(0.03, "rice", count_unit=True)
    assert scaler.check_multiplier(0.03, "garlic", count_unit=True) == 0.03
    assert scaler.check_multiplier(0.03, "rice", count_unit=False) == 0.03
    with pytest.raises(ConversionOutOfRange):
        scaler.check_multiplier(25, "rice", count_unit=False)


def test_scale_values_rounds_and_keeps_ratios() -> None:
    scaled = scale_values(
        {"calories": 100.4, "protein_g": 3.33, "omega_ratio": 4.0}, 2
    )

    assert scaled == {"calories": 201.0, "protein_g": 6.7, "omega_ratio": 4.0}


def test_scale_nutrition_reconciles_calories() -> None:
    vector = NutrientVector(
        food_name="shake", values={"calories": 0.0, "protein_g": 25.0}
    )

    scaled = scale_nutrition(vector, 2)

    assert scaled.values["calories"] == 200.0
    assert "calculated_from_macros" in scaled.error_sources


def test_multiplier_discards_implausible_unit_weight(
    cache_repository: InMemoryNutritionCacheRepository,
    estimator: FakePortionEstimator,
    scaler: PortionScaler,
) -> None:
    estimator.unit_weights["plate"] = 3000
    estimator.fixed_multiplier = 2.5

    multiplier = asyncio.run(scaler.multiplier("1 plate", "100g", "Paella"))

    assert multiplier == 2.5
    assert ("paella", "plate", "g") not in cache_repository.conversions
    assert estimator.multiplier_calls == [("Paella", "1 plate", "100g")]


def test_multiplier_uses_one_when_estimator_is_offline(
    cache_repository: InMemoryNutritionCacheRepository,
    estimator: FakePortionEstimator,
    scaler: PortionScaler,
) -> None:
    estimator.offline = True

    multiplier = asyncio.run(scaler.multiplier("1 plate", "100g", "Paella"))

    assert multiplier == 1.0
    assert cache_repository.conversions == {}


def test_scale_nutrition_up_and_back_restores_values() -> None:
    vector = NutrientVector(
        food_name="granola",
        values={
            "calories": 200.0,
            "protein_g": 10.0,
            "carbs_g": 20.0,
            "fat_total_g": 8.9,
            "omega_ratio": 4.0,
        },
        confidence="high",
    )

    restored = scale_nutrition(scale_nutrition(vector, 2.5), 1 / 2.5)

    assert restored.values == pytest.approx(vector.values, abs=0.2)
    assert restored.confidence == "high"
    assert restored.error_sources == ()
