"""Tests for the nutrition resolution pipeline."""

import asyncio
from dataclasses import dataclass

import httpx
import pytest

from nutrition_assistant.errors import ExternalServiceError, ResolutionFailure
from nutrition_assistant.services.cache import InMemoryCache
from nutrition_assistant.services.nutrition import (
    HOLLOW_FAT_CORRECTION,
    NutritionResolver,
    extract_nutrients,
    normalize_food_name,
)
from nutrition_assistant.services.portions import PortionScaler
from tests.conftest import (
    FakeFdcClient,
    FakePortionEstimator,
    InMemoryNutritionCacheRepository,
    ScriptedLLMClient,
)


def chicken_estimate(calories: float = 165, **overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "food_name": "chicken breast",
        "serving_size": "100g",
        "recognized": True,
        "confidence": "high",
        "calories": calories,
        "protein_g": 31,
        "carbs_g": 0,
        "fat_total_g": 3.6,
        "fat_saturated_g": 1.0,
        "fat_mono_g": 1.2,
        "fat_poly_g": 0.8,
    }
    payload.update(overrides)
    return payload


@dataclass
class FailingFdcClient(FakeFdcClient):
    async def search_foods(self, query: str, page_size: int = 10) -> dict[str, object]:
        self.searches.append(query)
        raise httpx.ConnectError("connection refused")


@dataclass
class OfflineScaler(PortionScaler):
    async def multiplier(
        self, user_portion: str, serving_size: str, food_name: str
    ) -> float:
        if food_name == "egg":
            raise ExternalServiceError("estimator offline")
        return 1.0


def tofu_row() -> dict[str, object]:
    return {
        "serving_size": "100g",
        "calories": 76,
        "protein_g": 8,
        "carbs_g": 1.9,
        "fat_total_g": 4.8,
        "fat_saturated_g": 0.7,
        "fat_mono_g": 1.1,
        "fat_poly_g": 2.7,
    }


def test_normalize_food_name() -> None:
    assert normalize_food_name("  Oat   Milk! ") == "oat milk"
    assert normalize_food_name("Ben & Jerry's") == "ben & jerry's"


def test_extract_nutrients_reads_both_row_shapes() -> None:
    values = extract_nutrients(
        [
            {"nutrientId": 1008, "amount": 52},
            {"nutrient": {"id": 1003}, "value": 0.3},
            {"nutrientId": 9999, "amount": 1},
        ]
    )

    assert values == {"calories": 52.0, "protein_g": 0.3}


def test_extract_nutrients_skips_malformed_rows() -> None:
    values = extract_nutrients(
        [
            "not a row",
            {"nutrientId": 1008, "amount": "n/a"},
            {"nutrient": None, "nutrientId": 1003, "amount": 5},
        ]
    )

    assert values == {"protein_g": 5.0}


def test_resolve_uses_llm_estimate_and_scales(
    llm: ScriptedLLMClient,
    fdc_client: FakeFdcClient,
    cache_repository: InMemoryNutritionCacheRepository,
    resolver: NutritionResolver,
) -> None:
    llm.queue_json("nutrition_estimate", chicken_estimate())

    vector = asyncio.run(resolver.resolve("Grilled Chicken Breast", "200g"))

    assert vector.values["calories"] == 330
    assert vector.values["protein_g"] == 62
    assert vector.serving_size == "200g"
    assert vector.confidence == "high"
    assert cache_repository.sources["grilled chicken breast"] == "agent"
    assert fdc_client.searches == []

    again = asyncio.run(resolver.resolve("grilled chicken breast", "100g"))
    assert again.values["calories"] == 165
    assert len(llm.calls_for("complete_json")) == 1


def test_resolve_reads_shared_cache_and_adds_hydration(
    llm: ScriptedLLMClient,
    cache_repository: InMemoryNutritionCacheRepository,
    resolver: NutritionResolver,
) -> None:
    cache_repository.foods["oat milk"] = {
        "serving_size": "1 cup",
        "calories": 120,
        "protein_g": 3,
        "carbs_g": 16,
        "fat_total_g": 5,
        "fat_saturated_g": 0.5,
        "fat_mono_g": 2.5,
        "fat_poly_g": 1.5,
    }

    vector = asyncio.run(resolver.resolve("Oat Milk!", "2 cups"))

    assert vector.values["calories"] == 240
    assert vector.values["hydration_ml"] == 480
    assert llm.calls == []


def test_resolve_retries_density_outlier_once(
    llm: ScriptedLLMClient, resolver: NutritionResolver
) -> None:
    llm.queue_json("nutrition_estimate", chicken_estimate(calories=50, protein_g=11,
                                                          fat_total_g=0.5))
    llm.queue_json("nutrition_estimate", chicken_estimate())

    vector = asyncio.run(resolver.resolve("chicken breast", "100g"))

    assert vector.values["calories"] == 165
    assert "density_outlier" not in vector.error_sources
    second_call = llm.calls_for("complete_json")[1]
    assert len(second_call["messages"]) == 3


def test_resolve_accepts_persistent_density_outlier_with_lower_confidence(
    llm: ScriptedLLMClient, resolver: NutritionResolver
) -> None:
    outlier = chicken_estimate(calories=50, protein_g=11, fat_total_g=0.5,
                               fat_saturated_g=0.2, fat_mono_g=0.2, fat_poly_g=0.1)
    llm.queue_json("nutrition_estimate", outlier)
    llm.queue_json("nutrition_estimate", dict(outlier))

    vector = asyncio.run(resolver.resolve("chicken breast", "100g"))

    assert vector.values["calories"] == 50
    assert vector.confidence == "medium"
    assert "density_outlier" in vector.error_sources


def test_resolve_retries_hollow_fat_then_uses_fallback(
    llm: ScriptedLLMClient,
    fdc_client: FakeFdcClient,
    resolver: NutritionResolver,
) -> None:
    hollow = chicken_estimate(fat_saturated_g=0, fat_mono_g=0, fat_poly_g=0)
    llm.queue_json("nutrition_estimate", hollow)
    llm.queue_json("nutrition_estimate", dict(hollow))
    fdc_client.search_payload = {"foods": []}

    vector = asyncio.run(resolver.resolve("boneless chicken breast", "100g"))

    assert vector.values["calories"] == 165
    assert vector.confidence == "low"
    assert vector.error_sources == ("fallback_table",)
    correction = llm.calls_for("complete_json")[1]["messages"][-1]
    assert correction == {"role": "user", "content": HOLLOW_FAT_CORRECTION}


def test_resolve_uses_fdc_when_llm_does_not_recognize(
    llm: ScriptedLLMClient,
    fdc_client: FakeFdcClient,
    cache_repository: InMemoryNutritionCacheRepository,
    resolver: NutritionResolver,
) -> None:
    llm.queue_json("nutrition_estimate", {"recognized": False})

    vector = asyncio.run(resolver.resolve("chicken breast", "100g"))

    assert vector.food_name == "Chicken breast, raw"
    assert vector.values["calories"] == 120
    assert vector.confidence == "high"
    assert fdc_client.searches == ["chicken breast"]
    assert cache_repository.sources["chicken breast"] == "fdc"


def test_resolve_retries_fdc_errors_before_falling_back(
    cache_repository: InMemoryNutritionCacheRepository,
    scaler: PortionScaler,
) -> None:
    fdc_client = FailingFdcClient()
    resolver = NutritionResolver(
        llm=ScriptedLLMClient(),
        model="main-model",
        fdc_client=fdc_client,
        repository=cache_repository,
        cache=InMemoryCache(),
        scaler=scaler,
        retry_delay_seconds=0,
    )

    vector = asyncio.run(resolver.resolve("egg", "100g"))

    assert len(fdc_client.searches) == 2
    assert vector.error_sources == ("fallback_table",)


def test_resolve_failure_is_logged(
    fdc_client: FakeFdcClient,
    cache_repository: InMemoryNutritionCacheRepository,
    resolver: NutritionResolver,
    user_id: object,
) -> None:
    fdc_client.search_payload = {"foods": []}

    with pytest.raises(ResolutionFailure) as excinfo:
        asyncio.run(resolver.resolve("unobtainium", "1 bar", user_id=user_id))

    assert excinfo.value.food_name == "unobtainium"
    assert "fallback: no fallback entry" in excinfo.value.reason
    assert cache_repository.failures[0][:2] == ("unobtainium", "1 bar")
    assert resolver.failure_counts["unobtainium"] == 1


def test_resolve_many_keeps_order_and_failures(
    fdc_client: FakeFdcClient, resolver: NutritionResolver
) -> None:
    fdc_client.search_payload = {"foods": []}

    results = asyncio.run(
        resolver.resolve_many([("unobtainium", "1"), ("egg", "100g")])
    )

    assert isinstance(results[0], ResolutionFailure)
    assert results[1].values["calories"] == 143


def test_compare_picks_standouts(
    cache_repository: InMemoryNutritionCacheRepository, resolver: NutritionResolver
) -> None:
    cache_repository.foods["tofu"] = {
        "serving_size": "100g",
        "calories": 76,
        "protein_g": 8,
        "carbs_g": 1.9,
        "fat_total_g": 4.8,
        "fat_saturated_g": 0.7,
        "fat_mono_g": 1.1,
        "fat_poly_g": 2.7,
    }
    cache_repository.foods["tempeh"] = {
        "serving_size": "100g",
        "calories": 192,
        "protein_g": 20,
        "carbs_g": 7.6,
        "fat_total_g": 10.8,
        "fat_saturated_g": 2.2,
        "fat_mono_g": 3.0,
        "fat_poly_g": 3.8,
    }

    comparison = asyncio.run(resolver.compare(["tofu", "tempeh"]))

    assert comparison["best_protein"] == "tempeh"
    assert comparison["lowest_calories"] == "tofu"
    assert comparison["missing"] == []


def test_resolve_skips_fdc_match_without_id(
    fdc_client: FakeFdcClient, resolver: NutritionResolver
) -> None:
    fdc_client.search_payload = {"foods": [{"description": "Egg, whole"}]}

    vector = asyncio.run(resolver.resolve("egg", "100g"))

    assert vector.values["calories"] == 143
    assert vector.error_sources == ("fallback_table",)


def test_resolve_many_turns_service_errors_into_failures(
    llm: ScriptedLLMClient,
    fdc_client: FakeFdcClient,
    cache_repository: InMemoryNutritionCacheRepository,
) -> None:
    fdc_client.search_payload = {"foods": []}
    cache_repository.foods["tofu"] = tofu_row()
    resolver = NutritionResolver(
        llm=llm,
        model="main-model",
        fdc_client=fdc_client,
        repository=cache_repository,
        cache=InMemoryCache(),
        scaler=OfflineScaler(
            conversions=cache_repository, estimator=FakePortionEstimator()
        ),
        retry_delay_seconds=0,
    )

    results = asyncio.run(resolver.resolve_many([("egg", "100g"), ("tofu", "100g")]))

    assert isinstance(results[0], ResolutionFailure)
    assert results[0].reason == "estimator offline"
    assert results[1].values["calories"] == 76


def test_successful_resolve_resets_failure_count(
    fdc_client: FakeFdcClient,
    cache_repository: InMemoryNutritionCacheRepository,
    resolver: NutritionResolver,
) -> None:
    fdc_client.search_payload = {"foods": []}
    with pytest.raises(ResolutionFailure):
        asyncio.run(resolver.resolve("unobtainium", "100g"))
    assert resolver.failure_counts["unobtainium"] == 1

    cache_repository.foods["unobtainium"] = tofu_row()
    vector = asyncio.run(resolver.resolve("unobtainium", "100g"))

    assert vector.values["calories"] == 76
    assert "unobtainium" not in resolver.failure_counts
