"""Nutrition resolution pipeline: cache, LLM estimate, FDC, static fallback."""

import asyncio
import json
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Protocol
from uuid import UUID

import httpx

from nutrition_assistant.adapters.fdc_client import FdcClient
from nutrition_assistant.domain.nutrients import (
    NUTRIENTS,
    NutrientVector,
    downgrade_confidence,
)
from nutrition_assistant.errors import ExternalServiceError, ResolutionFailure
from nutrition_assistant.services.cache import Cache
from nutrition_assistant.services.fallback import (
    FALLBACK_SERVING,
    find_fallback_nutrition,
)
from nutrition_assistant.services.llm import LLMClient
from nutrition_assistant.services.portions import PortionScaler, scale_nutrition
from nutrition_assistant.services.units import (
    hydration_ml_for,
    parse_unit_and_amount,
    to_grams,
)
from nutrition_assistant.services.validation import (
    DensityCheck,
    check_density,
    holistic_sanitize,
    is_valid_nutrition,
    reconcile_calories,
)

_logger = logging.getLogger(__name__)

# FoodData Central nutrient ids; amounts are per 100 g.
FDC_NUTRIENT_IDS: dict[int, str] = {
    1008: "calories",
    1003: "protein_g",
    1004: "fat_total_g",
    1005: "carbs_g",
    1079: "fiber_g",
    2000: "sugar_g",
    1235: "sugar_added_g",
    1093: "sodium_mg",
    1253: "cholesterol_mg",
    1092: "potassium_mg",
    1087: "calcium_mg",
    1089: "iron_mg",
    1090: "magnesium_mg",
    1091: "phosphorus_mg",
    1095: "zinc_mg",
    1098: "copper_mg",
    1101: "manganese_mg",
    1103: "selenium_mcg",
    1106: "vitamin_a_mcg",
    1162: "vitamin_c_mg",
    1114: "vitamin_d_mcg",
    1109: "vitamin_e_mg",
    1185: "vitamin_k_mcg",
    1165: "thiamin_mg",
    1166: "riboflavin_mg",
    1167: "niacin_mg",
    1170: "pantothenic_acid_mg",
    1175: "vitamin_b6_mg",
    1176: "biotin_mcg",
    1177: "folate_mcg",
    1178: "vitamin_b12_mcg",
    1258: "fat_saturated_g",
    1292: "fat_mono_g",
    1293: "fat_poly_g",
    1257: "fat_trans_g",
}

HOLLOW_FAT_CORRECTION = (
    "Your previous response had data integrity issues (e.g. Total Fat > 1g but "
    "0g Saturated/Mono/Poly). You MUST estimate the fat subtypes."
)

ESTIMATE_INSTRUCTIONS = (
    "You are a nutrition expert. Estimate nutrition data for the given food item "
    "at its stated serving size.\n"
    "- Estimate a value for EVERY nutrient key. If a value is negligible (like fat "
    "in an apple), put 0.\n"
    "- Do NOT put 0 for calories unless it is water, salt or a diet soda.\n"
    "- Accurately estimate fat types (saturated, mono, poly, trans, omega-3, "
    "omega-6). Total fat must roughly equal the sum of the subtypes.\n"
    "- serving_size is the amount your values describe, e.g. \"100g\", \"1 cup\", "
    '"1 large egg (50g)".\n'
    "- Set recognized to false if you are completely unsure what the item is."
)

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s%&'-]")


def normalize_food_name(name: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    cleaned = _PUNCTUATION.sub(" ", name.lower())
    return _WHITESPACE.sub(" ", cleaned).strip()


def estimate_schema() -> dict[str, object]:
    """Strict JSON schema covering every tracked nutrient key."""
    properties: dict[str, object] = {
        "food_name": {"type": "string"},
        "serving_size": {"type": "string"},
        "recognized": {"type": "boolean"},
        "confidence": {"type": "string", "enum": ["low", "medium", "high"]},
    }
    for key, info in NUTRIENTS.items():
        properties[key] = {
            "type": "number",
            "description": f"{info.name} ({info.unit or 'ratio'})",
        }
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


@dataclass(frozen=True)
class Ok:
    """A stage produced a usable vector."""

    vector: NutrientVector
    source: str


@dataclass(frozen=True)
class Retry:
    """A stage wants one more attempt, with feedback for the next call."""

    reason: str
    feedback: str
    previous: dict[str, object] | None = None


@dataclass(frozen=True)
class Fail:
    """A stage could not produce data."""

    reason: str


StageResult = Ok | Retry | Fail


@dataclass(frozen=True)
class ResolutionRequest:
    """Everything a stage needs to know about the food being resolved."""

    food_name: str
    search_term: str
    tracked: tuple[str, ...] = ()
    recipe_context: str | None = None


Stage = Callable[[ResolutionRequest, Retry | None], Awaitable[StageResult]]


async def run_stages(
    stages: Sequence[tuple[str, Stage]],
    request: ResolutionRequest,
    *,
    max_retries: int = 1,
) -> tuple[Ok | None, list[str]]:
    """Run stages in order until one succeeds, allowing bounded retries."""
    failures: list[str] = []
    for name, stage in stages:
        retry: Retry | None = None
        for _attempt in range(max_retries + 1):
            result = await stage(request, retry)
            if isinstance(result, Ok):
                return result, failures
            if isinstance(result, Fail):
                failures.append(f"{name}: {result.reason}")
                break
            _logger.warning(
                "Stage %s asked to retry for %s: %s",
                name,
                request.food_name,
                result.reason,
            )
            retry = result
        else:
            failures.append(f"{name}: retries exhausted")
    return None, failures


class NutritionCacheRepository(Protocol):
    """Shared store of previously resolved foods."""

    def find_food(self, search_term: str) -> dict[str, object] | None:
        """Return cached flat nutrition data for a normalized name."""

    def save_food(
        self,
        search_term: str,
        nutrition: dict[str, object],
        source: str,
        brand: str | None = None,
    ) -> None:
        """Store flat nutrition data under a normalized name."""

    def log_failed_lookup(
        self, user_id: UUID | None, query: str, portion: str, reason: str
    ) -> None:
        """Record a food no stage could resolve."""


@dataclass
class NutritionResolver:
    """Resolves a food and portion into a scaled nutrient vector."""

    llm: LLMClient
    model: str
    fdc_client: FdcClient
    repository: NutritionCacheRepository
    cache: Cache
    scaler: PortionScaler
    cache_ttl_seconds: int = 86400
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.3
    failure_counts: dict[str, int] = field(default_factory=dict)

    async def resolve(
        self,
        food_name: str,
        portion: str = "1 serving",
        *,
        user_id: UUID | None = None,
        tracked: Sequence[str] = (),
        recipe_context: str | None = None,
    ) -> NutrientVector:
        """Resolve nutrition for one food at the user's portion."""
        request = ResolutionRequest(
            food_name=food_name,
            search_term=normalize_food_name(food_name),
            tracked=tuple(tracked),
            recipe_context=recipe_context,
        )
        outcome, failures = await run_stages(self._stages(), request)
        if outcome is None:
            reason = "; ".join(failures) or "no data"
            self._record_failure(user_id, food_name, portion, reason)
            raise ResolutionFailure(food_name, reason)
        self.failure_counts.pop(food_name, None)
        _logger.info("Resolved %s via %s", food_name, outcome.source)
        return await self._scale(outcome.vector, food_name, portion)

    async def resolve_many(
        self,
        items: Sequence[tuple[str, str]],
        *,
        user_id: UUID | None = None,
        tracked: Sequence[str] = (),
        recipe_context: str | None = None,
    ) -> list[NutrientVector | ResolutionFailure]:
        """Resolve several foods concurrently, keeping input order."""

        async def _one(name: str, portion: str) -> NutrientVector | ResolutionFailure:
            try:
                return await self.resolve(
                    name,
                    portion,
                    user_id=user_id,
                    tracked=tracked,
                    recipe_context=recipe_context,
                )
            except ResolutionFailure as exc:
                return exc
            except ExternalServiceError as exc:
                _logger.warning("Lookup for %s failed: %s", name, exc)
                return ResolutionFailure(name, str(exc))

        return list(
            await asyncio.gather(*(_one(name, portion) for name, portion in items))
        )

    async def lookup(
        self,
        food_name: str,
        portion: str = "1 serving",
        *,
        user_id: UUID | None = None,
        tracked: Sequence[str] = (),
    ) -> dict[str, object]:
        """Resolve a food into the flat payload used by tools and proposals."""
        vector = await self.resolve(
            food_name, portion, user_id=user_id, tracked=tracked
        )
        return vector.to_dict()

    async def estimate(
        self, description: str, portion: str = "1 serving"
    ) -> dict[str, object]:
        """Estimate a free-form description with the LLM stage only."""
        request = ResolutionRequest(
            food_name=description, search_term=normalize_food_name(description)
        )
        outcome, failures = await run_stages(
            [("llm_estimate", self._llm_stage)], request
        )
        if outcome is None:
            raise ResolutionFailure(description, "; ".join(failures))
        vector = await self._scale(outcome.vector, description, portion)
        return vector.to_dict()

    async def compare(
        self, foods: Sequence[str], portion: str = "100g"
    ) -> dict[str, object]:
        """Resolve foods at the same portion and pick the standouts."""
        results = await self.resolve_many([(food, portion) for food in foods])
        vectors = [item for item in results if isinstance(item, NutrientVector)]
        missing = [
            item.food_name for item in results if isinstance(item, ResolutionFailure)
        ]
        if not vectors:
            return {"foods": [], "missing": missing}
        best_protein = max(vectors, key=lambda item: item.get("protein_g"))
        lowest_calories = min(vectors, key=lambda item: item.get("calories"))
        return {
            "portion": portion,
            "foods": [vector.to_dict() for vector in vectors],
            "best_protein": best_protein.food_name,
            "lowest_calories": lowest_calories.food_name,
            "missing": missing,
        }

    def _stages(self) -> list[tuple[str, Stage]]:
        return [
            ("cache", self._cache_stage),
            ("llm_estimate", self._llm_stage),
            ("external_api", self._api_stage),
            ("fallback", self._fallback_stage),
        ]

    async def _cache_stage(
        self, request: ResolutionRequest, _retry: Retry | None
    ) -> StageResult:
        cache_key = f"food:{request.search_term}"
        cached = self.cache.get(cache_key)
        if isinstance(cached, NutrientVector):
            return Ok(cached, "memory")
        stored = self.repository.find_food(request.search_term)
        if not stored:
            return Fail("cache miss")
        if not is_valid_nutrition(stored, request.food_name):
            return Fail("cached data failed validation")
        vector = _enforce_invariants(
            NutrientVector.from_dict(stored, food_name=request.food_name)
        )
        self.cache.set(cache_key, vector, ttl_seconds=self.cache_ttl_seconds)
        return Ok(vector, "cache")

    async def _llm_stage(
        self, request: ResolutionRequest, retry: Retry | None
    ) -> StageResult:
        messages: list[dict[str, object]] = [
            {"role": "user", "content": _estimate_prompt(request)}
        ]
        if retry is not None and retry.previous is not None:
            previous = json.dumps(retry.previous)
            messages.append({"role": "assistant", "content": previous})
            messages.append({"role": "user", "content": retry.feedback})
        try:
            payload = await self.llm.complete_json(
                model=self.model,
                instructions=ESTIMATE_INSTRUCTIONS,
                messages=messages,
                schema=estimate_schema(),
                schema_name="nutrition_estimate",
            )
        except (ExternalServiceError, ValueError) as exc:
            return Fail(f"estimate failed: {exc}")
        if payload.get("recognized") is False:
            return Fail("food not recognized")

        if not is_valid_nutrition(payload, request.food_name):
            if retry is None:
                return Retry("invalid or hollow data", HOLLOW_FAT_CORRECTION, payload)
            return Fail("invalid or hollow data after correction")

        vector = NutrientVector.from_dict(payload, food_name=request.food_name)
        vector = replace(vector, serving_size=vector.serving_size or FALLBACK_SERVING)
        density = _density_check(vector)
        if density is not None and density.is_outlier:
            if retry is None:
                return Retry(
                    "density outlier",
                    "Your estimate looks off. "
                    f"{density.guidance()} Please re-check the values.",
                    payload,
                )
            _logger.warning(
                "Accepting %s despite density outlier: %s",
                request.food_name,
                density.guidance(),
            )
            vector = replace(
                vector,
                confidence=downgrade_confidence(vector.confidence),
            ).with_error_source("density_outlier")

        vector = _enforce_invariants(vector)
        if vector.confidence == "low":
            vector = vector.with_error_source("llm_estimation")
        self._store(request, vector, source="agent", brand="AI Estimate")
        return Ok(vector, "llm")

    async def _api_stage(
        self, request: ResolutionRequest, _retry: Retry | None
    ) -> StageResult:
        try:
            search = await self._call_with_retry(
                lambda: self.fdc_client.search_foods(request.food_name, page_size=1),
                action="search",
            )
            foods = search.get("foods") or []
            if not foods:
                return Fail("no FDC match")
            first = foods[0]
            fdc_id = _fdc_id(first)
            if fdc_id is None:
                _logger.warning("Malformed FDC match for %s", request.food_name)
                return Fail("FDC match without an fdcId")
            details = await self._call_with_retry(
                lambda: self.fdc_client.get_food(fdc_id),
                action=f"get_food:{fdc_id}",
            )
        except (httpx.HTTPError, ExternalServiceError, ValueError) as exc:
            return Fail(f"FDC request failed: {exc}")
        if not isinstance(details, dict):
            return Fail("FDC details malformed")

        values = extract_nutrients(details.get("foodNutrients") or [])
        if not is_valid_nutrition(values, request.food_name):
            _logger.warning("Discarding hollow FDC data for %s", request.food_name)
            return Fail("FDC data invalid or hollow")
        vector = _enforce_invariants(
            NutrientVector(
                food_name=str(details.get("description") or request.food_name),
                values=values,
                serving_size=FALLBACK_SERVING,
                confidence="high",
            )
        )
        self._store(
            request, vector, source="fdc", brand=_optional_str(first.get("brandOwner"))
        )
        return Ok(vector, "fdc")

    async def _fallback_stage(
        self, request: ResolutionRequest, _retry: Retry | None
    ) -> StageResult:
        values = find_fallback_nutrition(request.food_name)
        if values is None:
            return Fail("no fallback entry")
        vector = NutrientVector(
            food_name=request.food_name,
            values={key: float(value) for key, value in values.items()},
            serving_size=FALLBACK_SERVING,
            confidence="low",
            error_sources=("fallback_table",),
        )
        return Ok(_enforce_invariants(vector), "fallback")

    async def _scale(
        self, vector: NutrientVector, food_name: str, portion: str
    ) -> NutrientVector:
        serving = vector.serving_size or FALLBACK_SERVING
        multiplier = await self.scaler.multiplier(portion, serving, food_name)
        _logger.info(
            "Scaling %s by %s (user: %s, official: %s)",
            food_name,
            multiplier,
            portion,
            serving,
        )
        scaled = replace(scale_nutrition(vector, multiplier), serving_size=portion)
        parsed = parse_unit_and_amount(portion)
        if parsed is not None:
            hydration = hydration_ml_for(food_name, parsed.amount, parsed.unit)
            if hydration > 0:
                values = dict(scaled.values)
                values["hydration_ml"] = round(hydration)
                scaled = scaled.with_values(values)
        return scaled

    def _store(
        self,
        request: ResolutionRequest,
        vector: NutrientVector,
        *,
        source: str,
        brand: str | None,
    ) -> None:
        self.cache.set(
            f"food:{request.search_term}", vector, ttl_seconds=self.cache_ttl_seconds
        )
        try:
            self.repository.save_food(
                request.search_term, vector.to_dict(), source=source, brand=brand
            )
        except RuntimeError:
            _logger.exception("Failed to cache nutrition for %s", request.food_name)

    def _record_failure(
        self, user_id: UUID | None, food_name: str, portion: str, reason: str
    ) -> None:
        count = self.failure_counts.get(food_name, 0) + 1
        self.failure_counts[food_name] = count
        _logger.warning(
            "Failed lookup for %s (attempt %s): %s", food_name, count, reason
        )
        try:
            self.repository.log_failed_lookup(user_id, food_name, portion, reason)
        except RuntimeError:
            _logger.exception("Failed to record failed lookup for %s", food_name)

    async def _call_with_retry(
        self, func: Callable[[], Awaitable[dict[str, object]]], *, action: str
    ) -> dict[str, object]:
        """Call an async function with a short retry."""
        attempt = 0
        while True:
            try:
                return await func()
            except httpx.HTTPError as exc:
                attempt += 1
                _logger.warning(
                    "FDC %s failed (attempt %s/%s, status=%s): %s",
                    action,
                    attempt,
                    self.retry_attempts + 1,
                    _status_code_from_exception(exc),
                    exc,
                )
                if attempt > self.retry_attempts:
                    raise
                await asyncio.sleep(self.retry_delay_seconds)


def extract_nutrients(food_nutrients: list[dict[str, object]]) -> dict[str, float]:
    """Map FDC nutrient rows onto canonical nutrient keys."""
    values: dict[str, float] = {}
    for nutrient in food_nutrients:
        if not isinstance(nutrient, dict):
            continue
        nutrient_info = nutrient.get("nutrient")
        if not isinstance(nutrient_info, dict):
            nutrient_info = {}
        nutrient_id = nutrient_info.get("id") or nutrient.get("nutrientId")
        amount = nutrient.get("amount")
        if amount is None:
            amount = nutrient.get("value")
        key = FDC_NUTRIENT_IDS.get(nutrient_id) if nutrient_id is not None else None
        if key is None or amount is None:
            continue
        try:
            values[key] = float(amount)
        except (TypeError, ValueError):
            _logger.debug("Skipping non-numeric FDC amount for %s", key)
    return values


def _enforce_invariants(vector: NutrientVector) -> NutrientVector:
    sanitized = holistic_sanitize(vector.values)
    return reconcile_calories(vector.with_values(sanitized))


def _density_check(vector: NutrientVector) -> DensityCheck | None:
    parsed = parse_unit_and_amount(vector.serving_size or "")
    grams = to_grams(parsed.amount, parsed.unit) if parsed else None
    if grams is None and vector.serving_size:
        annotated = re.search(r"\((\d+(?:\.\d+)?)\s*g\)", vector.serving_size)
        grams = float(annotated.group(1)) if annotated else None
    if not grams:
        return None
    return check_density(vector.food_name, vector.get("calories"), grams)


def _estimate_prompt(request: ResolutionRequest) -> str:
    prompt = f'Estimate nutrition for: "{request.food_name}"'
    if request.tracked:
        prompt += (
            "\nIMPORTANT: the user tracks these nutrients, estimate them carefully: "
            + ", ".join(request.tracked)
        )
    if request.recipe_context:
        prompt += (
            "\nCONTEXT: this ingredient is used in the recipe "
            f"\"{request.recipe_context}\". Use this to infer whether it is raw, "
            "cooked or a specific variety."
        )
    return prompt


def _status_code_from_exception(exc: Exception) -> str:
    """Extract HTTP status code from an exception, if available."""
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return str(status_code)
    return "n/a"


def _optional_str(value: object) -> str | None:
    return str(value) if value else None


def _fdc_id(item: object) -> int | None:
    if not isinstance(item, dict):
        return None
    try:
        return int(item["fdcId"])
    except (KeyError, TypeError, ValueError):
        return None
