"""Portion multipliers and nutrient scaling."""

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from nutrition_assistant.domain.nutrients import NutrientVector, round1
from nutrition_assistant.errors import ConversionOutOfRange, ExternalServiceError
from nutrition_assistant.services.batch import find_countable_weight
from nutrition_assistant.services.llm import LLMClient
from nutrition_assistant.services.units import (
    ParsedAmount,
    is_count_unit,
    is_standard_unit,
    parse_unit_and_amount,
    singular_unit,
    to_grams,
    to_ml,
)
from nutrition_assistant.services.validation import reconcile_calories

_logger = logging.getLogger(__name__)

SMALL_ITEMS_WHITELIST = (
    "garlic",
    "chili",
    "spice",
    "herb",
    "tea",
    "zest",
    "ginger",
    "scallion",
    "jalapeno",
    "jalapeño",
    "bay leaf",
    "bay leaves",
    "nut",
    "berry",
    "berries",
    "saffron",
    "pepper",
    "leaf",
    "leaves",
    "clove",
)

# Ratios such as omega 6:3 do not grow with the portion.
UNSCALED_KEYS = frozenset({"omega_ratio"})

_SIZE_WORDS = ("extra large", "large", "medium", "small", "whole", "jumbo")
_PARENTHETICAL = re.compile(r"\(([^)]+)\)")
_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_BARE_NUMBER = re.compile(r"^\d+(\.\d+)?$")


class ConversionRepository(Protocol):
    """Persistence for memoized portion conversions."""

    def find_conversion(
        self, food_name: str, from_unit: str, to_unit: str
    ) -> float | None:
        """Return a cached multiplier (or unit weight when to_unit is "g")."""

    def save_conversion(
        self, food_name: str, from_unit: str, to_unit: str, multiplier: float
    ) -> None:
        """Store a multiplier for later lookups."""


class PortionEstimator(Protocol):
    """Last-resort estimator for portions the tables cannot convert."""

    async def unit_weight(self, food_name: str, unit: str) -> float:
        """Return grams for one unit of the food, or 0 when unknown."""

    async def multiplier(
        self, food_name: str, user_portion: str, serving_size: str
    ) -> float:
        """Return a bare multiplier from the serving to the user portion."""


@dataclass
class LLMPortionEstimator(PortionEstimator):
    """Portion estimator that asks the fast model for a single number."""

    llm: LLMClient
    model: str

    async def unit_weight(self, food_name: str, unit: str) -> float:
        """Ask for the average weight of one unit in grams."""
        prompt = (
            "You are an expert chef. What is the average weight in GRAMS of "
            f'"1 {unit}" of "{food_name}"?\n'
            'Examples: "1 whole" "Onion" -> 150, "1 clove" "Garlic" -> 5, '
            '"1 serving" "Spinach" -> 85.\n'
            "Return ONLY the number (integer grams). If unsure or it varies "
            "wildly, return 0."
        )
        text = await self.llm.complete_text(model=self.model, prompt=prompt)
        return _first_number(text, default=0.0)

    async def multiplier(
        self, food_name: str, user_portion: str, serving_size: str
    ) -> float:
        """Ask for the multiplier between the official serving and the portion."""
        note = ""
        if _BARE_NUMBER.match(user_portion.strip()):
            note = (
                f' (Assume "{user_portion}" means "{user_portion} whole '
                f'{food_name}" or "{user_portion} serving")'
            )
        prompt = (
            f'Food item: "{food_name}"\n'
            f'User portion input: "{user_portion}"{note}\n'
            f'Official serving size: "{serving_size}"\n'
            "Calculate the numerical multiplier that converts nutrition data "
            "from the official serving size to the user's portion. Return ONLY "
            'the number (e.g. 1.5, 0.5, 2). If unsure, return 1.\nExample: '
            '"1 apple" (approx 180g) vs "100g" -> 1.8'
        )
        text = await self.llm.complete_text(model=self.model, prompt=prompt)
        return _first_number(text, default=1.0)


@dataclass
class PortionScaler:
    """Computes the multiplier between a user portion and a reference serving."""

    conversions: ConversionRepository
    estimator: PortionEstimator
    safe_min: float = 0.05
    safe_max: float = 20.0

    async def multiplier(  # noqa: PLR0911
        self, user_portion: str, serving_size: str, food_name: str
    ) -> float:
        """Return the scaling factor, falling back to 1 when nothing fits."""
        user = parse_unit_and_amount(user_portion)
        official = parse_unit_and_amount(serving_size)

        if user and official and official.amount > 0:
            direct = _table_multiplier(user, official)
            if direct is not None:
                return direct

        if user and "(" in serving_size:
            annotated = _annotation_multiplier(user, serving_size)
            if annotated is not None:
                return annotated

        food_key = food_name.lower().strip()
        from_key = user_portion.lower().strip()
        to_key = serving_size.lower().strip()
        cached = self.conversions.find_conversion(food_key, from_key, to_key)
        if cached is not None:
            _logger.info(
                "Conversion cache hit: %s -> %s = %s", from_key, to_key, cached
            )
            return cached

        count_unit = user is not None and is_count_unit(user.unit)
        if user is not None and count_unit:
            official_grams = _official_grams(official, serving_size)
            unit_weight = self.conversions.find_conversion(food_key, user.unit, "g")
            if unit_weight is None:
                unit_weight = find_countable_weight(food_name, user.unit)
            if unit_weight:
                return unit_weight * user.amount / official_grams
            derived = await self._estimated_unit_multiplier(
                food_key, food_name, user, official_grams
            )
            if derived is not None:
                return derived

        try:
            raw = await self.estimator.multiplier(
                food_name, user_portion, serving_size
            )
        except ExternalServiceError as exc:
            _logger.warning("Portion estimate failed for %s: %s", food_name, exc)
            return 1.0
        try:
            accepted = self.check_multiplier(raw, food_name, count_unit=count_unit)
        except ConversionOutOfRange as exc:
            _logger.warning("%s for %s; using 1", exc, food_name)
            return 1.0
        if accepted != 1:
            self.conversions.save_conversion(food_key, from_key, to_key, accepted)
        return accepted

    async def _estimated_unit_multiplier(
        self,
        food_key: str,
        food_name: str,
        user: ParsedAmount,
        official_grams: float,
    ) -> float | None:
        """Multiplier from an estimated unit weight, saved only when plausible."""
        try:
            estimated = await self.estimator.unit_weight(food_name, user.unit)
        except ExternalServiceError as exc:
            _logger.warning("Unit weight estimate failed for %s: %s", food_name, exc)
            return None
        if estimated <= 0:
            return None
        derived = estimated * user.amount / official_grams
        try:
            self.check_multiplier(derived, food_name, count_unit=True)
        except ConversionOutOfRange as exc:
            _logger.warning(
                "Discarding %sg per %s for %s: %s",
                estimated,
                user.unit,
                food_name,
                exc,
            )
            return None
        self.conversions.save_conversion(food_key, user.unit, "g", estimated)
        return derived

    def check_multiplier(
        self, multiplier: float, food_name: str, *, count_unit: bool
    ) -> float:
        """Reject multipliers outside the safe band or implying tiny items."""
        if multiplier < self.safe_min or multiplier > self.safe_max:
            raise ConversionOutOfRange(
                multiplier, f"outside [{self.safe_min}, {self.safe_max}]"
            )
        if count_unit:
            implied_grams = multiplier * 100
            name = food_name.lower()
            small_item = any(item in name for item in SMALL_ITEMS_WHITELIST)
            if implied_grams < 5 and not small_item:
                raise ConversionOutOfRange(
                    multiplier, f"implies {implied_grams:.1f}g per item"
                )
        return multiplier


def scale_values(values: dict[str, float], multiplier: float) -> dict[str, float]:
    """Multiply flat nutrient values, calories to whole numbers."""
    scaled: dict[str, float] = {}
    for key, value in values.items():
        if key in UNSCALED_KEYS:
            scaled[key] = value
        elif key == "calories":
            scaled[key] = float(round(value * multiplier))
        else:
            scaled[key] = round1(value * multiplier)
    return scaled


def scale_nutrition(vector: NutrientVector, multiplier: float) -> NutrientVector:
    """Multiply every scalable nutrient and re-check calories against macros."""
    scaled = scale_values(vector.values, multiplier)
    return reconcile_calories(vector.with_values(scaled))


def _table_multiplier(user: ParsedAmount, official: ParsedAmount) -> float | None:
    if _unit_core(user.unit) == _unit_core(official.unit):
        ratio = user.amount / official.amount
        if ratio > 0:
            return ratio
    user_grams = to_grams(user.amount, user.unit)
    official_grams = to_grams(official.amount, official.unit)
    if user_grams and official_grams:
        return user_grams / official_grams
    user_ml = to_ml(user.amount, user.unit)
    official_ml = to_ml(official.amount, official.unit)
    if user_ml and official_ml:
        return user_ml / official_ml
    return None


def _annotation_multiplier(user: ParsedAmount, serving_size: str) -> float | None:
    match = _PARENTHETICAL.search(serving_size)
    if not match:
        return None
    annotation = parse_unit_and_amount(match.group(1))
    if annotation is None:
        return None
    user_grams = to_grams(user.amount, user.unit)
    annotation_grams = to_grams(annotation.amount, annotation.unit)
    if user_grams and annotation_grams:
        return user_grams / annotation_grams
    user_ml = to_ml(user.amount, user.unit)
    annotation_ml = to_ml(annotation.amount, annotation.unit)
    if user_ml and annotation_ml:
        return user_ml / annotation_ml
    return None


def _official_grams(official: ParsedAmount | None, serving_size: str) -> float:
    if official is not None and is_standard_unit(official.unit):
        grams = to_grams(official.amount, official.unit)
        if grams:
            return grams
    match = _PARENTHETICAL.search(serving_size)
    annotation = parse_unit_and_amount(match.group(1)) if match else None
    if annotation is not None:
        grams = to_grams(annotation.amount, annotation.unit)
        if grams:
            return grams
    return 100.0


def _unit_core(unit: str) -> str:
    """Strip annotations and size words so "large egg (50g)" matches "egg"."""
    core = _PARENTHETICAL.sub("", unit.lower())
    for word in _SIZE_WORDS:
        core = re.sub(rf"\b{word}\b", "", core)
    core = " ".join(core.split())
    return singular_unit(core) if core else ""


def _first_number(text: str, *, default: float) -> float:
    match = _NUMBER.search(text or "")
    if not match:
        return default
    return float(match.group(0))
