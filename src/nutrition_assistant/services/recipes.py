"""Recipe capture flow: parse, duplicate check, batch and servings, save."""

import logging
from dataclasses import dataclass, field, replace
from typing import Protocol
from uuid import UUID

from nutrition_assistant.domain.nutrients import NUTRIENTS, NutrientVector, round1
from nutrition_assistant.domain.recipes import (
    DuplicateChoice,
    FlowStep,
    Ingredient,
    ParsedRecipe,
    RecipeCandidate,
    RecipeFlowState,
    RecipeRecord,
)
from nutrition_assistant.errors import ExternalServiceError, ResolutionFailure
from nutrition_assistant.services.batch import (
    batch_confirmation_prompt,
    calculate_batch_size,
    format_grams,
    parse_batch_size_response,
    parse_servings_response,
    servings_prompt,
    suggest_servings,
)
from nutrition_assistant.services.fingerprint import calculate_fingerprint
from nutrition_assistant.services.llm import LLMClient
from nutrition_assistant.services.nutrition import NutritionResolver
from nutrition_assistant.services.portions import scale_values
from nutrition_assistant.services.validation import LIKELY_CALORIC, has_hollow_fat

_logger = logging.getLogger(__name__)

RECIPE_INSTRUCTIONS = """Extract recipe details from the provided text.
- NAME GENERATION: If a name is provided in the text or by the user, use it.
- If NO name is found, GENERATE a short, descriptive name based on the
  ingredients (e.g., "Peanut Butter Banana Toast").
- NEVER return "String", "Recipe", "Unknown", "My Recipe", or just "string".
- Default servings to 1.
- Extract batch/serving sizes if mentioned, otherwise return null.
- ONLY include instructions if they were explicitly provided. Do not infer them.
- Every ingredient needs a numeric quantity and a unit ("" for counted items)."""

RECIPE_SCHEMA: dict[str, object] = {
    "type": "object",
    "additionalProperties": False,
    "required": [
        "recipe_name",
        "servings",
        "total_batch_size",
        "serving_size",
        "ingredients",
        "instructions",
    ],
    "properties": {
        "recipe_name": {"type": "string"},
        "servings": {"type": "number"},
        "total_batch_size": {"type": ["string", "null"]},
        "serving_size": {"type": ["string", "null"]},
        "instructions": {"type": ["string", "null"]},
        "ingredients": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["name", "quantity", "unit"],
                "properties": {
                    "name": {"type": "string"},
                    "quantity": {"type": "number"},
                    "unit": {"type": "string"},
                },
            },
        },
    },
}

INVALID_RECIPE_NAMES = frozenset(
    {"string", "recipe", "unknown", "my recipe", "custom recipe", "food"}
)

NO_INGREDIENTS_MESSAGE = (
    "I couldn't parse any ingredients from your recipe. Could you list them "
    "clearly, perhaps one ingredient per line with quantities? For example:\n"
    "• 2 cups flour\n• 1 egg\n• 100g butter"
)

DUPLICATE_OPTIONS = (
    "What would you like to do?\n"
    "• **Log existing** - Use your saved version and log consumption\n"
    "• **Update** - Update the saved recipe with these new details\n"
    "• **Save new** - Keep both versions\n\n"
    "*If logging, how much did you have? (e.g. 1 serving, 2 cups)*"
)

LARGE_BATCH_SERVINGS = 10

_NAME_STOP_WORDS = frozenset({"with", "and", "the", "for", "from"})


class RecipeRepository(Protocol):
    """Persistence interface for saved recipes and their ingredients."""

    def find_by_fingerprint(
        self, user_id: UUID, fingerprint: str
    ) -> RecipeRecord | None:
        """Return the newest recipe with this ingredient fingerprint."""

    def find_by_name(
        self, user_id: UUID, pattern: str, limit: int = 5
    ) -> list[RecipeRecord]:
        """Return recipes whose name matches a case-insensitive pattern."""

    def find_by_words(
        self, user_id: UUID, words: list[str], limit: int = 5
    ) -> list[RecipeRecord]:
        """Return recipes whose name contains every word."""

    def get_recipe(self, recipe_id: UUID) -> RecipeRecord | None:
        """Return a recipe with its ingredients."""

    def create_recipe(
        self,
        user_id: UUID,
        parsed: ParsedRecipe,
        nutrition: dict[str, float],
        per_serving: dict[str, float],
    ) -> RecipeRecord:
        """Insert a recipe and its ingredients."""

    def update_recipe(  # noqa: PLR0913
        self,
        recipe_id: UUID,
        user_id: UUID,
        parsed: ParsedRecipe,
        nutrition: dict[str, float],
        per_serving: dict[str, float],
    ) -> RecipeRecord:
        """Replace a recipe and its ingredients."""


@dataclass(frozen=True)
class RecipeFound:
    """One saved recipe matched."""

    record: RecipeRecord
    exact: bool = False


@dataclass(frozen=True)
class MultipleRecipes:
    """Several saved recipes matched a name."""

    records: list[RecipeRecord]

    @property
    def candidates(self) -> list[RecipeCandidate]:
        return [RecipeCandidate.from_record(record) for record in self.records]


@dataclass(frozen=True)
class RecipeNotFound:
    """Nothing matched."""


FindResult = RecipeFound | MultipleRecipes | RecipeNotFound


@dataclass(frozen=True)
class NutritionCalculation:
    """Batch nutrition with the ingredients it was summed from."""

    batch_nutrition: dict[str, float]
    ingredients: list[Ingredient]
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FlowPrompt:
    """The flow needs the user's input before it can continue."""

    state: RecipeFlowState
    message: str
    per_serving: dict[str, float] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def nutrition_preview(self) -> dict[str, object]:
        """Per-serving payload for display."""
        return {"food_name": self.state.parsed.name, **self.per_serving}


@dataclass(frozen=True)
class RecipeSaved:
    record: RecipeRecord


@dataclass(frozen=True)
class RecipeUpdated:
    record: RecipeRecord


@dataclass(frozen=True)
class RecipeLogExisting:
    """The user chose to log the saved version instead of saving."""

    record: RecipeRecord


@dataclass(frozen=True)
class FlowError:
    message: str
    state: RecipeFlowState | None = None


FlowOutcome = FlowPrompt | RecipeSaved | RecipeUpdated | RecipeLogExisting | FlowError


def parse_duplicate_choice(text: str) -> DuplicateChoice | None:
    """Keyword fallback for free-text replies; None when no option is named."""
    lowered = text.lower()
    if "update" in lowered:
        return DuplicateChoice.UPDATE
    if "save" in lowered or "new" in lowered:
        return DuplicateChoice.NEW
    if "log" in lowered or "existing" in lowered:
        return DuplicateChoice.LOG
    return None


def per_serving_values(batch: dict[str, float], servings: int) -> dict[str, float]:
    return scale_values(batch, 1 / (servings or 1))


def _fallback_recipe_name(ingredients: list[Ingredient]) -> str:
    if not ingredients:
        return "My Recipe"
    return f"{' and '.join(item.name for item in ingredients[:2])} (Recipe)"


def _warning_text(warnings: list[str]) -> str:
    if not warnings:
        return ""
    return "\n\n⚠️ **Validation Notes:**\n• " + "\n• ".join(warnings)


@dataclass
class RecipeFlowService:
    """Drives the multi-turn recipe capture."""

    llm: LLMClient
    model: str
    resolver: NutritionResolver
    repository: RecipeRepository

    async def parse(
        self,
        text: str,
        recipe_name: str | None = None,
        *,
        user_id: UUID | None = None,
    ) -> FlowPrompt | FlowError:
        """Parse recipe text and compute everything the flow needs up front."""
        prompt = text
        if recipe_name:
            prompt = f'User provided name: "{recipe_name}"\n\n{text}'
        try:
            payload = await self.llm.complete_json(
                model=self.model,
                instructions=RECIPE_INSTRUCTIONS,
                messages=[{"role": "user", "content": prompt}],
                schema=RECIPE_SCHEMA,
                schema_name="recipe",
            )
        except (ExternalServiceError, ValueError) as exc:
            _logger.warning("Recipe parsing failed: %s", exc)
            return FlowError("I couldn't read that recipe. Could you try again?")

        parsed = ParsedRecipe.from_dict(payload)
        if not parsed.ingredients:
            return FlowError(NO_INGREDIENTS_MESSAGE)
        if not parsed.name or parsed.name.lower().strip() in INVALID_RECIPE_NAMES:
            fixed = _fallback_recipe_name(parsed.ingredients)
            _logger.info("Replaced invalid recipe name %r with %r", parsed.name, fixed)
            parsed = replace(parsed, name=fixed)

        batch = calculate_batch_size(parsed.ingredients)
        calculation = await self.calculate_nutrition(parsed, user_id=user_id)
        parsed = replace(
            parsed,
            ingredients=calculation.ingredients,
            fingerprint=calculate_fingerprint(
                item.name for item in parsed.ingredients
            ),
            total_batch_grams=batch.total_grams,
        )
        state = RecipeFlowState(
            step=FlowStep.PARSE,
            parsed=parsed,
            batch_size_grams=batch.total_grams,
            batch_nutrition=calculation.batch_nutrition,
            warnings=calculation.warnings,
        )

        existing = RecipeNotFound()
        if user_id is not None:
            existing = self.find(user_id, parsed.name, parsed.fingerprint)
        if isinstance(existing, RecipeFound):
            return self._duplicate_prompt(state, existing.record)
        if isinstance(existing, MultipleRecipes):
            return self._selection_prompt(
                state.advance(
                    FlowStep.PENDING_RECIPE_SELECTION,
                    candidates=existing.candidates,
                )
            )

        if batch.confidence == "low":
            return FlowPrompt(
                state=state.advance(FlowStep.PENDING_BATCH_CONFIRM),
                message=batch_confirmation_prompt(batch),
                warnings=calculation.warnings,
            )

        servings = parsed.servings
        if servings <= 1:
            servings = suggest_servings(
                parsed.ingredients, parsed.name, batch.total_grams
            ).servings
        state = state.advance(
            FlowStep.READY_TO_SAVE,
            parsed=replace(parsed, servings=servings),
            suggested_servings=servings,
        )
        per_serving = per_serving_values(calculation.batch_nutrition, servings)
        message = (
            f'I\'ve calculated the nutrition for "{parsed.name}" '
            f"({len(parsed.ingredients)} ingredients).\n\n"
            f"It makes about **{servings} serving(s)** "
            f"(total {format_grams(batch.total_grams)}).\n"
            f"Each serving is **{round(per_serving.get('calories', 0))} kcal**."
            f"{_warning_text(calculation.warnings)}\n\nReady to save?"
        )
        return FlowPrompt(state, message, per_serving, calculation.warnings)

    def find(
        self, user_id: UUID, name: str, fingerprint: str | None = None
    ) -> FindResult:
        """Fingerprint first, then exact, substring and word matches on name."""
        if fingerprint:
            record = self.repository.find_by_fingerprint(user_id, fingerprint)
            if record is not None:
                _logger.info("Found exact fingerprint match: %s", record.name)
                return RecipeFound(record, exact=True)

        name = name.strip()
        if len(name) < 2:
            return RecipeNotFound()

        exact = self.repository.find_by_name(user_id, name, limit=1)
        if exact:
            return RecipeFound(exact[0])

        substring = self.repository.find_by_name(user_id, f"%{name}%", limit=5)
        if len(substring) > 1:
            return MultipleRecipes(substring)
        if substring:
            return RecipeFound(substring[0])

        words = [
            word
            for word in name.split()
            if len(word) > 2 and word.lower() not in _NAME_STOP_WORDS
        ]
        if not words:
            return RecipeNotFound()
        fuzzy = self.repository.find_by_words(user_id, words, limit=5)
        if len(fuzzy) > 1:
            return MultipleRecipes(fuzzy)
        if fuzzy:
            return RecipeFound(fuzzy[0])
        return RecipeNotFound()

    def confirm_batch(self, state: RecipeFlowState, response: str) -> FlowPrompt:
        """Accept or correct the batch size, then ask for servings."""
        reply = parse_batch_size_response(response)
        if reply.confirmed:
            state = replace(
                state, confirmed_batch_size=format_grams(state.batch_size_grams)
            )
        elif reply.grams:
            state = replace(
                state,
                batch_size_grams=reply.grams,
                confirmed_batch_size=reply.corrected_size,
            )
        elif reply.ml:
            state = replace(state, confirmed_batch_size=reply.corrected_size)
        else:
            return FlowPrompt(
                state=state,
                message=(
                    "I need to know the total size of this recipe to calculate "
                    "servings correctly. How much does this recipe make in total? "
                    '(e.g., "about 2 liters" or "1.5kg")'
                ),
            )

        suggestion = suggest_servings(
            state.parsed.ingredients, state.parsed.name, state.batch_size_grams
        )
        prefix = ""
        if suggestion.servings > LARGE_BATCH_SERVINGS:
            prefix = (
                "⚠️ **This seems like a large batch "
                f"({suggestion.servings} servings).** "
            )
        label = state.confirmed_batch_size or format_grams(state.batch_size_grams)
        return FlowPrompt(
            state=state.advance(
                FlowStep.PENDING_SERVINGS_CONFIRM,
                suggested_servings=suggestion.servings,
            ),
            message=prefix + servings_prompt(suggestion, label),
        )

    def confirm_servings(
        self,
        state: RecipeFlowState,
        response: str,
        *,
        user_id: UUID | None = None,
    ) -> FlowPrompt:
        """Fix the servings count and recompute per-serving values."""
        servings = parse_servings_response(response, state.suggested_servings)
        if servings is None:
            return FlowPrompt(
                state=state,
                message=(
                    "How many servings does this recipe make? Please enter a number."
                ),
            )
        state = replace(
            state,
            parsed=replace(state.parsed, servings=servings),
            confirmed_servings=servings,
        )
        per_serving = per_serving_values(state.batch_nutrition, servings)
        per_serving_calories = round(per_serving.get("calories", 0))
        total_calories = round(state.batch_nutrition.get("calories", 0))
        warning_text = _warning_text(state.warnings)

        if user_id is not None:
            existing = self.repository.find_by_name(user_id, state.parsed.name, limit=1)
            if existing:
                record = existing[0]
                return FlowPrompt(
                    state=state.advance(
                        FlowStep.PENDING_DUPLICATE_CONFIRM,
                        existing_recipe_id=record.id,
                        existing_recipe_name=record.name,
                    ),
                    message=(
                        f'You already have a recipe called "{record.name}".\n\n'
                        f"This new recipe has {total_calories} calories total "
                        f"({per_serving_calories} per serving).{warning_text}\n\n"
                        "Would you like to **update** the existing recipe or "
                        "**save as new**?"
                    ),
                    per_serving=per_serving,
                    warnings=state.warnings,
                )

        prefix = ""
        if servings > LARGE_BATCH_SERVINGS:
            prefix = f"⚠️ **Confirming {servings} servings.** "
        return FlowPrompt(
            state=state.advance(FlowStep.READY_TO_SAVE),
            message=(
                f'{prefix}I\'ve calculated the nutrition for "{state.parsed.name}". '
                f"It has {total_calories} calories total "
                f"({per_serving_calories} per serving).{warning_text}\n\n"
                "Ready to save?"
            ),
            per_serving=per_serving,
            warnings=state.warnings,
        )

    def handle_duplicate(
        self, state: RecipeFlowState, choice: DuplicateChoice, user_id: UUID
    ) -> RecipeLogExisting | RecipeUpdated | RecipeSaved | FlowError:
        """Resolve a duplicate with an explicit choice."""
        if choice is DuplicateChoice.LOG:
            record = (
                self.repository.get_recipe(state.existing_recipe_id)
                if state.existing_recipe_id
                else None
            )
            if record is None:
                return FlowError("Could not find the existing recipe to log.", state)
            return RecipeLogExisting(record)

        if choice is DuplicateChoice.UPDATE:
            if state.existing_recipe_id is None:
                return FlowError("Could not find the existing recipe to update.", state)
            parsed = self._final_parsed(state)
            record = self.repository.update_recipe(
                state.existing_recipe_id,
                user_id,
                parsed,
                state.batch_nutrition,
                per_serving_values(state.batch_nutrition, parsed.servings),
            )
            _logger.info("Updated recipe %s (%s)", record.name, record.id)
            return RecipeUpdated(record)

        renamed = replace(
            state, parsed=replace(state.parsed, name=f"{state.parsed.name} (new)")
        )
        return self.save(renamed, user_id)

    def save(self, state: RecipeFlowState, user_id: UUID) -> RecipeSaved:
        """Persist the recipe captured by the flow."""
        parsed = self._final_parsed(state)
        record = self.repository.create_recipe(
            user_id,
            parsed,
            state.batch_nutrition,
            per_serving_values(state.batch_nutrition, parsed.servings),
        )
        _logger.info("Saved recipe %s (%s)", record.name, record.id)
        return RecipeSaved(record)

    def resume(
        self, state: RecipeFlowState, message: str, user_id: UUID
    ) -> FlowOutcome:
        """Continue a paused flow with a free-text reply."""
        if state.step is FlowStep.PENDING_BATCH_CONFIRM:
            return self.confirm_batch(state, message)
        if state.step is FlowStep.PENDING_SERVINGS_CONFIRM:
            return self.confirm_servings(state, message, user_id=user_id)
        if state.step is FlowStep.PENDING_DUPLICATE_CONFIRM:
            choice = parse_duplicate_choice(message)
            if choice is None:
                return self.choice_reminder(state)
            return self.handle_duplicate(state, choice, user_id)
        if state.step is FlowStep.PENDING_RECIPE_SELECTION:
            return self.select_match(state, message)
        _logger.warning("Cannot resume recipe flow at step %s", state.step)
        return FlowError(
            f"I'm not sure what step we're on ({state.step.value}). "
            "Let's start over?",
            state,
        )

    async def calculate_nutrition(
        self, parsed: ParsedRecipe, *, user_id: UUID | None = None
    ) -> NutritionCalculation:
        """Resolve every ingredient and sum the batch totals."""
        indexes = [
            index for index, item in enumerate(parsed.ingredients) if item.quantity > 0
        ]
        results = await self.resolver.resolve_many(
            [
                (parsed.ingredients[index].name, parsed.ingredients[index].portion)
                for index in indexes
            ],
            user_id=user_id,
            recipe_context=parsed.name,
        )
        resolved = dict(zip(indexes, results, strict=True))

        totals: dict[str, float] = {}
        ingredients: list[Ingredient] = []
        warnings: list[str] = []
        for index, item in enumerate(parsed.ingredients):
            result = resolved.get(index)
            if result is None:
                ingredients.append(replace(item, nutrition={}))
                continue
            if isinstance(result, ResolutionFailure):
                warnings.append(f'I couldn\'t find nutrition data for "{item.name}".')
                ingredients.append(replace(item, nutrition=None))
                continue
            if result.get("calories") == 0 and LIKELY_CALORIC.search(item.name):
                warnings.append(
                    f'Ingredient "{item.name}" returned 0 calories, '
                    "which seems incorrect."
                )
            ingredients.append(replace(item, nutrition=dict(result.values)))
            for key, value in result.values.items():
                if key in NUTRIENTS:
                    totals[key] = totals.get(key, 0.0) + value

        batch_nutrition = {key: round1(value) for key, value in totals.items()}
        if has_hollow_fat(batch_nutrition):
            _logger.warning("Recipe %s has fat without a fat breakdown", parsed.name)
            warnings.append(
                "Fat breakdown (saturated, mono, poly) is missing, so fat detail "
                "may be incomplete."
            )
        return NutritionCalculation(batch_nutrition, ingredients, warnings)

    def get_details(self, recipe_id: UUID) -> dict[str, object] | None:
        """Full recipe payload for display and reasoning."""
        record = self.repository.get_recipe(recipe_id)
        if record is None:
            return None
        return {
            "id": str(record.id),
            "recipe_name": record.name,
            "servings": record.servings,
            "serving_size": record.serving_size,
            "total_batch_grams": record.total_batch_grams,
            "instructions": record.instructions,
            "nutrition_data": record.nutrition_data,
            "per_serving_nutrition": record.per_serving_nutrition,
            "ingredients": [item.to_dict() for item in record.ingredients],
        }

    def calculate_serving(
        self, recipe_id: UUID, servings: float = 1.0
    ) -> NutrientVector | None:
        """Nutrition for a number of servings of a saved recipe."""
        record = self.repository.get_recipe(recipe_id)
        if record is None:
            return None
        values = scale_values(record.nutrition_data, servings / (record.servings or 1))
        return NutrientVector(
            food_name=record.name,
            values=values,
            serving_size=f"{servings:g} serving(s)",
            confidence="high",
        )

    def search(self, user_id: UUID, query: str) -> list[RecipeCandidate]:
        """Saved recipes whose name contains every word of the query."""
        words = [word for word in query.split() if word]
        if not words:
            return []
        records = self.repository.find_by_words(user_id, words, limit=5)
        return [RecipeCandidate.from_record(record) for record in records]

    def select_match(self, state: RecipeFlowState, reply: str) -> FlowPrompt:
        """Pick one of several similarly named saved recipes, or keep the new one."""
        choice = reply.strip().lower()
        count = len(state.candidates)
        selected = None
        if choice.isdigit() and 0 < int(choice) <= count:
            selected = state.candidates[int(choice) - 1]
        elif choice:
            selected = next(
                (item for item in state.candidates if item.name.lower() == choice),
                None,
            )
            keep_new = parse_duplicate_choice(reply) is DuplicateChoice.NEW
            if selected is None and keep_new:
                return self._keep_as_new(state)
            if selected is None:
                selected = next(
                    (item for item in state.candidates if choice in item.name.lower()),
                    None,
                )
        if selected is None:
            return self.choice_reminder(state)
        record = self.repository.get_recipe(selected.id)
        if record is None:
            _logger.warning("Selected recipe %s no longer exists", selected.id)
            return self.choice_reminder(state)
        return self._duplicate_prompt(replace(state, candidates=[]), record)

    def choice_reminder(self, state: RecipeFlowState) -> FlowPrompt:
        """Repeat the open selection or duplicate question."""
        if state.step is FlowStep.PENDING_RECIPE_SELECTION:
            return self._selection_prompt(state)
        name = state.existing_recipe_name or state.parsed.name
        return FlowPrompt(
            state=state,
            message=(
                f'You already have a recipe called "**{name}**", so I need to '
                f"know which option you want.\n\n{DUPLICATE_OPTIONS}"
            ),
            per_serving=per_serving_values(
                state.batch_nutrition, state.parsed.servings
            ),
            warnings=state.warnings,
        )

    def _selection_prompt(self, state: RecipeFlowState) -> FlowPrompt:
        lines = [
            f"{index}. {item.name} ({item.calories_per_serving} cal/serving)"
            for index, item in enumerate(state.candidates, start=1)
        ]
        _logger.info(
            "Recipe %s matches %d saved recipes", state.parsed.name, len(lines)
        )
        return FlowPrompt(
            state=state,
            message=(
                f'You have {len(lines)} saved recipes similar to "{state.parsed.name}":'
                "\n" + "\n".join(lines) + "\n\nIs it one of these? Reply with the "
                "number or name, or reply **new** to keep it as a new recipe."
            ),
            per_serving=per_serving_values(
                state.batch_nutrition, state.parsed.servings
            ),
            warnings=state.warnings,
        )

    def _keep_as_new(self, state: RecipeFlowState) -> FlowPrompt:
        servings = state.parsed.servings
        if servings <= 1:
            servings = suggest_servings(
                state.parsed.ingredients, state.parsed.name, state.batch_size_grams
            ).servings
        state = state.advance(
            FlowStep.READY_TO_SAVE,
            parsed=replace(state.parsed, servings=servings),
            suggested_servings=servings,
            candidates=[],
        )
        per_serving = per_serving_values(state.batch_nutrition, servings)
        return FlowPrompt(
            state=state,
            message=(
                f'OK, "{state.parsed.name}" will be saved as a new recipe. '
                f"It makes about **{servings} serving(s)** at "
                f"**{round(per_serving.get('calories', 0))} kcal** each.\n\n"
                "Ready to save?"
            ),
            per_serving=per_serving,
            warnings=state.warnings,
        )

    def _duplicate_prompt(
        self, state: RecipeFlowState, record: RecipeRecord
    ) -> FlowPrompt:
        exact = record.fingerprint == state.parsed.fingerprint
        _logger.info("Found existing recipe %s (exact: %s)", record.name, exact)
        if exact:
            match = f'I found an exact match for this recipe: "**{record.name}**".'
        else:
            match = (
                f'You already have a recipe called "**{record.name}**" '
                "with similar ingredients."
            )
        per_serving = per_serving_values(
            state.batch_nutrition, state.parsed.servings
        )
        return FlowPrompt(
            state=state.advance(
                FlowStep.PENDING_DUPLICATE_CONFIRM,
                existing_recipe_id=record.id,
                existing_recipe_name=record.name,
                exact_match=exact,
            ),
            message=f"{match}\n\n{DUPLICATE_OPTIONS}",
            per_serving=per_serving,
            warnings=state.warnings,
        )

    @staticmethod
    def _final_parsed(state: RecipeFlowState) -> ParsedRecipe:
        servings = state.confirmed_servings or state.parsed.servings or 1
        return replace(state.parsed, servings=servings)
