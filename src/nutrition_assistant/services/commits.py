"""Commit half of propose-confirm-commit: writes a confirmed pending action."""

import logging
import re
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from uuid import UUID

from nutrition_assistant.domain.conversation import ChatResponse
from nutrition_assistant.domain.goals import GoalAction
from nutrition_assistant.domain.nutrients import NUTRIENTS, round1
from nutrition_assistant.domain.pending import (
    BulkGoalUpdateAction,
    FoodLogAction,
    FoodLogItem,
    GoalUpdateAction,
    PendingAction,
    RecipeLogAction,
    RecipeSaveAction,
    RecipeSelectionAction,
)
from nutrition_assistant.domain.recipes import (
    DuplicateChoice,
    FlowStep,
    ParsedRecipe,
    RecipeFlowState,
    RecipeRecord,
)
from nutrition_assistant.errors import NutrientValidationError
from nutrition_assistant.services.goals import GoalService
from nutrition_assistant.services.portions import scale_values
from nutrition_assistant.services.progress import FoodLogRepository
from nutrition_assistant.services.recipes import (
    FlowError,
    RecipeFlowService,
    RecipeLogExisting,
    RecipeUpdated,
    parse_duplicate_choice,
    per_serving_values,
)
from nutrition_assistant.services.sessions import SessionService
from nutrition_assistant.services.validation import validate_nutrient_hierarchy

_logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)")


def food_log_row(item: FoodLogItem, log_time: datetime) -> dict[str, object]:
    """Build a food_log row: master nutrients as columns, the rest as extras."""
    row: dict[str, object] = {
        "food_name": item.food_name,
        "portion": item.portion,
        "calories": round(item.calories),
        "log_time": log_time.isoformat(),
        "confidence": item.confidence,
        "error_sources": list(item.error_sources),
    }
    if item.recipe_id is not None:
        row["recipe_id"] = str(item.recipe_id)
    for key, value in item.nutrients.items():
        if key != "calories" and key in NUTRIENTS:
            row[key] = round1(value)
    if item.extras:
        row["extras"] = {key: round1(value) for key, value in item.extras.items()}
    return row


def servings_from_portion(portion: str | None) -> float:
    """Leading number of a portion such as "2 servings"; 1 when absent."""
    match = _LEADING_NUMBER.match(portion or "")
    if not match:
        return 1.0
    return float(match.group(1)) or 1.0


@dataclass
class ConfirmationService:
    """Writes confirmed actions and clears them from the session."""

    sessions: SessionService
    food_logs: FoodLogRepository
    goals: GoalService
    recipes: RecipeFlowService

    def confirm(
        self, action: PendingAction, user_id: UUID, message: str = ""
    ) -> ChatResponse:
        """Commit the pending action; failures keep it pending."""
        try:
            if isinstance(action, FoodLogAction):
                response = self._confirm_food_log(action, user_id)
            elif isinstance(action, RecipeLogAction):
                response = self._confirm_recipe_log(action, user_id)
            elif isinstance(action, GoalUpdateAction):
                response = self._confirm_goal_update(action, user_id)
            elif isinstance(action, BulkGoalUpdateAction):
                response = self._confirm_bulk_goals(action, user_id)
            elif isinstance(action, RecipeSelectionAction):
                return self._confirm_selection(action, user_id, message)
            elif _awaiting_choice(action, message):
                return self._repeat_choice(action)
            else:
                response = self._confirm_recipe_save(action, user_id, message)
        except Exception as exc:
            _logger.warning("Confirmation of %s failed: %s", action.kind, exc)
            return ChatResponse(
                status="error",
                message=f"Failed to save: {exc}. Please try again.",
                response_type="confirmation_failed",
            )
        self.sessions.clear_pending_action(user_id)
        return response

    def log_items(self, user_id: UUID, items: list[FoodLogItem]) -> None:
        """Validate and insert food log rows."""
        now = datetime.now(tz=UTC)
        rows = [food_log_row(item, now) for item in items]
        for row in rows:
            result = validate_nutrient_hierarchy(row)
            if not result.valid:
                _logger.warning(
                    "Rejected log for %s: %s", row["food_name"], result.violations
                )
                raise NutrientValidationError(
                    [f'Nutrient Validation Failed for "{row["food_name"]}"']
                    + result.violations
                )
        self.food_logs.insert_entries(user_id, rows)

    def _confirm_food_log(self, action: FoodLogAction, user_id: UUID) -> ChatResponse:
        if not action.items:
            raise ValueError("Nothing to log")
        self.log_items(user_id, action.items)
        if len(action.items) == 1:
            item = action.items[0]
            message = (
                f"✅ Logged {item.food_name} ({round(item.calories)} cal)! "
                "Great choice! 🎉"
            )
        else:
            total = sum(item.calories for item in action.items)
            message = (
                f"✅ Logged {len(action.items)} items ({round(total)} cal total)! "
                "Great choices! 🎉"
            )
        return ChatResponse(
            message=message,
            response_type="food_logged",
            data={"food_logged": [item.to_dict() for item in action.items]},
        )

    def _confirm_recipe_log(
        self, action: RecipeLogAction, user_id: UUID
    ) -> ChatResponse:
        item = FoodLogItem(
            food_name=action.recipe_name,
            portion=action.portion,
            nutrients=action.nutrients,
            confidence="high",
            recipe_id=action.recipe_id,
        )
        self.log_items(user_id, [item])
        return ChatResponse(
            message=(
                f"✅ Logged {action.servings:g} serving(s) of "
                f"{action.recipe_name}! 🍽️"
            ),
            response_type="recipe_logged",
            data={"recipe_logged": action.to_data()},
        )

    def _confirm_goal_update(
        self, action: GoalUpdateAction, user_id: UUID
    ) -> ChatResponse:
        change = action.change
        self.goals.apply(user_id, change)
        if change.action is GoalAction.REMOVE:
            return ChatResponse(
                message=f"✅ Removed your {change.nutrient} goal! 🗑️",
                response_type="goal_updated",
                data={"goal_updated": {**change.to_dict(), "removed": True}},
            )
        goal = change.to_goal()
        limit = " (Limit)" if goal.goal_type == "limit" else ""
        return ChatResponse(
            message=(
                f"✅ Updated your {goal.nutrient} goal to "
                f"{goal.target_value:g}{goal.unit}{limit}! 🎯"
            ),
            response_type="goal_updated",
            data={"goal_updated": goal.to_dict()},
        )

    def _confirm_bulk_goals(
        self, action: BulkGoalUpdateAction, user_id: UUID
    ) -> ChatResponse:
        result = self.goals.apply_bulk(user_id, action.changes)
        if result.removed and result.updated:
            message = (
                f"✅ Updated {result.updated} goals and removed {result.removed}! 🎯"
            )
        elif result.removed:
            message = f"✅ Removed {result.removed} goals! 🗑️"
        else:
            message = f"✅ Updated {result.updated} nutrition goals! 🎯"
        return ChatResponse(
            message=message,
            response_type="goal_updated",
            data={"goals_updated": [change.to_dict() for change in action.changes]},
        )

    def _confirm_selection(
        self, action: RecipeSelectionAction, user_id: UUID, message: str
    ) -> ChatResponse:
        """Pick one candidate, then continue with the duplicate choice."""
        choice = message.strip()
        count = len(action.candidates)
        selected = None
        if choice.isdigit() and 0 < int(choice) <= count:
            selected = action.candidates[int(choice) - 1]
        elif choice:
            selected = next(
                (
                    candidate
                    for candidate in action.candidates
                    if choice.lower() in candidate.name.lower()
                ),
                None,
            )
        if selected is None:
            return ChatResponse(
                status="error",
                message=(
                    "I couldn't find that recipe in the list. Please enter the "
                    f"number (1-{count}) or the recipe name."
                ),
                response_type="error",
            )

        record = self.recipes.repository.get_recipe(selected.id)
        if record is None:
            return ChatResponse(
                status="error",
                message=f'I couldn\'t load "{selected.name}". Please try again.',
                response_type="error",
            )
        state = _existing_recipe_state(record)
        self.sessions.save_pending_action(
            user_id, RecipeSaveAction(flow_state=state, portion=action.portion)
        )
        per_serving = per_serving_values(record.nutrition_data, record.servings)
        return ChatResponse(
            message=f'Great! I\'ll use "**{record.name}**". What would you like to do?',
            response_type="confirmation_recipe_save",
            data={
                "isMatch": True,
                "existingRecipeName": record.name,
                "parsed": {
                    **state.parsed.to_dict(),
                    "nutrition_data": record.nutrition_data,
                    "per_serving_nutrition": per_serving,
                },
            },
        )

    def _repeat_choice(self, action: RecipeSaveAction) -> ChatResponse:
        prompt = self.recipes.choice_reminder(action.flow_state)
        return ChatResponse(
            message=prompt.message,
            response_type="confirmation_recipe_save",
            data={
                "isMatch": True,
                "existingRecipeName": action.flow_state.existing_recipe_name,
                "recipes": [
                    candidate.to_dict() for candidate in action.flow_state.candidates
                ],
                "per_serving_nutrition": prompt.nutrition_preview(),
            },
        )

    def _confirm_recipe_save(
        self, action: RecipeSaveAction, user_id: UUID, message: str
    ) -> ChatResponse:
        state = action.flow_state
        if action.custom_name:
            state = replace(
                state, parsed=replace(state.parsed, name=action.custom_name)
            )
        choice = action.choice or parse_duplicate_choice(message)
        if choice is not None and state.existing_recipe_id is not None:
            outcome = self.recipes.handle_duplicate(state, choice, user_id)
        else:
            outcome = self.recipes.save(state, user_id)

        if isinstance(outcome, FlowError):
            raise RuntimeError(outcome.message)
        if isinstance(outcome, RecipeLogExisting):
            portion = action.portion or "1 serving"
            self._log_recipe_portion(user_id, outcome.record, portion)
            return ChatResponse(
                message=f'✅ Logged {portion} of "{outcome.record.name}"! 🍽️',
                response_type="recipe_logged",
                data={"recipe_logged": _record_summary(outcome.record)},
            )
        if isinstance(outcome, RecipeUpdated):
            if action.portion:
                self._log_recipe_portion(user_id, outcome.record, action.portion)
                return ChatResponse(
                    message=(
                        f"✅ Updated and logged {action.portion} of "
                        f'"{outcome.record.name}"! 🍽️'
                    ),
                    response_type="recipe_logged",
                    data={"recipe_logged": _record_summary(outcome.record)},
                )
            return ChatResponse(
                message=f'✅ Updated recipe "{outcome.record.name}"! 📖',
                response_type="recipe_saved",
                data={"recipe": _record_summary(outcome.record)},
            )
        return ChatResponse(
            message=(
                f'✅ Saved recipe "{outcome.record.name}"! '
                "You can now log it any time. 📖"
            ),
            response_type="recipe_saved",
            data={"recipe": _record_summary(outcome.record)},
        )

    def _log_recipe_portion(
        self, user_id: UUID, record: RecipeRecord, portion: str
    ) -> None:
        scale = servings_from_portion(portion) / (record.servings or 1)
        item = FoodLogItem(
            food_name=record.name,
            portion=portion,
            nutrients=scale_values(record.nutrition_data, scale),
            confidence="high",
            recipe_id=record.id,
        )
        self.log_items(user_id, [item])


def _awaiting_choice(action: RecipeSaveAction, message: str) -> bool:
    """A duplicate or selection question is open and the reply picks nothing."""
    state = action.flow_state
    if state.step is FlowStep.PENDING_RECIPE_SELECTION:
        return action.choice is not DuplicateChoice.NEW
    if state.existing_recipe_id is None:
        return False
    return action.choice is None and parse_duplicate_choice(message) is None


def _existing_recipe_state(record: RecipeRecord) -> RecipeFlowState:
    return RecipeFlowState(
        step=FlowStep.PENDING_DUPLICATE_CONFIRM,
        parsed=ParsedRecipe(
            name=record.name,
            ingredients=list(record.ingredients),
            servings=record.servings,
            fingerprint=record.fingerprint,
            total_batch_grams=record.total_batch_grams,
            serving_size=record.serving_size,
            instructions=record.instructions,
        ),
        batch_size_grams=record.total_batch_grams,
        suggested_servings=record.servings,
        batch_nutrition=dict(record.nutrition_data),
        existing_recipe_id=record.id,
        existing_recipe_name=record.name,
        exact_match=True,
    )


def _record_summary(record: RecipeRecord) -> dict[str, object]:
    return {
        "id": str(record.id),
        "recipe_name": record.name,
        "servings": record.servings,
        "nutrition_data": record.nutrition_data,
        "per_serving_nutrition": record.per_serving_nutrition,
    }
