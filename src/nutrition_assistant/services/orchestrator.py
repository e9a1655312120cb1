"""Top-level handling of one conversational turn."""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from uuid import UUID

from nutrition_assistant.domain.conversation import (
    ChatResponse,
    ClarificationContext,
    IntentRecord,
)
from nutrition_assistant.domain.pending import (
    FoodLogAction,
    FoodLogItem,
    PendingAction,
    RecipeLogAction,
    RecipeSaveAction,
    RecipeSelectionAction,
    new_proposal_id,
    pending_to_dict,
)
from nutrition_assistant.domain.recipes import DuplicateChoice, FlowStep
from nutrition_assistant.domain.users import clean_category
from nutrition_assistant.errors import ExternalServiceError
from nutrition_assistant.services.chat import ChatResponder
from nutrition_assistant.services.commits import ConfirmationService
from nutrition_assistant.services.context import (
    MemoryRepository,
    UserContext,
    UserContextLoader,
)
from nutrition_assistant.services.insights import InsightService
from nutrition_assistant.services.intent import IntentClassifier
from nutrition_assistant.services.portions import scale_values
from nutrition_assistant.services.reasoning import ReasoningEngine, ReasoningResult
from nutrition_assistant.services.recipes import (
    FlowError,
    FlowPrompt,
    RecipeFlowService,
)
from nutrition_assistant.services.sessions import SessionService

_logger = logging.getLogger(__name__)

MAX_MESSAGE_CHARS = 2000
MAX_THANKS_LENGTH = 15
MAX_SHORT_CONFIRM_LENGTH = 30

THANKS_PHRASES = frozenset({"thanks", "thank you", "thx", "cheers", "awesome", "great"})
CONFIRM_PHRASES = frozenset(
    {
        "yes",
        "yeah",
        "yep",
        "correct",
        "confirm",
        "log it",
        "save it",
        "save",
        "record it",
        "track it",
        "looks good",
        "ok",
        "okay",
        "right",
        "sure",
        "yes log",
        "yes save",
        "confirm save",
    }
)
CANCEL_PHRASES = frozenset(
    {"cancel", "stop", "no, cancel", "decline", "no", "forget it"}
)
NEW_LOG_PREFIXES = ("log ", "track ", "save ", "add ")
MUTATING_INTENTS = ("log_food", "log_recipe", "save_recipe", "update_goals")
RESUMABLE_STEPS = (
    FlowStep.PENDING_BATCH_CONFIRM,
    FlowStep.PENDING_SERVINGS_CONFIRM,
    FlowStep.PENDING_RECIPE_SELECTION,
)

THANKS_REPLY = (
    "You're very welcome! Let me know if there's anything else I can help with. 😊"
)
CANCEL_REPLY = "Action cancelled. ❌"
DECLINE_REPLY = "No problem! I've cancelled that. What else can I help with?"
MEMORY_REPLY = "Got it! I've remembered that for you."

TOOL_STEPS = {
    "ask_nutrition_agent": "Looking up nutrition info...",
    "lookup_nutrition": "Looking up nutrition info...",
    "estimate_nutrition": "Estimating nutritional values...",
    "parse_recipe_text": "Parsing recipe details...",
    "get_user_goals": "Checking your nutrition goals...",
    "propose_food_log": "Preparing a log entry for you...",
}

TOPICS = {
    "log_food": "food",
    "query_nutrition": "food",
    "log_recipe": "recipe",
    "save_recipe": "recipe",
    "update_goals": "goals",
    "suggest_goals": "goals",
    "off_topic": "general",
    "clarify": "general",
}

_PORTION_PAYLOAD = re.compile(r"portion:([\w\s.]+)", re.IGNORECASE)
_NAME_PAYLOAD = re.compile(r"name:([\w\s.!@#$%^&*()-]+)", re.IGNORECASE)
_CONFIRM_CHOICE = re.compile(r"confirm\s+(\w+)", re.IGNORECASE)

StepCallback = Callable[[str], None]


@dataclass
class StepRecorder:
    """Collects progress steps and forwards each one as it happens."""

    on_step: StepCallback | None = None
    steps: list[str] = field(default_factory=list)

    def record(self, step: str) -> None:
        _logger.info("Step: %s", step)
        self.steps.append(step)
        if self.on_step is not None:
            self.on_step(step)


def is_thanks(text: str) -> bool:
    lowered = text.strip().lower()
    return lowered in THANKS_PHRASES and len(lowered) < MAX_THANKS_LENGTH


def is_confirmation(text: str) -> bool:
    """Exact short phrases and UI button payloads only."""
    lowered = text.strip().lower()
    if lowered.startswith(NEW_LOG_PREFIXES):
        return False
    cleaned = re.sub(r"[.!]", "", lowered)
    return (
        cleaned in CONFIRM_PHRASES
        or "portion:" in lowered
        or "name:" in lowered
        or (lowered.startswith("confirm") and len(lowered) < MAX_SHORT_CONFIRM_LENGTH)
    )


def is_cancellation(text: str) -> bool:
    lowered = text.strip().lower()
    return lowered in CANCEL_PHRASES or lowered.startswith("cancel")


def apply_button_payload(action: PendingAction, message: str) -> PendingAction:
    """Copy choice, portion and custom name from a button payload."""
    portion_match = _PORTION_PAYLOAD.search(message)
    portion = portion_match.group(1).strip() if portion_match else None
    if isinstance(action, RecipeSelectionAction) and portion:
        return replace(action, portion=portion)
    if not isinstance(action, RecipeSaveAction):
        return action
    choice_match = _CONFIRM_CHOICE.search(message)
    name_match = _NAME_PAYLOAD.search(message)
    choice = action.choice
    if choice_match:
        word = choice_match.group(1).lower()
        if word in {item.value for item in DuplicateChoice}:
            choice = DuplicateChoice(word)
    return replace(
        action,
        choice=choice,
        portion=portion or action.portion,
        custom_name=name_match.group(1).strip() if name_match else action.custom_name,
    )


def is_selection_reply(action: PendingAction | None, text: str) -> bool:
    """A number or exact name picking one of several offered recipes."""
    if not isinstance(action, RecipeSelectionAction):
        return False
    choice = text.strip().lower()
    if choice.isdigit():
        return 0 < int(choice) <= len(action.candidates)
    return any(candidate.name.lower() == choice for candidate in action.candidates)


def merge_clarification(message: str, clarification: ClarificationContext) -> str:
    reasons = ", ".join(clarification.ambiguity_reasons)
    return (
        f"[Context: User said '{clarification.original_message}'. "
        f"System asked to clarify '{reasons}'] {message}"
    )


def decorate_with_pending(message: str, action: PendingAction | None) -> str:
    """Spell out the options of a pending recipe choice for the model."""
    if isinstance(action, RecipeSelectionAction) and action.candidates:
        options = "\n".join(
            f"{index}. {candidate.name}: {candidate.ingredients or 'Details unknown'}"
            for index, candidate in enumerate(action.candidates, start=1)
        )
        return (
            f'[CONTEXT: Choice pending for "{action.query}". Options:\n{options}]'
            f"\n\n{message}"
        )
    if isinstance(action, RecipeSaveAction):
        parsed = action.flow_state.parsed
        ingredients = ", ".join(
            f"{item.quantity:g} {item.unit} {item.name}".replace("  ", " ")
            for item in parsed.ingredients
        )
        return (
            f'[CONTEXT: Preparing to save recipe "{parsed.name}". '
            f"Ingredients: {ingredients or 'Unknown'}]\n\n{message}"
        )
    return message


def truncate(message: str, limit: int = MAX_MESSAGE_CHARS) -> str:
    if len(message) <= limit:
        return message
    return message[:limit] + "... [Truncated]"


def auto_proposal(
    intent: str, gathered: dict[str, list[dict[str, object]]]
) -> PendingAction | None:
    """Build a proposal from already resolved data the model did not propose."""
    if intent == "log_food":
        items = [
            FoodLogItem.from_dict(entry)
            for result in [
                *gathered.get("ask_nutrition_agent", []),
                *gathered.get("lookup_nutrition", []),
            ]
            for entry in _entries(result)
            if entry.get("food_name") and not entry.get("error")
        ]
        if items:
            return FoodLogAction(items=items, proposal_id=new_proposal_id("auto"))
    if intent == "log_recipe":
        for result in gathered.get("ask_recipe_agent", []):
            recipe = result.get("recipe")
            if not isinstance(recipe, dict) or not recipe.get("nutrition_data"):
                continue
            servings = recipe.get("servings") or 1
            return RecipeLogAction(
                recipe_id=UUID(str(recipe["id"])) if recipe.get("id") else None,
                recipe_name=str(recipe.get("recipe_name") or "Recipe"),
                servings=1.0,
                nutrients=scale_values(dict(recipe["nutrition_data"]), 1 / servings),
                proposal_id=new_proposal_id("auto_recipe"),
            )
    return None


def _entries(result: dict[str, object]) -> list[dict[str, object]]:
    nested = result.get("results")
    if isinstance(nested, list):
        return [item for item in nested if isinstance(item, dict)]
    if result.get("pending"):
        return []
    return [result]


def food_entities(
    intent: IntentRecord, gathered: dict[str, list[dict[str, object]]]
) -> list[str]:
    foods = list(intent.food_items)
    for name in ("lookup_nutrition", "ask_nutrition_agent"):
        for result in gathered.get(name, []):
            foods.extend(
                str(entry["food_name"])
                for entry in _entries(result)
                if entry.get("food_name")
            )
    return foods


def proposal_data(action: PendingAction) -> dict[str, object]:
    """Display fields for the confirmation card of a proposal."""
    if isinstance(action, FoodLogAction):
        return {"nutrition": [item.to_dict() for item in action.items]}
    if isinstance(action, RecipeLogAction):
        return {
            "nutrition": [
                {
                    **action.to_data(),
                    "food_name": action.recipe_name,
                    "serving_size": action.portion,
                }
            ]
        }
    if isinstance(action, RecipeSaveAction):
        state = action.flow_state
        return {
            "parsed": {
                "recipe_name": state.parsed.name,
                "servings": state.parsed.servings,
                "nutrition_data": state.batch_nutrition,
                "ingredients": [
                    {
                        "name": item.name,
                        "amount": item.quantity,
                        "unit": item.unit,
                        "calories": (item.nutrition or {}).get("calories", 0),
                    }
                    for item in state.parsed.ingredients
                ],
            }
        }
    return {}


@dataclass
class Orchestrator:
    """Routes a message through fast paths, intents, reasoning and PCC."""

    sessions: SessionService
    contexts: UserContextLoader
    classifier: IntentClassifier
    reasoning: ReasoningEngine
    responder: ChatResponder
    confirmations: ConfirmationService
    recipes: RecipeFlowService
    insights: InsightService
    memories: MemoryRepository

    async def handle(  # noqa: PLR0913
        self,
        user_id: UUID,
        message: str,
        session_id: str | None = None,
        timezone: str = "UTC",
        history: list[dict[str, object]] | None = None,
        on_step: StepCallback | None = None,
    ) -> ChatResponse:
        """Answer one message; always returns a response."""
        recorder = StepRecorder(on_step)
        try:
            response = await self._handle(
                user_id, message, timezone, history or [], recorder
            )
        except Exception as exc:
            _logger.exception(
                "Fatal error handling message for %s (session %s)", user_id, session_id
            )
            return ChatResponse(
                status="error",
                message=f"I encountered an unexpected error. Please try again. ({exc})",
                response_type="fatal_error",
                steps=recorder.steps,
            )
        response.steps = recorder.steps
        return response

    async def _handle(  # noqa: PLR0911, PLR0912, PLR0913
        self,
        user_id: UUID,
        message: str,
        timezone: str,
        history: list[dict[str, object]],
        recorder: StepRecorder,
    ) -> ChatResponse:
        state = self.sessions.get_state(user_id)
        pending = state.pending_action

        if is_thanks(message):
            recorder.record("Closing recognized")
            return ChatResponse(message=THANKS_REPLY, response_type="chat_response")

        if pending is not None:
            fast = await self._resolve_pending(user_id, pending, message, recorder)
            if fast is not None:
                return fast

        augmented = message
        clarified = state.clarification is not None
        if state.clarification is not None:
            augmented = merge_clarification(message, state.clarification)
            self.sessions.clear_clarification(user_id)
        augmented = truncate(decorate_with_pending(augmented, pending))

        recorder.record("Analyzing intent...")
        intent = await self.classifier.classify(augmented, history)
        _logger.info(
            "Intent %s (ambiguity %s)", intent.intent, intent.ambiguity_level
        )
        context = self.contexts.load(user_id, timezone)

        if intent.ambiguity_level == "high":
            if clarified:
                _logger.info("Still ambiguous after clarification, proceeding")
                intent = intent.model_copy(update={"ambiguity_level": "medium"})
            else:
                return await self._ask_clarification(
                    user_id, message, intent, history, context, recorder
                )

        if intent.intent == "greet":
            recorder.record("Saying hello!")
            text = await self.responder.respond(
                message, "greet", {"reasoning": "Greeting user"}, history, context
            )
            return ChatResponse(message=text, response_type="chat_response")

        if intent.intent == "store_memory" and intent.memory_content is not None:
            recorder.record("Storing memory...")
            content = intent.memory_content
            self.memories.save_memory(
                user_id, clean_category(content.category), content.fact, message
            )
            return ChatResponse(message=MEMORY_REPLY, response_type="chat_response")

        if intent.intent == "confirm" and pending is not None and not intent.food_items:
            recorder.record("Confirmed! Processing...")
            return self.confirmations.confirm(pending, user_id, message)

        if intent.intent == "decline":
            recorder.record("Cancelling...")
            self.sessions.clear_pending_action(user_id)
            return ChatResponse(message=DECLINE_REPLY, response_type="action_cancelled")

        if intent.is_insight:
            return await self._run_insight(
                user_id, message, intent, history, context, recorder
            )

        if intent.intent in MUTATING_INTENTS and pending is not None:
            self.sessions.clear_pending_action(user_id)
            pending = None

        return await self._reason(
            user_id, message, augmented, intent, history, context, pending, recorder
        )

    async def _resolve_pending(
        self,
        user_id: UUID,
        pending: PendingAction,
        message: str,
        recorder: StepRecorder,
    ) -> ChatResponse | None:
        """Button confirmations, cancellations and recipe flow replies."""
        if is_cancellation(message):
            recorder.record("Cancellation recognized")
            self.sessions.clear_pending_action(user_id)
            return ChatResponse(message=CANCEL_REPLY, response_type="action_cancelled")

        if (
            isinstance(pending, RecipeSaveAction)
            and pending.flow_state.step in RESUMABLE_STEPS
            and not message.strip().lower().startswith(NEW_LOG_PREFIXES)
        ):
            recorder.record("Continuing your recipe...")
            return self._resume_recipe(user_id, pending, message)

        if is_confirmation(message) or is_selection_reply(pending, message):
            recorder.record("Processing your confirmation...")
            action = apply_button_payload(pending, message)
            return self.confirmations.confirm(action, user_id, message)
        return None

    def _resume_recipe(
        self, user_id: UUID, action: RecipeSaveAction, message: str
    ) -> ChatResponse:
        outcome = self.recipes.resume(action.flow_state, message, user_id)
        if isinstance(outcome, FlowPrompt):
            updated = replace(action, flow_state=outcome.state)
            self.sessions.save_pending_action(user_id, updated)
            return ChatResponse(
                message=outcome.message,
                response_type="confirmation_recipe_save",
                data={
                    **proposal_data(updated),
                    "per_serving_nutrition": outcome.nutrition_preview(),
                    "proposal": pending_to_dict(updated),
                },
            )
        if isinstance(outcome, FlowError):
            return ChatResponse(
                status="error", message=outcome.message, response_type="error"
            )
        _logger.warning("Unexpected recipe outcome %s", type(outcome).__name__)
        return ChatResponse(
            status="error",
            message="Something went wrong with that recipe. Let's start over?",
            response_type="error",
        )

    async def _ask_clarification(  # noqa: PLR0913
        self,
        user_id: UUID,
        message: str,
        intent: IntentRecord,
        history: list[dict[str, object]],
        context: UserContext,
        recorder: StepRecorder,
    ) -> ChatResponse:
        recorder.record("Asking for clarification...")
        self.sessions.set_clarification(
            user_id,
            ClarificationContext(
                original_message=message,
                ambiguity_reasons=list(intent.ambiguity_reasons),
                partial_intent=intent.model_dump(mode="json"),
            ),
        )
        text = await self.responder.respond(
            message,
            "clarify_ambiguity",
            {
                "ambiguity_reasons": intent.ambiguity_reasons,
                "partial_data": intent.model_dump(mode="json"),
            },
            history,
            context,
        )
        return ChatResponse(message=text, response_type="clarification_request")

    async def _run_insight(  # noqa: PLR0913
        self,
        user_id: UUID,
        message: str,
        intent: IntentRecord,
        history: list[dict[str, object]],
        context: UserContext,
        recorder: StepRecorder,
    ) -> ChatResponse:
        recorder.record("Analyzing your data...")
        days = intent.flexible_range.days if intent.flexible_range else None
        try:
            result = await self.insights.run(
                intent.intent,
                user_id,
                query=intent.query_focus or message,
                days=days,
                day_type=intent.day_type,
                notes=intent.notes,
                timezone=context.timezone,
            )
        except ExternalServiceError as exc:
            _logger.warning("Insight %s failed: %s", intent.intent, exc)
            return ChatResponse(
                status="error",
                message="I couldn't finish that analysis right now. Please try again.",
                response_type="error",
            )
        text = await self.responder.respond(
            message,
            intent.intent,
            {"reasoning": f"{intent.intent} analysis", "insight": result},
            history,
            context,
        )
        return ChatResponse(message=text, response_type="chat_response", data=result)

    async def _reason(  # noqa: PLR0913
        self,
        user_id: UUID,
        message: str,
        augmented: str,
        intent: IntentRecord,
        history: list[dict[str, object]],
        context: UserContext,
        pending: PendingAction | None,
        recorder: StepRecorder,
    ) -> ChatResponse:
        recorder.record("Thinking about how to help...")
        result = await self.reasoning.run(augmented, intent, history, context, pending)
        for step in dict.fromkeys(
            TOOL_STEPS[name] for name in result.tools_used if name in TOOL_STEPS
        ):
            recorder.record(step)

        proposal = result.proposal
        if proposal is None and intent.is_logging:
            _logger.warning("Intent %s produced no proposal", intent.intent)
            proposal = auto_proposal(intent.intent, result.gathered)
        if proposal is not None:
            self.sessions.save_pending_action(user_id, proposal)
        active = proposal or pending

        response_type = (
            f"confirmation_{active.kind.value}" if active else "chat_response"
        )
        recorder.record("Formatting response...")
        text = await self.responder.respond(
            message,
            intent.intent,
            _reply_data(result, proposal),
            history,
            context,
        )
        data: dict[str, object] = {
            **result.gathered,
            "proposal": pending_to_dict(active) if active else None,
        }
        if active is not None:
            data.update(proposal_data(active))

        self.sessions.update_context(
            user_id,
            last_intent=intent.intent,
            last_response_type=response_type,
            topic=TOPICS.get(intent.intent),
        )
        self.sessions.update_buffer(user_id, food_entities(intent, result.gathered))
        return ChatResponse(message=text, response_type=response_type, data=data)


def _reply_data(
    result: ReasoningResult, proposal: PendingAction | None
) -> dict[str, object]:
    return {
        "reasoning": result.text,
        "proposal": pending_to_dict(proposal) if proposal else None,
        "tools_used": result.tools_used,
        "data": result.gathered,
    }
