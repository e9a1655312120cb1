"""Bounded tool-calling loop between the LLM and the tool executor."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime

from nutrition_assistant.domain.conversation import IntentRecord
from nutrition_assistant.domain.nutrients import NUTRIENTS
from nutrition_assistant.domain.pending import (
    FoodLogAction,
    PendingAction,
    new_proposal_id,
    pending_from_dict,
    pending_to_dict,
)
from nutrition_assistant.errors import UnknownToolError
from nutrition_assistant.services.context import UserContext
from nutrition_assistant.services.llm import LLMClient, ToolCall
from nutrition_assistant.services.progress import resolve_timezone
from nutrition_assistant.services.tools import (
    TOOL_DEFINITIONS,
    ToolExecutor,
    ToolRequest,
)

_logger = logging.getLogger(__name__)

MAX_MEMORIES_IN_PROMPT = 10

REASONING_INSTRUCTIONS = f"""You are the reasoning core of a nutrition assistant
and a proactive nutrition coach.

Context first: call get_user_goals and get_today_progress at the start of any
question about what to eat, whether the user can have something, how they are
doing or what their goals are. When listing goals, list every active goal,
including micronutrients and water. Use the day type from the context prefix
to adjust advice, without offering unsolicited advice about it.

Trackable nutrient keys: {", ".join(NUTRIENTS)}.
Map user terms to these keys ("water" is hydration_ml) and convert units to
the key's unit ("2 liters" is 2000). If a nutrient cannot be mapped, ask.
When the user resets goals ("set my goals to X and Y"), read current goals and
send action "remove" for every goal missing from the new list.

Call independent tools in parallel in the same turn.
Logging (log_food, log_recipe): look up nutrition with ask_nutrition_agent,
then call propose_food_log for every item, even low-calorie ones. Never
estimate nutrition yourself. If the data is missing an item, ask instead of
proposing. For saved recipes use ask_recipe_agent (find) then
propose_recipe_log. For pasted recipe text use parse_recipe_text.
Questions (query_nutrition, plan_scenario, comparisons): answer, never
propose a log.
High ambiguity: propose the clear items and ask one or two specific
questions about the unclear ones.
Composite foods described by ingredients become one log entry named after
the dish.

Health flags: warn, never block. Still propose the log.
Health conditions and allergies go to manage_health_constraints; general
preferences go to update_user_profile.
Progress questions: quote the exact numbers from get_today_progress.
Never mention diseases that are not in the user's health constraints.
Off-topic: be polite and steer back to nutrition."""


@dataclass(frozen=True)
class ReasoningResult:
    """Final text, the tools that ran, their results and any proposal."""

    text: str
    tools_used: list[str] = field(default_factory=list)
    gathered: dict[str, list[dict[str, object]]] = field(default_factory=dict)
    proposal: PendingAction | None = None


def build_context_prefix(
    intent: IntentRecord | None,
    context: UserContext,
    pending: PendingAction | None = None,
    now: datetime | None = None,
) -> str:
    """Bracketed facts prepended to the user's message."""
    parts: list[str] = []
    if intent is not None:
        parts.append(f"[Intent: {intent.intent}]")
        if intent.food_items:
            parts.append(f"[EXTRACTED ENTITIES: {', '.join(intent.food_items)}]")
            if intent.portions:
                parts.append(f"[PORTIONS: {', '.join(intent.portions)}]")
        if intent.ambiguity_level in ("medium", "high"):
            reasons = "; ".join(intent.ambiguity_reasons)
            parts.append(f"[AMBIGUITY: {intent.ambiguity_level} - {reasons}]")
    if pending is not None:
        data = json.dumps(pending.to_data(), default=str)
        parts.append(f"[Pending Action: {pending.kind.value} | Data: {data}]")
    if context.day_classification is not None:
        day = context.day_classification
        parts.append(f"[Day Type: {day.day_type} | Notes: {day.notes or 'None'}]")
    if context.health_constraints:
        constraints = ", ".join(
            f"{item.category} ({item.severity})" for item in context.health_constraints
        )
        parts.append(f"[Active Health Constraints: {constraints}]")
    if context.memories:
        memories = "; ".join(
            f"{memory.category}: {memory.fact}"
            for memory in context.memories[:MAX_MEMORIES_IN_PROMPT]
        )
        parts.append(f"[Known Preferences: {memories}]")
    local = (now or datetime.now(tz=resolve_timezone(context.timezone))).astimezone(
        resolve_timezone(context.timezone)
    )
    parts.append(
        f"[Timezone: {context.timezone} | Local Time: {local:%Y-%m-%d %H:%M}]"
    )
    return " ".join(parts)


def merge_proposals(results: list[dict[str, object]]) -> PendingAction | None:
    """Batch food-log proposals into one; otherwise the first proposal wins."""
    food_logs: list[FoodLogAction] = []
    first_other: PendingAction | None = None
    for result in results:
        if not result.get("pending") or not result.get("proposal_type"):
            continue
        try:
            action = pending_from_dict(
                {
                    "type": result["proposal_type"],
                    "proposal_id": result.get("proposal_id"),
                    "data": result.get("data"),
                }
            )
        except (ValueError, KeyError, TypeError) as exc:
            _logger.warning("Ignoring malformed proposal %s: %s", result, exc)
            continue
        if isinstance(action, FoodLogAction):
            food_logs.append(action)
        elif first_other is None:
            first_other = action
    if len(food_logs) == 1:
        return food_logs[0]
    if food_logs:
        return FoodLogAction(
            items=[item for action in food_logs for item in action.items],
            proposal_id=new_proposal_id("batch"),
        )
    return first_other


@dataclass
class ReasoningEngine:
    """Runs the model against the tool catalog for a bounded number of rounds."""

    llm: LLMClient
    model: str
    executor: ToolExecutor
    max_iterations: int = 5
    history_limit: int = 6

    async def run(  # noqa: PLR0913
        self,
        message: str,
        intent: IntentRecord | None,
        history: list[dict[str, object]],
        context: UserContext,
        pending: PendingAction | None = None,
    ) -> ReasoningResult:
        prefix = build_context_prefix(intent, context, pending)
        transcript: list[dict[str, object]] = [
            {"role": item.get("role", "user"), "content": item.get("content", "")}
            for item in history[-self.history_limit :]
        ]
        transcript.append({"role": "user", "content": f"{prefix}\n\nUser: {message}"})

        tools_used: list[str] = []
        gathered: dict[str, list[dict[str, object]]] = {}
        ordered: list[dict[str, object]] = []
        text = ""
        for iteration in range(1, self.max_iterations + 1):
            turn = await self.llm.complete_with_tools(
                model=self.model,
                instructions=REASONING_INSTRUCTIONS,
                messages=transcript,
                tools=TOOL_DEFINITIONS,
            )
            text = turn.text or text
            if not turn.tool_calls:
                break
            _logger.info(
                "Iteration %d: %d tool call(s)", iteration, len(turn.tool_calls)
            )
            if turn.text:
                transcript.append({"role": "assistant", "content": turn.text})
            results = await asyncio.gather(
                *(self._call(call, context) for call in turn.tool_calls)
            )
            for call, result in zip(turn.tool_calls, results, strict=True):
                tools_used.append(call.name)
                gathered.setdefault(call.name, []).append(result)
                ordered.append(result)
                transcript.append(
                    {
                        "type": "function_call",
                        "call_id": call.call_id,
                        "name": call.name,
                        "arguments": json.dumps(call.arguments),
                    }
                )
                transcript.append(
                    {
                        "type": "function_call_output",
                        "call_id": call.call_id,
                        "output": json.dumps(result, default=str),
                    }
                )
        else:
            _logger.warning("Reasoning stopped at %d iterations", self.max_iterations)

        proposal = merge_proposals(ordered)
        if proposal is not None:
            _logger.info(
                "Reasoning produced proposal %s", pending_to_dict(proposal)["type"]
            )
        return ReasoningResult(
            text=text, tools_used=tools_used, gathered=gathered, proposal=proposal
        )

    async def _call(self, call: ToolCall, context: UserContext) -> dict[str, object]:
        try:
            request = ToolRequest.parse(call.name, call.arguments, call.call_id)
        except UnknownToolError as exc:
            _logger.warning("Model requested unknown tool %s", call.name)
            return {"error": True, "message": str(exc)}
        return await self.executor.execute(request, context)
