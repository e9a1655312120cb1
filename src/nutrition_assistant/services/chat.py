"""Final user-facing wording for greetings, clarifications and tool results."""

import json
import logging
from dataclasses import dataclass

from nutrition_assistant.errors import ExternalServiceError
from nutrition_assistant.services.context import UserContext
from nutrition_assistant.services.llm import LLMClient

_logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I'm here to help with your nutrition!"
HISTORY_TURNS = 5

CHAT_INSTRUCTIONS = """You are NutriPal, a friendly and professional nutrition
assistant. Keep responses concise, encouraging and helpful.

- greet: a warm greeting that mentions one thing you can help with.
- When a proposal is present the UI shows a confirmation card. Do not repeat
  the food name, portion or numbers; just ask for confirmation. Never say
  something was logged before the user confirms.
- Recipe saves: be enthusiastic and ask whether to save.
- Failed validation: explain why it cannot be logged yet and ask.
- If goals or today's progress are present, add one short coach tip.
- Low confidence: say that you estimated. Explain error sources such as a
  vague portion in one short sentence.
- clarify_ambiguity: ask one or two targeted questions, offer options and say
  why the difference matters.
- Never use bullet points for nutrition data.
- If health_flags are present, start the warning with "Just a heads up...".
  Never name a disease unless it is in the user's health constraints.
- plan_scenario: use conditional language and compare current against
  projected totals. Never use "Logged!" or "Saved!".
- A logging intent without a proposal means information is missing: do not
  say it was logged, ask for what is missing."""


@dataclass
class ChatResponder:
    """Turns intent and gathered data into the reply text."""

    llm: LLMClient
    model: str

    async def respond(  # noqa: PLR0913
        self,
        message: str,
        intent: str,
        data: dict[str, object],
        history: list[dict[str, object]] | None = None,
        context: UserContext | None = None,
    ) -> str:
        prompt = _build_prompt(message, intent, data, history or [], context)
        try:
            text = await self.llm.complete_text(
                model=self.model, prompt=prompt, instructions=CHAT_INSTRUCTIONS
            )
        except ExternalServiceError as exc:
            _logger.warning("Reply generation failed: %s", exc)
            return FALLBACK_REPLY
        return text.strip() or FALLBACK_REPLY


def _build_prompt(
    message: str,
    intent: str,
    data: dict[str, object],
    history: list[dict[str, object]],
    context: UserContext | None,
) -> str:
    lines = [
        f"{item.get('role', 'user')}: {item.get('content', '')}"
        for item in history[-HISTORY_TURNS:]
    ]
    day = context.day_classification if context else None
    day_text = f"Day Type: {day.day_type}" if day else "Normal Day"
    lines.append(
        f"Current Intent: {intent}. "
        f"Data involved: {json.dumps(data, default=str)}. Context: {day_text}"
    )
    lines.append(f"user: {message}")
    return "\n".join(lines)
