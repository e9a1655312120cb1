"""Intent classification of a single utterance."""

import logging
from dataclasses import dataclass

from pydantic import ValidationError

from nutrition_assistant.domain.conversation import IntentRecord
from nutrition_assistant.errors import ExternalServiceError
from nutrition_assistant.services.insights import DAY_TYPES
from nutrition_assistant.services.llm import LLMClient

_logger = logging.getLogger(__name__)

HISTORY_TURNS = 5

INTENTS = (
    "log_food",
    "log_recipe",
    "save_recipe",
    "query_nutrition",
    "update_goals",
    "update_profile",
    "suggest_goals",
    "audit",
    "patterns",
    "reflect",
    "classify_day",
    "summary",
    "plan_scenario",
    "clarify",
    "confirm",
    "decline",
    "modify",
    "greet",
    "store_memory",
    "off_topic",
)

INTENT_INSTRUCTIONS = """You classify messages sent to a nutrition assistant.
Intents:
- log_food: the user ate something and wants it logged.
- log_recipe: log a recipe they saved before.
- save_recipe: save a new recipe.
- query_nutrition: questions about nutritional content.
- update_goals: set, change or remove nutrition goals.
- update_profile: health considerations, dietary preferences, medical info.
- suggest_goals: wants goal recommendations.
- audit: check or verify their numbers ("this seems off", "audit my day").
- patterns: trends or patterns over time.
- reflect: today versus baseline, or what to focus on tomorrow.
- classify_day: names the kind of day (travel, sick, social, workout).
- summary: summary or progress report ("how am I doing?").
- clarify: provides missing info for a pending item.
- modify: changes or corrects a pending item.
- decline: rejects the current action.
- confirm: explicitly agrees to the previously mentioned item.
- greet: hello.
- store_memory: states a preference, habit or condition to remember.
- plan_scenario: hypothetical "what if" or "should I" questions, no logging.
- off_topic: anything else.

Be robust to typos ("protien" is protein, "calores" is calories).

Messages may start with "[Context: User said ... System asked to clarify ...]".
Combine that context with the new message into one request. Context "log
chicken" plus "grilled breast" means "grilled chicken breast".

Ambiguity is the risk that a reasonable guess is off by a large margin:
- high: a guess could be off by more than 50%. Unstandardized containers
  without a food ("a bowl"), composite meals with no type ("sandwich"),
  dense foods without quantity ("peanut butter"), or a food with no action.
- medium: info missing but a standard size exists ("bowl of plain rice",
  "PBJ sandwich", "carbonara").
- low: mostly clear ("log 1 apple", "Big Mac", "glass of milk").
- none: exact ("log 100g grilled chicken breast").
After a clarification context, or when the user says "standard", "typical"
or "assume", ambiguity is at most medium.
Reasons use short tags: container_unstandardized, ingredients_unknown,
portion_unclear, preparation_unknown, missing_quantity, brand_missing,
intent_unclear.

Conditional phrasing ("If I eat", "Should I") is plan_scenario; declarative
phrasing ("I ate", "Log") is log_food. A bare food name is log_food with high
ambiguity and reason intent_unclear.

Fill food_items and portions in the same order. Use null or empty values for
fields that do not apply."""


def _nullable(schema: dict[str, object]) -> dict[str, object]:
    kind = schema["type"]
    return {**schema, "type": [kind, "null"]}


def _strict_object(properties: dict[str, object]) -> dict[str, object]:
    return {
        "type": "object",
        "additionalProperties": False,
        "required": list(properties),
        "properties": properties,
    }


_STRING = {"type": "string"}
_NUMBER = {"type": "number"}
_STRINGS = {"type": "array", "items": _STRING}

INTENT_SCHEMA: dict[str, object] = _strict_object(
    {
        "intent": {"type": "string", "enum": list(INTENTS)},
        "ambiguity_level": {
            "type": "string",
            "enum": ["none", "low", "medium", "high"],
        },
        "ambiguity_reasons": _STRINGS,
        "query_focus": _nullable(_STRING),
        "flexible_range": _nullable(
            _strict_object(
                {
                    "days": _nullable({"type": "integer"}),
                    "start": _nullable(_STRING),
                    "end": _nullable(_STRING),
                }
            )
        ),
        "day_type": {"type": ["string", "null"], "enum": [*DAY_TYPES, None]},
        "notes": _nullable(_STRING),
        "food_items": _STRINGS,
        "portions": _STRINGS,
        "calories": _nullable(_NUMBER),
        "macros": _nullable(
            _strict_object(
                {
                    "protein": _nullable(_NUMBER),
                    "carbs": _nullable(_NUMBER),
                    "fat": _nullable(_NUMBER),
                }
            )
        ),
        "recipe_text": _nullable(_STRING),
        "recipe_portion": _nullable(_STRING),
        "goal_action": {
            "type": ["string", "null"],
            "enum": ["add", "remove", "update", "recommend", None],
        },
        "goals": {
            "type": "array",
            "items": _strict_object(
                {
                    "nutrient": _STRING,
                    "value": _nullable(_NUMBER),
                    "unit": _nullable(_STRING),
                    "yellow_min": _nullable(_NUMBER),
                    "green_min": _nullable(_NUMBER),
                    "red_min": _nullable(_NUMBER),
                }
            ),
        },
        "profile_updates": _nullable(
            _strict_object(
                {
                    "dietary_preferences": _STRINGS,
                    "health_goal": _nullable(_STRING),
                    "allergies": _STRINGS,
                    "notes": _nullable(_STRING),
                }
            )
        ),
        "memory_content": _nullable(
            _strict_object(
                {
                    "category": {
                        "type": "string",
                        "enum": ["food", "health", "habits", "preferences"],
                    },
                    "fact": _STRING,
                }
            )
        ),
    }
)


@dataclass
class IntentClassifier:
    """Classifies an utterance with the fast model."""

    llm: LLMClient
    model: str

    async def classify(
        self, message: str, history: list[dict[str, object]] | None = None
    ) -> IntentRecord:
        """Return the intent; unreadable responses become off_topic."""
        messages = [*(history or [])[-HISTORY_TURNS:]]
        messages.append({"role": "user", "content": message})
        try:
            payload = await self.llm.complete_json(
                model=self.model,
                instructions=INTENT_INSTRUCTIONS,
                messages=messages,
                schema=INTENT_SCHEMA,
                schema_name="intent",
            )
            return IntentRecord.model_validate(payload)
        except (ExternalServiceError, ValidationError, ValueError) as exc:
            _logger.warning("Intent classification failed: %s", exc)
            return IntentRecord(intent="off_topic", ambiguity_level="none")
