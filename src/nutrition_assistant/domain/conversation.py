"""Conversation models: classified intents, session state, chat responses."""

from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from nutrition_assistant.domain.pending import (
    PendingAction,
    pending_from_dict,
    pending_to_dict,
)

IntentType = Literal[
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
]

AmbiguityLevel = Literal["none", "low", "medium", "high"]

INSIGHT_INTENTS = ("audit", "patterns", "reflect", "classify_day", "summary")
LOGGING_INTENTS = ("log_food", "log_recipe")


class FlexibleRange(BaseModel):
    """Time window named in an analytic request."""

    model_config = ConfigDict(extra="ignore")

    days: int | None = None
    start: str | None = None
    end: str | None = None


class Macros(BaseModel):
    """Macros stated by the user."""

    model_config = ConfigDict(extra="ignore")

    protein: float | None = None
    carbs: float | None = None
    fat: float | None = None


class GoalMention(BaseModel):
    """A goal named in the message."""

    model_config = ConfigDict(extra="ignore")

    nutrient: str
    value: float | None = None
    unit: str | None = None
    yellow_min: float | None = None
    green_min: float | None = None
    red_min: float | None = None


class MemoryContent(BaseModel):
    """A fact the user asked to remember."""

    model_config = ConfigDict(extra="ignore")

    category: str = "preferences"
    fact: str = ""


class IntentRecord(BaseModel):
    """Structured classification of one utterance."""

    model_config = ConfigDict(extra="ignore")

    intent: IntentType = "off_topic"
    ambiguity_level: AmbiguityLevel = "none"
    ambiguity_reasons: list[str] = Field(default_factory=list)
    query_focus: str | None = None
    flexible_range: FlexibleRange | None = None
    day_type: str | None = None
    notes: str | None = None
    food_items: list[str] = Field(default_factory=list)
    portions: list[str] = Field(default_factory=list)
    calories: float | None = None
    macros: Macros | None = None
    recipe_text: str | None = None
    recipe_portion: str | None = None
    goal_action: str | None = None
    goals: list[GoalMention] = Field(default_factory=list)
    profile_updates: dict[str, object] | None = None
    memory_content: MemoryContent | None = None

    @property
    def is_insight(self) -> bool:
        return self.intent in INSIGHT_INTENTS

    @property
    def is_logging(self) -> bool:
        return self.intent in LOGGING_INTENTS


@dataclass(frozen=True)
class ClarificationContext:
    """The question asked last turn and what prompted it."""

    original_message: str
    ambiguity_reasons: list[str] = field(default_factory=list)
    partial_intent: dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "original_message": self.original_message,
            "ambiguity_reasons": list(self.ambiguity_reasons),
            "partial_intent": dict(self.partial_intent),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "ClarificationContext":
        return cls(
            original_message=str(payload.get("original_message") or ""),
            ambiguity_reasons=[
                str(reason) for reason in payload.get("ambiguity_reasons") or []
            ],
            partial_intent=dict(payload.get("partial_intent") or {}),
        )


@dataclass(frozen=True)
class ConversationState:
    """Per-user session state carried between turns."""

    pending_action: PendingAction | None = None
    clarification: ClarificationContext | None = None
    recent_foods: list[str] = field(default_factory=list)
    last_topic: str | None = None
    last_intent: str | None = None
    last_response_type: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "pending_action": (
                pending_to_dict(self.pending_action) if self.pending_action else None
            ),
            "clarification": (
                self.clarification.to_dict() if self.clarification else None
            ),
            "recent_foods": list(self.recent_foods),
            "last_topic": self.last_topic,
            "last_intent": self.last_intent,
            "last_response_type": self.last_response_type,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "ConversationState":
        pending = payload.get("pending_action")
        clarification = payload.get("clarification")
        return cls(
            pending_action=pending_from_dict(pending) if pending else None,
            clarification=(
                ClarificationContext.from_dict(clarification) if clarification else None
            ),
            recent_foods=[str(food) for food in payload.get("recent_foods") or []],
            last_topic=_optional_str(payload.get("last_topic")),
            last_intent=_optional_str(payload.get("last_intent")),
            last_response_type=_optional_str(payload.get("last_response_type")),
        )


@dataclass
class ChatResponse:
    """Final answer for one turn."""

    message: str
    response_type: str
    status: str = "success"
    data: dict[str, object] | None = None
    steps: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "status": self.status,
            "message": self.message,
            "response_type": self.response_type,
        }
        if self.data is not None:
            payload["data"] = self.data
        return payload


def _optional_str(value: object) -> str | None:
    return str(value) if value else None
