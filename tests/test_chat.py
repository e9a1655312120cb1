"""Tests for reply wording."""

import asyncio
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from nutrition_assistant.domain.users import DayClassification
from nutrition_assistant.errors import ExternalServiceError
from nutrition_assistant.services.chat import FALLBACK_REPLY, ChatResponder
from nutrition_assistant.services.context import UserContext
from tests.conftest import ScriptedLLMClient


@dataclass
class FailingLLMClient(ScriptedLLMClient):
    async def complete_text(
        self, *, model: str, prompt: str, instructions: str | None = None
    ) -> str:
        raise ExternalServiceError("OpenAI request failed")


def test_respond_builds_prompt_from_history_and_day(
    llm: ScriptedLLMClient, user_id: UUID
) -> None:
    llm.text_responses.append("  Hi there!  ")
    responder = ChatResponder(llm=llm, model="fast-model")
    history = [{"role": "user", "content": f"turn {index}"} for index in range(7)]
    context = UserContext(
        user_id=user_id,
        day_classification=DayClassification(
            day=date(2024, 5, 1), day_type="travel", notes=None
        ),
    )

    text = asyncio.run(
        responder.respond("hello", "greet", {"reasoning": "hi"}, history, context)
    )

    assert text == "Hi there!"
    prompt = llm.calls_for("complete_text")[0]["prompt"]
    lines = prompt.splitlines()
    assert lines[0] == "user: turn 2"
    assert "Current Intent: greet." in lines[-2]
    assert lines[-2].endswith("Context: Day Type: travel")
    assert lines[-1] == "user: hello"


def test_respond_falls_back_when_generation_fails() -> None:
    responder = ChatResponder(llm=FailingLLMClient(), model="fast-model")

    assert asyncio.run(responder.respond("hi", "greet", {})) == FALLBACK_REPLY


def test_respond_falls_back_on_empty_text(llm: ScriptedLLMClient) -> None:
    llm.text_responses.append("   ")
    responder = ChatResponder(llm=llm, model="fast-model")

    assert asyncio.run(responder.respond("hi", "greet", {})) == FALLBACK_REPLY
