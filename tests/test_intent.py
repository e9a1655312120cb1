"""Tests for intent classification."""

import asyncio

from nutrition_assistant.errors import ExternalServiceError
from nutrition_assistant.services.intent import IntentClassifier
from tests.conftest import ScriptedLLMClient


def test_classify_parses_structured_response(llm: ScriptedLLMClient) -> None:
    llm.queue_json(
        "intent",
        {
            "intent": "log_food",
            "ambiguity_level": "low",
            "ambiguity_reasons": [],
            "food_items": ["apple"],
            "portions": ["1 medium"],
            "macros": None,
            "unexpected": "ignored",
        },
    )
    classifier = IntentClassifier(llm=llm, model="fast-model")

    record = asyncio.run(classifier.classify("log an apple"))

    assert record.intent == "log_food"
    assert record.is_logging
    assert record.food_items == ["apple"]
    assert llm.calls_for("complete_json")[0]["model"] == "fast-model"


def test_classify_keeps_recent_history_only(llm: ScriptedLLMClient) -> None:
    llm.queue_json("intent", {"intent": "summary"})
    history = [{"role": "user", "content": f"message {index}"} for index in range(8)]
    classifier = IntentClassifier(llm=llm, model="fast-model")

    record = asyncio.run(classifier.classify("how am I doing?", history))

    messages = llm.calls_for("complete_json")[0]["messages"]
    assert record.is_insight
    assert len(messages) == 6
    assert messages[0]["content"] == "message 3"
    assert messages[-1] == {"role": "user", "content": "how am I doing?"}


def test_classify_falls_back_to_off_topic(llm: ScriptedLLMClient) -> None:
    llm.queue_json("intent", {"intent": "order_pizza"})
    llm.queue_json("intent", ExternalServiceError("timeout"))
    classifier = IntentClassifier(llm=llm, model="fast-model")

    invalid = asyncio.run(classifier.classify("pizza please"))
    failed = asyncio.run(classifier.classify("hello?"))

    assert invalid.intent == "off_topic"
    assert failed.intent == "off_topic"
    assert failed.ambiguity_level == "none"
