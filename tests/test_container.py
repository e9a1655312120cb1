"""Tests for container wiring."""

import asyncio

from nutrition_assistant.config import Settings
from nutrition_assistant.containers import build_container


def test_build_container_creates_services(settings: Settings) -> None:
    container = build_container(settings)

    assert container.session_service is not None
    assert container.orchestrator.reasoning.max_iterations == 5
    assert container.orchestrator.classifier.model == settings.openai_fast_model
    assert container.nutrition_resolver.model == settings.openai_model
    assert container.tool_executor.handled_tools
    asyncio.run(container.close_resources())
