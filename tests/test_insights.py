"""Tests for insight analysis."""

import asyncio
from dataclasses import dataclass
from datetime import UTC, date, datetime
from uuid import UUID

import pytest

from nutrition_assistant.domain.goals import Goal
from nutrition_assistant.domain.logs import DailyTotals
from nutrition_assistant.errors import ExternalServiceError
from nutrition_assistant.services.insights import (
    InsightService,
    compliance_label,
    daily_averages,
)
from nutrition_assistant.services.progress import ProgressService
from tests.conftest import (
    InMemoryDayClassificationRepository,
    InMemoryFoodLogRepository,
    InMemoryGoalRepository,
    ScriptedLLMClient,
)


@dataclass
class SlowLLMClient(ScriptedLLMClient):
    """LLM fake whose text completions never finish in time."""

    async def complete_text(
        self, *, model: str, prompt: str, instructions: str | None = None
    ) -> str:
        await asyncio.sleep(1)
        return "too late"


def test_classify_day_stores_known_types_only(
    day_repository: InMemoryDayClassificationRepository,
    insight_service: InsightService,
    user_id: UUID,
) -> None:
    travel = asyncio.run(
        insight_service.run("classify_day", user_id, day_type="Travel", notes="flight")
    )
    party = insight_service.classify_day(user_id, "party", None)

    assert travel["status"] == "confirmed"
    assert travel["day_type"] == "travel"
    assert party["day_type"] == "normal"
    [stored] = day_repository.days.values()
    assert stored.day_type == "normal"


def test_summary_reports_averages_and_goal_progress(
    food_log_repository: InMemoryFoodLogRepository,
    goal_repository: InMemoryGoalRepository,
    llm: ScriptedLLMClient,
    insight_service: InsightService,
    user_id: UUID,
) -> None:
    now = datetime.now(tz=UTC).isoformat()
    food_log_repository.insert_entries(
        user_id,
        [
            {
                "food_name": "Eggs",
                "portion": "2",
                "log_time": now,
                "calories": 140,
                "protein_g": 12,
            },
            {
                "food_name": "Chicken",
                "portion": "150g",
                "log_time": now,
                "calories": 250,
                "protein_g": 48,
            },
        ],
    )
    goal_repository.upsert_goals(
        user_id, [Goal(nutrient="protein_g", target_value=120, unit="g")]
    )
    llm.text_responses.append("A solid protein day.")

    result = asyncio.run(insight_service.run("summary", user_id, days=3))

    assert result["summary"] == "A solid protein day."
    assert result["daily_averages"]["calories"] == 390
    assert result["goal_progress"] == {"protein_g": 50}
    assert result["data_snapshot"] == {
        "days_requested": 3,
        "days_with_data": 1,
        "goals_count": 1,
    }


def test_unknown_action_falls_back_to_summary(
    insight_service: InsightService, user_id: UUID
) -> None:
    result = asyncio.run(insight_service.run("weekly_digest", user_id))

    assert result["action"] == "summary"
    assert result["daily_averages"] == {}


def test_audit_includes_day_type(
    day_repository: InMemoryDayClassificationRepository,
    llm: ScriptedLLMClient,
    insight_service: InsightService,
    user_id: UUID,
) -> None:
    insight_service.classify_day(user_id, "social", None)

    result = asyncio.run(insight_service.run("audit", user_id, query="seems high"))

    assert result["data_snapshot"] == {"logs_count": 0, "day_type": "social"}
    prompt = llm.calls_for("complete_text")[0]["prompt"]
    assert 'User inquiry: "seems high"' in prompt


def test_slow_analysis_raises_timeout_error(
    progress_service: ProgressService,
    goal_repository: InMemoryGoalRepository,
    day_repository: InMemoryDayClassificationRepository,
    user_id: UUID,
) -> None:
    service = InsightService(
        progress=progress_service,
        goals=goal_repository,
        days=day_repository,
        llm=SlowLLMClient(),
        model="main-model",
        timeout_seconds=0.01,
    )

    with pytest.raises(ExternalServiceError):
        asyncio.run(service.run("reflect", user_id))


def test_daily_averages_and_compliance() -> None:
    days = [
        DailyTotals(day=date(2024, 5, 1), totals={"calories": 1800.0}),
        DailyTotals(day=date(2024, 5, 2), totals={"calories": 2100.0}),
    ]

    assert daily_averages(days, ("calories", "protein_g")) == {
        "calories": 1950.0,
        "protein_g": 0.0,
    }
    assert daily_averages([]) == {}
    assert compliance_label({}) == "No goals to track"
    assert compliance_label({"protein_g": 95, "fiber_g": 105}) == "On track! 🎯"
    assert compliance_label({"protein_g": 50}) == "Under targets"
    assert compliance_label({"sodium_mg": 140}) == "Above targets"
