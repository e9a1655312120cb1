"""Audits, pattern analysis, reflection, day classification and summaries."""

import asyncio
import json
import logging
from dataclasses import dataclass
from uuid import UUID

from nutrition_assistant.domain.logs import DailyTotals
from nutrition_assistant.errors import ExternalServiceError
from nutrition_assistant.services.context import DayClassificationRepository
from nutrition_assistant.services.goals import GoalRepository
from nutrition_assistant.services.llm import LLMClient
from nutrition_assistant.services.progress import ProgressService, local_today

_logger = logging.getLogger(__name__)

INSIGHT_ACTIONS = ("audit", "patterns", "reflect", "classify_day", "summary")
DAY_TYPES = ("travel", "sick", "social", "workout", "normal")
SUMMARY_NUTRIENTS = (
    "calories",
    "protein_g",
    "carbs_g",
    "fat_total_g",
    "fiber_g",
    "sugar_g",
    "sodium_mg",
    "hydration_ml",
)
MAX_HISTORY_DAYS = 30
ON_TRACK_MIN = 90
ON_TRACK_MAX = 110

AUDIT_INSTRUCTIONS = """You are a Forensic Nutrition Analyst. Audit the user's food log.
1. Identify unlogged gaps (long periods without food).
2. Flag entries that look unusual for those items.
3. Check every tracked metric against the user's goals.
Answer in 3-5 punchy bullets. Debug the data, do not correct the user.
On travel or social days, treat higher sodium, fat or calories as expected."""

PATTERN_INSTRUCTIONS = """You are a Data Analyst looking for structural patterns.
Patterns are behaviors that recur 3+ times; suggest one structural fix.
Insights are directional trends (e.g. protein 20% lower on weekends).
Answer in 3-5 bullets, non-preachy, covering macros and not just calories."""

REFLECT_INSTRUCTIONS = """Compare today with the previous days as a baseline.
Contrast every tracked metric and name the one biggest lever for tomorrow.
Be non-preachy. Explain variance on social or travel days as context."""

SUMMARY_INSTRUCTIONS = """You are a Nutrition Summary Analyst.
Cover per-day highlights, best and worst days against goals, averages versus
targets, recurring patterns and one adjustment for the coming week.
Use specific numbers and foods. Mention days without logged meals.
No moral tone. Use short structured sections."""


@dataclass
class InsightService:
    """Runs analytic requests over the user's food log."""

    progress: ProgressService
    goals: GoalRepository
    days: DayClassificationRepository
    llm: LLMClient
    model: str
    timeout_seconds: float = 30.0

    async def run(  # noqa: PLR0913
        self,
        action: str,
        user_id: UUID,
        *,
        query: str | None = None,
        days: int | None = None,
        day_type: str | None = None,
        notes: str | None = None,
        timezone: str = "UTC",
    ) -> dict[str, object]:
        """Dispatch one insight action; unknown actions fall back to summary."""
        _logger.info("Running insight %s for %s", action, user_id)
        if action == "classify_day":
            return self.classify_day(user_id, day_type, notes, timezone)
        if action == "audit":
            return await self.audit(user_id, query, timezone)
        if action == "patterns":
            return await self.patterns(user_id, query, days or 7, timezone)
        if action == "reflect":
            return await self.reflect(user_id, query, timezone)
        return await self.summary(user_id, days or 7, timezone)

    def classify_day(
        self,
        user_id: UUID,
        day_type: str | None,
        notes: str | None,
        timezone: str = "UTC",
    ) -> dict[str, object]:
        cleaned = (day_type or "normal").lower().strip()
        if cleaned not in DAY_TYPES:
            cleaned = "normal"
        today = local_today(timezone)
        self.days.set_classification(user_id, today, cleaned, notes)
        return {
            "action": "classify_day",
            "status": "confirmed",
            "day_type": cleaned,
            "date": today.isoformat(),
        }

    async def audit(
        self, user_id: UUID, query: str | None, timezone: str = "UTC"
    ) -> dict[str, object]:
        entries = self.progress.get_history(user_id, timezone, days=7)
        classification = self.days.get_classification(user_id, local_today(timezone))
        day_type = classification.day_type if classification else "normal"
        goals = [goal.to_dict() for goal in self.goals.list_goals(user_id)]
        logs = [
            {
                "name": entry.food_name,
                "time": entry.log_time.isoformat(),
                **{key: value for key, value in entry.nutrients.items() if value},
            }
            for entry in entries
        ]
        prompt = (
            f"User goals: {json.dumps(goals)}\n"
            f"Day type: {day_type}\n"
            f'User inquiry: "{query or ""}"\n'
            f"Recent logs for review: {json.dumps(logs)}"
        )
        report = await self._narrate(AUDIT_INSTRUCTIONS, prompt)
        return {
            "action": "audit",
            "audit_report": report,
            "data_snapshot": {"logs_count": len(entries), "day_type": day_type},
        }

    async def patterns(
        self, user_id: UUID, query: str | None, days: int, timezone: str = "UTC"
    ) -> dict[str, object]:
        days = _clamp_days(days)
        totals = self._totals_with_context(user_id, days, timezone)
        prompt = (
            f"Target: {query or 'General patterns'}\n"
            f"Today is: {local_today(timezone).isoformat()}\n"
            f"History: {days} days\n"
            f"Daily totals: {json.dumps([day.to_dict() for day in totals])}"
        )
        analysis = await self._narrate(PATTERN_INSTRUCTIONS, prompt)
        return {"action": "patterns", "analysis": analysis, "history_range": days}

    async def reflect(
        self, user_id: UUID, query: str | None, timezone: str = "UTC"
    ) -> dict[str, object]:
        totals = self._totals_with_context(user_id, 8, timezone)
        prompt = (
            f"Today's date: {local_today(timezone).isoformat()}\n"
            f"Daily totals (last entry is today): "
            f"{json.dumps([day.to_dict() for day in totals])}\n"
            f'User focus: "{query or ""}"'
        )
        reflection = await self._narrate(REFLECT_INSTRUCTIONS, prompt)
        return {"action": "reflect", "reflection": reflection}

    async def summary(
        self, user_id: UUID, days: int = 7, timezone: str = "UTC"
    ) -> dict[str, object]:
        """Numeric averages and goal progress, plus a narrative summary."""
        days = _clamp_days(days)
        totals = self._totals_with_context(user_id, days, timezone)
        goals = self.goals.list_goals(user_id)
        logged = [day for day in totals if day.items]
        averages = daily_averages(
            logged, SUMMARY_NUTRIENTS + tuple(goal.nutrient for goal in goals)
        )
        progress = {
            goal.nutrient: round(
                averages.get(goal.nutrient, 0.0) / goal.target_value * 100
            )
            for goal in goals
            if goal.target_value
        }
        classified = {
            day.day.isoformat(): day.day_type for day in totals if day.day_type
        }
        trimmed = [
            {
                "date": day.day.isoformat(),
                "items": day.items,
                **{key: round(day.get(key), 1) for key in SUMMARY_NUTRIENTS},
            }
            for day in logged
        ]
        prompt = (
            f"Period: last {days} days ({len(logged)} days have logged data)\n"
            f"Daily totals by date: {json.dumps(trimmed)}\n"
            f"User goals: {json.dumps([goal.to_dict() for goal in goals])}\n"
            f"Day classifications: {json.dumps(classified)}"
        )
        text = await self._narrate(SUMMARY_INSTRUCTIONS, prompt)
        return {
            "action": "summary",
            "summary": text,
            "daily_averages": averages,
            "goal_progress": progress,
            "data_snapshot": {
                "days_requested": days,
                "days_with_data": len(logged),
                "goals_count": len(goals),
            },
        }

    def _totals_with_context(
        self, user_id: UUID, days: int, timezone: str
    ) -> list[DailyTotals]:
        totals = self.progress.get_daily_totals(user_id, timezone, days=days)
        if not totals:
            return totals
        classified = {
            item.day: item.day_type
            for item in self.days.list_classifications(
                user_id, totals[0].day, totals[-1].day
            )
        }
        return [
            DailyTotals(
                day=day.day,
                totals=day.totals,
                items=day.items,
                day_type=classified.get(day.day),
            )
            for day in totals
        ]

    async def _narrate(self, instructions: str, prompt: str) -> str:
        try:
            return await asyncio.wait_for(
                self.llm.complete_text(
                    model=self.model, prompt=prompt, instructions=instructions
                ),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as exc:
            _logger.warning(
                "Insight analysis timed out after %ss", self.timeout_seconds
            )
            raise ExternalServiceError("Insight analysis timed out") from exc


def daily_averages(
    days: list[DailyTotals], keys: tuple[str, ...] = SUMMARY_NUTRIENTS
) -> dict[str, float]:
    """Average of each nutrient over days that have logs."""
    if not days:
        return {}
    return {
        key: round(sum(day.get(key) for day in days) / len(days), 1)
        for key in dict.fromkeys(keys)
    }


def compliance_label(goal_progress: dict[str, float]) -> str:
    """Describe average goal progress as on track, under or above."""
    if not goal_progress:
        return "No goals to track"
    average = sum(goal_progress.values()) / len(goal_progress)
    if ON_TRACK_MIN <= average <= ON_TRACK_MAX:
        return "On track! 🎯"
    if average < ON_TRACK_MIN:
        return "Under targets"
    return "Above targets"


def _clamp_days(days: int) -> int:
    return max(1, min(int(days), MAX_HISTORY_DAYS))
