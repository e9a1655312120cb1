"""Goal storage and bulk goal updates."""

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from nutrition_assistant.domain.goals import Goal, GoalAction, GoalChange

_logger = logging.getLogger(__name__)


class GoalRepository(Protocol):
    """Persistence interface for nutrition goals."""

    def list_goals(self, user_id: UUID) -> list[Goal]:
        """Return every goal of a user."""

    def upsert_goals(self, user_id: UUID, goals: list[Goal]) -> None:
        """Insert or replace goals keyed by nutrient."""

    def delete_goals(self, user_id: UUID, nutrients: list[str]) -> None:
        """Remove goals for the given nutrients."""


@dataclass(frozen=True)
class BulkGoalResult:
    """Counts of goals touched by a bulk update."""

    updated: int
    removed: int


@dataclass
class GoalService:
    """Applies confirmed goal changes."""

    repository: GoalRepository

    def list_goals(self, user_id: UUID) -> list[Goal]:
        return self.repository.list_goals(user_id)

    def apply(self, user_id: UUID, change: GoalChange) -> None:
        """Apply one confirmed change."""
        if change.action is GoalAction.REMOVE:
            self.repository.delete_goals(user_id, [change.nutrient])
            return
        self.repository.upsert_goals(user_id, [change.to_goal()])

    def apply_bulk(self, user_id: UUID, changes: list[GoalChange]) -> BulkGoalResult:
        """Apply changes with the last mention of a nutrient winning."""
        latest: dict[str, GoalChange] = {}
        for change in changes:
            if change.nutrient:
                latest[change.nutrient] = change
        removals = [
            change.nutrient
            for change in latest.values()
            if change.action is GoalAction.REMOVE
        ]
        upserts = [
            change.to_goal()
            for change in latest.values()
            if change.action is GoalAction.SET
        ]
        if removals:
            self.repository.delete_goals(user_id, removals)
        if upserts:
            self.repository.upsert_goals(user_id, upserts)
        _logger.info(
            "Applied goal changes for %s: %d updated, %d removed",
            user_id,
            len(upserts),
            len(removals),
        )
        return BulkGoalResult(updated=len(upserts), removed=len(removals))
