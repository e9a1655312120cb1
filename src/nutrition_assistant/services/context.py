"""Per-turn user context: profile, goals, health constraints, memories."""

from dataclasses import dataclass, field
from datetime import date
from typing import Protocol
from uuid import UUID

from nutrition_assistant.domain.goals import Goal
from nutrition_assistant.domain.nutrients import (
    CORE_NUTRIENTS,
    NUTRIENTS,
    normalize_nutrient_key,
)
from nutrition_assistant.domain.users import (
    MEMORY_CATEGORIES,
    DayClassification,
    HealthConstraint,
    Memory,
    UserProfile,
)
from nutrition_assistant.services.goals import GoalRepository
from nutrition_assistant.services.progress import local_today


class ProfileRepository(Protocol):
    """Persistence interface for profile and health constraints."""

    def get_profile(self, user_id: UUID) -> UserProfile | None:
        """Return the profile, if present."""

    def update_profile(self, user_id: UUID, attributes: dict[str, object]) -> None:
        """Update profile attributes."""

    def list_health_constraints(self, user_id: UUID) -> list[HealthConstraint]:
        """Return active health constraints."""

    def upsert_health_constraint(
        self, user_id: UUID, constraint: HealthConstraint
    ) -> None:
        """Insert or replace the constraint for its category."""

    def remove_health_constraint(self, user_id: UUID, category: str) -> None:
        """Remove the constraint for a category."""


class MemoryRepository(Protocol):
    """Persistence interface for learned facts."""

    def list_memories(self, user_id: UUID, categories: tuple[str, ...]) -> list[Memory]:
        """Return active memories in the given categories."""

    def save_memory(
        self, user_id: UUID, category: str, fact: str, source_message: str | None
    ) -> None:
        """Store a new memory."""


class DayClassificationRepository(Protocol):
    """Persistence interface for day classifications."""

    def get_classification(
        self, user_id: UUID, day: date
    ) -> DayClassification | None:
        """Return the classification of one day, if set."""

    def set_classification(
        self, user_id: UUID, day: date, day_type: str, notes: str | None
    ) -> None:
        """Insert or replace the classification of one day."""

    def list_classifications(
        self, user_id: UUID, start: date, end: date
    ) -> list[DayClassification]:
        """Return classifications within an inclusive date range."""


@dataclass(frozen=True)
class UserContext:
    """What every step of a turn may need to know about the user."""

    user_id: UUID
    timezone: str = "UTC"
    profile: UserProfile | None = None
    goals: list[Goal] = field(default_factory=list)
    tracked: tuple[str, ...] = CORE_NUTRIENTS
    health_constraints: list[HealthConstraint] = field(default_factory=list)
    memories: list[Memory] = field(default_factory=list)
    day_classification: DayClassification | None = None


def tracked_nutrients(goals: list[Goal]) -> tuple[str, ...]:
    """Core nutrients plus every master nutrient that has a goal."""
    tracked = list(CORE_NUTRIENTS)
    for goal in goals:
        key = normalize_nutrient_key(goal.nutrient)
        if key in NUTRIENTS and key not in tracked:
            tracked.append(key)
    return tuple(tracked)


@dataclass
class UserContextLoader:
    """Loads the context shared by the reasoning loop and its tools."""

    goals: GoalRepository
    profiles: ProfileRepository
    memories: MemoryRepository
    days: DayClassificationRepository

    def load(self, user_id: UUID, timezone: str = "UTC") -> UserContext:
        goals = self.goals.list_goals(user_id)
        return UserContext(
            user_id=user_id,
            timezone=timezone,
            profile=self.profiles.get_profile(user_id),
            goals=goals,
            tracked=tracked_nutrients(goals),
            health_constraints=self.profiles.list_health_constraints(user_id),
            memories=self.memories.list_memories(user_id, MEMORY_CATEGORIES),
            day_classification=self.days.get_classification(
                user_id, local_today(timezone)
            ),
        )
