"""Domain models for user profile, health context, and memories."""

from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

PROFILE_FIELDS = (
    "height_cm",
    "weight_kg",
    "age",
    "gender",
    "activity_level",
    "goal",
    "dietary_preferences",
)

MEMORY_CATEGORIES = ("food", "health", "habits", "preferences")

SEVERITY_LEVELS = ("info", "warning", "critical")


@dataclass(frozen=True)
class UserProfile:
    """Profile attributes a user has shared."""

    user_id: UUID
    attributes: dict[str, object] = field(default_factory=dict)

    def get(self, key: str) -> object | None:
        return self.attributes.get(key)

    def to_dict(self) -> dict[str, object]:
        return {"user_id": str(self.user_id), **self.attributes}


@dataclass(frozen=True)
class HealthConstraint:
    """A condition, allergy or restriction that shapes advice."""

    category: str
    constraint_type: str = "restriction"
    severity: str = "warning"
    notes: str | None = None
    active: bool = True

    def to_dict(self) -> dict[str, object]:
        return {
            "category": self.category,
            "type": self.constraint_type,
            "severity": self.severity,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class Memory:
    """A fact learned about the user."""

    id: UUID | None
    category: str
    fact: str
    source_message: str | None = None


@dataclass(frozen=True)
class DayClassification:
    """How the user describes a given day."""

    day: date
    day_type: str
    notes: str | None = None


def clean_category(raw: object) -> str:
    """Return a known memory category, defaulting to preferences."""
    text = str(raw or "").lower().strip()
    return text if text in MEMORY_CATEGORIES else "preferences"


def clean_severity(raw: object) -> str:
    text = str(raw or "").lower().strip()
    return text if text in SEVERITY_LEVELS else "warning"
