"""Supabase repository for user profiles and health constraints."""

from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from nutrition_assistant.domain.users import HealthConstraint, UserProfile
from nutrition_assistant.services.context import ProfileRepository

_NON_ATTRIBUTE_COLUMNS = frozenset({"id", "created_at", "updated_at"})


@dataclass
class SupabaseProfileRepository(ProfileRepository):
    """Supabase implementation for user_profiles and user_health_constraints."""

    client: Client

    def get_profile(self, user_id: UUID) -> UserProfile | None:
        """Return the profile, if present."""
        response = (
            self.client.table("user_profiles")
            .select("*")
            .eq("id", str(user_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return UserProfile(
            user_id=user_id,
            attributes={
                key: value
                for key, value in row.items()
                if key not in _NON_ATTRIBUTE_COLUMNS and value is not None
            },
        )

    def update_profile(self, user_id: UUID, attributes: dict[str, object]) -> None:
        """Update profile attributes."""
        response = (
            self.client.table("user_profiles")
            .update(attributes)
            .eq("id", str(user_id))
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to update profile")

    def list_health_constraints(self, user_id: UUID) -> list[HealthConstraint]:
        """Return active health constraints."""
        response = (
            self.client.table("user_health_constraints")
            .select("category, constraint_type, severity, notes, active")
            .eq("user_id", str(user_id))
            .eq("active", True)
            .execute()
        )
        return [
            HealthConstraint(
                category=str(row["category"]),
                constraint_type=str(row.get("constraint_type") or "restriction"),
                severity=str(row.get("severity") or "warning"),
                notes=row.get("notes"),
                active=bool(row.get("active", True)),
            )
            for row in response.data or []
        ]

    def upsert_health_constraint(
        self, user_id: UUID, constraint: HealthConstraint
    ) -> None:
        """Insert or replace the constraint for its category."""
        response = (
            self.client.table("user_health_constraints")
            .upsert(
                {
                    "user_id": str(user_id),
                    "category": constraint.category.lower().strip(),
                    "constraint_type": constraint.constraint_type,
                    "severity": constraint.severity,
                    "notes": constraint.notes,
                    "active": constraint.active,
                },
                on_conflict="user_id,category",
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to save health constraint")

    def remove_health_constraint(self, user_id: UUID, category: str) -> None:
        """Remove the constraint for a category."""
        self.client.table("user_health_constraints").delete().eq(
            "user_id", str(user_id)
        ).eq("category", category.lower().strip()).execute()
