"""Supabase repository for facts learned about a user."""

from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from nutrition_assistant.domain.users import Memory
from nutrition_assistant.services.context import MemoryRepository


@dataclass
class SupabaseMemoryRepository(MemoryRepository):
    """Supabase implementation for the user_learned_context table."""

    client: Client

    def list_memories(self, user_id: UUID, categories: tuple[str, ...]) -> list[Memory]:
        """Return active memories in the given categories."""
        response = (
            self.client.table("user_learned_context")
            .select("id, category, fact, source_message")
            .eq("user_id", str(user_id))
            .eq("active", True)
            .in_("category", list(categories))
            .execute()
        )
        return [
            Memory(
                id=UUID(str(row["id"])) if row.get("id") else None,
                category=str(row["category"]),
                fact=str(row["fact"]),
                source_message=row.get("source_message"),
            )
            for row in response.data or []
        ]

    def save_memory(
        self, user_id: UUID, category: str, fact: str, source_message: str | None
    ) -> None:
        """Store a new active memory."""
        response = (
            self.client.table("user_learned_context")
            .insert(
                {
                    "user_id": str(user_id),
                    "category": category,
                    "fact": fact,
                    "source_message": source_message,
                    "active": True,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to save memory")
