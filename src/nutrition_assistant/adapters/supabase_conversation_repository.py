"""Supabase-backed conversation state repository."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from nutrition_assistant.services.sessions import ConversationRepository


@dataclass
class SupabaseConversationRepository(ConversationRepository):
    """Stores one state document per user."""

    client: Client

    def get_state(self, user_id: UUID) -> dict[str, object] | None:
        """Return the stored state payload, if present."""
        response = (
            self.client.table("chat_session_state")
            .select("state")
            .eq("user_id", str(user_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return response.data[0].get("state") or None

    def save_state(self, user_id: UUID, state: dict[str, object]) -> None:
        """Replace the state payload."""
        response = (
            self.client.table("chat_session_state")
            .upsert(
                {
                    "user_id": str(user_id),
                    "state": state,
                    "updated_at": datetime.now(tz=UTC).isoformat(),
                },
                on_conflict="user_id",
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to save conversation state")
