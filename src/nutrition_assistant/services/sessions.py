"""Per-user conversation state: the pending action and clarification context."""

import logging
from dataclasses import dataclass, replace
from typing import Protocol
from uuid import UUID

from nutrition_assistant.domain.conversation import (
    ClarificationContext,
    ConversationState,
)
from nutrition_assistant.domain.pending import PendingAction

_logger = logging.getLogger(__name__)

RECENT_FOODS_LIMIT = 10


class ConversationRepository(Protocol):
    """Persistence interface for per-user session state."""

    def get_state(self, user_id: UUID) -> dict[str, object] | None:
        """Return the stored state payload, if any."""

    def save_state(self, user_id: UUID, state: dict[str, object]) -> None:
        """Replace the stored state payload."""


@dataclass
class SessionService:
    """Owns the single pending action and clarification of each user."""

    repository: ConversationRepository

    def get_state(self, user_id: UUID) -> ConversationState:
        """Return the current state, treating unreadable payloads as empty."""
        payload = self.repository.get_state(user_id)
        if not payload:
            return ConversationState()
        try:
            return ConversationState.from_dict(payload)
        except (KeyError, TypeError, ValueError):
            _logger.warning("Discarding unreadable session state for %s", user_id)
            return ConversationState()

    def save_pending_action(self, user_id: UUID, action: PendingAction) -> None:
        """Store a proposal, replacing any previous one."""
        state = self.get_state(user_id)
        self._save(user_id, replace(state, pending_action=action))

    def clear_pending_action(self, user_id: UUID) -> None:
        state = self.get_state(user_id)
        if state.pending_action is None:
            return
        self._save(user_id, replace(state, pending_action=None))

    def set_clarification(
        self, user_id: UUID, clarification: ClarificationContext
    ) -> None:
        state = self.get_state(user_id)
        self._save(user_id, replace(state, clarification=clarification))

    def clear_clarification(self, user_id: UUID) -> None:
        state = self.get_state(user_id)
        if state.clarification is None:
            return
        self._save(user_id, replace(state, clarification=None))

    def update_context(
        self,
        user_id: UUID,
        *,
        last_intent: str | None = None,
        last_response_type: str | None = None,
        topic: str | None = None,
    ) -> None:
        """Remember what the last turn was about."""
        state = self.get_state(user_id)
        self._save(
            user_id,
            replace(
                state,
                last_intent=last_intent or state.last_intent,
                last_response_type=last_response_type or state.last_response_type,
                last_topic=topic or state.last_topic,
            ),
        )

    def update_buffer(self, user_id: UUID, foods: list[str]) -> None:
        """Prepend recently mentioned foods, most recent first."""
        if not foods:
            return
        state = self.get_state(user_id)
        merged: list[str] = []
        for food in [*foods, *state.recent_foods]:
            if food and food not in merged:
                merged.append(food)
        self._save(
            user_id, replace(state, recent_foods=merged[:RECENT_FOODS_LIMIT])
        )

    def _save(self, user_id: UUID, state: ConversationState) -> None:
        self.repository.save_state(user_id, state.to_dict())
