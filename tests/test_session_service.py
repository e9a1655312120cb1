"""Tests for session state."""

from uuid import UUID

from nutrition_assistant.domain.conversation import ClarificationContext
from nutrition_assistant.domain.pending import FoodLogAction, FoodLogItem
from nutrition_assistant.services.sessions import RECENT_FOODS_LIMIT, SessionService
from tests.conftest import InMemoryConversationRepository


def _apple_log() -> FoodLogAction:
    return FoodLogAction(
        items=[
            FoodLogItem(
                food_name="Apple", portion="1 medium", nutrients={"calories": 95.0}
            )
        ]
    )


def test_pending_action_is_stored_and_cleared(
    session_service: SessionService, user_id: UUID
) -> None:
    action = _apple_log()

    session_service.save_pending_action(user_id, action)
    assert session_service.get_state(user_id).pending_action == action

    session_service.clear_pending_action(user_id)
    assert session_service.get_state(user_id).pending_action is None


def test_new_proposal_replaces_previous(
    session_service: SessionService, user_id: UUID
) -> None:
    session_service.save_pending_action(user_id, _apple_log())
    replacement = _apple_log()

    session_service.save_pending_action(user_id, replacement)

    assert session_service.get_state(user_id).pending_action == replacement


def test_unreadable_state_is_treated_as_empty(
    conversation_repository: InMemoryConversationRepository,
    session_service: SessionService,
    user_id: UUID,
) -> None:
    conversation_repository.states[user_id] = {
        "pending_action": {"type": "meal_plan", "data": {}},
        "recent_foods": ["toast"],
    }

    state = session_service.get_state(user_id)

    assert state.pending_action is None
    assert state.recent_foods == []


def test_clarification_round_trip(
    session_service: SessionService, user_id: UUID
) -> None:
    clarification = ClarificationContext(
        original_message="log it",
        ambiguity_reasons=["no food named"],
        partial_intent={"intent": "log_food"},
    )

    session_service.set_clarification(user_id, clarification)
    assert session_service.get_state(user_id).clarification == clarification

    session_service.clear_clarification(user_id)
    assert session_service.get_state(user_id).clarification is None


def test_update_context_keeps_earlier_values(
    session_service: SessionService, user_id: UUID
) -> None:
    session_service.update_context(user_id, last_intent="log_food", topic="breakfast")
    session_service.update_context(user_id, last_response_type="confirmation_food_log")

    state = session_service.get_state(user_id)
    assert state.last_intent == "log_food"
    assert state.last_topic == "breakfast"
    assert state.last_response_type == "confirmation_food_log"


def test_update_buffer_dedupes_and_caps(
    session_service: SessionService, user_id: UUID
) -> None:
    session_service.update_buffer(user_id, [f"food {index}" for index in range(12)])
    session_service.update_buffer(user_id, ["food 3", "kiwi"])

    foods = session_service.get_state(user_id).recent_foods
    assert len(foods) == RECENT_FOODS_LIMIT
    assert foods[:3] == ["food 3", "kiwi", "food 0"]
