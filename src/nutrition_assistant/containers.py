"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from nutrition_assistant.adapters.fdc_client import HttpxFdcClient
from nutrition_assistant.adapters.openai_llm_client import OpenAILLMClient
from nutrition_assistant.adapters.supabase_conversation_repository import (
    SupabaseConversationRepository,
)
from nutrition_assistant.adapters.supabase_day_classification_repository import (
    SupabaseDayClassificationRepository,
)
from nutrition_assistant.adapters.supabase_food_log_repository import (
    SupabaseFoodLogRepository,
)
from nutrition_assistant.adapters.supabase_goal_repository import SupabaseGoalRepository
from nutrition_assistant.adapters.supabase_memory_repository import (
    SupabaseMemoryRepository,
)
from nutrition_assistant.adapters.supabase_nutrition_cache_repository import (
    SupabaseNutritionCacheRepository,
)
from nutrition_assistant.adapters.supabase_profile_repository import (
    SupabaseProfileRepository,
)
from nutrition_assistant.adapters.supabase_recipe_repository import (
    SupabaseRecipeRepository,
)
from nutrition_assistant.config import Settings
from nutrition_assistant.services.cache import InMemoryCache
from nutrition_assistant.services.chat import ChatResponder
from nutrition_assistant.services.commits import ConfirmationService
from nutrition_assistant.services.context import UserContextLoader
from nutrition_assistant.services.goals import GoalService
from nutrition_assistant.services.insights import InsightService
from nutrition_assistant.services.intent import IntentClassifier
from nutrition_assistant.services.nutrition import NutritionResolver
from nutrition_assistant.services.orchestrator import Orchestrator
from nutrition_assistant.services.portions import LLMPortionEstimator, PortionScaler
from nutrition_assistant.services.progress import ProgressService
from nutrition_assistant.services.reasoning import ReasoningEngine
from nutrition_assistant.services.recipes import RecipeFlowService
from nutrition_assistant.services.sessions import SessionService
from nutrition_assistant.services.tools import ToolExecutor


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    session_service: SessionService
    nutrition_resolver: NutritionResolver
    recipe_service: RecipeFlowService
    insight_service: InsightService
    tool_executor: ToolExecutor
    orchestrator: Orchestrator
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    conversation_repository = SupabaseConversationRepository(supabase_client)
    cache_repository = SupabaseNutritionCacheRepository(supabase_client)
    recipe_repository = SupabaseRecipeRepository(supabase_client)
    food_log_repository = SupabaseFoodLogRepository(supabase_client)
    goal_repository = SupabaseGoalRepository(supabase_client)
    profile_repository = SupabaseProfileRepository(supabase_client)
    memory_repository = SupabaseMemoryRepository(supabase_client)
    day_repository = SupabaseDayClassificationRepository(supabase_client)

    llm_client = OpenAILLMClient.create(
        resolved_settings.openai_api_key,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
        timeout=resolved_settings.llm_timeout_seconds,
    )
    fdc_client = HttpxFdcClient.create(
        api_key=resolved_settings.fdc_api_key,
        base_url=resolved_settings.fdc_base_url,
    )
    model = resolved_settings.openai_model
    fast_model = resolved_settings.openai_fast_model

    scaler = PortionScaler(
        conversions=cache_repository,
        estimator=LLMPortionEstimator(llm=llm_client, model=fast_model),
        safe_min=resolved_settings.conversion_safe_min,
        safe_max=resolved_settings.conversion_safe_max,
    )
    nutrition_resolver = NutritionResolver(
        llm=llm_client,
        model=model,
        fdc_client=fdc_client,
        repository=cache_repository,
        cache=InMemoryCache(),
        scaler=scaler,
        cache_ttl_seconds=resolved_settings.nutrition_cache_ttl_seconds,
    )
    session_service = SessionService(conversation_repository)
    goal_service = GoalService(goal_repository)
    progress_service = ProgressService(food_log_repository)
    recipe_service = RecipeFlowService(
        llm=llm_client,
        model=model,
        resolver=nutrition_resolver,
        repository=recipe_repository,
    )
    insight_service = InsightService(
        progress=progress_service,
        goals=goal_repository,
        days=day_repository,
        llm=llm_client,
        model=model,
        timeout_seconds=resolved_settings.llm_timeout_seconds,
    )
    tool_executor = ToolExecutor(
        resolver=nutrition_resolver,
        recipes=recipe_service,
        insights=insight_service,
        progress=progress_service,
        goals=goal_service,
        profiles=profile_repository,
        memories=memory_repository,
        llm=llm_client,
        model=fast_model,
    )
    orchestrator = Orchestrator(
        sessions=session_service,
        contexts=UserContextLoader(
            goals=goal_repository,
            profiles=profile_repository,
            memories=memory_repository,
            days=day_repository,
        ),
        classifier=IntentClassifier(llm=llm_client, model=fast_model),
        reasoning=ReasoningEngine(
            llm=llm_client,
            model=model,
            executor=tool_executor,
            max_iterations=resolved_settings.reasoning_max_iterations,
        ),
        responder=ChatResponder(llm=llm_client, model=fast_model),
        confirmations=ConfirmationService(
            sessions=session_service,
            food_logs=food_log_repository,
            goals=goal_service,
            recipes=recipe_service,
        ),
        recipes=recipe_service,
        insights=insight_service,
        memories=memory_repository,
    )

    async def close_resources() -> None:
        await llm_client.close()
        await fdc_client.close()

    return AppContainer(
        settings=resolved_settings,
        session_service=session_service,
        nutrition_resolver=nutrition_resolver,
        recipe_service=recipe_service,
        insight_service=insight_service,
        tool_executor=tool_executor,
        orchestrator=orchestrator,
        close_resources=close_resources,
    )
