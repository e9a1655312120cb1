"""Shared test fixtures."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from uuid import UUID, uuid4

import pytest

from nutrition_assistant.adapters.fdc_client import FdcClient
from nutrition_assistant.config import Settings
from nutrition_assistant.containers import AppContainer
from nutrition_assistant.domain.goals import Goal
from nutrition_assistant.domain.logs import FoodLogEntry
from nutrition_assistant.domain.nutrients import NUTRIENTS
from nutrition_assistant.domain.recipes import ParsedRecipe, RecipeRecord
from nutrition_assistant.domain.users import (
    DayClassification,
    HealthConstraint,
    Memory,
    UserProfile,
)
from nutrition_assistant.errors import ExternalServiceError
from nutrition_assistant.services.cache import InMemoryCache
from nutrition_assistant.services.chat import ChatResponder
from nutrition_assistant.services.commits import ConfirmationService
from nutrition_assistant.services.context import (
    DayClassificationRepository,
    MemoryRepository,
    ProfileRepository,
    UserContextLoader,
)
from nutrition_assistant.services.goals import GoalRepository, GoalService
from nutrition_assistant.services.insights import InsightService
from nutrition_assistant.services.intent import IntentClassifier
from nutrition_assistant.services.llm import LLMClient, LLMTurn
from nutrition_assistant.services.nutrition import (
    NutritionCacheRepository,
    NutritionResolver,
)
from nutrition_assistant.services.orchestrator import Orchestrator
from nutrition_assistant.services.portions import (
    ConversionRepository,
    PortionEstimator,
    PortionScaler,
)
from nutrition_assistant.services.progress import FoodLogRepository, ProgressService
from nutrition_assistant.services.reasoning import ReasoningEngine
from nutrition_assistant.services.recipes import RecipeFlowService, RecipeRepository
from nutrition_assistant.services.sessions import (
    ConversationRepository,
    SessionService,
)
from nutrition_assistant.services.tools import ToolExecutor


@dataclass
class ScriptedLLMClient(LLMClient):
    """LLM fake that replays queued responses and records every call."""

    json_responses: dict[str, list[object]] = field(default_factory=dict)
    text_responses: list[str] = field(default_factory=list)
    tool_turns: list[LLMTurn] = field(default_factory=list)
    default_text: str = "Sounds good!"
    calls: list[tuple[str, dict[str, object]]] = field(default_factory=list)

    def queue_json(self, schema_name: str, payload: object) -> None:
        self.json_responses.setdefault(schema_name, []).append(payload)

    def calls_for(self, method: str) -> list[dict[str, object]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    async def complete_json(  # noqa: PLR0913
        self,
        *,
        model: str,
        instructions: str,
        messages: list[dict[str, object]],
        schema: dict[str, object],
        schema_name: str,
    ) -> dict[str, object]:
        self.calls.append(
            (
                "complete_json",
                {"model": model, "messages": messages, "schema_name": schema_name},
            )
        )
        queue = self.json_responses.get(schema_name) or []
        if not queue:
            raise ExternalServiceError(f"No scripted response for {schema_name}")
        payload = queue.pop(0)
        if isinstance(payload, Exception):
            raise payload
        return payload  # type: ignore[return-value]

    async def complete_text(
        self, *, model: str, prompt: str, instructions: str | None = None
    ) -> str:
        self.calls.append(
            (
                "complete_text",
                {"model": model, "prompt": prompt, "instructions": instructions},
            )
        )
        if self.text_responses:
            return self.text_responses.pop(0)
        return self.default_text

    async def complete_with_tools(
        self,
        *,
        model: str,
        instructions: str,
        messages: list[dict[str, object]],
        tools: list[dict[str, object]],
    ) -> LLMTurn:
        self.calls.append(
            ("complete_with_tools", {"model": model, "messages": list(messages)})
        )
        if self.tool_turns:
            return self.tool_turns.pop(0)
        return LLMTurn(text=self.default_text)


@dataclass
class FakeFdcClient(FdcClient):
    """Fake FDC client that returns a single generic chicken breast."""

    search_payload: dict[str, object] = field(
        default_factory=lambda: {
            "foods": [{"fdcId": 171077, "description": "Chicken breast, raw"}]
        }
    )
    food_payload: dict[str, object] = field(
        default_factory=lambda: {
            "fdcId": 171077,
            "description": "Chicken breast, raw",
            "foodNutrients": [
                {"nutrientId": 1008, "amount": 120},
                {"nutrientId": 1003, "amount": 22.5},
                {"nutrientId": 1004, "amount": 2.6},
                {"nutrientId": 1005, "amount": 0},
                {"nutrientId": 1258, "amount": 0.6},
                {"nutrientId": 1292, "amount": 0.7},
                {"nutrientId": 1293, "amount": 0.4},
            ],
        }
    )
    searches: list[str] = field(default_factory=list)

    async def search_foods(self, query: str, page_size: int = 10) -> dict[str, object]:
        self.searches.append(query)
        return self.search_payload

    async def get_food(self, fdc_id: int) -> dict[str, object]:
        return self.food_payload


@dataclass
class FakePortionEstimator(PortionEstimator):
    """Estimator with fixed answers."""

    unit_weights: dict[str, float] = field(default_factory=dict)
    fixed_multiplier: float = 1.0
    multiplier_calls: list[tuple[str, str, str]] = field(default_factory=list)
    offline: bool = False

    async def unit_weight(self, food_name: str, unit: str) -> float:
        if self.offline:
            raise ExternalServiceError("estimator offline")
        return self.unit_weights.get(unit, 0.0)

    async def multiplier(
        self, food_name: str, user_portion: str, serving_size: str
    ) -> float:
        self.multiplier_calls.append((food_name, user_portion, serving_size))
        if self.offline:
            raise ExternalServiceError("estimator offline")
        return self.fixed_multiplier


@dataclass
class InMemoryConversationRepository(ConversationRepository):
    """In-memory session state store."""

    states: dict[UUID, dict[str, object]] = field(default_factory=dict)

    def get_state(self, user_id: UUID) -> dict[str, object] | None:
        return self.states.get(user_id)

    def save_state(self, user_id: UUID, state: dict[str, object]) -> None:
        self.states[user_id] = state


@dataclass
class InMemoryNutritionCacheRepository(NutritionCacheRepository, ConversionRepository):
    """In-memory food cache, conversion cache and failed lookups."""

    foods: dict[str, dict[str, object]] = field(default_factory=dict)
    sources: dict[str, str] = field(default_factory=dict)
    conversions: dict[tuple[str, str, str], float] = field(default_factory=dict)
    failures: list[tuple[str, str, str]] = field(default_factory=list)

    def find_food(self, search_term: str) -> dict[str, object] | None:
        stored = self.foods.get(search_term)
        return dict(stored) if stored is not None else None

    def save_food(
        self,
        search_term: str,
        nutrition: dict[str, object],
        source: str,
        brand: str | None = None,
    ) -> None:
        self.foods[search_term] = dict(nutrition)
        self.sources[search_term] = source

    def log_failed_lookup(
        self, user_id: UUID | None, query: str, portion: str, reason: str
    ) -> None:
        self.failures.append((query, portion, reason))

    def find_conversion(
        self, food_name: str, from_unit: str, to_unit: str
    ) -> float | None:
        return self.conversions.get((food_name, from_unit, to_unit))

    def save_conversion(
        self, food_name: str, from_unit: str, to_unit: str, multiplier: float
    ) -> None:
        self.conversions[(food_name, from_unit, to_unit)] = multiplier


@dataclass
class InMemoryRecipeRepository(RecipeRepository):
    """In-memory recipe repository for tests."""

    recipes: dict[UUID, RecipeRecord] = field(default_factory=dict)

    def add(  # noqa: PLR0913
        self,
        user_id: UUID,
        name: str,
        *,
        servings: int = 4,
        nutrition: dict[str, float] | None = None,
        fingerprint: str = "",
    ) -> RecipeRecord:
        record = RecipeRecord(
            id=uuid4(),
            user_id=user_id,
            name=name,
            servings=servings,
            nutrition_data=nutrition or {"calories": 2000.0, "protein_g": 80.0},
            per_serving_nutrition={},
            fingerprint=fingerprint,
        )
        self.recipes[record.id] = record
        return record

    def find_by_fingerprint(
        self, user_id: UUID, fingerprint: str
    ) -> RecipeRecord | None:
        return next(
            (
                record
                for record in self.recipes.values()
                if record.user_id == user_id and record.fingerprint == fingerprint
            ),
            None,
        )

    def find_by_name(
        self, user_id: UUID, pattern: str, limit: int = 5
    ) -> list[RecipeRecord]:
        needle = pattern.strip("%").lower()
        if pattern.startswith("%"):
            matches = [
                record
                for record in self.recipes.values()
                if record.user_id == user_id and needle in record.name.lower()
            ]
        else:
            matches = [
                record
                for record in self.recipes.values()
                if record.user_id == user_id and record.name.lower() == needle
            ]
        return matches[:limit]

    def find_by_words(
        self, user_id: UUID, words: list[str], limit: int = 5
    ) -> list[RecipeRecord]:
        return [
            record
            for record in self.recipes.values()
            if record.user_id == user_id
            and all(word.lower() in record.name.lower() for word in words)
        ][:limit]

    def get_recipe(self, recipe_id: UUID) -> RecipeRecord | None:
        return self.recipes.get(recipe_id)

    def create_recipe(
        self,
        user_id: UUID,
        parsed: ParsedRecipe,
        nutrition: dict[str, float],
        per_serving: dict[str, float],
    ) -> RecipeRecord:
        record = RecipeRecord(
            id=uuid4(),
            user_id=user_id,
            name=parsed.name,
            servings=parsed.servings,
            nutrition_data=dict(nutrition),
            per_serving_nutrition=dict(per_serving),
            fingerprint=parsed.fingerprint,
            ingredients=list(parsed.ingredients),
            total_batch_grams=parsed.total_batch_grams,
        )
        self.recipes[record.id] = record
        return record

    def update_recipe(  # noqa: PLR0913
        self,
        recipe_id: UUID,
        user_id: UUID,
        parsed: ParsedRecipe,
        nutrition: dict[str, float],
        per_serving: dict[str, float],
    ) -> RecipeRecord:
        record = replace(
            self.recipes[recipe_id],
            name=parsed.name,
            servings=parsed.servings,
            nutrition_data=dict(nutrition),
            per_serving_nutrition=dict(per_serving),
            fingerprint=parsed.fingerprint,
            ingredients=list(parsed.ingredients),
        )
        self.recipes[recipe_id] = record
        return record


@dataclass
class InMemoryFoodLogRepository(FoodLogRepository):
    """In-memory food log keeping the inserted rows."""

    rows: list[tuple[UUID, dict[str, object]]] = field(default_factory=list)
    fail_inserts: bool = False

    def insert_entries(self, user_id: UUID, rows: list[dict[str, object]]) -> None:
        if self.fail_inserts:
            raise RuntimeError("Failed to insert food log entries")
        self.rows.extend((user_id, row) for row in rows)

    def list_entries(
        self, user_id: UUID, start: datetime, end: datetime
    ) -> list[FoodLogEntry]:
        entries = []
        for owner, row in self.rows:
            log_time = datetime.fromisoformat(str(row["log_time"]))
            if owner != user_id or not start <= log_time < end:
                continue
            entries.append(
                FoodLogEntry(
                    id=None,
                    food_name=str(row["food_name"]),
                    portion=str(row["portion"]),
                    log_time=log_time,
                    nutrients={
                        key: float(value)
                        for key, value in row.items()
                        if key in NUTRIENTS and isinstance(value, int | float)
                    },
                )
            )
        return entries


@dataclass
class InMemoryGoalRepository(GoalRepository):
    """In-memory goals keyed by user and nutrient."""

    goals: dict[UUID, dict[str, Goal]] = field(default_factory=dict)

    def list_goals(self, user_id: UUID) -> list[Goal]:
        return list(self.goals.get(user_id, {}).values())

    def upsert_goals(self, user_id: UUID, goals: list[Goal]) -> None:
        stored = self.goals.setdefault(user_id, {})
        for goal in goals:
            stored[goal.nutrient] = goal

    def delete_goals(self, user_id: UUID, nutrients: list[str]) -> None:
        stored = self.goals.setdefault(user_id, {})
        for nutrient in nutrients:
            stored.pop(nutrient, None)


@dataclass
class InMemoryProfileRepository(ProfileRepository):
    """In-memory profiles and health constraints."""

    profiles: dict[UUID, UserProfile] = field(default_factory=dict)
    constraints: dict[UUID, dict[str, HealthConstraint]] = field(default_factory=dict)

    def get_profile(self, user_id: UUID) -> UserProfile | None:
        return self.profiles.get(user_id)

    def update_profile(self, user_id: UUID, attributes: dict[str, object]) -> None:
        current = self.profiles.get(user_id) or UserProfile(user_id=user_id)
        self.profiles[user_id] = UserProfile(
            user_id=user_id, attributes={**current.attributes, **attributes}
        )

    def list_health_constraints(self, user_id: UUID) -> list[HealthConstraint]:
        return list(self.constraints.get(user_id, {}).values())

    def upsert_health_constraint(
        self, user_id: UUID, constraint: HealthConstraint
    ) -> None:
        self.constraints.setdefault(user_id, {})[constraint.category] = constraint

    def remove_health_constraint(self, user_id: UUID, category: str) -> None:
        self.constraints.setdefault(user_id, {}).pop(category, None)


@dataclass
class InMemoryMemoryRepository(MemoryRepository):
    """In-memory learned facts."""

    memories: dict[UUID, list[Memory]] = field(default_factory=dict)

    def list_memories(self, user_id: UUID, categories: tuple[str, ...]) -> list[Memory]:
        return [
            memory
            for memory in self.memories.get(user_id, [])
            if memory.category in categories
        ]

    def save_memory(
        self, user_id: UUID, category: str, fact: str, source_message: str | None
    ) -> None:
        self.memories.setdefault(user_id, []).append(
            Memory(
                id=uuid4(),
                category=category,
                fact=fact,
                source_message=source_message,
            )
        )


@dataclass
class InMemoryDayClassificationRepository(DayClassificationRepository):
    """In-memory day classifications."""

    days: dict[tuple[UUID, date], DayClassification] = field(default_factory=dict)

    def get_classification(
        self, user_id: UUID, day: date
    ) -> DayClassification | None:
        return self.days.get((user_id, day))

    def set_classification(
        self, user_id: UUID, day: date, day_type: str, notes: str | None
    ) -> None:
        self.days[(user_id, day)] = DayClassification(
            day=day, day_type=day_type, notes=notes
        )

    def list_classifications(
        self, user_id: UUID, start: date, end: date
    ) -> list[DayClassification]:
        return [
            item
            for (owner, day), item in self.days.items()
            if owner == user_id and start <= day <= end
        ]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        openai_api_key="openai-key",
        fdc_api_key="fdc-key",
    )


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def llm() -> ScriptedLLMClient:
    return ScriptedLLMClient()


@pytest.fixture
def fdc_client() -> FakeFdcClient:
    return FakeFdcClient()


@pytest.fixture
def estimator() -> FakePortionEstimator:
    return FakePortionEstimator()


@pytest.fixture
def cache_repository() -> InMemoryNutritionCacheRepository:
    return InMemoryNutritionCacheRepository()


@pytest.fixture
def recipe_repository() -> InMemoryRecipeRepository:
    return InMemoryRecipeRepository()


@pytest.fixture
def food_log_repository() -> InMemoryFoodLogRepository:
    return InMemoryFoodLogRepository()


@pytest.fixture
def goal_repository() -> InMemoryGoalRepository:
    return InMemoryGoalRepository()


@pytest.fixture
def profile_repository() -> InMemoryProfileRepository:
    return InMemoryProfileRepository()


@pytest.fixture
def memory_repository() -> InMemoryMemoryRepository:
    return InMemoryMemoryRepository()


@pytest.fixture
def day_repository() -> InMemoryDayClassificationRepository:
    return InMemoryDayClassificationRepository()


@pytest.fixture
def conversation_repository() -> InMemoryConversationRepository:
    return InMemoryConversationRepository()


@pytest.fixture
def scaler(
    cache_repository: InMemoryNutritionCacheRepository,
    estimator: FakePortionEstimator,
) -> PortionScaler:
    return PortionScaler(conversions=cache_repository, estimator=estimator)


@pytest.fixture
def resolver(
    llm: ScriptedLLMClient,
    fdc_client: FakeFdcClient,
    cache_repository: InMemoryNutritionCacheRepository,
    scaler: PortionScaler,
) -> NutritionResolver:
    return NutritionResolver(
        llm=llm,
        model="main-model",
        fdc_client=fdc_client,
        repository=cache_repository,
        cache=InMemoryCache(),
        scaler=scaler,
        retry_delay_seconds=0,
    )


@pytest.fixture
def session_service(
    conversation_repository: InMemoryConversationRepository,
) -> SessionService:
    return SessionService(conversation_repository)


@pytest.fixture
def goal_service(goal_repository: InMemoryGoalRepository) -> GoalService:
    return GoalService(goal_repository)


@pytest.fixture
def progress_service(
    food_log_repository: InMemoryFoodLogRepository,
) -> ProgressService:
    return ProgressService(food_log_repository)


@pytest.fixture
def recipe_service(
    llm: ScriptedLLMClient,
    resolver: NutritionResolver,
    recipe_repository: InMemoryRecipeRepository,
) -> RecipeFlowService:
    return RecipeFlowService(
        llm=llm, model="main-model", resolver=resolver, repository=recipe_repository
    )


@pytest.fixture
def insight_service(
    llm: ScriptedLLMClient,
    progress_service: ProgressService,
    goal_repository: InMemoryGoalRepository,
    day_repository: InMemoryDayClassificationRepository,
) -> InsightService:
    return InsightService(
        progress=progress_service,
        goals=goal_repository,
        days=day_repository,
        llm=llm,
        model="main-model",
        timeout_seconds=1.0,
    )


@pytest.fixture
def context_loader(
    goal_repository: InMemoryGoalRepository,
    profile_repository: InMemoryProfileRepository,
    memory_repository: InMemoryMemoryRepository,
    day_repository: InMemoryDayClassificationRepository,
) -> UserContextLoader:
    return UserContextLoader(
        goals=goal_repository,
        profiles=profile_repository,
        memories=memory_repository,
        days=day_repository,
    )


@pytest.fixture
def confirmations(
    session_service: SessionService,
    food_log_repository: InMemoryFoodLogRepository,
    goal_service: GoalService,
    recipe_service: RecipeFlowService,
) -> ConfirmationService:
    return ConfirmationService(
        sessions=session_service,
        food_logs=food_log_repository,
        goals=goal_service,
        recipes=recipe_service,
    )


@pytest.fixture
def executor(  # noqa: PLR0913
    llm: ScriptedLLMClient,
    resolver: NutritionResolver,
    recipe_service: RecipeFlowService,
    insight_service: InsightService,
    progress_service: ProgressService,
    goal_service: GoalService,
    profile_repository: InMemoryProfileRepository,
    memory_repository: InMemoryMemoryRepository,
) -> ToolExecutor:
    return ToolExecutor(
        resolver=resolver,
        recipes=recipe_service,
        insights=insight_service,
        progress=progress_service,
        goals=goal_service,
        profiles=profile_repository,
        memories=memory_repository,
        llm=llm,
        model="fast-model",
    )


@pytest.fixture
def reasoning(llm: ScriptedLLMClient, executor: ToolExecutor) -> ReasoningEngine:
    return ReasoningEngine(llm=llm, model="main-model", executor=executor)


@pytest.fixture
def orchestrator(  # noqa: PLR0913
    llm: ScriptedLLMClient,
    session_service: SessionService,
    context_loader: UserContextLoader,
    reasoning: ReasoningEngine,
    confirmations: ConfirmationService,
    recipe_service: RecipeFlowService,
    insight_service: InsightService,
    memory_repository: InMemoryMemoryRepository,
) -> Orchestrator:
    return Orchestrator(
        sessions=session_service,
        contexts=context_loader,
        classifier=IntentClassifier(llm=llm, model="fast-model"),
        reasoning=reasoning,
        responder=ChatResponder(llm=llm, model="fast-model"),
        confirmations=confirmations,
        recipes=recipe_service,
        insights=insight_service,
        memories=memory_repository,
    )


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    session_service: SessionService,
    resolver: NutritionResolver,
    recipe_service: RecipeFlowService,
    insight_service: InsightService,
    executor: ToolExecutor,
    orchestrator: Orchestrator,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        session_service=session_service,
        nutrition_resolver=resolver,
        recipe_service=recipe_service,
        insight_service=insight_service,
        tool_executor=executor,
        orchestrator=orchestrator,
        close_resources=close_resources,
    )
