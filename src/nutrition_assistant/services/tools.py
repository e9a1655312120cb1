"""Tool catalog exposed to the reasoning loop and the executor behind it."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from nutrition_assistant.domain.goals import GoalAction, GoalChange
from nutrition_assistant.domain.nutrients import (
    CONFIDENCE_LEVELS,
    CORE_NUTRIENTS,
    NUTRIENTS,
    STANDARD_LOG_NUTRIENTS,
    NutrientVector,
    normalize_nutrient_key,
    round1,
)
from nutrition_assistant.domain.pending import (
    BulkGoalUpdateAction,
    FoodLogAction,
    FoodLogItem,
    GoalUpdateAction,
    PendingAction,
    RecipeLogAction,
    RecipeSaveAction,
    RecipeSelectionAction,
)
from nutrition_assistant.domain.users import (
    MEMORY_CATEGORIES,
    PROFILE_FIELDS,
    HealthConstraint,
    clean_category,
    clean_severity,
)
from nutrition_assistant.errors import (
    NutrientValidationError,
    ResolutionFailure,
    UnknownToolError,
)
from nutrition_assistant.services.context import (
    MemoryRepository,
    ProfileRepository,
    UserContext,
)
from nutrition_assistant.services.goals import GoalService
from nutrition_assistant.services.insights import (
    DAY_TYPES,
    INSIGHT_ACTIONS,
    InsightService,
    compliance_label,
)
from nutrition_assistant.services.llm import LLMClient
from nutrition_assistant.services.nutrition import NutritionResolver
from nutrition_assistant.services.portions import scale_values
from nutrition_assistant.services.progress import ProgressService, resolve_timezone
from nutrition_assistant.services.recipes import (
    FlowError,
    MultipleRecipes,
    RecipeFlowService,
    RecipeFound,
)
from nutrition_assistant.services.validation import (
    MACRO_TOLERANCE,
    is_valid_nutrition,
    macro_calories,
    reconcile_calories,
    validate_nutrient_hierarchy,
)

_logger = logging.getLogger(__name__)

MAX_COMPARE_FOODS = 5
MAX_MEMORY_MATCHES = 5


@dataclass(frozen=True)
class ToolSpec:
    """Declarative function tool definition."""

    name: str
    description: str
    parameters: dict[str, object]


def _params(
    properties: dict[str, object] | None = None, required: tuple[str, ...] = ()
) -> dict[str, object]:
    return {
        "type": "object",
        "properties": properties or {},
        "required": list(required),
    }


_NUMBER = {"type": "number"}
_STRING = {"type": "string"}
_STRINGS = {"type": "array", "items": {"type": "string"}}
_THRESHOLDS = {
    "yellow_min": {
        "type": "number",
        "description": "Progress threshold for yellow status (0.0 to 1.0)",
    },
    "green_min": {
        "type": "number",
        "description": "Progress threshold for green status (0.0 to 1.0)",
    },
    "red_min": {
        "type": "number",
        "description": "Progress threshold for red status (0.0 to 1.0)",
    },
}
_GOAL_FIELDS = {
    "nutrient": {
        "type": "string",
        "description": "calories, protein, carbs, fat, fiber, sugar, sodium, etc.",
    },
    "target_value": _NUMBER,
    "unit": {
        "type": "string",
        "description": "kcal for calories, g for macros, mg for sodium",
    },
    "action": {"type": "string", "enum": ["set", "remove"]},
    "goal_type": {"type": "string", "enum": ["goal", "limit"]},
    **_THRESHOLDS,
}


class Tool(Enum):
    """Closed catalog of tools the reasoning loop may call."""

    GET_USER_PROFILE = ToolSpec(
        "get_user_profile",
        "Retrieves the user's profile: height, weight, age, activity level, "
        "dietary preferences and goal. Use it to understand health context.",
        _params(),
    )
    GET_USER_GOALS = ToolSpec(
        "get_user_goals",
        "Retrieves the user's nutrition targets with units and thresholds.",
        _params(),
    )
    GET_TODAY_PROGRESS = ToolSpec(
        "get_today_progress",
        "Gets today's food log totals: what the user has already eaten.",
        _params(),
    )
    GET_WEEKLY_SUMMARY = ToolSpec(
        "get_weekly_summary",
        "Gets a 7-day summary with daily averages and goal compliance.",
        _params(),
    )
    GET_FOOD_HISTORY = ToolSpec(
        "get_food_history",
        "Gets detailed food log history for understanding eating habits.",
        _params(
            {
                "days": {
                    "type": "number",
                    "description": "Days of history (default 7, max 30)",
                }
            }
        ),
    )
    ASK_NUTRITION_AGENT = ToolSpec(
        "ask_nutrition_agent",
        "Nutrition lookups, estimates and comparisons for one or more foods. "
        "Returns values with confidence levels.",
        _params(
            {
                "query_type": {
                    "type": "string",
                    "enum": ["lookup", "estimate", "compare"],
                },
                "items": {**_STRINGS, "description": "Foods to analyze"},
                "portions": {
                    **_STRINGS,
                    "description": "Optional portion for each item, e.g. '4oz'",
                },
            },
            ("query_type", "items"),
        ),
    )
    ASK_RECIPE_AGENT = ToolSpec(
        "ask_recipe_agent",
        "Searches saved recipes, returns recipe details, calculates servings "
        "or parses a new recipe.",
        _params(
            {
                "action": {
                    "type": "string",
                    "enum": ["find", "details", "calculate_serving", "parse"],
                },
                "query": {
                    "type": "string",
                    "description": "Recipe name for 'find', recipe text for 'parse'",
                },
                "recipe_id": _STRING,
                "servings": _NUMBER,
                "portion": {
                    "type": "string",
                    "description": "Portion the user wants to log, if any",
                },
            },
            ("action",),
        ),
    )
    ASK_INSIGHT_AGENT = ToolSpec(
        "ask_insight_agent",
        "Audits, pattern recognition, reflection, day classification and "
        "summaries of the user's food log.",
        _params(
            {
                "action": {"type": "string", "enum": list(INSIGHT_ACTIONS)},
                "query": {"type": "string", "description": "The user's focus"},
                "filters": {
                    "type": "object",
                    "properties": {"days": _NUMBER},
                },
                "day_type": {"type": "string", "enum": list(DAY_TYPES)},
                "notes": _STRING,
            },
            ("action",),
        ),
    )
    VALIDATE_NUTRITION = ToolSpec(
        "validate_nutrition",
        "Checks whether nutrition data is reasonable, e.g. 0-calorie chicken.",
        _params(
            {
                "food_name": _STRING,
                "calories": _NUMBER,
                "protein_g": _NUMBER,
                "carbs_g": _NUMBER,
                "fat_total_g": _NUMBER,
                "sugar_g": _NUMBER,
                "fiber_g": _NUMBER,
            },
            ("food_name", "calories"),
        ),
    )
    LOOKUP_NUTRITION = ToolSpec(
        "lookup_nutrition",
        "Looks up nutrition for one food at a portion. Pass calories and "
        "macros only when the user stated them.",
        _params(
            {
                "food": _STRING,
                "portion": _STRING,
                "calories": _NUMBER,
                "macros": {
                    "type": "object",
                    "properties": {
                        "protein": _NUMBER,
                        "carbs": _NUMBER,
                        "fat": _NUMBER,
                    },
                },
            },
            ("food",),
        ),
    )
    ESTIMATE_NUTRITION = ToolSpec(
        "estimate_nutrition",
        "Estimates nutrition for a free-form description such as a "
        "restaurant dish.",
        _params({"description": _STRING, "portion": _STRING}, ("description",)),
    )
    COMPARE_FOODS = ToolSpec(
        "compare_foods",
        "Compares nutrition of several foods side by side.",
        _params({"foods": _STRINGS}, ("foods",)),
    )
    SEARCH_SAVED_RECIPES = ToolSpec(
        "search_saved_recipes",
        "Searches the user's saved recipes by name.",
        _params({"query": _STRING}, ("query",)),
    )
    GET_RECIPE_DETAILS = ToolSpec(
        "get_recipe_details",
        "Returns ingredients and nutrition of a saved recipe.",
        _params({"recipe_id": _STRING}, ("recipe_id",)),
    )
    PARSE_RECIPE_TEXT = ToolSpec(
        "parse_recipe_text",
        "Parses recipe text into ingredients and nutrition and starts saving "
        "it. Use when the user provides recipe details.",
        _params(
            {
                "recipe_text": {
                    "type": "string",
                    "description": "Ingredients and optionally instructions",
                },
                "recipe_name": _STRING,
            },
            ("recipe_text",),
        ),
    )
    CALCULATE_RECIPE_SERVING = ToolSpec(
        "calculate_recipe_serving",
        "Calculates nutrition for a number of servings of a saved recipe.",
        _params(
            {
                "recipe_id": _STRING,
                "servings": {
                    "type": "number",
                    "description": "Servings, e.g. 0.5 for half a serving",
                },
            },
            ("recipe_id", "servings"),
        ),
    )
    PROPOSE_FOOD_LOG = ToolSpec(
        "propose_food_log",
        "Proposes logging a food. The user sees a confirmation card and must "
        "approve before it is saved.",
        _params(
            {
                "food_name": _STRING,
                "portion": _STRING,
                **{key: _NUMBER for key in STANDARD_LOG_NUTRIENTS},
                "confidence": {"type": "string", "enum": list(CONFIDENCE_LEVELS)},
                "error_sources": _STRINGS,
                "health_flags": _STRINGS,
            },
            ("food_name", "calories", "protein_g", "carbs_g", "fat_total_g"),
        ),
    )
    PROPOSE_RECIPE_LOG = ToolSpec(
        "propose_recipe_log",
        "Proposes logging servings of a saved recipe. The user must confirm.",
        _params(
            {
                "recipe_id": _STRING,
                "recipe_name": _STRING,
                "servings": _NUMBER,
                **{key: _NUMBER for key in CORE_NUTRIENTS},
            },
            ("recipe_id", "recipe_name", "servings"),
        ),
    )
    UPDATE_USER_GOAL = ToolSpec(
        "update_user_goal",
        "Proposes setting or removing one nutrition goal for user approval.",
        _params(_GOAL_FIELDS, ("nutrient",)),
    )
    BULK_UPDATE_USER_GOALS = ToolSpec(
        "bulk_update_user_goals",
        "Proposes updating several nutrition goals at once.",
        _params(
            {
                "goals": {
                    "type": "array",
                    "items": _params(_GOAL_FIELDS, ("nutrient",)),
                }
            },
            ("goals",),
        ),
    )
    UPDATE_USER_PROFILE = ToolSpec(
        "update_user_profile",
        "Updates general profile info such as dietary preferences and goal. "
        "For specific allergies or conditions use manage_health_constraints.",
        _params(
            {
                "dietary_preferences": _STRINGS,
                "health_goal": _STRING,
                "allergies": _STRINGS,
                "notes": _STRING,
                **{
                    key: _NUMBER
                    for key in ("height_cm", "weight_kg", "age")
                },
                "gender": _STRING,
                "activity_level": _STRING,
            }
        ),
    )
    MANAGE_HEALTH_CONSTRAINTS = ToolSpec(
        "manage_health_constraints",
        "Adds or removes allergies, intolerances or medical conditions from "
        "a natural language statement.",
        _params({"instruction": _STRING}, ("instruction",)),
    )
    STORE_MEMORY = ToolSpec(
        "store_memory",
        "Stores a new user preference, habit or health fact.",
        _params(
            {
                "category": {"type": "string", "enum": list(MEMORY_CATEGORIES)},
                "fact": _STRING,
            },
            ("category", "fact"),
        ),
    )
    SEARCH_MEMORY = ToolSpec(
        "search_memory",
        "Searches what has been learned about the user.",
        _params({"query": _STRING}, ("query",)),
    )


_TOOLS_BY_NAME = {tool.value.name: tool for tool in Tool}


def tool_definitions() -> list[dict[str, object]]:
    """Return the catalog in the LLM function-tool format."""
    return [
        {
            "type": "function",
            "name": tool.value.name,
            "description": tool.value.description,
            "parameters": tool.value.parameters,
        }
        for tool in Tool
    ]


TOOL_DEFINITIONS = tool_definitions()


@dataclass(frozen=True)
class ToolRequest:
    """A validated call against the catalog."""

    tool: Tool
    arguments: dict[str, object]
    call_id: str = ""

    @property
    def name(self) -> str:
        return self.tool.value.name

    @classmethod
    def parse(
        cls, name: str, arguments: dict[str, object] | None, call_id: str = ""
    ) -> "ToolRequest":
        """Reject names outside the catalog."""
        tool = _TOOLS_BY_NAME.get(name)
        if tool is None:
            raise UnknownToolError(name)
        return cls(tool=tool, arguments=dict(arguments or {}), call_id=call_id)


HEALTH_INSTRUCTIONS = """Extract health constraint changes from the statement.
For each one return action (add or remove), category (the allergen, condition
or ingredient, lowercase), type (allergy, intolerance, condition, restriction),
severity (info, warning or critical) and optional notes.
Allergies are critical. Return an empty list when nothing applies."""

HEALTH_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "updates": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "action": {"type": "string", "enum": ["add", "remove"]},
                    "category": {"type": "string"},
                    "type": {"type": "string"},
                    "severity": {
                        "type": "string",
                        "enum": ["info", "warning", "critical"],
                    },
                    "notes": {"type": ["string", "null"]},
                },
                "required": ["action", "category", "type", "severity", "notes"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["updates"],
    "additionalProperties": False,
}

Handler = Callable[[dict[str, object], UserContext], Awaitable[dict[str, object]]]


def canonical_nutrients(payload: dict[str, object]) -> dict[str, float]:
    """Numeric payload values keyed by master nutrient keys."""
    values: dict[str, float] = {}
    for key, value in payload.items():
        if isinstance(value, bool) or not isinstance(value, int | float | str):
            continue
        canonical = key if key in NUTRIENTS else normalize_nutrient_key(key)
        if canonical not in NUTRIENTS or canonical in values:
            continue
        try:
            values[canonical] = float(value)
        except ValueError:
            continue
    return values


def proposal_payload(action: PendingAction, message: str) -> dict[str, object]:
    """Envelope marking a tool result as a pending proposal."""
    return {
        "proposal_type": action.kind.value,
        "proposal_id": action.proposal_id,
        "pending": True,
        "data": action.to_data(),
        "message": message,
    }


def checked_proposal(
    food_name: str,
    nutrients: dict[str, float],
    confidence: str = "medium",
    error_sources: list[str] | None = None,
) -> NutrientVector:
    """Reconcile calories with macros and enforce the nutrient hierarchy.

    Raises NutrientValidationError when a child nutrient exceeds its parent.
    """
    vector = reconcile_calories(
        NutrientVector(
            food_name=food_name,
            values=dict(nutrients),
            confidence=confidence,
            error_sources=tuple(error_sources or ()),
        )
    )
    validation = validate_nutrient_hierarchy(vector.values)
    if not validation.valid:
        _logger.warning(
            "Rejecting proposal for %s: %s", food_name, validation.violations
        )
        raise NutrientValidationError(validation.violations)
    return vector


def _error(message: str) -> dict[str, object]:
    return {"error": True, "message": message}


def _impossible(exc: NutrientValidationError) -> dict[str, object]:
    return _error(
        "Scientific impossibility detected: "
        f"{', '.join(exc.violations)}. Please recalculate and try "
        "again with corrected values."
    )


def _as_uuid(value: object) -> UUID | None:
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _number(value: object, default: float = 0.0) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return default
    return float(value)


@dataclass
class ToolExecutor:
    """Runs catalog tools against the services for one user."""

    resolver: NutritionResolver
    recipes: RecipeFlowService
    insights: InsightService
    progress: ProgressService
    goals: GoalService
    profiles: ProfileRepository
    memories: MemoryRepository
    llm: LLMClient
    model: str

    def __post_init__(self) -> None:
        self._handlers: dict[Tool, Handler] = {
            Tool.GET_USER_PROFILE: self._get_user_profile,
            Tool.GET_USER_GOALS: self._get_user_goals,
            Tool.GET_TODAY_PROGRESS: self._get_today_progress,
            Tool.GET_WEEKLY_SUMMARY: self._get_weekly_summary,
            Tool.GET_FOOD_HISTORY: self._get_food_history,
            Tool.ASK_NUTRITION_AGENT: self._ask_nutrition_agent,
            Tool.ASK_RECIPE_AGENT: self._ask_recipe_agent,
            Tool.ASK_INSIGHT_AGENT: self._ask_insight_agent,
            Tool.VALIDATE_NUTRITION: self._validate_nutrition,
            Tool.LOOKUP_NUTRITION: self._lookup_nutrition,
            Tool.ESTIMATE_NUTRITION: self._estimate_nutrition,
            Tool.COMPARE_FOODS: self._compare_foods,
            Tool.SEARCH_SAVED_RECIPES: self._search_saved_recipes,
            Tool.GET_RECIPE_DETAILS: self._get_recipe_details,
            Tool.PARSE_RECIPE_TEXT: self._parse_recipe_text,
            Tool.CALCULATE_RECIPE_SERVING: self._calculate_recipe_serving,
            Tool.PROPOSE_FOOD_LOG: self._propose_food_log,
            Tool.PROPOSE_RECIPE_LOG: self._propose_recipe_log,
            Tool.UPDATE_USER_GOAL: self._update_user_goal,
            Tool.BULK_UPDATE_USER_GOALS: self._bulk_update_user_goals,
            Tool.UPDATE_USER_PROFILE: self._update_user_profile,
            Tool.MANAGE_HEALTH_CONSTRAINTS: self._manage_health_constraints,
            Tool.STORE_MEMORY: self._store_memory,
            Tool.SEARCH_MEMORY: self._search_memory,
        }

    @property
    def handled_tools(self) -> frozenset[Tool]:
        return frozenset(self._handlers)

    async def execute(
        self, request: ToolRequest, context: UserContext
    ) -> dict[str, object]:
        """Run one tool; any failure becomes an error envelope."""
        handler = self._handlers[request.tool]
        try:
            return await handler(request.arguments, context)
        except Exception as exc:
            _logger.warning("Tool %s failed: %s", request.name, exc)
            return _error(f"Failed to execute {request.name}: {exc}")

    # User context

    async def _get_user_profile(
        self, _args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        profile = self.profiles.get_profile(context.user_id)
        if profile is None:
            return {
                "message": "No profile found. User hasn't set up their profile yet."
            }
        payload = {key: profile.get(key) for key in PROFILE_FIELDS}
        constraints = self.profiles.list_health_constraints(context.user_id)
        payload["allergies"] = [
            item.category for item in constraints if item.constraint_type == "allergy"
        ]
        payload["health_constraints"] = [item.to_dict() for item in constraints]
        return payload

    async def _get_user_goals(
        self, _args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        goals = self.goals.list_goals(context.user_id)
        if not goals:
            return {
                "message": "No goals set yet. User should set their nutrition targets."
            }
        return {
            goal.nutrient: {
                "target": goal.target_value,
                "unit": goal.unit,
                "goal_type": goal.goal_type,
                **goal.thresholds(),
            }
            for goal in goals
        }

    async def _get_today_progress(
        self, _args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        today = self.progress.get_today(context.user_id, context.timezone)
        consumed = {key: round1(value) for key, value in today.totals.items()}
        consumed["calories"] = round(today.get("calories"))
        return {
            "date": today.day.isoformat(),
            "consumed": consumed,
            "items_logged": len(today.items),
            "items": today.items,
        }

    async def _get_weekly_summary(
        self, _args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        summary = await self.insights.summary(
            context.user_id, days=7, timezone=context.timezone
        )
        today = await self._get_today_progress({}, context)
        goal_progress = summary.get("goal_progress") or {}
        return {
            "daily_averages": summary.get("daily_averages") or {},
            "today_totals": today,
            "goal_progress": goal_progress,
            "summary": summary.get("summary"),
            "compliance_summary": compliance_label(goal_progress),
        }

    async def _get_food_history(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        days = int(_number(args.get("days"), 7))
        days = max(1, min(days, 30))
        entries = self.progress.get_history(
            context.user_id, context.timezone, days=days
        )
        zone = resolve_timezone(context.timezone)
        history: dict[str, list[dict[str, object]]] = {}
        for entry in entries:
            day = entry.log_time.astimezone(zone).date().isoformat()
            history.setdefault(day, []).append(
                {
                    "food_name": entry.food_name,
                    "portion": entry.portion,
                    "calories": round(entry.calories),
                    "protein_g": round1(entry.nutrients.get("protein_g", 0.0)),
                }
            )
        return {"days_requested": days, "history": history, "total_items": len(entries)}

    # Delegation

    async def _ask_nutrition_agent(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        items = [str(item) for item in args.get("items") or [] if item]
        portions = [str(item) for item in args.get("portions") or []]
        if not items:
            return _error("items are required")
        query_type = str(args.get("query_type") or "lookup")
        if query_type == "compare":
            return await self._compare_foods({"foods": items}, context)
        lookups = [
            self._lookup_one(
                food,
                portions[index] if index < len(portions) else "1 serving",
                context,
                estimate_only=query_type == "estimate",
            )
            for index, food in enumerate(items)
        ]
        results = await asyncio.gather(*lookups)
        if len(results) == 1:
            return results[0]
        return {"results": list(results)}

    async def _ask_recipe_agent(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        action = str(args.get("action") or "")
        if action == "find":
            return await self._find_recipe(
                str(args.get("query") or ""), args.get("portion"), context
            )
        if action == "details":
            if not args.get("recipe_id"):
                return _error("recipe_id required for details action")
            return await self._get_recipe_details(args, context)
        if action == "calculate_serving":
            if not args.get("recipe_id") or not args.get("servings"):
                return _error("recipe_id and servings required")
            return await self._calculate_recipe_serving(args, context)
        if action == "parse":
            return await self._parse_recipe_text(
                {"recipe_text": args.get("query") or ""}, context
            )
        return _error(f"Unknown recipe action: {action}")

    async def _ask_insight_agent(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        filters = args.get("filters")
        days = filters.get("days") if isinstance(filters, dict) else None
        return await self.insights.run(
            str(args.get("action") or "summary"),
            context.user_id,
            query=str(args["query"]) if args.get("query") else None,
            days=int(days) if isinstance(days, int | float) else None,
            day_type=str(args["day_type"]) if args.get("day_type") else None,
            notes=str(args["notes"]) if args.get("notes") else None,
            timezone=context.timezone,
        )

    # Nutrition

    async def _validate_nutrition(
        self, args: dict[str, object], _context: UserContext
    ) -> dict[str, object]:
        food_name = str(args.get("food_name") or "food")
        values = canonical_nutrients(args)
        issues = list(validate_nutrient_hierarchy(values).violations)
        if not is_valid_nutrition(values, food_name):
            issues.append(f"Values look implausible for {food_name}")
        derived = macro_calories(values)
        calories = values.get("calories", 0.0)
        if calories > 0 and derived > 0:
            if abs(calories - derived) / calories > MACRO_TOLERANCE:
                issues.append(
                    f"Calories ({round(calories)}) don't match macros "
                    f"({round(derived)} from protein, carbs and fat)"
                )
        valid = not issues
        return {
            "valid": valid,
            "issues": issues,
            "suggestion": None
            if valid
            else "Consider using estimate_nutrition for a better estimate.",
        }

    async def _lookup_nutrition(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        food = str(args.get("food") or args.get("food_name") or "").strip()
        if not food:
            return _error("food is required")
        portion = str(args.get("portion") or "1 serving")
        calories = _number(args.get("calories"))
        macros = args.get("macros") if isinstance(args.get("macros"), dict) else {}
        stated = {
            key: macros.get(name)
            for name, key in (
                ("protein", "protein_g"),
                ("carbs", "carbs_g"),
                ("fat", "fat_total_g"),
            )
        }
        if calories > 0 and any(value is not None for value in stated.values()):
            return {
                "food_name": food,
                "portion": portion,
                "calories": calories,
                **{key: _number(value) for key, value in stated.items()},
                "source": "user_provided",
                "confidence": "high",
            }
        result = await self._lookup_one(food, portion, context)
        if calories > 0 and not result.get("error"):
            return _match_stated_calories(result, calories)
        return result

    async def _estimate_nutrition(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        description = str(args.get("description") or "").strip()
        if not description:
            return _error("description is required")
        return await self._lookup_one(
            description,
            str(args.get("portion") or "1 serving"),
            context,
            estimate_only=True,
        )

    async def _compare_foods(
        self, args: dict[str, object], _context: UserContext
    ) -> dict[str, object]:
        foods = [str(food) for food in args.get("foods") or [] if food]
        if len(foods) < 2:
            return _error("At least two foods are needed for a comparison")
        result = await self.resolver.compare(foods[:MAX_COMPARE_FOODS])
        names = ", ".join(str(food["food_name"]) for food in result["foods"])
        result["comparison_note"] = f"Compared {len(result['foods'])} foods: {names}"
        return result

    async def _lookup_one(
        self,
        food: str,
        portion: str,
        context: UserContext,
        *,
        estimate_only: bool = False,
    ) -> dict[str, object]:
        try:
            if estimate_only:
                payload = await self.resolver.estimate(food, portion)
            else:
                payload = await self.resolver.lookup(
                    food, portion, user_id=context.user_id, tracked=context.tracked
                )
        except ResolutionFailure as exc:
            return _error(
                f"Could not find nutrition data for {food!r} ({exc.reason}). "
                "Ask the user for more detail about this item."
            )
        payload["portion"] = portion
        for key in context.tracked:
            payload.setdefault(key, 0.0)
        return payload

    # Recipes

    async def _search_saved_recipes(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        query = str(args.get("query") or "").strip()
        if len(query) < 2:
            return {
                "message": "Please provide a more specific search term.",
                "recipes": [],
            }
        candidates = self.recipes.search(context.user_id, query)
        if not candidates:
            return {"message": f'No recipes found matching "{query}"', "recipes": []}
        return {"recipes": [candidate.to_dict() for candidate in candidates]}

    async def _find_recipe(
        self, query: str, portion: object, context: UserContext
    ) -> dict[str, object]:
        found = self.recipes.find(context.user_id, query)
        if isinstance(found, RecipeFound):
            details = self.recipes.get_details(found.record.id) or {}
            return {"found": True, "recipe": details}
        if isinstance(found, MultipleRecipes):
            action = RecipeSelectionAction(
                candidates=found.candidates,
                query=query,
                portion=str(portion) if portion else None,
            )
            lines = [
                f"{index}. {candidate.name} ({candidate.calories_per_serving} "
                "cal/serving)"
                for index, candidate in enumerate(found.candidates, start=1)
            ]
            return proposal_payload(
                action,
                f'I found {len(lines)} recipes matching "{query}":\n'
                + "\n".join(lines)
                + "\n\nWhich one did you mean? Reply with the number or name.",
            )
        return {"found": False, "message": f'No saved recipe matches "{query}"'}

    async def _get_recipe_details(
        self, args: dict[str, object], _context: UserContext
    ) -> dict[str, object]:
        recipe_id = _as_uuid(args.get("recipe_id"))
        details = self.recipes.get_details(recipe_id) if recipe_id else None
        if details is None:
            return _error("Recipe not found")
        return details

    async def _parse_recipe_text(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        text = str(args.get("recipe_text") or "").strip()
        if not text:
            return _error("recipe_text is required")
        name = args.get("recipe_name")
        outcome = await self.recipes.parse(
            text, str(name) if name else None, user_id=context.user_id
        )
        if isinstance(outcome, FlowError):
            return _error(outcome.message)
        action = RecipeSaveAction(flow_state=outcome.state)
        payload = proposal_payload(action, outcome.message)
        payload["nutrition"] = outcome.nutrition_preview()
        payload["step"] = outcome.state.step.value
        return payload

    async def _calculate_recipe_serving(
        self, args: dict[str, object], _context: UserContext
    ) -> dict[str, object]:
        recipe_id = _as_uuid(args.get("recipe_id"))
        servings = _number(args.get("servings"), 1.0) or 1.0
        if recipe_id is None:
            return _error("Recipe not found")
        vector = self.recipes.calculate_serving(recipe_id, servings)
        if vector is None:
            return _error("Recipe not found")
        nutrition = {key: round1(value) for key, value in vector.values.items()}
        nutrition["calories"] = round(vector.get("calories"))
        return {
            "recipe_id": str(recipe_id),
            "recipe_name": vector.food_name,
            "servings_calculated": servings,
            "nutrition": nutrition,
        }

    # Logging proposals

    async def _propose_food_log(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        food_name = str(args.get("food_name") or "").strip()
        if not food_name:
            return _error("food_name is required")
        values = canonical_nutrients(args)
        keys = dict.fromkeys((*context.tracked, *STANDARD_LOG_NUTRIENTS))
        nutrients = {key: round1(values[key]) for key in keys if key in values}
        for key in context.tracked:
            nutrients.setdefault(key, 0.0)
        confidence = str(args.get("confidence") or "medium")
        try:
            vector = checked_proposal(
                food_name,
                nutrients,
                confidence=confidence if confidence in CONFIDENCE_LEVELS else "medium",
                error_sources=[str(item) for item in args.get("error_sources") or []],
            )
        except NutrientValidationError as exc:
            return _impossible(exc)

        item = FoodLogItem(
            food_name=food_name,
            portion=str(args.get("portion") or "serving"),
            nutrients=vector.values,
            confidence=vector.confidence,
            error_sources=vector.error_sources,
            health_flags=tuple(str(flag) for flag in args.get("health_flags") or []),
        )
        return proposal_payload(
            FoodLogAction(items=[item]),
            f"Ready to log {food_name} ({round(item.calories)} cal). Please confirm.",
        )

    async def _propose_recipe_log(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        recipe_id = _as_uuid(args.get("recipe_id"))
        servings = _number(args.get("servings"), 1.0) or 1.0
        name = str(args.get("recipe_name") or "Recipe")
        nutrients = canonical_nutrients(args)
        if nutrients.get("calories", 0.0) <= 0 and recipe_id is not None:
            vector = self.recipes.calculate_serving(recipe_id, servings)
            if vector is not None:
                nutrients = dict(vector.values)
                name = vector.food_name
        nutrients = {key: round1(value) for key, value in nutrients.items()}
        for key in context.tracked:
            nutrients.setdefault(key, 0.0)
        try:
            vector = checked_proposal(name, nutrients)
        except NutrientValidationError as exc:
            return _impossible(exc)
        nutrients = vector.values
        action = RecipeLogAction(
            recipe_id=recipe_id,
            recipe_name=name,
            servings=servings,
            nutrients=nutrients,
        )
        return proposal_payload(
            action,
            f"Ready to log {servings:g} serving(s) of {name} "
            f"({round(nutrients.get('calories', 0.0))} cal). Please confirm.",
        )

    # Goals

    async def _update_user_goal(
        self, args: dict[str, object], _context: UserContext
    ) -> dict[str, object]:
        change = GoalChange.from_dict(args)
        if not change.nutrient:
            return _error("nutrient is required")
        if change.action is GoalAction.SET and change.target_value is None:
            return _error("target_value is required to set a goal")
        action = GoalUpdateAction(change=change)
        if change.action is GoalAction.REMOVE:
            message = f"Ready to remove your {change.nutrient} goal. Please confirm."
        else:
            data = change.to_dict()
            custom = " with custom thresholds" if change.to_goal().thresholds() else ""
            message = (
                f"Ready to update {change.nutrient} goal to "
                f"{change.target_value:g}{data['unit']}{custom}. Please confirm."
            )
        return proposal_payload(action, message)

    async def _bulk_update_user_goals(
        self, args: dict[str, object], _context: UserContext
    ) -> dict[str, object]:
        changes = [
            GoalChange.from_dict(goal)
            for goal in args.get("goals") or []
            if isinstance(goal, dict)
        ]
        changes = [
            change
            for change in changes
            if change.nutrient
            and (change.action is GoalAction.REMOVE or change.target_value is not None)
        ]
        if not changes:
            return _error("No valid goals to update")
        return proposal_payload(
            BulkGoalUpdateAction(changes=changes),
            f"Ready to update {len(changes)} nutrition goals. Please confirm.",
        )

    # Profile and memory

    async def _update_user_profile(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        updates = {
            key: args[key]
            for key in PROFILE_FIELDS
            if args.get(key) not in (None, "", [])
        }
        if args.get("health_goal"):
            updates["goal"] = args["health_goal"]
        if args.get("notes"):
            updates["notes"] = args["notes"]
        if updates:
            self.profiles.update_profile(context.user_id, updates)
        allergies = [str(item) for item in args.get("allergies") or [] if item]
        for allergy in allergies:
            self.profiles.upsert_health_constraint(
                context.user_id,
                HealthConstraint(
                    category=allergy.lower(),
                    constraint_type="allergy",
                    severity="critical",
                    notes="From profile update",
                ),
            )
        return {
            "status": "success",
            "message": "✅ Profile updated with your health considerations! 🩺",
            "data": {**updates, "allergies": allergies},
        }

    async def _manage_health_constraints(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        instruction = str(args.get("instruction") or "").strip()
        parsed = await self.llm.complete_json(
            model=self.model,
            instructions=HEALTH_INSTRUCTIONS,
            messages=[{"role": "user", "content": instruction}],
            schema=HEALTH_SCHEMA,
            schema_name="health_constraints",
        )
        updates = [
            item for item in parsed.get("updates") or [] if isinstance(item, dict)
        ]
        if not updates:
            return {
                "message": "I couldn't identify any specific health constraints to "
                "update. Please be more specific (e.g., 'I am allergic to peanuts')."
            }
        applied: list[str] = []
        for update in updates:
            category = str(update.get("category") or "").lower().strip()
            if not category:
                continue
            if update.get("action") == "remove":
                self.profiles.remove_health_constraint(context.user_id, category)
                applied.append(f"Removed: {category}")
                continue
            constraint = HealthConstraint(
                category=category,
                constraint_type=str(update.get("type") or "restriction"),
                severity=clean_severity(update.get("severity")),
                notes=str(update["notes"]) if update.get("notes") else None,
            )
            self.profiles.upsert_health_constraint(context.user_id, constraint)
            applied.append(
                f"Added {constraint.severity} {constraint.constraint_type}: {category}"
            )
        return {
            "success": True,
            "message": "Health profile updated:\n- " + "\n- ".join(applied),
            "data": updates,
        }

    async def _store_memory(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        fact = str(args.get("fact") or "").strip()
        if not args.get("category") or not fact:
            return _error("Category and fact are required")
        category = clean_category(args.get("category"))
        self.memories.save_memory(context.user_id, category, fact, "Chat Interaction")
        return {
            "status": "success",
            "message": "Memory stored successfully.",
            "data": {"category": category, "fact": fact},
        }

    async def _search_memory(
        self, args: dict[str, object], context: UserContext
    ) -> dict[str, object]:
        query = str(args.get("query") or "").lower().strip()
        memories = self.memories.list_memories(context.user_id, MEMORY_CATEGORIES)
        matches = [
            {"category": memory.category, "fact": memory.fact}
            for memory in memories
            if query in memory.fact.lower() or query in memory.category.lower()
        ]
        return {"query": query, "matches": matches[:MAX_MEMORY_MATCHES]}


def _match_stated_calories(
    payload: dict[str, object], calories: float
) -> dict[str, object]:
    """Scale a looked-up food so its calories equal the amount the user stated."""
    vector = NutrientVector.from_dict(payload)
    current = vector.get("calories")
    if current > 0:
        values = scale_values(vector.values, calories / current)
    else:
        values = dict(vector.values)
    values["calories"] = calories
    return {**payload, **values, "source": "user_calories"}
