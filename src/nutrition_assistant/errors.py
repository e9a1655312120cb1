"""Exception types raised across the assistant."""


class NutritionAssistantError(Exception):
    """Base exception for recoverable assistant failures."""


class NutrientValidationError(NutritionAssistantError):
    """Nutrient values break the parent/child hierarchy."""

    def __init__(self, violations: list[str]) -> None:
        super().__init__("; ".join(violations))
        self.violations = violations


class ResolutionFailure(NutritionAssistantError):
    """No stage of the resolution pipeline produced usable data."""

    def __init__(self, food_name: str, reason: str) -> None:
        super().__init__(f"No nutrition data for {food_name!r}: {reason}")
        self.food_name = food_name
        self.reason = reason


class ConversionOutOfRange(NutritionAssistantError):
    """A portion multiplier fell outside the accepted band."""

    def __init__(self, multiplier: float, reason: str) -> None:
        super().__init__(f"Rejected multiplier {multiplier}: {reason}")
        self.multiplier = multiplier
        self.reason = reason


class ExternalServiceError(NutritionAssistantError):
    """The LLM or a nutrition API returned an unusable response."""


class UnknownToolError(NutritionAssistantError):
    """A tool call named something outside the catalog."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class OrchestrationError(NutritionAssistantError):
    """Unexpected failure while handling a conversational turn."""
