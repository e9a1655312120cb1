"""LLM client interface shared by the services."""

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class ToolCall:
    """A function call requested by the model."""

    call_id: str
    name: str
    arguments: dict[str, object]


@dataclass(frozen=True)
class LLMTurn:
    """One model response: text, tool calls, or both."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)


class LLMClient(Protocol):
    """Interface for the LLM reasoning service."""

    async def complete_json(  # noqa: PLR0913
        self,
        *,
        model: str,
        instructions: str,
        messages: list[dict[str, object]],
        schema: dict[str, object],
        schema_name: str,
    ) -> dict[str, object]:
        """Return a response constrained to a strict JSON schema."""

    async def complete_text(
        self, *, model: str, prompt: str, instructions: str | None = None
    ) -> str:
        """Return plain text."""

    async def complete_with_tools(
        self,
        *,
        model: str,
        instructions: str,
        messages: list[dict[str, object]],
        tools: list[dict[str, object]],
    ) -> LLMTurn:
        """Return text or tool calls against the given function tools."""
