"""OpenAI Responses API client for classification, extraction and tool calls."""

import json
import logging
from dataclasses import dataclass

from openai import AsyncOpenAI, OpenAIError

from nutrition_assistant.errors import ExternalServiceError
from nutrition_assistant.services.llm import LLMClient, LLMTurn, ToolCall

_logger = logging.getLogger(__name__)


@dataclass
class OpenAILLMClient(LLMClient):
    """LLM client backed by the OpenAI Responses API."""

    client: AsyncOpenAI
    reasoning_effort: str | None = None
    store: bool = False

    @classmethod
    def create(
        cls,
        api_key: str,
        *,
        reasoning_effort: str | None = None,
        store: bool = False,
        timeout: float = 30.0,
    ) -> "OpenAILLMClient":
        """Create an OpenAI client."""
        return cls(
            client=AsyncOpenAI(api_key=api_key, timeout=timeout),
            reasoning_effort=reasoning_effort,
            store=store,
        )

    async def close(self) -> None:
        await self.client.close()

    async def complete_json(  # noqa: PLR0913
        self,
        *,
        model: str,
        instructions: str,
        messages: list[dict[str, object]],
        schema: dict[str, object],
        schema_name: str,
    ) -> dict[str, object]:
        """Call the Responses API with structured outputs."""
        request_payload = self._payload(model, instructions, messages)
        request_payload["text"] = {
            "format": {
                "type": "json_schema",
                "name": schema_name,
                "strict": True,
                "schema": schema,
            }
        }
        response = await self._create(request_payload)
        output_text = response.output_text
        if not output_text:
            raise ExternalServiceError("OpenAI returned an empty response")
        try:
            return json.loads(output_text)
        except json.JSONDecodeError as exc:
            raise ExternalServiceError(f"OpenAI returned invalid JSON: {exc}") from exc

    async def complete_text(
        self, *, model: str, prompt: str, instructions: str | None = None
    ) -> str:
        response = await self._create(self._payload(model, instructions, prompt))
        return response.output_text or ""

    async def complete_with_tools(
        self,
        *,
        model: str,
        instructions: str,
        messages: list[dict[str, object]],
        tools: list[dict[str, object]],
    ) -> LLMTurn:
        """Return the model's text and any function calls it requested."""
        request_payload = self._payload(model, instructions, messages)
        request_payload["tools"] = tools
        response = await self._create(request_payload)
        tool_calls = [
            ToolCall(
                call_id=item.call_id,
                name=item.name,
                arguments=_parse_arguments(item.name, item.arguments),
            )
            for item in response.output
            if item.type == "function_call"
        ]
        return LLMTurn(text=response.output_text or "", tool_calls=tool_calls)

    def _payload(
        self,
        model: str,
        instructions: str | None,
        messages: list[dict[str, object]] | str,
    ) -> dict[str, object]:
        request_payload: dict[str, object] = {
            "model": model,
            "input": messages,
            "store": self.store,
        }
        if instructions:
            request_payload["instructions"] = instructions
        if self.reasoning_effort:
            request_payload["reasoning"] = {"effort": self.reasoning_effort}
        return request_payload

    async def _create(self, request_payload: dict[str, object]):  # noqa: ANN202
        try:
            return await self.client.responses.create(**request_payload)
        except OpenAIError as exc:
            _logger.warning("OpenAI request failed: %s", exc)
            raise ExternalServiceError(f"OpenAI request failed: {exc}") from exc


def _parse_arguments(name: str, raw: str) -> dict[str, object]:
    try:
        arguments = json.loads(raw or "{}")
    except json.JSONDecodeError:
        _logger.warning("Discarding unparseable arguments for %s", name)
        return {}
    return arguments if isinstance(arguments, dict) else {}
