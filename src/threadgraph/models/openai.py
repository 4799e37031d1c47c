import json
import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from threadgraph.errors import ModelInvocationError
from threadgraph.messages import Message, SystemMessage, ToolCall
from threadgraph.tools.registry import ToolSpec

logger = logging.getLogger(__name__)


class OpenAIChatModel:
    """OpenAI chat-completions implementation of ChatModel."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        temperature: float = 0.0,
        api_key: str | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._api_key = api_key
        self._client = client

    @property
    def model(self) -> str:
        return self._model

    @property
    def client(self) -> AsyncOpenAI:
        """Lazily constructed so that a missing API key only fails on first use."""
        if self._client is None:
            try:
                self._client = AsyncOpenAI(api_key=self._api_key)
            except OpenAIError as exc:
                raise ModelInvocationError(f"Cannot create OpenAI client: {exc}") from exc
        return self._client

    async def invoke(
        self,
        system_message: SystemMessage,
        messages: list[Message],
        tool_catalog: list[ToolSpec],
    ) -> Message:
        """Send the conversation to the chat completions API."""
        request: dict[str, Any] = {
            "model": self._model,
            "temperature": self._temperature,
            "messages": [
                {"role": "system", "content": system_message.content},
                *(_to_openai_message(m) for m in messages),
            ],
        }
        # The API rejects an empty tools list.
        if tool_catalog:
            request["tools"] = [_to_openai_tool(spec) for spec in tool_catalog]

        try:
            response = await self.client.chat.completions.create(**request)
        except OpenAIError as exc:
            raise ModelInvocationError(f"OpenAI request failed: {exc}") from exc

        if not response.choices:
            raise ModelInvocationError("OpenAI response contained no choices")

        message = _from_openai_message(response.choices[0].message)
        logger.debug(
            "chat completion model=%s tool_calls=%d",
            self._model,
            len(message.tool_calls),
        )
        return message


def _to_openai_tool(spec: ToolSpec) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": spec.name,
            "description": spec.description,
            "parameters": spec.parameters,
        },
    }


def _to_openai_message(message: Message) -> dict[str, Any]:
    if message.role == "tool":
        return {
            "role": "tool",
            "tool_call_id": message.tool_call_id,
            "content": message.content,
        }
    if message.role == "assistant" and message.tool_calls:
        return {
            "role": "assistant",
            "content": message.content or None,
            "tool_calls": [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": json.dumps(tc.args)},
                }
                for tc in message.tool_calls
            ],
        }
    return {"role": message.role, "content": message.content}


def _from_openai_message(raw: Any) -> Message:
    tool_calls: list[ToolCall] = []
    for tc in raw.tool_calls or []:
        try:
            args = json.loads(tc.function.arguments or "{}")
        except json.JSONDecodeError as exc:
            raise ModelInvocationError(
                f"Unparsable arguments for tool call {tc.function.name!r}: {exc}"
            ) from exc
        if not isinstance(args, dict):
            raise ModelInvocationError(
                f"Arguments for tool call {tc.function.name!r} are not an object"
            )
        tool_calls.append(ToolCall(id=tc.id, name=tc.function.name, args=args))
    return Message.assistant(content=raw.content or "", tool_calls=tool_calls)
