"""Message types exchanged between the engine, the model client and tools.

These are framework-agnostic. Use adapters to convert from framework-specific
formats (LangChain, etc.) to these types.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ToolCall(BaseModel):
    """A request, emitted by the model, to execute a named tool."""

    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    """One turn of the conversation.

    Attributes:
        role: The role of the message sender (user, assistant, tool, system).
        content: The text content of the message. May be empty for assistant
            messages that only carry tool calls.
        tool_calls: Tool invocations requested by an assistant message.
        tool_call_id: ID of the tool call a tool message answers.
        is_error: Set on tool messages whose content is an error report
            rather than a tool result.
    """

    role: Literal["user", "assistant", "tool", "system"]
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None
    is_error: bool = False

    @model_validator(mode="after")
    def _check_role_fields(self) -> "Message":
        if self.tool_calls and self.role != "assistant":
            raise ValueError("tool_calls are only allowed on assistant messages")
        if self.role == "tool":
            if not self.tool_call_id:
                raise ValueError("tool messages require a tool_call_id")
        elif self.tool_call_id is not None:
            raise ValueError("tool_call_id is only allowed on tool messages")
        if self.is_error and self.role != "tool":
            raise ValueError("is_error is only allowed on tool messages")

        ids = [tc.id for tc in self.tool_calls]
        if len(ids) != len(set(ids)):
            raise ValueError("tool call ids must be unique within a message")
        return self

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls, content: str = "", tool_calls: list[ToolCall] | None = None
    ) -> "Message":
        return cls(role="assistant", content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool(cls, tool_call_id: str, content: str, *, is_error: bool = False) -> "Message":
        return cls(
            role="tool",
            content=content,
            tool_call_id=tool_call_id,
            is_error=is_error,
        )


class SystemMessage(BaseModel):
    """Fixed system prompt prepended to every model call.

    Never part of a thread's persisted messages, so the prompt can change
    without invalidating stored checkpoints.
    """

    model_config = ConfigDict(frozen=True)

    role: Literal["system"] = "system"
    content: str

    def as_message(self) -> Message:
        """Return the prompt as a plain system-role Message."""
        return Message(role="system", content=self.content)
