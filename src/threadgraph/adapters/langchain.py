"""LangChain message adapter.

Maps LangChain chat messages onto threadgraph Messages by their ``type``
discriminator ("human", "ai", "system", "tool") and back, so a LangChain
transcript can seed a thread and a thread can be handed back to LangChain.
"""

from typing import TYPE_CHECKING, Any
from uuid import uuid4

from threadgraph.messages import Message, ToolCall

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

_ROLE_BY_TYPE = {
    "human": "user",
    "ai": "assistant",
    "system": "system",
    "tool": "tool",
}


class LangChainAdapter:
    """Converts between LangChain messages and threadgraph Messages.

    Usage:
        ```python
        from threadgraph.adapters.langchain import LangChainAdapter

        adapter = LangChainAdapter()
        await tg.import_messages("thread-1", adapter.convert(history))
        ```
    """

    def convert(self, messages: list["BaseMessage"]) -> list[Message]:
        return [self.convert_single(msg) for msg in messages]

    def convert_single(self, message: "BaseMessage") -> Message:
        """Convert one LangChain message; unrecognised types become user input."""
        role = _ROLE_BY_TYPE.get(message.type, "user")
        content = _text_of(message.content)

        if role == "assistant":
            calls = getattr(message, "tool_calls", None) or []
            return Message.assistant(
                content=content,
                tool_calls=[
                    ToolCall(
                        id=tc.get("id") or f"call_{uuid4().hex[:24]}",
                        name=tc["name"],
                        args=tc.get("args") or {},
                    )
                    for tc in calls
                ],
            )
        if role == "tool":
            return Message.tool(
                message.tool_call_id,
                content,
                is_error=getattr(message, "status", None) == "error",
            )
        return Message(role=role, content=content)

    def to_langchain(self, messages: list[Message]) -> list["BaseMessage"]:
        """Convert threadgraph Messages to LangChain messages."""
        from langchain_core.messages import (
            AIMessage,
            HumanMessage,
            SystemMessage,
            ToolMessage,
        )

        result: list["BaseMessage"] = []
        for msg in messages:
            if msg.role == "assistant":
                result.append(
                    AIMessage(
                        content=msg.content,
                        tool_calls=[
                            {"id": tc.id, "name": tc.name, "args": tc.args}
                            for tc in msg.tool_calls
                        ],
                    )
                )
            elif msg.role == "tool":
                result.append(
                    ToolMessage(
                        content=msg.content,
                        tool_call_id=msg.tool_call_id,
                        status="error" if msg.is_error else "success",
                    )
                )
            elif msg.role == "system":
                result.append(SystemMessage(content=msg.content))
            else:
                result.append(HumanMessage(content=msg.content))
        return result


def _text_of(content: Any) -> str:
    # Multimodal content is a list of blocks; only text survives.
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            block if isinstance(block, str) else block.get("text", "")
            for block in content
            if isinstance(block, str)
            or (isinstance(block, dict) and block.get("type") == "text")
        ]
        return "\n".join(parts)
    return str(content)
