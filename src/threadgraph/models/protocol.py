from typing import Protocol

from threadgraph.messages import Message, SystemMessage
from threadgraph.tools.registry import ToolSpec


class ChatModel(Protocol):
    """Protocol for the language-model client driving the agent node."""

    async def invoke(
        self,
        system_message: SystemMessage,
        messages: list[Message],
        tool_catalog: list[ToolSpec],
    ) -> Message:
        """Produce the next assistant message for a conversation.

        Args:
            system_message: Fixed system prompt, sent before ``messages``.
            messages: The thread's transcript.
            tool_catalog: Declarations of the tools the model may call.

        Returns:
            An assistant Message carrying text and/or tool calls.

        Raises:
            ModelInvocationError: If the provider call fails or its response
                cannot be parsed.
        """
        ...
