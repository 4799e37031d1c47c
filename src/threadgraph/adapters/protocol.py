"""Protocol for message adapters."""

from typing import Any, Protocol

from threadgraph.messages import Message


class MessageAdapter(Protocol):
    """Protocol for converting framework messages to engine messages.

    Implementations convert framework-specific message types (LangChain,
    OpenAI, etc.) to the engine's Message type, so existing transcripts can
    seed a thread.
    """

    def convert(self, messages: list[Any]) -> list[Message]:
        """Convert a list of framework-specific messages to Messages.

        Args:
            messages: List of framework-specific message objects.

        Returns:
            List of Message objects.
        """
        ...

    def convert_single(self, message: Any) -> Message:
        """Convert a single framework-specific message to a Message."""
        ...
