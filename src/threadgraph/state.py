"""Conversation state and its reducer."""

from collections.abc import Sequence
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from threadgraph.messages import Message, ToolCall


class State(BaseModel):
    """Execution context for one conversation thread.

    ``messages`` is the transcript. Its order is the order of arrival and is
    only ever extended through :func:`reduce`.
    """

    messages: list[Message] = Field(default_factory=list)

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def pending_tool_calls(self) -> list[ToolCall]:
        """Tool calls of the trailing assistant message, if any."""
        last = self.last_message
        if last is None or last.role != "assistant":
            return []
        return list(last.tool_calls)

    def orphan_tool_messages(self) -> list[Message]:
        """Tool messages whose tool_call_id was not issued by an earlier assistant message."""
        issued: set[str] = set()
        orphans: list[Message] = []
        for message in self.messages:
            if message.role == "assistant":
                issued.update(tc.id for tc in message.tool_calls)
            elif message.role == "tool" and message.tool_call_id not in issued:
                orphans.append(message)
        return orphans


def reduce(state: State, delta: Sequence[Message]) -> State:
    """Append ``delta`` to the state's messages.

    Pure and total: the input state is left untouched, nothing is reordered or
    deduplicated, and an empty delta yields an equal state.
    """
    return State(messages=[*state.messages, *delta])


class Checkpoint(BaseModel):
    """Durable snapshot of a thread's state."""

    thread_id: str
    state: State
    step: int = 0
    node: str | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
