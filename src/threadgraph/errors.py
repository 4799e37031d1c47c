"""Typed errors surfaced by the engine.

Every error raised out of :meth:`GraphEngine.run` is an :class:`EngineError`.
The ``kind`` attribute lets callers decide between retry, abort and alert
without matching on classes.
"""


class EngineError(Exception):
    """Base class for all engine errors."""

    kind = "engine"


class ModelInvocationError(EngineError):
    """The model call failed, timed out or returned an unusable response."""

    kind = "model"


class ToolInvocationError(EngineError):
    """A tool call failed and the dispatch policy treats it as fatal."""

    kind = "tool"

    def __init__(
        self,
        message: str,
        *,
        tool_name: str,
        tool_call_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.tool_call_id = tool_call_id


class StepBudgetExceeded(EngineError):
    """The agent/tools loop ran past its configured number of round trips."""

    kind = "budget"

    def __init__(self, limit: int, thread_id: str | None = None) -> None:
        super().__init__(
            f"Thread {thread_id!r} exceeded the limit of {limit} agent/tool round trips"
        )
        self.limit = limit
        self.thread_id = thread_id


class StorageError(EngineError):
    """A checkpoint could not be read or written."""

    kind = "storage"


class GraphStateError(EngineError):
    """The thread's state does not allow the requested transition."""

    kind = "state"
