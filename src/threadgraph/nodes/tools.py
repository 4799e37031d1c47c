import asyncio
import logging
from enum import Enum

from threadgraph.errors import GraphStateError, ToolInvocationError
from threadgraph.messages import Message, ToolCall
from threadgraph.state import State
from threadgraph.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolErrorPolicy(str, Enum):
    """What the dispatch node does when a tool call cannot produce a result.

    REPORT turns the failure into an error tool message the model sees on its
    next turn. RAISE aborts the step with ToolInvocationError.
    """

    REPORT = "report"
    RAISE = "raise"


class ToolNode:
    """Executes every tool call of the trailing assistant message.

    Emits one tool message per call, in call order, regardless of the order in
    which concurrent invocations complete.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        timeout: float = 30.0,
        error_policy: ToolErrorPolicy = ToolErrorPolicy.REPORT,
        parallel: bool = True,
    ) -> None:
        self._registry = registry
        self._timeout = timeout
        self._error_policy = ToolErrorPolicy(error_policy)
        self._parallel = parallel

    async def __call__(self, state: State) -> list[Message]:
        last = state.last_message
        if last is None or last.role != "assistant":
            raise GraphStateError(
                "Tool dispatch requires the last message to be an assistant message"
            )

        if not self._parallel:
            return [await self._dispatch(tc) for tc in last.tool_calls]

        # A failing call cancels its siblings before the error leaves the node.
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(self._dispatch(tc)) for tc in last.tool_calls]
        except ExceptionGroup as eg:
            raise eg.exceptions[0]
        return [task.result() for task in tasks]

    async def _dispatch(self, call: ToolCall) -> Message:
        try:
            content = await self._invoke(call)
        except ToolInvocationError as exc:
            if self._error_policy is ToolErrorPolicy.RAISE:
                raise
            logger.warning(
                "tool call failed name=%s id=%s: %s", call.name, call.id, exc
            )
            return Message.tool(call.id, f"Error: {exc}", is_error=True)
        logger.debug("tool call succeeded name=%s id=%s", call.name, call.id)
        return Message.tool(call.id, content)

    async def _invoke(self, call: ToolCall) -> str:
        definition = self._registry.lookup(call.name)
        if definition is None:
            raise ToolInvocationError(
                f"unknown tool {call.name!r}",
                tool_name=call.name,
                tool_call_id=call.id,
            )
        try:
            return await asyncio.wait_for(
                definition.invoke(call.args), timeout=self._timeout
            )
        except TimeoutError as exc:
            raise ToolInvocationError(
                f"Tool {call.name!r} timed out after {self._timeout}s",
                tool_name=call.name,
                tool_call_id=call.id,
            ) from exc
        except ToolInvocationError as exc:
            exc.tool_call_id = call.id
            raise
