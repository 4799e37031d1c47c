import asyncio
import logging

from threadgraph.errors import ModelInvocationError
from threadgraph.messages import Message, SystemMessage
from threadgraph.models.protocol import ChatModel
from threadgraph.retry import RetryPolicy
from threadgraph.state import State
from threadgraph.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class AgentNode:
    """Asks the model for the next assistant message.

    The system message is prepended to the model call only; the returned delta
    is always exactly one assistant message.
    """

    def __init__(
        self,
        model: ChatModel,
        registry: ToolRegistry,
        system_message: SystemMessage,
        timeout: float = 60.0,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._model = model
        self._registry = registry
        self._system_message = system_message
        self._timeout = timeout
        self._retry_policy = retry_policy or RetryPolicy()

    async def __call__(self, state: State) -> list[Message]:
        catalog = self._registry.catalog()
        messages = list(state.messages)

        async def _attempt() -> Message:
            try:
                response = await asyncio.wait_for(
                    self._model.invoke(self._system_message, messages, catalog),
                    timeout=self._timeout,
                )
            except TimeoutError as exc:
                raise ModelInvocationError(
                    f"Model call timed out after {self._timeout}s"
                ) from exc
            except ModelInvocationError:
                raise
            except Exception as exc:
                raise ModelInvocationError(f"Model call failed: {exc}") from exc

            if not isinstance(response, Message) or response.role != "assistant":
                raise ModelInvocationError(
                    f"Model returned {getattr(response, 'role', type(response).__name__)!r}, "
                    "expected an assistant message"
                )
            return response

        response = await self._retry_policy.call(_attempt)
        logger.debug(
            "agent produced message tool_calls=%d content_chars=%d",
            len(response.tool_calls),
            len(response.content),
        )
        return [response]
