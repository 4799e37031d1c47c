"""ThreadGraph - checkpointed agent/tools loop for tool-calling models.

Usage:
    ```python
    from threadgraph import ThreadGraph, tool

    @tool
    async def get_mark_price(coin: str) -> str:
        \"\"\"Get the current mark price of a perpetual contract.\"\"\"
        ...

    async with ThreadGraph(tools=[get_mark_price]) as tg:
        state = await tg.run("thread-1", "What is the mark price of BTC?")
        print(state.last_message.content)
    ```
"""

from collections.abc import Iterable
from typing import Any

from threadgraph.checkpoint.file import FileCheckpointer
from threadgraph.checkpoint.kuzu_store import KuzuCheckpointer
from threadgraph.checkpoint.memory import InMemoryCheckpointer
from threadgraph.checkpoint.protocol import Checkpointer
from threadgraph.config import ThreadGraphConfig
from threadgraph.graph import GraphEngine
from threadgraph.messages import Message, SystemMessage
from threadgraph.models.openai import OpenAIChatModel
from threadgraph.models.protocol import ChatModel
from threadgraph.nodes.agent import AgentNode
from threadgraph.nodes.tools import ToolNode
from threadgraph.retry import RetryPolicy
from threadgraph.state import State
from threadgraph.tools.registry import ToolDefinition, ToolRegistry


class ThreadGraph:
    """Agent loop wired from configuration.

    Builds the model client, tool registry, checkpointer and graph engine from
    a ThreadGraphConfig. Each collaborator can be injected instead, which is
    how tests substitute a scripted model or an in-memory store.

    Example with a custom store:
        ```python
        from threadgraph import InMemoryCheckpointer, ThreadGraph

        async with ThreadGraph(checkpointer=InMemoryCheckpointer()) as tg:
            await tg.run("thread-1", "Hello")
        ```
    """

    def __init__(
        self,
        config: ThreadGraphConfig | None = None,
        model: ChatModel | None = None,
        tools: ToolRegistry | Iterable[ToolDefinition] | None = None,
        checkpointer: Checkpointer | None = None,
    ) -> None:
        """Initialize ThreadGraph.

        Args:
            config: Configuration settings. Uses defaults if not provided.
            model: Custom model client. Uses the OpenAI client if not provided
                (requires OPENAI_API_KEY or config.openai_api_key).
            tools: A registry, or tool definitions to build one from.
            checkpointer: Custom checkpoint store. Selected by
                config.checkpoint_store if not provided.
        """
        self._config = config or ThreadGraphConfig()

        if model:
            self._model = model
        else:
            self._model = OpenAIChatModel(
                model=self._config.model,
                temperature=self._config.temperature,
                api_key=self._config.openai_api_key,
            )

        if isinstance(tools, ToolRegistry):
            self._registry = tools
        else:
            self._registry = ToolRegistry(tools or ())

        self._checkpointer = checkpointer or self._build_checkpointer()

        self._engine = GraphEngine(
            agent=AgentNode(
                model=self._model,
                registry=self._registry,
                system_message=SystemMessage(content=self._config.system_prompt),
                timeout=self._config.model_timeout_seconds,
                retry_policy=RetryPolicy(
                    max_attempts=self._config.model_max_attempts,
                    base_delay=self._config.model_retry_base_delay,
                ),
            ),
            tools=ToolNode(
                registry=self._registry,
                timeout=self._config.tool_timeout_seconds,
                error_policy=self._config.tool_error_policy,
                parallel=self._config.parallel_tool_calls,
            ),
            checkpointer=self._checkpointer,
            max_round_trips=self._config.max_round_trips,
            name=self._config.name,
        )

    def _build_checkpointer(self) -> Checkpointer:
        if self._config.checkpoint_store == "memory":
            return InMemoryCheckpointer()
        if self._config.checkpoint_store == "file":
            return FileCheckpointer(self._config.get_checkpoint_path())
        return KuzuCheckpointer(db_path=self._config.get_checkpoint_path())

    async def __aenter__(self) -> "ThreadGraph":
        """Async context manager entry."""
        await self._checkpointer.connect()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        """Async context manager exit - closes the checkpoint store."""
        await self._checkpointer.close()

    @property
    def engine(self) -> GraphEngine:
        return self._engine

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def run(self, thread_id: str, user_message: str | Message) -> State:
        """Send a user message on a thread and return the final state."""
        return await self._engine.run(thread_id, user_message)

    async def resume(self, thread_id: str) -> State:
        """Continue an interrupted thread from its last checkpoint."""
        return await self._engine.resume(thread_id)

    async def get_state(self, thread_id: str) -> State | None:
        """Return the thread's last persisted state."""
        return await self._engine.get_state(thread_id)

    async def import_messages(self, thread_id: str, messages: list[Message]) -> State:
        """Seed a thread with an existing transcript.

        Example:
            ```python
            from threadgraph.adapters.langchain import LangChainAdapter

            adapter = LangChainAdapter()
            await tg.import_messages("thread-1", adapter.convert(langchain_messages))
            ```
        """
        return await self._engine.import_messages(thread_id, messages)

    async def delete_thread(self, thread_id: str) -> bool:
        """Evict a thread's checkpoint."""
        return await self._engine.delete_thread(thread_id)

    async def list_threads(self) -> list[str]:
        return await self._checkpointer.list_threads()
