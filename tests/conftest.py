from collections.abc import Callable

import pytest

from threadgraph.checkpoint.memory import InMemoryCheckpointer
from threadgraph.graph import GraphEngine
from threadgraph.messages import Message, SystemMessage, ToolCall
from threadgraph.nodes.agent import AgentNode
from threadgraph.nodes.tools import ToolErrorPolicy, ToolNode
from threadgraph.state import State
from threadgraph.tools.registry import ToolDefinition, ToolRegistry, ToolSpec


class ScriptedModel:
    """Deterministic model stub.

    Replays ``responses`` in order. A callable response is called with the
    transcript it receives, which lets a test make decisions from state.
    Every call is recorded for assertions.
    """

    def __init__(
        self, responses: list[Message | Callable[[list[Message]], Message]]
    ) -> None:
        self._responses = list(responses)
        self.calls: list[tuple[SystemMessage, list[Message], list[ToolSpec]]] = []

    async def invoke(
        self,
        system_message: SystemMessage,
        messages: list[Message],
        tool_catalog: list[ToolSpec],
    ) -> Message:
        self.calls.append((system_message, list(messages), list(tool_catalog)))
        if not self._responses:
            raise AssertionError("ScriptedModel ran out of responses")
        response = self._responses.pop(0)
        if callable(response):
            return response(messages)
        return response


class LoopingModel:
    """Model stub that requests a no-op tool on every turn."""

    def __init__(self) -> None:
        self.calls = 0

    async def invoke(self, system_message, messages, tool_catalog) -> Message:
        self.calls += 1
        return Message.assistant(
            tool_calls=[ToolCall(id=f"call_{self.calls}", name="noop", args={})]
        )


def mark_price_script() -> list[Message]:
    """Two-turn script: ask for the BTC mark price, then answer with it."""
    return [
        Message.assistant(
            tool_calls=[
                ToolCall(id="call_1", name="get_mark_price", args={"coin": "BTC"})
            ]
        ),
        Message.assistant(content="BTC is trading at 67000"),
    ]


@pytest.fixture
def mark_price_tool() -> ToolDefinition:
    async def get_mark_price(coin: str) -> str:
        return {"BTC": "67000", "ETH": "3500"}[coin]

    return ToolDefinition(
        name="get_mark_price",
        handler=get_mark_price,
        description="Get the mark price of a perpetual",
        parameters={
            "type": "object",
            "properties": {"coin": {"type": "string"}},
            "required": ["coin"],
        },
    )


@pytest.fixture
def noop_tool() -> ToolDefinition:
    return ToolDefinition(name="noop", handler=lambda: "ok")


@pytest.fixture
def registry(mark_price_tool: ToolDefinition, noop_tool: ToolDefinition) -> ToolRegistry:
    return ToolRegistry([mark_price_tool, noop_tool])


@pytest.fixture
def checkpointer() -> InMemoryCheckpointer:
    return InMemoryCheckpointer()


@pytest.fixture
def system_message() -> SystemMessage:
    return SystemMessage(content="You are a trading assistant.")


@pytest.fixture
def make_engine(
    registry: ToolRegistry,
    checkpointer: InMemoryCheckpointer,
    system_message: SystemMessage,
):
    """Factory building a GraphEngine around a given model stub."""

    def _make(
        model,
        *,
        max_round_trips: int = 10,
        error_policy: ToolErrorPolicy = ToolErrorPolicy.REPORT,
        store=None,
    ) -> GraphEngine:
        return GraphEngine(
            agent=AgentNode(model, registry, system_message, timeout=5.0),
            tools=ToolNode(registry, timeout=5.0, error_policy=error_policy),
            checkpointer=store or checkpointer,
            max_round_trips=max_round_trips,
        )

    return _make


@pytest.fixture
def assistant_with_calls() -> Callable[..., State]:
    """Build a state whose last message requests the given tool calls."""

    def _build(*calls: ToolCall) -> State:
        return State(
            messages=[
                Message.user("hi"),
                Message.assistant(tool_calls=list(calls)),
            ]
        )

    return _build
