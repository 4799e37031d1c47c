"""Routing between graph nodes.

Routing is a pure function of State: it has no hidden state, so the same
decision can be re-derived after a restart from a checkpoint alone.
"""

from collections.abc import Callable
from enum import Enum

from threadgraph.state import State


class NodeId(str, Enum):
    """Positions in the graph. START and END are not runnable nodes."""

    START = "start"
    AGENT = "agent"
    TOOLS = "tools"
    END = "end"


class Route(str, Enum):
    """Routing decision returned after a node has run."""

    TOOLS = "tools"
    CONTINUE = "continue-to-agent"
    END = "end"


def route(state: State) -> Route:
    """Decide what follows the agent node.

    TOOLS when the last message is an assistant message carrying at least one
    tool call, END otherwise.
    """
    last = state.last_message
    if last is not None and last.role == "assistant" and last.tool_calls:
        return Route.TOOLS
    return Route.END


def route_after_tools(state: State) -> Route:
    """The tools node always hands control back to the agent."""
    return Route.CONTINUE


ROUTERS: dict[NodeId, Callable[[State], Route]] = {
    NodeId.AGENT: route,
    NodeId.TOOLS: route_after_tools,
}

EDGES: dict[tuple[NodeId, Route], NodeId] = {
    (NodeId.AGENT, Route.TOOLS): NodeId.TOOLS,
    (NodeId.AGENT, Route.END): NodeId.END,
    (NodeId.TOOLS, Route.CONTINUE): NodeId.AGENT,
}

ENTRY_NODE = NodeId.AGENT


def next_node(node: NodeId, state: State) -> NodeId:
    """Evaluate ``node``'s router on ``state`` and follow the edge map."""
    decision = ROUTERS[node](state)
    try:
        return EDGES[(node, decision)]
    except KeyError:
        raise ValueError(f"No edge from {node.value!r} on {decision.value!r}") from None


def next_node_for(state: State) -> NodeId:
    """Where a thread restored from ``state`` should continue.

    A trailing user, system or tool message means the agent has not yet seen
    the latest input. A trailing assistant message is routed as if the agent
    had just run. An empty transcript has nothing to do.
    """
    last = state.last_message
    if last is None:
        return NodeId.END
    if last.role == "assistant":
        return next_node(NodeId.AGENT, state)
    return NodeId.AGENT
