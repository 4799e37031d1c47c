from threadgraph.nodes.agent import AgentNode
from threadgraph.nodes.tools import ToolErrorPolicy, ToolNode

__all__ = [
    "AgentNode",
    "ToolErrorPolicy",
    "ToolNode",
]
