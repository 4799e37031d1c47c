from threadgraph.checkpoint import (
    Checkpointer,
    FileCheckpointer,
    InMemoryCheckpointer,
    KuzuCheckpointer,
)
from threadgraph.config import ThreadGraphConfig
from threadgraph.errors import (
    EngineError,
    GraphStateError,
    ModelInvocationError,
    StepBudgetExceeded,
    StorageError,
    ToolInvocationError,
)
from threadgraph.graph import GraphEngine
from threadgraph.messages import Message, SystemMessage, ToolCall
from threadgraph.models import ChatModel, OpenAIChatModel
from threadgraph.nodes import AgentNode, ToolErrorPolicy, ToolNode
from threadgraph.retry import RetryPolicy
from threadgraph.router import NodeId, Route, next_node_for, route
from threadgraph.state import Checkpoint, State, reduce
from threadgraph.threadgraph import ThreadGraph
from threadgraph.tools import ToolDefinition, ToolRegistry, ToolSpec, tool

__all__ = [
    # Main class
    "ThreadGraph",
    # Config
    "ThreadGraphConfig",
    # Messages and state
    "Message",
    "SystemMessage",
    "ToolCall",
    "State",
    "Checkpoint",
    "reduce",
    # Graph
    "GraphEngine",
    "NodeId",
    "Route",
    "route",
    "next_node_for",
    # Nodes
    "AgentNode",
    "ToolNode",
    "ToolErrorPolicy",
    "RetryPolicy",
    # Tools
    "ToolDefinition",
    "ToolRegistry",
    "ToolSpec",
    "tool",
    # Models
    "ChatModel",
    "OpenAIChatModel",
    # Checkpoints
    "Checkpointer",
    "InMemoryCheckpointer",
    "FileCheckpointer",
    "KuzuCheckpointer",
    # Errors
    "EngineError",
    "ModelInvocationError",
    "ToolInvocationError",
    "StepBudgetExceeded",
    "StorageError",
    "GraphStateError",
]
