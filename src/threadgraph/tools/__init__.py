from threadgraph.tools.registry import ToolDefinition, ToolRegistry, ToolSpec, tool

__all__ = [
    "ToolDefinition",
    "ToolRegistry",
    "ToolSpec",
    "tool",
]
