"""Adapters for converting framework-specific messages to threadgraph Messages.

Available adapters:
    - LangChainAdapter: Converts LangChain messages (HumanMessage, AIMessage, etc.)
"""

from threadgraph.adapters.protocol import MessageAdapter

__all__ = ["MessageAdapter"]
