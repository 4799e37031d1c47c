from threadgraph.models.openai import OpenAIChatModel
from threadgraph.models.protocol import ChatModel

__all__ = [
    "ChatModel",
    "OpenAIChatModel",
]
