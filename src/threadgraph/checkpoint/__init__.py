from threadgraph.checkpoint.file import FileCheckpointer
from threadgraph.checkpoint.kuzu_store import KuzuCheckpointer
from threadgraph.checkpoint.memory import InMemoryCheckpointer
from threadgraph.checkpoint.protocol import Checkpointer

__all__ = [
    "Checkpointer",
    "FileCheckpointer",
    "InMemoryCheckpointer",
    "KuzuCheckpointer",
]
