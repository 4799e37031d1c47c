from typing import Protocol

from threadgraph.state import Checkpoint, State


class Checkpointer(Protocol):
    """Protocol for per-thread checkpoint storage.

    ``put`` must not return before the write is durable for the backend in
    question; the engine does not move past a step until it has.
    """

    async def connect(self) -> None:
        """Open the underlying store."""
        ...

    async def close(self) -> None:
        """Release the underlying store."""
        ...

    async def put(
        self,
        thread_id: str,
        state: State,
        *,
        step: int = 0,
        node: str | None = None,
    ) -> Checkpoint:
        """Replace the thread's checkpoint with ``state``.

        Raises:
            StorageError: If the write fails.
        """
        ...

    async def get(self, thread_id: str) -> State | None:
        """Return the thread's last persisted state, or None if there is none.

        Raises:
            StorageError: If the read fails.
        """
        ...

    async def get_checkpoint(self, thread_id: str) -> Checkpoint | None:
        """Return the full checkpoint record, including step metadata."""
        ...

    async def delete(self, thread_id: str) -> bool:
        """Evict a thread. Returns True if a checkpoint was removed."""
        ...

    async def list_threads(self) -> list[str]:
        """Return the ids of all threads with a checkpoint, sorted."""
        ...
