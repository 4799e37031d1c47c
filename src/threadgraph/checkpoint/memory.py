"""Process-local checkpointer for tests and single-process use."""

from threadgraph.state import Checkpoint, State


class InMemoryCheckpointer:
    """Keeps checkpoints in a dict. Nothing survives the process.

    Copies on the way in and out so callers can never alias stored state.
    """

    def __init__(self) -> None:
        self._checkpoints: dict[str, Checkpoint] = {}

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def put(
        self,
        thread_id: str,
        state: State,
        *,
        step: int = 0,
        node: str | None = None,
    ) -> Checkpoint:
        checkpoint = Checkpoint(
            thread_id=thread_id,
            state=state.model_copy(deep=True),
            step=step,
            node=node,
        )
        self._checkpoints[thread_id] = checkpoint
        return checkpoint.model_copy(deep=True)

    async def get(self, thread_id: str) -> State | None:
        checkpoint = await self.get_checkpoint(thread_id)
        return checkpoint.state if checkpoint else None

    async def get_checkpoint(self, thread_id: str) -> Checkpoint | None:
        checkpoint = self._checkpoints.get(thread_id)
        return checkpoint.model_copy(deep=True) if checkpoint else None

    async def delete(self, thread_id: str) -> bool:
        return self._checkpoints.pop(thread_id, None) is not None

    async def list_threads(self) -> list[str]:
        return sorted(self._checkpoints)
