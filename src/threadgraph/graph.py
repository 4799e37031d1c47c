"""The graph engine: node table, edge map and the per-thread step loop.

Each step runs one node, reduces its delta into state, persists a checkpoint
and only then evaluates the router. Because the checkpoint follows every
node, a thread can be resumed mid-conversation after a crash with
:meth:`GraphEngine.resume`.
"""

import asyncio
import logging
import weakref
from collections.abc import Awaitable, Callable

from threadgraph.checkpoint.protocol import Checkpointer
from threadgraph.errors import GraphStateError, StepBudgetExceeded, StorageError
from threadgraph.messages import Message
from threadgraph.router import ENTRY_NODE, NodeId, next_node, next_node_for
from threadgraph.state import Checkpoint, State, reduce

logger = logging.getLogger(__name__)

Node = Callable[[State], Awaitable[list[Message]]]


class GraphEngine:
    """Drives threads through the agent/tools graph.

    Steps for one thread never overlap: each thread id has its own lock.
    Different threads proceed concurrently and share nothing but the
    checkpointer.
    """

    def __init__(
        self,
        agent: Node,
        tools: Node,
        checkpointer: Checkpointer,
        max_round_trips: int = 10,
        name: str = "threadgraph",
    ) -> None:
        if max_round_trips < 0:
            raise ValueError("max_round_trips must be non-negative")
        self.name = name
        self._nodes: dict[NodeId, Node] = {
            NodeId.AGENT: agent,
            NodeId.TOOLS: tools,
        }
        self._checkpointer = checkpointer
        self._max_round_trips = max_round_trips
        # Entries vanish once no run holds or awaits the lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def checkpointer(self) -> Checkpointer:
        return self._checkpointer

    def _lock(self, thread_id: str) -> asyncio.Lock:
        lock = self._locks.get(thread_id)
        if lock is None:
            lock = self._locks[thread_id] = asyncio.Lock()
        return lock

    async def get_state(self, thread_id: str) -> State | None:
        """Return the thread's last persisted state."""
        checkpoint = await self._load(thread_id)
        return checkpoint.state if checkpoint else None

    async def delete_thread(self, thread_id: str) -> bool:
        """Evict a thread's checkpoint once no step of it is in flight."""
        async with self._lock(thread_id):
            try:
                deleted = await self._checkpointer.delete(thread_id)
            except StorageError:
                raise
            except Exception as exc:
                raise StorageError(f"Cannot delete checkpoint for {thread_id!r}: {exc}") from exc
        logger.info("deleted thread_id=%s", thread_id)
        return deleted

    async def run(self, thread_id: str, user_message: str | Message) -> State:
        """Append a user message to the thread and run it to completion.

        Starts a new thread when no checkpoint exists for ``thread_id``.

        Raises:
            GraphStateError: If the thread stopped between an agent step and
                its tool dispatch; call :meth:`resume` first. Also raised when
                ``user_message`` is not a user-role message.
            EngineError: Any node, budget or storage failure.
        """
        if isinstance(user_message, str):
            user_message = Message.user(user_message)
        elif user_message.role != "user":
            raise GraphStateError(
                f"run() takes a user message, got role {user_message.role!r}"
            )

        async with self._lock(thread_id):
            checkpoint = await self._load(thread_id)
            state = checkpoint.state if checkpoint else State()
            step = checkpoint.step if checkpoint else 0

            if state.pending_tool_calls():
                raise GraphStateError(
                    f"Thread {thread_id!r} has unanswered tool calls; resume it first"
                )

            state = reduce(state, [user_message])
            step += 1
            await self._persist(thread_id, state, step, None)
            logger.info("run thread_id=%s graph=%s", thread_id, self.name)
            return await self._drive(thread_id, state, step, ENTRY_NODE)

    async def import_messages(self, thread_id: str, messages: list[Message]) -> State:
        """Append an existing transcript to a thread without running any node.

        System messages are dropped: the system prompt is supplied by the agent
        node and never stored.

        Raises:
            GraphStateError: If the result would contain tool messages that
                answer no earlier tool call.
        """
        async with self._lock(thread_id):
            checkpoint = await self._load(thread_id)
            state = checkpoint.state if checkpoint else State()
            step = checkpoint.step if checkpoint else 0

            state = reduce(state, [m for m in messages if m.role != "system"])
            if state.orphan_tool_messages():
                raise GraphStateError(
                    "Imported transcript has tool messages answering unknown tool calls"
                )
            await self._persist(thread_id, state, step + 1, None)
            return state

    async def resume(self, thread_id: str) -> State:
        """Continue a thread from its last checkpoint.

        The next node is re-derived from the stored state. A thread that had
        already reached the end is returned unchanged.

        Raises:
            GraphStateError: If there is no checkpoint for ``thread_id``.
        """
        async with self._lock(thread_id):
            checkpoint = await self._load(thread_id)
            if checkpoint is None:
                raise GraphStateError(f"No checkpoint for thread {thread_id!r}")
            start = next_node_for(checkpoint.state)
            logger.info(
                "resume thread_id=%s step=%d next=%s",
                thread_id,
                checkpoint.step,
                start.value,
            )
            return await self._drive(thread_id, checkpoint.state, checkpoint.step, start)

    async def _drive(
        self, thread_id: str, state: State, step: int, node: NodeId
    ) -> State:
        round_trips = 0
        while node is not NodeId.END:
            if node is NodeId.TOOLS:
                round_trips += 1
                if round_trips > self._max_round_trips:
                    logger.warning(
                        "step budget exhausted thread_id=%s limit=%d",
                        thread_id,
                        self._max_round_trips,
                    )
                    raise StepBudgetExceeded(self._max_round_trips, thread_id)

            # The delta is applied only once the node returns; a failed or
            # cancelled node leaves the last checkpoint untouched.
            delta = await self._nodes[node](state)
            state = reduce(state, delta)
            step += 1
            await self._persist(thread_id, state, step, node)

            following = next_node(node, state)
            logger.debug(
                "transition thread_id=%s step=%d %s -> %s",
                thread_id,
                step,
                node.value,
                following.value,
            )
            node = following
        return state

    async def _load(self, thread_id: str) -> Checkpoint | None:
        try:
            checkpoint = await self._checkpointer.get_checkpoint(thread_id)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Cannot load checkpoint for {thread_id!r}: {exc}") from exc
        if checkpoint is None:
            return None
        orphans = checkpoint.state.orphan_tool_messages()
        if orphans:
            raise StorageError(
                f"Checkpoint for {thread_id!r} has {len(orphans)} tool message(s) "
                "answering unknown tool calls"
            )
        return checkpoint

    async def _persist(
        self, thread_id: str, state: State, step: int, node: NodeId | None
    ) -> None:
        # Shielded so a cancelled caller cannot interrupt a write half way.
        try:
            await asyncio.shield(
                self._checkpointer.put(
                    thread_id,
                    state,
                    step=step,
                    node=node.value if node else None,
                )
            )
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Cannot persist checkpoint for {thread_id!r}: {exc}") from exc
        logger.debug("checkpoint thread_id=%s step=%d", thread_id, step)
