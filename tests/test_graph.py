import asyncio
import gc

import pytest

from threadgraph.checkpoint.memory import InMemoryCheckpointer
from threadgraph.errors import (
    GraphStateError,
    ModelInvocationError,
    StepBudgetExceeded,
    StorageError,
    ToolInvocationError,
)
from threadgraph.messages import Message, ToolCall
from threadgraph.nodes.tools import ToolErrorPolicy
from threadgraph.state import State

from .conftest import LoopingModel, ScriptedModel, mark_price_script


class RecordingCheckpointer(InMemoryCheckpointer):
    """In-memory store that remembers every write."""

    def __init__(self) -> None:
        super().__init__()
        self.writes: list[tuple[str, int, str | None, int]] = []

    async def put(self, thread_id, state, *, step=0, node=None):
        self.writes.append((thread_id, step, node, len(state.messages)))
        return await super().put(thread_id, state, step=step, node=node)


class SimulatedCrash(BaseException):
    """Stands in for the process being killed; nothing in the engine catches it."""


class BrokenCheckpointer(InMemoryCheckpointer):
    async def put(self, thread_id, state, *, step=0, node=None):
        raise OSError("disk full")


class TestRun:
    """Test GraphEngine.run."""

    async def test_mark_price_conversation(self, make_engine, checkpointer) -> None:
        """User question -> tool call -> tool result -> final answer."""
        model = ScriptedModel(mark_price_script())
        engine = make_engine(model)

        state = await engine.run("t1", "What is the mark price of BTC?")

        roles = [m.role for m in state.messages]
        assert roles == ["user", "assistant", "tool", "assistant"]
        assert state.messages[2] == Message.tool("call_1", "67000")
        assert state.last_message == Message.assistant("BTC is trading at 67000")
        assert await checkpointer.get("t1") == state

    async def test_second_model_call_sees_tool_result(self, make_engine) -> None:
        model = ScriptedModel(mark_price_script())
        engine = make_engine(model)

        await engine.run("t1", "What is the mark price of BTC?")

        _, second_history, _ = model.calls[1]
        assert second_history[-1].role == "tool"
        assert second_history[-1].content == "67000"

    async def test_plain_answer_ends_after_one_agent_step(self, make_engine) -> None:
        model = ScriptedModel([Message.assistant("Hello!")])
        engine = make_engine(model)

        state = await engine.run("t1", "Hi")

        assert [m.role for m in state.messages] == ["user", "assistant"]
        assert len(model.calls) == 1

    async def test_system_message_never_persisted(self, make_engine, checkpointer) -> None:
        engine = make_engine(ScriptedModel(mark_price_script()))

        await engine.run("t1", "What is the mark price of BTC?")

        stored = await checkpointer.get("t1")
        assert all(m.role != "system" for m in stored.messages)

    async def test_follow_up_extends_thread(self, make_engine) -> None:
        model = ScriptedModel([Message.assistant("Hello!"), Message.assistant("Bye!")])
        engine = make_engine(model)

        await engine.run("t1", "Hi")
        state = await engine.run("t1", Message.user("Goodbye"))

        assert [m.content for m in state.messages] == ["Hi", "Hello!", "Goodbye", "Bye!"]

    async def test_checkpoint_after_every_node(self, make_engine) -> None:
        store = RecordingCheckpointer()
        engine = make_engine(ScriptedModel(mark_price_script()), store=store)

        await engine.run("t1", "What is the mark price of BTC?")

        assert store.writes == [
            ("t1", 1, None, 1),
            ("t1", 2, "agent", 2),
            ("t1", 3, "tools", 3),
            ("t1", 4, "agent", 4),
        ]
        checkpoint = await store.get_checkpoint("t1")
        assert checkpoint.step == 4
        assert checkpoint.node == "agent"

    async def test_refuses_new_message_with_unanswered_tool_calls(
        self, make_engine, checkpointer
    ) -> None:
        await checkpointer.put(
            "t1",
            State(
                messages=[
                    Message.user("price?"),
                    Message.assistant(tool_calls=[ToolCall(id="c1", name="noop")]),
                ]
            ),
        )
        engine = make_engine(ScriptedModel([]))

        with pytest.raises(GraphStateError, match="resume"):
            await engine.run("t1", "hello?")

    async def test_rejects_stray_tool_message(self, make_engine, checkpointer) -> None:
        """A tool result answering no call never reaches the checkpoint."""
        engine = make_engine(ScriptedModel([Message.assistant("never asked")]))

        with pytest.raises(GraphStateError, match="user message"):
            await engine.run("t1", Message.tool("ghost", "stray"))

        assert await checkpointer.get_checkpoint("t1") is None

    async def test_rejects_assistant_message(self, make_engine, checkpointer) -> None:
        engine = make_engine(ScriptedModel([]))
        stray = Message.assistant(tool_calls=[ToolCall(id="c1", name="noop")])

        with pytest.raises(GraphStateError, match="'assistant'"):
            await engine.run("t1", stray)

        assert await checkpointer.get_checkpoint("t1") is None
        # The thread remains usable.
        engine = make_engine(ScriptedModel([Message.assistant("hi")]))
        state = await engine.run("t1", Message.user("hello"))
        assert [m.role for m in state.messages] == ["user", "assistant"]


class TestStepBudget:
    """Test the round-trip limit."""

    async def test_looping_model_hits_budget(self, make_engine, checkpointer) -> None:
        model = LoopingModel()
        engine = make_engine(model, max_round_trips=3)

        with pytest.raises(StepBudgetExceeded) as info:
            await engine.run("t1", "loop forever")

        assert info.value.limit == 3
        assert info.value.kind == "budget"
        assert model.calls == 4
        stored = await checkpointer.get("t1")
        assert sum(1 for m in stored.messages if m.role == "tool") == 3

    async def test_zero_budget_allows_plain_answers(self, make_engine) -> None:
        engine = make_engine(ScriptedModel([Message.assistant("ok")]), max_round_trips=0)

        state = await engine.run("t1", "hi")

        assert state.last_message.content == "ok"

    def test_negative_budget_rejected(self, make_engine) -> None:
        with pytest.raises(ValueError):
            make_engine(ScriptedModel([]), max_round_trips=-1)


class TestErrors:
    """Test error propagation."""

    async def test_model_error_propagates_and_keeps_checkpoint(
        self, make_engine, checkpointer
    ) -> None:
        def explode(messages):
            raise ModelInvocationError("provider down")

        engine = make_engine(ScriptedModel([explode]))

        with pytest.raises(ModelInvocationError, match="provider down"):
            await engine.run("t1", "hi")

        stored = await checkpointer.get("t1")
        assert stored.messages == [Message.user("hi")]

    async def test_tool_error_under_raise_policy(self, make_engine, checkpointer) -> None:
        model = ScriptedModel(
            [Message.assistant(tool_calls=[ToolCall(id="c1", name="missing_tool")])]
        )
        engine = make_engine(model, error_policy=ToolErrorPolicy.RAISE)

        with pytest.raises(ToolInvocationError):
            await engine.run("t1", "hi")

        stored = await checkpointer.get("t1")
        assert stored.last_message.role == "assistant"

    async def test_tool_error_reported_to_model(self, make_engine) -> None:
        model = ScriptedModel(
            [
                Message.assistant(tool_calls=[ToolCall(id="c1", name="missing_tool")]),
                Message.assistant("Sorry, I cannot do that."),
            ]
        )
        engine = make_engine(model)

        state = await engine.run("t1", "hi")

        assert state.messages[2].is_error is True
        assert state.last_message.content == "Sorry, I cannot do that."

    async def test_storage_failure_is_storage_error(self, make_engine) -> None:
        engine = make_engine(ScriptedModel([]), store=BrokenCheckpointer())

        with pytest.raises(StorageError, match="disk full"):
            await engine.run("t1", "hi")

    async def test_orphaned_checkpoint_rejected(self, make_engine, checkpointer) -> None:
        await checkpointer.put("t1", State(messages=[Message.tool("ghost", "??")]))
        engine = make_engine(ScriptedModel([]))

        with pytest.raises(StorageError, match="unknown tool calls"):
            await engine.get_state("t1")


class TestResume:
    """Test crash recovery."""

    async def test_resume_after_tools_checkpoint(self, make_engine, checkpointer) -> None:
        """Crash after the tools checkpoint, restart, resume to the same end state."""
        uninterrupted = await make_engine(
            ScriptedModel(mark_price_script()), store=InMemoryCheckpointer()
        ).run("ref", "What is the mark price of BTC?")

        script = mark_price_script()

        def crash(messages):
            raise SimulatedCrash  # process dies before the second agent step

        first = make_engine(ScriptedModel([script[0], crash]))
        with pytest.raises(SimulatedCrash):
            await first.run("t1", "What is the mark price of BTC?")

        crashed = await checkpointer.get_checkpoint("t1")
        assert crashed.node == "tools"
        assert crashed.state.last_message.role == "tool"

        restarted = make_engine(ScriptedModel([script[1]]))
        state = await restarted.resume("t1")

        assert state == uninterrupted

    async def test_resume_pending_tool_calls(self, make_engine, checkpointer) -> None:
        await checkpointer.put(
            "t1",
            State(
                messages=[
                    Message.user("price?"),
                    Message.assistant(
                        tool_calls=[
                            ToolCall(id="call_1", name="get_mark_price", args={"coin": "ETH"})
                        ]
                    ),
                ]
            ),
            step=2,
            node="agent",
        )
        engine = make_engine(ScriptedModel([Message.assistant("ETH is at 3500")]))

        state = await engine.resume("t1")

        assert state.messages[2] == Message.tool("call_1", "3500")
        assert state.last_message.content == "ETH is at 3500"
        assert (await checkpointer.get_checkpoint("t1")).step == 4

    async def test_resume_finished_thread_is_noop(self, make_engine, checkpointer) -> None:
        done = State(messages=[Message.user("hi"), Message.assistant("hello")])
        await checkpointer.put("t1", done)
        model = ScriptedModel([])

        state = await make_engine(model).resume("t1")

        assert state == done
        assert model.calls == []

    async def test_resume_unknown_thread(self, make_engine) -> None:
        with pytest.raises(GraphStateError, match="No checkpoint"):
            await make_engine(ScriptedModel([])).resume("nope")


class TestConcurrency:
    """Test scheduling across and within threads."""

    async def test_threads_progress_independently(self, make_engine) -> None:
        gate = asyncio.Event()

        class GatedModel:
            async def invoke(self, system_message, messages, tool_catalog):
                if messages[0].content == "slow":
                    await gate.wait()
                return Message.assistant(f"re: {messages[0].content}")

        engine = make_engine(GatedModel())
        slow = asyncio.create_task(engine.run("slow-thread", "slow"))
        fast = await engine.run("fast-thread", "fast")

        assert fast.last_message.content == "re: fast"
        assert not slow.done()
        gate.set()
        assert (await slow).last_message.content == "re: slow"

    async def test_same_thread_steps_are_serialised(self, make_engine) -> None:
        active = 0
        peak = 0

        class TrackingModel:
            async def invoke(self, system_message, messages, tool_catalog):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1
                return Message.assistant("ok")

        engine = make_engine(TrackingModel())

        await asyncio.gather(*(engine.run("t1", f"msg {i}") for i in range(3)))

        assert peak == 1
        state = await engine.get_state("t1")
        assert [m.role for m in state.messages] == ["user", "assistant"] * 3

    async def test_cancellation_discards_in_flight_node(
        self, make_engine, checkpointer
    ) -> None:
        started = asyncio.Event()

        class HangingModel:
            async def invoke(self, system_message, messages, tool_catalog):
                started.set()
                await asyncio.sleep(10)
                return Message.assistant("never")

        engine = make_engine(HangingModel())
        task = asyncio.create_task(engine.run("t1", "hi"))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        stored = await checkpointer.get_checkpoint("t1")
        assert stored.state.messages == [Message.user("hi")]
        assert stored.step == 1

    async def test_thread_locks_released_after_use(self, make_engine) -> None:
        engine = make_engine(ScriptedModel([Message.assistant("a"), Message.assistant("b")]))

        await engine.run("t1", "hello")
        await engine.run("t2", "hello")
        gc.collect()

        assert "t1" not in engine._locks
        assert "t2" not in engine._locks

    async def test_delete_waits_for_in_flight_run(self, make_engine, checkpointer) -> None:
        gate = asyncio.Event()

        class GatedModel:
            async def invoke(self, system_message, messages, tool_catalog):
                await gate.wait()
                return Message.assistant("done")

        engine = make_engine(GatedModel())
        running = asyncio.create_task(engine.run("t1", "hi"))
        await asyncio.sleep(0)
        deleting = asyncio.create_task(engine.delete_thread("t1"))
        await asyncio.sleep(0.01)

        assert not deleting.done()
        gate.set()
        await running

        assert await deleting is True
        assert await checkpointer.get_checkpoint("t1") is None
        gc.collect()
        assert "t1" not in engine._locks


class TestImportMessages:
    """Test seeding a thread from an existing transcript."""

    async def test_import_then_continue(self, make_engine, checkpointer) -> None:
        engine = make_engine(ScriptedModel([Message.assistant("Welcome back")]))
        history = [
            Message(role="system", content="old prompt"),
            Message.user("hi"),
            Message.assistant("hello"),
        ]

        imported = await engine.import_messages("t1", history)
        state = await engine.run("t1", "I'm back")

        assert [m.role for m in imported.messages] == ["user", "assistant"]
        assert state.last_message.content == "Welcome back"

    async def test_import_rejects_orphans(self, make_engine) -> None:
        engine = make_engine(ScriptedModel([]))

        with pytest.raises(GraphStateError):
            await engine.import_messages("t1", [Message.tool("ghost", "??")])
