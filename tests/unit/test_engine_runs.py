from __future__ import annotations

import asyncio

import pytest
from tests.stubs.scripted_transport import ScriptedTransport
from tests.utils.builders import contract, register_all

from swarmflow.cancellation import CancellationToken
from swarmflow.context.store import ContextStore
from swarmflow.engine.engine import ExecutionEngine
from swarmflow.enums import NodeStatus, RunState, TraceEventKind, WorkflowStatus
from swarmflow.errors import (
    ErrorKind,
    PlanError,
    RegistryFrozenError,
    SchemaValidationError,
)
from swarmflow.plan.nodes import Leaf, Loop, Parallel, Sequential
from swarmflow.registry.registry import CapabilityRegistry
from swarmflow.utilities.logger_manager import LoggerManager


@pytest.mark.asyncio
async def test_run_freezes_registry(
    engine: ExecutionEngine,
    registry: CapabilityRegistry,
    transport: ScriptedTransport,
) -> None:
    register_all(registry, "echo")
    transport.returns("echo", {"ok": True})
    await engine.run(Leaf("echo"))
    with pytest.raises(RegistryFrozenError):
        registry.register(contract("late"))


@pytest.mark.asyncio
async def test_unknown_capability_is_recorded_in_trace(engine: ExecutionEngine) -> None:
    result = await engine.run(Leaf("ghost", output_key="x"))
    assert result.status is WorkflowStatus.FAILED
    assert result.trace.error.kind is ErrorKind.CAPABILITY_NOT_FOUND
    assert result.trace.agent == "ghost"


@pytest.mark.asyncio
async def test_invalid_plans_and_contexts_are_raised(engine: ExecutionEngine) -> None:
    with pytest.raises(PlanError):
        await engine.run(Sequential([]))
    with pytest.raises(SchemaValidationError):
        await engine.run(Leaf("echo"), {"bad": {1, 2}})


@pytest.mark.asyncio
async def test_pinned_versions_are_invoked(
    engine: ExecutionEngine,
    registry: CapabilityRegistry,
    transport: ScriptedTransport,
) -> None:
    registry.register(contract("writer", version=1))
    registry.register(contract("writer", version=2))
    transport.returns("writer", "text")
    result = await engine.run(
        Sequential([Leaf("writer@1", output_key="a"), Leaf("writer", output_key="b")])
    )
    assert [call.version for call in transport.calls] == [1, 2]
    assert [c.agent for c in result.trace.children] == ["writer@1", "writer@2"]


@pytest.mark.asyncio
async def test_external_cancel_reaches_parallel_children(
    engine: ExecutionEngine,
    registry: CapabilityRegistry,
    transport: ScriptedTransport,
) -> None:
    register_all(registry, "left", "right", "after")
    transport.hangs("left")
    transport.hangs("right")
    transport.returns("after", {})
    plan = Sequential(
        [Parallel([Leaf("left", node_id="l"), Leaf("right", node_id="r")]), Leaf("after")]
    )

    handle = engine.submit(plan)
    while transport.in_flight < 2:
        await asyncio.sleep(0.005)
    assert handle.cancel() is True
    result = await handle.result()

    assert result.status is WorkflowStatus.CANCELLED
    fanout, after = result.trace.children
    assert [c.status for c in fanout.children] == [NodeStatus.CANCELLED] * 2
    assert after.status is NodeStatus.SKIPPED
    assert sorted(transport.cancelled) == ["left", "right"]
    assert transport.call_count("after") == 0
    assert result.failures()
    assert handle.status() is RunState.CANCELLED


@pytest.mark.asyncio
async def test_engine_cancel_by_run_id(
    engine: ExecutionEngine,
    registry: CapabilityRegistry,
    transport: ScriptedTransport,
) -> None:
    register_all(registry, "slow")
    transport.hangs("slow")
    handle = engine.submit(Leaf("slow"), run_id="nightly")
    while not transport.in_flight:
        await asyncio.sleep(0.005)

    assert engine.active_runs() == ("nightly",)
    assert engine.cancel("nightly") == 1
    assert (await handle.result()).status is WorkflowStatus.CANCELLED
    assert engine.active_runs() == ()
    assert engine.cancel("nightly") == 0


@pytest.mark.asyncio
async def test_pre_cancelled_token_starts_nothing(
    engine: ExecutionEngine,
    registry: CapabilityRegistry,
    transport: ScriptedTransport,
) -> None:
    register_all(registry, "echo")
    token = CancellationToken()
    token.cancel("shutdown")
    result = await engine.run(Leaf("echo"), token=token)
    assert result.status is WorkflowStatus.CANCELLED
    assert result.failures()[0][1].kind is ErrorKind.CANCELLED
    assert transport.calls == []


@pytest.mark.asyncio
async def test_progress_is_restartable(
    engine: ExecutionEngine,
    registry: CapabilityRegistry,
    transport: ScriptedTransport,
) -> None:
    register_all(registry, "critic")
    transport.sequence("critic", "REVISE", "APPROVED", delay=0.01)
    plan = Loop(
        body=Leaf("critic", output_key="verdict"),
        stop_condition=lambda context: context["verdict"] == "APPROVED",
    )
    handle = engine.submit(plan)

    first = []
    stream = handle.progress()
    async for event in stream:
        first.append(event)
        if len(first) == 2:
            break
    await stream.aclose()
    rest = [event async for event in handle.progress(first[-1].sequence + 1)]
    result = await handle.result()

    events = first + rest
    assert [e.sequence for e in events] == list(range(len(events)))
    assert (events[0].kind, events[0].node_path) == (TraceEventKind.STARTED, "root")
    assert (events[-1].kind, events[-1].status) == (
        TraceEventKind.FINISHED,
        NodeStatus.COMPLETED,
    )
    finished = [e.node_path for e in events if e.kind is TraceEventKind.FINISHED]
    assert finished == ["root#1", "root#2", "root"]
    assert result.trace.iterations == 2
    replay = [event async for event in handle.progress()]
    assert replay == events


@pytest.mark.asyncio
async def test_retries_appear_in_progress_and_trace(
    engine: ExecutionEngine,
    registry: CapabilityRegistry,
    transport: ScriptedTransport,
    logger_manager: LoggerManager,
) -> None:
    registry.register(contract("search", idempotent=True, max_retries=2))
    transport.sequence("search", RuntimeError("503"), {"hits": 1})
    handle = engine.submit(Leaf("search"))
    result = await handle.result()

    assert result.trace.attempts == 2
    retries = [
        event async for event in handle.progress() if event.kind is TraceEventKind.RETRY
    ]
    assert [e.detail["attempt"] for e in retries] == [1]
    metrics = logger_manager.get_metrics()
    assert metrics["node_executions"]["value"] == 1
    assert metrics["node_duration_seconds"]["type"] == "histogram"


@pytest.mark.asyncio
async def test_unexpected_errors_are_recorded_at_their_node(
    engine: ExecutionEngine,
    registry: CapabilityRegistry,
    transport: ScriptedTransport,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    register_all(registry, "echo", "after")
    transport.returns("echo", {"ok": True})

    def broken_commit(self, writes, *, writer, prefix=None):
        raise OSError("disk full")

    monkeypatch.setattr(ContextStore, "commit", broken_commit)
    handle = engine.submit(
        Sequential([Leaf("echo", output_key="reply"), Leaf("after", node_id="after")])
    )
    result = await asyncio.wait_for(handle.result(), 1.0)

    assert result.status is WorkflowStatus.FAILED
    [(path, error)] = result.failures()
    assert path == "root/0"
    assert error.kind is ErrorKind.INVOCATION
    assert "disk full" in error.details
    assert result.node("root/after").status is NodeStatus.SKIPPED
    assert transport.call_count("after") == 0

    events = [event async for event in handle.progress()]
    started = [e for e in events if e.kind is TraceEventKind.STARTED]
    assert [e.detail["node_kind"] for e in started] == ["sequential", "leaf"]
    assert (events[-1].node_path, events[-1].kind) == ("root", TraceEventKind.FINISHED)
