from __future__ import annotations

import asyncio

import pytest
from tests.stubs.scripted_transport import ScriptedTransport
from tests.utils.builders import register_all

from swarmflow.cancellation import CancellationToken
from swarmflow.engine.engine import ExecutionEngine
from swarmflow.engine.executor import gate_id_for
from swarmflow.engine.gates import GateController
from swarmflow.enums import (
    GateResolution,
    GateTimeoutPolicy,
    NodeStatus,
    RunState,
    WorkflowStatus,
)
from swarmflow.errors import ErrorKind
from swarmflow.plan.conditions import key_equals
from swarmflow.plan.nodes import Gate, Leaf, Loop, Sequential
from swarmflow.registry.registry import CapabilityRegistry
from swarmflow.utilities.logger_manager import LoggerManager


def _approval(**overrides) -> Gate:
    fields = {
        "then": Leaf("publish", output_key="published", node_id="publish"),
        "gate_id": "approve-release",
        "timeout": 2.0,
        "prompt": "Publish the release notes?",
        "node_id": "approval",
    }
    fields.update(overrides)
    return Gate(**fields)



async def _waiting(engine: ExecutionEngine, gate_id: str | None = None) -> str:
    return await asyncio.wait_for(engine.gates.wait_until_pending(gate_id), 1.0)

@pytest.fixture
def publishing(registry: CapabilityRegistry, transport: ScriptedTransport) -> None:
    register_all(registry, "publish")
    transport.returns("publish", {"url": "https://example.invalid/notes"})


@pytest.mark.asyncio
@pytest.mark.usefixtures("publishing")
async def test_approval_continues_with_then(
    engine: ExecutionEngine, transport: ScriptedTransport
) -> None:
    handle = engine.submit(_approval())
    gate_id = await _waiting(engine, "approve-release")

    assert handle.status() is RunState.RUNNING
    assert engine.gates.pending(gate_id).prompt == "Publish the release notes?"
    assert engine.resolve_gate(gate_id, True) is True
    assert engine.resolve_gate(gate_id, False) is False

    result = await handle.result()
    assert result.status is WorkflowStatus.COMPLETED
    assert result.trace.gate_resolution is GateResolution.APPROVED
    assert result.trace.gate_id == "approve-release"
    assert result.context["published"]["url"].endswith("/notes")
    assert engine.gates.pending_ids() == ()


@pytest.mark.asyncio
@pytest.mark.usefixtures("publishing")
async def test_rejection_cancels_and_skips_continuation(
    engine: ExecutionEngine, transport: ScriptedTransport
) -> None:
    handle = engine.submit(_approval())
    await _waiting(engine)
    engine.resolve_gate("approve-release", False)

    result = await handle.result()
    assert result.status is WorkflowStatus.CANCELLED
    assert result.trace.gate_resolution is GateResolution.REJECTED
    assert result.trace.error.kind is ErrorKind.CANCELLED
    assert result.trace.children[0].status is NodeStatus.SKIPPED
    assert transport.call_count("publish") == 0
    assert handle.status() is RunState.CANCELLED


@pytest.mark.asyncio
@pytest.mark.usefixtures("publishing")
async def test_timeout_can_proceed_by_default(
    engine: ExecutionEngine, logger_manager: LoggerManager
) -> None:
    result = await engine.run(
        _approval(timeout=0.05, on_timeout=GateTimeoutPolicy.PROCEED_DEFAULT)
    )
    assert result.status is WorkflowStatus.COMPLETED
    assert result.trace.gate_resolution is GateResolution.TIMEOUT_DEFAULT
    assert "published" in result.context
    assert logger_manager.metric_value("gate_timeouts") == 1


@pytest.mark.asyncio
@pytest.mark.usefixtures("publishing")
async def test_condition_passes_without_waiting(
    engine: ExecutionEngine,
) -> None:
    gate = _approval(condition=key_equals("review.verdict", "APPROVED"))
    result = await engine.run(gate, {"review": {"verdict": "APPROVED"}})

    assert result.trace.gate_resolution is GateResolution.CONDITION
    assert result.status is WorkflowStatus.COMPLETED


@pytest.mark.asyncio
@pytest.mark.usefixtures("publishing")
async def test_unmet_condition_waits_for_signal(engine: ExecutionEngine) -> None:
    gate = _approval(condition=key_equals("review.verdict", "APPROVED"))
    handle = engine.submit(gate, {"review": {"verdict": "REVISE"}})
    await _waiting(engine, "approve-release")
    engine.resolve_gate("approve-release", True)

    result = await handle.result()
    assert result.trace.gate_resolution is GateResolution.APPROVED


@pytest.mark.asyncio
@pytest.mark.usefixtures("publishing")
async def test_cancel_while_waiting(engine: ExecutionEngine) -> None:
    handle = engine.submit(Sequential([_approval(), Leaf("publish", node_id="again")]))
    await _waiting(engine)

    assert handle.cancel("operator abort") is True
    result = await handle.result()

    assert result.status is WorkflowStatus.CANCELLED
    gate = result.node("root/approval")
    assert gate.gate_resolution is GateResolution.CANCELLED
    assert result.trace.children[1].status is NodeStatus.SKIPPED
    assert engine.gates.pending_ids() == ()
    assert handle.cancel() is False


@pytest.mark.asyncio
async def test_derived_gate_ids_include_run_and_path(
    engine: ExecutionEngine,
) -> None:
    handle = engine.submit(Sequential([Gate(timeout=2.0)], node_id="flow"), run_id="r1")
    gate_id = await _waiting(engine)
    assert gate_id == "r1:flow/0"
    engine.resolve_gate(gate_id, True)
    assert (await handle.result()).status is WorkflowStatus.COMPLETED


@pytest.mark.asyncio
async def test_declared_gate_ids_are_scoped_to_loop_iterations(
    engine: ExecutionEngine,
) -> None:
    plan = Loop(
        body=Gate(gate_id="approve", timeout=0.3, on_timeout=GateTimeoutPolicy.CANCEL),
        stop_condition=key_equals("done", True),
        max_iterations=2,
    )
    handle = engine.submit(plan)

    await _waiting(engine, "approve#1")
    assert engine.resolve_gate("approve#1", True) is True
    await _waiting(engine, "approve#2")
    assert engine.resolve_gate("approve#1", True) is False
    assert engine.resolve_gate("approve", True) is False

    result = await handle.result()
    first, second = result.trace.children
    assert result.status is WorkflowStatus.CANCELLED
    assert (first.gate_id, first.gate_resolution) == ("approve#1", GateResolution.APPROVED)
    assert (second.gate_id, second.gate_resolution) == (
        "approve#2",
        GateResolution.TIMEOUT_CANCEL,
    )


def test_gate_ids_carry_every_enclosing_iteration() -> None:
    gate = Gate(gate_id="approve")
    assert gate_id_for(gate, "r1", "root") == "approve"
    assert gate_id_for(gate, "r1", "root#2/review#3/0") == "approve#2#3"
    assert gate_id_for(Gate(), "r1", "root#2/0") == "r1:root#2/0"


@pytest.mark.asyncio
async def test_signals_for_unknown_gates_are_ignored(
    logger_manager: LoggerManager,
) -> None:
    gates = GateController(logger_manager)
    assert gates.resolve_gate("nobody-waiting", True) is False


@pytest.mark.asyncio
async def test_signal_before_wait_is_kept(logger_manager: LoggerManager) -> None:
    gates = GateController(logger_manager)
    pending = gates.register("g", run_id="r", node_path="root")
    assert gates.resolve_gate("g", False) is True
    decision = await gates.wait(pending, 1.0, CancellationToken())
    assert decision is False
    await asyncio.sleep(0)
    assert gates.pending_ids() == ()
