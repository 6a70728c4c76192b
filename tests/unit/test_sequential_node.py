from __future__ import annotations

import asyncio

from hypothesis import given, settings
from hypothesis import strategies as st
import pytest
from tests.stubs.scripted_transport import ScriptedTransport
from tests.utils.builders import register_all

from swarmflow.engine.engine import ExecutionEngine
from swarmflow.enums import NodeStatus, WorkflowStatus
from swarmflow.errors import ErrorKind
from swarmflow.plan.nodes import Leaf, Sequential
from swarmflow.registry.registry import CapabilityRegistry
from swarmflow.utilities.logger_manager import LoggerConfig, LoggerManager


@pytest.mark.asyncio
async def test_failure_skips_remaining_children(
    engine: ExecutionEngine,
    registry: CapabilityRegistry,
    transport: ScriptedTransport,
) -> None:
    register_all(registry, "draft", "review", "publish")
    transport.returns("draft", {"text": "hello"})
    transport.returns("review", RuntimeError("reviewer offline"))
    transport.returns("publish", {"url": "https://example.invalid/1"})
    plan = Sequential(
        [
            Leaf("draft", output_key="draft", node_id="draft"),
            Leaf("review", output_key="review", node_id="review"),
            Leaf("publish", output_key="published", node_id="publish"),
        ],
        node_id="pipeline",
    )

    result = await engine.run(plan)

    assert result.status is WorkflowStatus.FAILED
    assert [child.status for child in result.trace.children] == [
        NodeStatus.COMPLETED,
        NodeStatus.FAILED,
        NodeStatus.SKIPPED,
    ]
    assert result.context == {"draft": {"text": "hello"}}
    assert transport.call_count("publish") == 0
    assert result.trace.error is not None
    assert result.trace.error.node_path == "pipeline/review"
    [(path, error)] = result.failures()
    assert path == "pipeline/review"
    assert error.kind is ErrorKind.INVOCATION


@pytest.mark.asyncio
async def test_children_read_prior_writes_through_input_mapping(
    engine: ExecutionEngine,
    registry: CapabilityRegistry,
    transport: ScriptedTransport,
) -> None:
    register_all(registry, "outline", "expand")
    transport.returns("outline", {"points": ["a", "b"]})
    transport.returns("expand", lambda payload: len(payload["points"]))
    plan = Sequential(
        [
            Leaf("outline", output_key="outline"),
            Leaf(
                "expand",
                input_mapping={"points": "outline.points"},
                static_input={"style": "terse"},
                output_key="count",
            ),
        ]
    )

    result = await engine.run(plan, {"topic": "agents"})

    assert result.status is WorkflowStatus.COMPLETED
    assert transport.payloads("expand") == [{"style": "terse", "points": ["a", "b"]}]
    assert result.context["count"] == 2
    assert [child.node_path for child in result.trace.children] == ["root/0", "root/1"]


@pytest.mark.asyncio
async def test_missing_mapped_key_fails_without_calling_agent(
    engine: ExecutionEngine,
    registry: CapabilityRegistry,
    transport: ScriptedTransport,
) -> None:
    register_all(registry, "expand")
    transport.returns("expand", {})
    result = await engine.run(Leaf("expand", input_mapping={"points": "outline"}))

    assert result.status is WorkflowStatus.FAILED
    assert result.trace.error.kind is ErrorKind.VALIDATION
    assert transport.calls == []


@settings(max_examples=25, deadline=None)
@given(count=st.integers(min_value=1, max_value=6))
def test_each_child_sees_exactly_the_prior_writes(count: int) -> None:
    names = [f"step{i}" for i in range(count)]
    transport = ScriptedTransport()
    manager = LoggerManager("swarmflow.tests", LoggerConfig(log_level="WARNING"))
    registry = CapabilityRegistry(logger_manager=manager)
    register_all(registry, *names)
    for index, name in enumerate(names):
        transport.returns(name, {f"k{index}": index})
    engine = ExecutionEngine(registry, transport, logger_manager=manager)

    result = asyncio.run(engine.run(Sequential([Leaf(name) for name in names])))

    assert result.status is WorkflowStatus.COMPLETED
    for index, name in enumerate(names):
        [payload] = transport.payloads(name)
        assert set(payload) == {f"k{i}" for i in range(index)}
