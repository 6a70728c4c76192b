"""Snapshot test guarding the public API surface from accidental change."""

from __future__ import annotations

import importlib

import swarmflow

TOP_LEVEL_SNAPSHOT = (
    "API_VERSION",
    "AgentClassifier",
    "AgentContract",
    "AgentRef",
    "AgentTransport",
    "AuditRecord",
    "CancellationToken",
    "CapabilityRegistry",
    "CompositionNode",
    "ContextStore",
    "Coordinator",
    "EnginePolicy",
    "EngineSettings",
    "ErrorKind",
    "ExecutionEngine",
    "Gate",
    "GateController",
    "GateResolution",
    "GateTimeoutPolicy",
    "InProcessTransport",
    "Leaf",
    "LeafInvoker",
    "Loop",
    "NodeError",
    "NodeKind",
    "NodeResult",
    "NodeStatus",
    "Parallel",
    "ParallelFailurePolicy",
    "RunState",
    "Sequential",
    "SwarmflowError",
    "TraceEvent",
    "WorkflowHandle",
    "WorkflowResult",
    "WorkflowStatus",
    "load_environment",
    "load_plan",
    "plan_from_mapping",
)


def test_public_api_snapshot() -> None:
    """Fail if the facade drops __all__ entries or critical exports."""
    assert tuple(swarmflow.__all__) == TOP_LEVEL_SNAPSHOT
    for name in TOP_LEVEL_SNAPSHOT:
        assert hasattr(swarmflow, name), f"{name} missing from swarmflow"

    critical_map = {
        "ExecutionEngine": "swarmflow.engine.engine",
        "CapabilityRegistry": "swarmflow.registry.registry",
        "ContextStore": "swarmflow.context.store",
        "Sequential": "swarmflow.plan.nodes",
        "LeafInvoker": "swarmflow.invocation.invoker",
    }
    for class_name, module_name in critical_map.items():
        module = importlib.import_module(module_name)
        assert getattr(swarmflow, class_name) is getattr(module, class_name)

