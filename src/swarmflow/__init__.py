"""swarmflow: compose independent agents into sequential, parallel, looping,
routed and human-gated workflows."""

from __future__ import annotations

from swarmflow.cancellation import CancellationToken
from swarmflow.config import EnginePolicy, EngineSettings, load_environment
from swarmflow.constants import API_VERSION
from swarmflow.context import AuditRecord, ContextStore
from swarmflow.engine import (
    ExecutionEngine,
    GateController,
    NodeError,
    NodeResult,
    TraceEvent,
    WorkflowHandle,
    WorkflowResult,
)
from swarmflow.enums import (
    GateResolution,
    GateTimeoutPolicy,
    NodeKind,
    NodeStatus,
    ParallelFailurePolicy,
    RunState,
    WorkflowStatus,
)
from swarmflow.errors import ErrorKind, SwarmflowError
from swarmflow.invocation import AgentTransport, InProcessTransport, LeafInvoker
from swarmflow.plan import (
    AgentClassifier,
    CompositionNode,
    Coordinator,
    Gate,
    Leaf,
    Loop,
    Parallel,
    Sequential,
    load_plan,
    plan_from_mapping,
)
from swarmflow.registry import AgentContract, AgentRef, CapabilityRegistry

__all__ = [
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
]
