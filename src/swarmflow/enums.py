"""Centralized semantic enums for swarmflow."""

from __future__ import annotations

from enum import Enum


class NodeKind(str, Enum):
    """Variants of the composition algebra."""

    LEAF = "leaf"
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    LOOP = "loop"
    COORDINATOR = "coordinator"
    GATE = "gate"


class NodeStatus(str, Enum):
    """Terminal state of a single node execution."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PARTIALLY_COMPLETED = "partially_completed"
    SKIPPED = "skipped"

    @property
    def succeeded(self) -> bool:
        """Completed and partially completed nodes both commit their writes."""
        return self in (NodeStatus.COMPLETED, NodeStatus.PARTIALLY_COMPLETED)

    @property
    def aborts_parent(self) -> bool:
        return self in (NodeStatus.FAILED, NodeStatus.CANCELLED)


class WorkflowStatus(str, Enum):
    """Overall outcome of a workflow run."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PARTIALLY_COMPLETED = "partially_completed"

    @classmethod
    def from_node_status(cls, status: NodeStatus) -> WorkflowStatus:
        if status is NodeStatus.SKIPPED:
            return cls.CANCELLED
        return cls(status.value)


class RunState(str, Enum):
    """Observable state of a submitted workflow handle."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PARTIALLY_COMPLETED = "partially_completed"


class ParallelFailurePolicy(str, Enum):
    """How a parallel node reacts to a failing branch."""

    ABORT_ALL = "abort_all"
    BEST_EFFORT = "best_effort"


class GateTimeoutPolicy(str, Enum):
    """What a gate does when no signal arrives in time."""

    CANCEL = "cancel"
    PROCEED_DEFAULT = "proceed_default"


class GateResolution(str, Enum):
    """How a gate was resolved, recorded in the trace for auditability."""

    APPROVED = "approved"
    REJECTED = "rejected"
    CONDITION = "condition"
    TIMEOUT_CANCEL = "timeout_cancel"
    TIMEOUT_DEFAULT = "timeout_default"
    CANCELLED = "cancelled"


class TraceEventKind(str, Enum):
    """Progress events emitted while a workflow executes."""

    STARTED = "started"
    FINISHED = "finished"
    SKIPPED = "skipped"
    GATE_WAITING = "gate_waiting"
    GATE_RESOLVED = "gate_resolved"
    RETRY = "retry"
