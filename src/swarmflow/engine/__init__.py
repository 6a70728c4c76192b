"""Execution engine: node runtime, gates, progress, and result records."""

from __future__ import annotations

from .engine import ExecutionEngine
from .gates import GateController, PendingGate
from .handle import WorkflowHandle
from .progress import ProgressLog, TraceEvent
from .results import NodeError, NodeResult, WorkflowResult

__all__ = [
    "ExecutionEngine",
    "GateController",
    "NodeError",
    "NodeResult",
    "PendingGate",
    "ProgressLog",
    "TraceEvent",
    "WorkflowHandle",
    "WorkflowResult",
]
