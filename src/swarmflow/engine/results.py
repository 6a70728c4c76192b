"""Result records produced by one workflow execution."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime
from typing import Any

from pydantic import ConfigDict, Field

from swarmflow.constants import NAMESPACE_SEPARATOR
from swarmflow.context.store import AuditRecord
from swarmflow.enums import GateResolution, NodeKind, NodeStatus, WorkflowStatus
from swarmflow.errors import ErrorKind, SwarmflowError
from swarmflow.schema.base import TypedBaseModel, final_class


class NodeError(TypedBaseModel):
    """Structured failure attached to the node where it originated."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ErrorKind = Field(..., description="Machine-readable error kind")
    message: str = Field(..., description="Human-friendly explanation")
    details: str | None = Field(None, description="Optional diagnostic details")
    transient: bool = Field(False, description="Whether retrying could succeed")
    node_path: str = Field(..., description="Trace path of the originating node")
    attempts: int = Field(1, ge=1)

    @classmethod
    def from_exception(cls, exc: SwarmflowError, node_path: str) -> NodeError:
        return cls(
            kind=exc.kind,
            message=exc.message,
            details=exc.details,
            transient=exc.transient,
            node_path=node_path,
            attempts=max(exc.attempts, 1),
        )


class NodeResult(TypedBaseModel):
    """Outcome of one node execution, mirroring the plan tree."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    node_id: str | None = None
    node_path: str
    kind: NodeKind
    status: NodeStatus
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration: float = Field(0.0, ge=0.0, description="Seconds")
    error: NodeError | None = None
    children: tuple[NodeResult, ...] = ()
    iterations: int | None = None
    exceeded: bool = False
    selected_cluster: str | None = None
    gate_id: str | None = None
    gate_resolution: GateResolution | None = None
    attempts: int | None = None
    agent: str | None = None

    def walk(self) -> Iterator[NodeResult]:
        """Yield this result and every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, node_path: str) -> NodeResult | None:
        for result in self.walk():
            if result.node_path == node_path:
                return result
        return None


NodeResult.model_rebuild()


@final_class
class WorkflowResult(TypedBaseModel):
    """Terminal record of one run: status, final context and full trace."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    run_id: str
    status: WorkflowStatus
    context: dict[str, Any] = Field(default_factory=dict)
    trace: NodeResult
    audit_trail: tuple[AuditRecord, ...] = ()
    started_at: datetime
    finished_at: datetime

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def succeeded(self) -> bool:
        return self.status is WorkflowStatus.COMPLETED

    def failures(self) -> list[tuple[str, NodeError]]:
        """Errors at the nodes where they originated, in trace order."""
        return [
            (result.node_path, result.error)
            for result in self.trace.walk()
            if result.error is not None and result.error.node_path == result.node_path
        ]

    def branch(self, branch_id: str) -> dict[str, Any]:
        """Keys a parallel branch wrote, without the branch prefix."""
        marker = f"{branch_id}{NAMESPACE_SEPARATOR}"
        return {
            key[len(marker) :]: value
            for key, value in self.context.items()
            if key.startswith(marker)
        }

    def node(self, node_path: str) -> NodeResult | None:
        return self.trace.find(node_path)


__all__ = ["NodeError", "NodeResult", "WorkflowResult"]
