"""Immutable composition nodes that describe a workflow plan.

A plan is a tree of these values. Nodes carry no execution state; the engine
walks them and produces fresh :class:`~swarmflow.engine.results.NodeResult`
records on every run.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Union

from swarmflow.enums import GateTimeoutPolicy, NodeKind, ParallelFailurePolicy
from swarmflow.registry.contract import AgentRef

ClusterId = Union[str, Enum]
Predicate = Callable[[Mapping[str, Any]], bool]
ClassifierFn = Callable[[Mapping[str, Any]], ClusterId]


def cluster_key(value: Any) -> str:
    """Normalise a cluster identifier (enum member or plain value) to a string."""
    if isinstance(value, Enum):
        value = value.value
    return str(value)


def _frozen_mapping(value: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(value or {}))


@dataclass(frozen=True, eq=False)
class CompositionNode:
    """Base for every plan element; ``node_id`` names the node in trace paths."""

    kind: ClassVar[NodeKind]
    node_id: str | None = field(default=None, kw_only=True)

    def children(self) -> tuple[CompositionNode, ...]:
        return ()

    def label(self, fallback: str) -> str:
        return self.node_id if self.node_id is not None else fallback


@dataclass(frozen=True, eq=False)
class Leaf(CompositionNode):
    """Invoke one agent.

    ``input_mapping`` maps payload field names to context paths; when it is
    ``None`` the whole context snapshot is sent. ``static_input`` supplies
    constant fields that mapped values override. With ``output_key`` the
    agent output is stored under that key; without it the output must be an
    object whose keys are written individually.
    """

    kind: ClassVar[NodeKind] = NodeKind.LEAF

    agent: AgentRef | str
    input_mapping: Mapping[str, str] | None = None
    output_key: str | None = None
    static_input: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "agent", AgentRef.parse(self.agent))
        if self.input_mapping is not None:
            object.__setattr__(
                self, "input_mapping", _frozen_mapping(self.input_mapping)
            )
        object.__setattr__(self, "static_input", _frozen_mapping(self.static_input))


@dataclass(frozen=True, eq=False)
class Sequential(CompositionNode):
    kind: ClassVar[NodeKind] = NodeKind.SEQUENTIAL

    steps: Sequence[CompositionNode]

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))

    def children(self) -> tuple[CompositionNode, ...]:
        return tuple(self.steps)


@dataclass(frozen=True, eq=False)
class Parallel(CompositionNode):
    """Fan out to every branch concurrently.

    ``failure_policy`` of ``None`` defers to the engine policy, which defaults
    to ``ABORT_ALL``. Under ``BEST_EFFORT`` the successful branches are merged
    and the node ends ``PARTIALLY_COMPLETED`` when any branch failed, or
    ``FAILED`` with the first branch's error when none succeeded.
    """

    kind: ClassVar[NodeKind] = NodeKind.PARALLEL

    branches: Sequence[CompositionNode]
    failure_policy: ParallelFailurePolicy | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "branches", tuple(self.branches))
        if self.failure_policy is not None:
            object.__setattr__(
                self, "failure_policy", ParallelFailurePolicy(self.failure_policy)
            )

    def children(self) -> tuple[CompositionNode, ...]:
        return tuple(self.branches)

    def branch_ids(self) -> tuple[str, ...]:
        """Declared ``node_id`` of each branch, or its index when undeclared."""
        return tuple(
            branch.label(str(index)) for index, branch in enumerate(self.branches)
        )


@dataclass(frozen=True, eq=False)
class Loop(CompositionNode):
    """Repeat ``body`` until ``stop_condition`` holds after an iteration."""

    kind: ClassVar[NodeKind] = NodeKind.LOOP

    body: CompositionNode
    stop_condition: Predicate
    max_iterations: int | None = None

    def children(self) -> tuple[CompositionNode, ...]:
        return (self.body,)


@dataclass(frozen=True, eq=False)
class AgentClassifier:
    """Classifier backed by an agent whose output names the cluster.

    The cluster id is read from ``cluster_field`` when the output is an
    object, or taken as-is when the agent returns a bare string. With
    ``output_key`` the raw classifier output is also written to the context.
    """

    agent: AgentRef | str
    input_mapping: Mapping[str, str] | None = None
    cluster_field: str = "cluster"
    output_key: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "agent", AgentRef.parse(self.agent))
        if self.input_mapping is not None:
            object.__setattr__(
                self, "input_mapping", _frozen_mapping(self.input_mapping)
            )


@dataclass(frozen=True, eq=False)
class Coordinator(CompositionNode):
    """Dispatch to exactly one cluster chosen by ``classifier``."""

    kind: ClassVar[NodeKind] = NodeKind.COORDINATOR

    classifier: ClassifierFn | AgentClassifier
    clusters: Mapping[ClusterId, CompositionNode]

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "clusters",
            MappingProxyType(
                {cluster_key(key): node for key, node in self.clusters.items()}
            ),
        )

    def children(self) -> tuple[CompositionNode, ...]:
        return tuple(self.clusters.values())


@dataclass(frozen=True, eq=False)
class Gate(CompositionNode):
    """Suspend until an external signal, then continue with ``then``.

    When ``condition`` already holds on entry the gate passes without
    waiting. ``timeout`` and ``on_timeout`` fall back to the engine's gate
    policy when left unset. ``gate_id`` is the id callers signal; the engine
    derives one from the run id and node path when it is omitted. Inside a
    loop a declared id is suffixed with the iteration (``approve#2``), so a
    late signal never reaches a later iteration's wait.
    """

    kind: ClassVar[NodeKind] = NodeKind.GATE

    condition: Predicate | None = None
    timeout: float | None = None
    on_timeout: GateTimeoutPolicy | None = None
    then: CompositionNode | None = None
    gate_id: str | None = None
    prompt: str = ""

    def __post_init__(self) -> None:
        if self.on_timeout is not None:
            object.__setattr__(self, "on_timeout", GateTimeoutPolicy(self.on_timeout))

    def children(self) -> tuple[CompositionNode, ...]:
        return (self.then,) if self.then is not None else ()


__all__ = [
    "AgentClassifier",
    "ClassifierFn",
    "ClusterId",
    "CompositionNode",
    "Coordinator",
    "Gate",
    "Leaf",
    "Loop",
    "Parallel",
    "Predicate",
    "Sequential",
    "cluster_key",
]
