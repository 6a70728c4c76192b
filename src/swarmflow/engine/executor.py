"""Per-run execution of composition nodes.

:class:`ExecutionRuntime` holds everything one run needs (registry, invoker,
gates, policy, progress log) and executes nodes recursively. Every node goes
through :meth:`ExecutionRuntime.execute`, which times it, emits progress
events, records metrics and turns raised :class:`SwarmflowError` values into
a :class:`NodeResult`. The per-kind runners fill in a :class:`NodeOutcome`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
import time
from typing import Any

from swarmflow.cancellation import CancellationToken
from swarmflow.config.policy import EnginePolicy
from swarmflow.constants import ITERATION_SEPARATOR, PATH_SEPARATOR
from swarmflow.context.store import ContextStore, lookup
from swarmflow.enums import (
    GateResolution,
    GateTimeoutPolicy,
    NodeKind,
    NodeStatus,
    ParallelFailurePolicy,
    TraceEventKind,
)
from swarmflow.errors import (
    ConditionError,
    ErrorKind,
    InvocationError,
    SchemaValidationError,
    SwarmflowError,
    UnknownClusterError,
    WorkflowCancelledError,
)
from swarmflow.invocation.invoker import LeafInvoker
from swarmflow.plan.nodes import (
    AgentClassifier,
    CompositionNode,
    Coordinator,
    Gate,
    Leaf,
    Loop,
    Parallel,
    Sequential,
    cluster_key,
)
from swarmflow.registry.contract import AgentContract
from swarmflow.registry.registry import CapabilityRegistry
from swarmflow.utilities.logger_manager import LoggerManager, MetricType

from .gates import GateController
from .progress import ProgressLog
from .results import NodeError, NodeResult

_MISSING = object()


@dataclass
class NodeOutcome:
    """Mutable accumulator a runner fills while a node executes."""

    status: NodeStatus = NodeStatus.COMPLETED
    error: NodeError | None = None
    children: list[NodeResult] = field(default_factory=list)
    iterations: int | None = None
    exceeded: bool = False
    selected_cluster: str | None = None
    gate_id: str | None = None
    gate_resolution: GateResolution | None = None
    attempts: int | None = None
    agent: str | None = None

    def fail(self, exc: SwarmflowError, node_path: str) -> None:
        self.status = (
            NodeStatus.CANCELLED if exc.kind is ErrorKind.CANCELLED else NodeStatus.FAILED
        )
        self.error = NodeError.from_exception(exc, node_path)

    def adopt(self, child: NodeResult) -> None:
        """Take status and error from the single child this node delegated to."""
        self.children.append(child)
        self.status = child.status
        self.error = child.error


Runner = Callable[[Any, ContextStore, CancellationToken, str, NodeOutcome], Awaitable[None]]


def child_path(parent: str, label: str) -> str:
    return f"{parent}{PATH_SEPARATOR}{label}"


def gate_id_for(gate: Gate, run_id: str, node_path: str) -> str:
    """Declared ids are suffixed with the enclosing loop iterations (``approve#2``)."""
    if gate.gate_id is None:
        return f"{run_id}:{node_path}"
    iterations = [
        segment.split(ITERATION_SEPARATOR, 1)[1]
        for segment in node_path.split(PATH_SEPARATOR)
        if ITERATION_SEPARATOR in segment
    ]
    return ITERATION_SEPARATOR.join([gate.gate_id, *iterations])


def build_payload(
    mapping: Mapping[str, str] | None,
    static: Mapping[str, Any],
    context: Mapping[str, Any],
    node_path: str,
) -> dict[str, Any]:
    """Assemble an agent payload from constants and context lookups."""
    if mapping is None:
        return {**context, **static}
    payload = dict(static)
    for field_name, source in mapping.items():
        value = lookup(context, source, _MISSING)
        if value is _MISSING:
            raise SchemaValidationError(
                f"{node_path} reads missing context key {source!r}",
                details=f"needed for input field {field_name!r}",
            )
        payload[field_name] = value
    return payload


def leaf_writes(leaf: Leaf, output: Any, node_path: str) -> dict[str, Any]:
    if leaf.output_key is not None:
        return {leaf.output_key: output}
    if not isinstance(output, Mapping):
        raise SchemaValidationError(
            f"{node_path} has no output_key, so its agent must return an object",
            details=f"got {type(output).__name__}",
        )
    return dict(output)


class ExecutionRuntime:
    """Executes the nodes of one run against a shared cancellation token."""

    def __init__(
        self,
        *,
        run_id: str,
        registry: CapabilityRegistry,
        invoker: LeafInvoker,
        gates: GateController,
        policy: EnginePolicy,
        progress: ProgressLog,
        logger_manager: LoggerManager,
    ) -> None:
        self.run_id = run_id
        self.registry = registry
        self.invoker = invoker
        self.gates = gates
        self.policy = policy
        self.progress = progress
        self.logger_manager = logger_manager
        self.logger = logger_manager.get_logger()
        self._runners: dict[NodeKind, Runner] = {
            NodeKind.LEAF: self._run_leaf,
            NodeKind.SEQUENTIAL: self._run_sequential,
            NodeKind.PARALLEL: self._run_parallel,
            NodeKind.LOOP: self._run_loop,
            NodeKind.COORDINATOR: self._run_coordinator,
            NodeKind.GATE: self._run_gate,
        }

    async def execute(
        self,
        node: CompositionNode,
        store: ContextStore,
        token: CancellationToken,
        node_path: str,
    ) -> NodeResult:
        started_at = datetime.now(UTC)
        clock = time.perf_counter()
        outcome = NodeOutcome()
        if token.cancelled:
            outcome.fail(
                WorkflowCancelledError("Cancelled before start", details=token.reason),
                node_path,
            )
        else:
            self.progress.emit(
                TraceEventKind.STARTED, node_path, node_kind=node.kind.value
            )
            self.logger.debug(
                f"Node {node_path} started",
                extra={"context": {"run_id": self.run_id, "kind": node.kind.value}},
            )
            try:
                await self._runners[node.kind](node, store, token, node_path, outcome)
            except SwarmflowError as exc:
                outcome.fail(exc, node_path)
                if isinstance(node, Leaf):
                    outcome.attempts = exc.attempts
            except Exception as exc:
                self.logger.error(
                    f"Node {node_path} raised an unexpected error",
                    extra={"context": {"run_id": self.run_id, "kind": node.kind.value}},
                    exc_info=True,
                )
                outcome.fail(
                    InvocationError(
                        f"{node_path} raised {type(exc).__name__}", details=repr(exc)
                    ),
                    node_path,
                )
        return self._finish(node, node_path, outcome, started_at, clock)

    def skipped(self, node: CompositionNode, node_path: str) -> NodeResult:
        self.progress.emit(TraceEventKind.SKIPPED, node_path, NodeStatus.SKIPPED)
        return NodeResult(
            node_id=node.node_id,
            node_path=node_path,
            kind=node.kind,
            status=NodeStatus.SKIPPED,
            agent=str(node.agent) if isinstance(node, Leaf) else None,
        )

    def _finish(
        self,
        node: CompositionNode,
        node_path: str,
        outcome: NodeOutcome,
        started_at: datetime,
        clock: float,
    ) -> NodeResult:
        duration = time.perf_counter() - clock
        result = NodeResult(
            node_id=node.node_id,
            node_path=node_path,
            kind=node.kind,
            status=outcome.status,
            started_at=started_at,
            finished_at=datetime.now(UTC),
            duration=duration,
            error=outcome.error,
            children=tuple(outcome.children),
            iterations=outcome.iterations,
            exceeded=outcome.exceeded,
            selected_cluster=outcome.selected_cluster,
            gate_id=outcome.gate_id,
            gate_resolution=outcome.gate_resolution,
            attempts=outcome.attempts,
            agent=outcome.agent or (str(node.agent) if isinstance(node, Leaf) else None),
        )
        self.progress.emit(
            TraceEventKind.FINISHED,
            node_path,
            result.status,
            duration=round(duration, 6),
            error=outcome.error.message if outcome.error else None,
        )
        tags = {"kind": node.kind.value, "status": result.status.value}
        self.logger_manager.log_metric("node_executions", 1, MetricType.COUNTER, tags)
        self.logger_manager.log_metric(
            "node_duration_seconds", duration, MetricType.HISTOGRAM, tags
        )
        context = {
            "run_id": self.run_id,
            "status": result.status.value,
            "duration": round(duration, 6),
        }
        if result.status.aborts_parent and outcome.error is not None:
            context["error"] = str(outcome.error.kind.value)
            self.logger.warning(
                f"Node {node_path} {result.status.value}: {outcome.error.message}",
                extra={"context": context},
            )
        else:
            self.logger.info(f"Node {node_path} finished", extra={"context": context})
        return result

    def evaluate(
        self,
        predicate: Callable[[Mapping[str, Any]], Any],
        store: ContextStore,
        what: str,
    ) -> bool:
        try:
            return bool(predicate(store.snapshot()))
        except Exception as exc:
            raise ConditionError(f"{what} raised", details=repr(exc)) from exc

    async def _run_leaf(
        self,
        node: Leaf,
        store: ContextStore,
        token: CancellationToken,
        node_path: str,
        outcome: NodeOutcome,
    ) -> None:
        contract = self.registry.resolve_ref(node.agent)
        outcome.agent = str(contract.ref)
        payload = build_payload(
            node.input_mapping, node.static_input, store.snapshot(), node_path
        )
        result = await self.invoker.invoke(
            contract,
            payload,
            token=token,
            node_path=node_path,
            on_retry=self._retry_hook(node_path),
        )
        outcome.attempts = result.attempts
        store.commit(leaf_writes(node, result.output, node_path), writer=node_path)

    def _retry_hook(
        self, node_path: str
    ) -> Callable[[AgentContract, int, float, SwarmflowError], None]:
        def on_retry(
            contract: AgentContract, attempt: int, delay: float, error: SwarmflowError
        ) -> None:
            self.progress.emit(
                TraceEventKind.RETRY,
                node_path,
                agent=str(contract.ref),
                attempt=attempt,
                delay=delay,
                error=error.kind.value,
            )

        return on_retry

    async def _run_sequential(
        self,
        node: Sequential,
        store: ContextStore,
        token: CancellationToken,
        node_path: str,
        outcome: NodeOutcome,
    ) -> None:
        aborted = False
        for index, child in enumerate(node.steps):
            path = child_path(node_path, child.label(str(index)))
            if aborted:
                outcome.children.append(self.skipped(child, path))
                continue
            result = await self.execute(child, store, token, path)
            outcome.children.append(result)
            if result.status.aborts_parent:
                outcome.status = result.status
                outcome.error = result.error
                aborted = True
            elif result.status is NodeStatus.PARTIALLY_COMPLETED:
                outcome.status = NodeStatus.PARTIALLY_COMPLETED

    async def _run_parallel(
        self,
        node: Parallel,
        store: ContextStore,
        token: CancellationToken,
        node_path: str,
        outcome: NodeOutcome,
    ) -> None:
        policy = node.failure_policy or self.policy.parallel.default_failure_policy
        branch_ids = node.branch_ids()
        group = token.child()
        views = [store.fork() for _ in node.branches]
        tasks = [
            asyncio.create_task(
                self.execute(branch, view, group, child_path(node_path, branch_id))
            )
            for branch, view, branch_id in zip(node.branches, views, branch_ids)
        ]
        first_failure: NodeResult | None = None
        try:
            pending = set(tasks)
            while pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                for task in sorted(done, key=tasks.index):
                    result = task.result()
                    if (
                        policy is ParallelFailurePolicy.ABORT_ALL
                        and first_failure is None
                        and result.status.aborts_parent
                    ):
                        first_failure = result
                        group.cancel(f"sibling {result.node_path} {result.status.value}")
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        results = [task.result() for task in tasks]
        outcome.children.extend(results)

        if token.cancelled:
            cancelled = next(
                (r for r in results if r.status is NodeStatus.CANCELLED), None
            )
            if cancelled is not None and cancelled.error is not None:
                outcome.status = NodeStatus.CANCELLED
                outcome.error = cancelled.error
            else:
                outcome.fail(
                    WorkflowCancelledError("Cancelled", details=token.reason), node_path
                )
            return
        if first_failure is not None:
            outcome.status = first_failure.status
            outcome.error = first_failure.error
            return

        succeeded = [
            (branch_id, view, result)
            for branch_id, view, result in zip(branch_ids, views, results)
            if result.status.succeeded
        ]
        if not succeeded:
            failed = results[0]
            outcome.status = NodeStatus.FAILED
            outcome.error = failed.error
            return
        for branch_id, view, _ in succeeded:
            store.merge_branch(view, prefix=branch_id, writer=child_path(node_path, branch_id))
        if len(succeeded) < len(results) or any(
            result.status is NodeStatus.PARTIALLY_COMPLETED for _, _, result in succeeded
        ):
            outcome.status = NodeStatus.PARTIALLY_COMPLETED

    async def _run_loop(
        self,
        node: Loop,
        store: ContextStore,
        token: CancellationToken,
        node_path: str,
        outcome: NodeOutcome,
    ) -> None:
        limit = node.max_iterations or self.policy.loop.default_max_iterations
        outcome.iterations = 0
        stopped = False
        while outcome.iterations < limit:
            iteration = outcome.iterations + 1
            result = await self.execute(
                node.body, store, token, f"{node_path}{ITERATION_SEPARATOR}{iteration}"
            )
            outcome.children.append(result)
            outcome.iterations = iteration
            if result.status.aborts_parent:
                outcome.status = result.status
                outcome.error = result.error
                return
            if result.status is NodeStatus.PARTIALLY_COMPLETED:
                outcome.status = NodeStatus.PARTIALLY_COMPLETED
            if self.evaluate(node.stop_condition, store, f"{node_path} stop condition"):
                stopped = True
                break
        outcome.exceeded = not stopped
        if outcome.exceeded:
            self.logger.info(
                f"Loop {node_path} reached max_iterations without stopping",
                extra={"context": {"run_id": self.run_id, "max_iterations": limit}},
            )

    async def _run_coordinator(
        self,
        node: Coordinator,
        store: ContextStore,
        token: CancellationToken,
        node_path: str,
        outcome: NodeOutcome,
    ) -> None:
        routing: dict[str, Any] = {}
        if isinstance(node.classifier, AgentClassifier):
            cluster, output = await self._classify_with_agent(
                node.classifier, store, token, node_path, outcome
            )
            if node.classifier.output_key is not None:
                routing[node.classifier.output_key] = output
        else:
            try:
                cluster = node.classifier(store.snapshot())
            except Exception as exc:
                raise InvocationError(
                    f"{node_path} classifier raised", details=repr(exc)
                ) from exc
        key = cluster_key(cluster)
        outcome.selected_cluster = key
        target = node.clusters.get(key)
        if target is None:
            raise UnknownClusterError(
                f"{node_path} classified as unknown cluster {key!r}",
                details=f"known clusters: {sorted(node.clusters)}",
            )
        if routing:
            store.commit(routing, writer=node_path)
        self.logger.info(
            f"Coordinator {node_path} selected {key}",
            extra={"context": {"run_id": self.run_id, "cluster": key}},
        )
        outcome.adopt(await self.execute(target, store, token, child_path(node_path, key)))

    async def _classify_with_agent(
        self,
        classifier: AgentClassifier,
        store: ContextStore,
        token: CancellationToken,
        node_path: str,
        outcome: NodeOutcome,
    ) -> tuple[Any, Any]:
        contract = self.registry.resolve_ref(classifier.agent)
        outcome.agent = str(contract.ref)
        payload = build_payload(classifier.input_mapping, {}, store.snapshot(), node_path)
        try:
            result = await self.invoker.invoke(
                contract,
                payload,
                token=token,
                node_path=node_path,
                on_retry=self._retry_hook(node_path),
            )
        except SwarmflowError as exc:
            outcome.attempts = exc.attempts
            raise
        outcome.attempts = result.attempts
        output = result.output
        if isinstance(output, Mapping):
            if classifier.cluster_field not in output:
                raise SchemaValidationError(
                    f"{contract.ref} output has no {classifier.cluster_field!r} field"
                )
            cluster = output[classifier.cluster_field]
        elif isinstance(output, str):
            cluster = output
        else:
            raise SchemaValidationError(
                f"{contract.ref} must return a cluster id or an object",
                details=f"got {type(output).__name__}",
            )
        return cluster, output

    async def _run_gate(
        self,
        node: Gate,
        store: ContextStore,
        token: CancellationToken,
        node_path: str,
        outcome: NodeOutcome,
    ) -> None:
        gate_id = gate_id_for(node, self.run_id, node_path)
        outcome.gate_id = gate_id
        then_path = (
            child_path(node_path, node.then.label("then")) if node.then else ""
        )
        if node.condition is not None and self.evaluate(
            node.condition, store, f"{node_path} condition"
        ):
            resolution = GateResolution.CONDITION
        else:
            try:
                resolution = await self._await_signal(
                    node, gate_id, token, node_path, outcome
                )
            except WorkflowCancelledError:
                if node.then is not None:
                    outcome.children.append(self.skipped(node.then, then_path))
                raise
        outcome.gate_resolution = resolution
        self.progress.emit(
            TraceEventKind.GATE_RESOLVED,
            node_path,
            gate_id=gate_id,
            resolution=resolution.value,
        )
        if resolution in (GateResolution.REJECTED, GateResolution.TIMEOUT_CANCEL):
            if node.then is not None:
                outcome.children.append(self.skipped(node.then, then_path))
            raise WorkflowCancelledError(
                f"Gate {gate_id} {resolution.value}", details=node.prompt or None
            )
        if node.then is not None:
            outcome.adopt(await self.execute(node.then, store, token, then_path))

    async def _await_signal(
        self,
        node: Gate,
        gate_id: str,
        token: CancellationToken,
        node_path: str,
        outcome: NodeOutcome,
    ) -> GateResolution:
        timeout = node.timeout or self.policy.gate.default_timeout
        on_timeout = node.on_timeout or self.policy.gate.default_on_timeout
        pending = self.gates.register(
            gate_id, run_id=self.run_id, node_path=node_path, prompt=node.prompt
        )
        self.progress.emit(
            TraceEventKind.GATE_WAITING,
            node_path,
            gate_id=gate_id,
            timeout=timeout,
            prompt=node.prompt,
        )
        try:
            decision = await self.gates.wait(pending, timeout, token)
        except WorkflowCancelledError:
            outcome.gate_resolution = GateResolution.CANCELLED
            raise
        if decision is None:
            self.logger_manager.log_metric(
                "gate_timeouts", 1, MetricType.COUNTER, {"policy": on_timeout.value}
            )
            self.logger.warning(
                f"Gate {gate_id} timed out after {timeout}s",
                extra={"context": {"run_id": self.run_id, "on_timeout": on_timeout.value}},
            )
            if on_timeout is GateTimeoutPolicy.PROCEED_DEFAULT:
                return GateResolution.TIMEOUT_DEFAULT
            return GateResolution.TIMEOUT_CANCEL
        return GateResolution.APPROVED if decision else GateResolution.REJECTED


__all__ = [
    "ExecutionRuntime",
    "NodeOutcome",
    "build_payload",
    "gate_id_for",
    "leaf_writes",
]
