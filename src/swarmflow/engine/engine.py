"""Entry point that runs composition plans against a capability registry."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any
import uuid

from swarmflow.cancellation import CancellationToken
from swarmflow.config.policy import EnginePolicy
from swarmflow.constants import ROOT_PATH
from swarmflow.context.store import ContextStore
from swarmflow.enums import WorkflowStatus
from swarmflow.invocation.invoker import LeafInvoker
from swarmflow.invocation.transport import AgentTransport
from swarmflow.plan.nodes import CompositionNode
from swarmflow.plan.validation import validate_plan
from swarmflow.registry.registry import CapabilityRegistry
from swarmflow.utilities.logger_manager import LoggerManager, default_logger_manager

from .executor import ExecutionRuntime
from .gates import GateController
from .handle import WorkflowHandle
from .progress import ProgressLog
from .results import WorkflowResult


class ExecutionEngine:
    """Runs plans, owning one cancellation token per in-flight run.

    The registry is frozen on the first run. Plan problems and a non-JSON
    initial context are raised to the caller; every failure after that is
    recorded in the returned trace.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        transport: AgentTransport,
        *,
        policy: EnginePolicy | None = None,
        gates: GateController | None = None,
        logger_manager: LoggerManager | None = None,
        max_progress_events: int | None = None,
    ) -> None:
        self.registry = registry
        self.policy = policy or EnginePolicy()
        self.logger_manager = logger_manager or default_logger_manager()
        self.logger = self.logger_manager.get_logger()
        self.gates = gates or GateController(self.logger_manager)
        self.invoker = LeafInvoker(
            transport,
            retry_policy=self.policy.retry,
            logger_manager=self.logger_manager,
        )
        self.max_progress_events = max_progress_events
        self._tokens: dict[str, CancellationToken] = {}

    async def run(
        self,
        plan: CompositionNode,
        initial_context: Mapping[str, Any] | None = None,
        *,
        run_id: str | None = None,
        token: CancellationToken | None = None,
        progress: ProgressLog | None = None,
    ) -> WorkflowResult:
        run_id = run_id or uuid.uuid4().hex
        validate_plan(plan)
        store = ContextStore(initial_context)
        return await self._execute(
            plan,
            store,
            run_id,
            token or CancellationToken(),
            progress or ProgressLog(run_id, self.max_progress_events),
        )

    def submit(
        self,
        plan: CompositionNode,
        initial_context: Mapping[str, Any] | None = None,
        *,
        run_id: str | None = None,
    ) -> WorkflowHandle:
        """Start ``plan`` as a background task on the running loop."""
        run_id = run_id or uuid.uuid4().hex
        validate_plan(plan)
        store = ContextStore(initial_context)
        token = CancellationToken()
        progress = ProgressLog(run_id, self.max_progress_events)
        task = asyncio.get_running_loop().create_task(
            self._execute(plan, store, run_id, token, progress),
            name=f"swarmflow-run-{run_id}",
        )
        return WorkflowHandle(run_id, task, token, progress)

    def resolve_gate(self, gate_id: str, approved: bool) -> bool:
        return self.gates.resolve_gate(gate_id, approved)

    def cancel(self, run_id: str | None = None, reason: str = "cancelled") -> int:
        """Cancel one run, or every in-flight run when ``run_id`` is omitted."""
        if run_id is None:
            targets = list(self._tokens.values())
        else:
            targets = [self._tokens[run_id]] if run_id in self._tokens else []
        for token in targets:
            token.cancel(reason)
        return len(targets)

    def active_runs(self) -> tuple[str, ...]:
        return tuple(self._tokens)

    async def _execute(
        self,
        plan: CompositionNode,
        store: ContextStore,
        run_id: str,
        token: CancellationToken,
        progress: ProgressLog,
    ) -> WorkflowResult:
        self.registry.freeze()
        self._tokens[run_id] = token
        runtime = ExecutionRuntime(
            run_id=run_id,
            registry=self.registry,
            invoker=self.invoker,
            gates=self.gates,
            policy=self.policy,
            progress=progress,
            logger_manager=self.logger_manager,
        )
        started_at = datetime.now(UTC)
        self.logger.info(
            "Workflow started",
            extra={"context": {"run_id": run_id, "root": plan.kind.value}},
        )
        try:
            with self.logger_manager.context(run_id=run_id):
                trace = await runtime.execute(
                    plan, store, token, plan.label(ROOT_PATH)
                )
        finally:
            self._tokens.pop(run_id, None)
            progress.close()
        result = WorkflowResult(
            run_id=run_id,
            status=WorkflowStatus.from_node_status(trace.status),
            context=store.snapshot(),
            trace=trace,
            audit_trail=store.audit_trail,
            started_at=started_at,
            finished_at=datetime.now(UTC),
        )
        self.logger.info(
            f"Workflow {result.status.value}",
            extra={
                "context": {
                    "run_id": run_id,
                    "duration": round(result.duration, 6),
                    "failures": len(result.failures()),
                }
            },
        )
        return result


__all__ = ["ExecutionEngine"]
