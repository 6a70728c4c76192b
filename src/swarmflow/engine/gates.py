"""Pending external approvals and the signal channel that resolves them."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime

from swarmflow.cancellation import CancellationToken
from swarmflow.errors import PlanError
from swarmflow.utilities.logger_manager import LoggerManager, default_logger_manager


@dataclass
class PendingGate:
    gate_id: str
    run_id: str
    node_path: str
    prompt: str = ""
    registered_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    decision: asyncio.Future[bool] = field(
        default_factory=lambda: asyncio.get_running_loop().create_future(),
        repr=False,
    )


class GateController:
    """Registers gate waits and resumes them when a signal arrives.

    Signals must be delivered from the event loop running the workflow.
    ``resolve_gate`` is idempotent: a second signal, or a signal for a gate
    that is not waiting, is ignored and reported with ``False``.
    """

    def __init__(self, logger_manager: LoggerManager | None = None) -> None:
        self._pending: dict[str, PendingGate] = {}
        self._changed = asyncio.Event()
        self.logger_manager = logger_manager or default_logger_manager()
        self.logger = self.logger_manager.get_logger()

    def register(
        self, gate_id: str, *, run_id: str, node_path: str, prompt: str = ""
    ) -> PendingGate:
        if gate_id in self._pending:
            raise PlanError(
                f"Gate {gate_id!r} is already waiting",
                details=f"held by {self._pending[gate_id].node_path}",
            )
        pending = PendingGate(
            gate_id=gate_id, run_id=run_id, node_path=node_path, prompt=prompt
        )
        self._pending[gate_id] = pending
        self.logger.info(
            "Gate waiting for signal",
            extra={"context": {"gate_id": gate_id, "run_id": run_id, "node": node_path}},
        )
        self._wake()
        return pending

    def resolve_gate(self, gate_id: str, approved: bool) -> bool:
        pending = self._pending.get(gate_id)
        if pending is None or pending.decision.done():
            self.logger.debug(
                "Ignoring signal for gate that is not waiting",
                extra={"context": {"gate_id": gate_id, "approved": approved}},
            )
            return False
        pending.decision.set_result(bool(approved))
        self.logger.info(
            "Gate signalled",
            extra={"context": {"gate_id": gate_id, "approved": bool(approved)}},
        )
        return True

    async def wait(
        self,
        pending: PendingGate,
        timeout: float,
        token: CancellationToken,
    ) -> bool | None:
        """Return the signalled decision, or ``None`` if ``timeout`` elapsed.

        Raises :class:`~swarmflow.errors.WorkflowCancelledError` when the token
        fires while waiting.
        """
        try:
            return await token.guard(asyncio.wait_for(pending.decision, timeout))
        except asyncio.TimeoutError:
            return None
        finally:
            if self._pending.get(pending.gate_id) is pending:
                del self._pending[pending.gate_id]
            if not pending.decision.done():
                pending.decision.cancel()
            self._wake()

    def pending_ids(self) -> tuple[str, ...]:
        return tuple(self._pending)

    def pending(self, gate_id: str) -> PendingGate | None:
        return self._pending.get(gate_id)

    async def wait_until_pending(self, gate_id: str | None = None) -> str:
        """Block until ``gate_id`` (or any gate, when omitted) is waiting."""
        while True:
            changed = self._changed
            if gate_id is None and self._pending:
                return next(iter(self._pending))
            if gate_id is not None and gate_id in self._pending:
                return gate_id
            await changed.wait()

    def _wake(self) -> None:
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()


__all__ = ["GateController", "PendingGate"]
