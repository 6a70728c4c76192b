"""Polling handle for a workflow submitted in the background."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from swarmflow.cancellation import CancellationToken
from swarmflow.enums import RunState

from .progress import ProgressLog, TraceEvent
from .results import WorkflowResult


class WorkflowHandle:
    def __init__(
        self,
        run_id: str,
        task: asyncio.Task[WorkflowResult],
        token: CancellationToken,
        progress: ProgressLog,
    ) -> None:
        self.run_id = run_id
        self._task = task
        self._token = token
        self._progress = progress

    def status(self) -> RunState:
        if not self._task.done():
            return RunState.RUNNING
        if self._task.cancelled() or self._task.exception() is not None:
            return RunState.FAILED
        return RunState(self._task.result().status.value)

    def done(self) -> bool:
        return self._task.done()

    def cancel(self, reason: str = "cancelled by caller") -> bool:
        """Request cooperative cancellation; ``False`` once the run has ended."""
        if self._task.done():
            return False
        self._token.cancel(reason)
        return True

    async def result(self) -> WorkflowResult:
        return await asyncio.shield(self._task)

    def progress(self, start: int = 0) -> AsyncIterator[TraceEvent]:
        """Follow trace events from ``start``; can be called again to resume."""
        return self._progress.follow(start)


__all__ = ["WorkflowHandle"]
