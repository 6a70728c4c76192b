"""Cooperative cancellation tokens shared by in-flight node executions."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
import inspect
from typing import TypeVar
import weakref

from swarmflow.errors import WorkflowCancelledError

T = TypeVar("T")


class CancellationToken:
    """A cancel flag that cascades depth-first to every child token.

    Nodes check the token before starting new work and race their suspension
    points (agent calls, backoff sleeps, gate waits) against it through
    :meth:`guard` and :meth:`sleep`.
    """

    def __init__(self, parent: CancellationToken | None = None) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._children: weakref.WeakSet[CancellationToken] = weakref.WeakSet()
        if parent is not None:
            parent._children.add(self)
            if parent.cancelled:
                self.cancel(parent.reason or "cancelled")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def child(self) -> CancellationToken:
        return CancellationToken(parent=self)

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        for child in list(self._children):
            child.cancel(reason)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise WorkflowCancelledError(
                "Execution cancelled", details=self._reason or None
            )

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        On cancellation the outstanding call is cancelled locally (the remote
        side may keep running) and :class:`WorkflowCancelledError` is raised
        once the call has unwound. A call that ignores cancellation is allowed
        to finish first; its result is discarded.
        """
        if self.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.wait({task})
        if task in done:
            return task.result()
        if not task.cancelled():
            task.exception()
        raise WorkflowCancelledError(
            "Execution cancelled while waiting", details=self._reason or None
        )

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, raising early if the token fires."""
        if delay <= 0:
            self.raise_if_cancelled()
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()
