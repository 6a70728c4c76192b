"""Incremental progress events observable while a workflow runs."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

from pydantic import ConfigDict, Field

from swarmflow.enums import NodeStatus, TraceEventKind
from swarmflow.schema.base import TypedBaseModel


class TraceEvent(TypedBaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    sequence: int = Field(..., ge=0)
    run_id: str
    node_path: str
    kind: TraceEventKind
    status: NodeStatus | None = None
    timestamp: datetime
    detail: dict[str, Any] = Field(default_factory=dict)


class ProgressLog:
    """Append-only event log that consumers can follow from any offset.

    ``follow`` is restartable: a consumer that stops can resume from the
    sequence number after the last event it saw. With ``max_events`` only
    the most recent events are retained and a late consumer resumes from
    the oldest one still held.
    """

    def __init__(self, run_id: str, max_events: int | None = None) -> None:
        self.run_id = run_id
        self._events: deque[TraceEvent] = deque(maxlen=max_events)
        self._next_sequence = 0
        self._closed = False
        self._changed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def events(self) -> tuple[TraceEvent, ...]:
        return tuple(self._events)

    def emit(
        self,
        kind: TraceEventKind,
        node_path: str,
        status: NodeStatus | None = None,
        /,
        **detail: Any,
    ) -> TraceEvent:
        if self._closed:
            raise RuntimeError(f"Progress log for run {self.run_id} is closed")
        event = TraceEvent(
            sequence=self._next_sequence,
            run_id=self.run_id,
            node_path=node_path,
            kind=kind,
            status=status,
            timestamp=datetime.now(UTC),
            detail=detail,
        )
        self._next_sequence += 1
        self._events.append(event)
        self._wake()
        return event

    def close(self) -> None:
        self._closed = True
        self._wake()

    def since(self, start: int) -> list[TraceEvent]:
        return [event for event in self._events if event.sequence >= start]

    async def follow(self, start: int = 0) -> AsyncIterator[TraceEvent]:
        """Yield events from ``start`` onwards until the run finishes."""
        position = start
        while True:
            changed = self._changed
            batch = self.since(position)
            if batch:
                for event in batch:
                    position = event.sequence + 1
                    yield event
                continue
            if self._closed:
                return
            await changed.wait()

    def _wake(self) -> None:
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()


__all__ = ["ProgressLog", "TraceEvent"]
