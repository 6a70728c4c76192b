"""The single seam between the engine and agent implementations."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
import inspect
from typing import Any, Protocol

from swarmflow.errors import InvocationError
from swarmflow.registry.contract import AgentRef

AgentHandler = Callable[[Mapping[str, Any]], Awaitable[Any] | Any]


class AgentTransport(Protocol):
    """Carries one request to an agent and returns its JSON output.

    Implementations raise on failure; any exception other than a
    :class:`~swarmflow.errors.SwarmflowError` is reported as an
    :class:`~swarmflow.errors.InvocationError`.
    """

    async def invoke(self, agent_ref: AgentRef, payload: Mapping[str, Any]) -> Any: ...


class InProcessTransport:
    """Dispatches calls to handlers bound by agent name in the same process."""

    def __init__(self, handlers: Mapping[str, AgentHandler] | None = None) -> None:
        self._handlers: dict[str, AgentHandler] = dict(handlers or {})

    def bind(self, name: str, handler: AgentHandler) -> None:
        self._handlers[name] = handler

    async def invoke(self, agent_ref: AgentRef, payload: Mapping[str, Any]) -> Any:
        handler = self._handlers.get(agent_ref.name)
        if handler is None:
            raise InvocationError(f"Unknown agent: {agent_ref}")
        result = handler(payload)
        if inspect.isawaitable(result):
            result = await result
        return result
