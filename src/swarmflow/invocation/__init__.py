"""Agent invocation: the transport seam and the retrying leaf invoker."""

from __future__ import annotations

from .invoker import InvocationOutcome, LeafInvoker
from .transport import AgentHandler, AgentTransport, InProcessTransport

__all__ = [
    "AgentHandler",
    "AgentTransport",
    "InProcessTransport",
    "InvocationOutcome",
    "LeafInvoker",
]
