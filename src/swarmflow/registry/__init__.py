"""Capability registry: agent contracts and their structural shapes."""

from __future__ import annotations

from .contract import AgentContract, AgentRef
from .registry import CapabilityRegistry
from .shapes import validate_shape

__all__ = ["AgentContract", "AgentRef", "CapabilityRegistry", "validate_shape"]
