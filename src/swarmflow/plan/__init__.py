"""Plan values: composition nodes, predicates, validation, and loading."""

from __future__ import annotations

from .conditions import (
    all_of,
    any_of,
    key_contains,
    key_equals,
    key_in,
    key_present,
    key_value,
    negate,
)
from .loader import load_plan, plan_from_mapping
from .nodes import (
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
from .validation import validate_plan

__all__ = [
    "AgentClassifier",
    "CompositionNode",
    "Coordinator",
    "Gate",
    "Leaf",
    "Loop",
    "Parallel",
    "Sequential",
    "all_of",
    "any_of",
    "cluster_key",
    "key_contains",
    "key_equals",
    "key_in",
    "key_present",
    "key_value",
    "load_plan",
    "negate",
    "plan_from_mapping",
    "validate_plan",
]
