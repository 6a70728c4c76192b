"""Engine configuration: defaults, YAML policy, and environment settings."""

from __future__ import annotations

from .defaults import ENGINE_DEFAULTS
from .env import EngineSettings, load_environment
from .policy import EnginePolicy, GatePolicy, LoopPolicy, ParallelPolicy, RetryPolicy

__all__ = [
    "ENGINE_DEFAULTS",
    "EnginePolicy",
    "EngineSettings",
    "GatePolicy",
    "LoopPolicy",
    "ParallelPolicy",
    "RetryPolicy",
    "load_environment",
]
