"""Explicit default settings for engine configuration."""

from __future__ import annotations

DEFAULT_AGENT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 2
MAX_RETRIES_HARD_CAP = 5
DEFAULT_BACKOFF_BASE = 0.5
DEFAULT_BACKOFF_CAP = 8.0
DEFAULT_GATE_TIMEOUT = 300.0
DEFAULT_MAX_ITERATIONS = 5

ENGINE_DEFAULTS: dict[str, object] = {
    "agent_timeout": DEFAULT_AGENT_TIMEOUT,
    "max_retries": DEFAULT_MAX_RETRIES,
    "max_retries_cap": MAX_RETRIES_HARD_CAP,
    "backoff_base": DEFAULT_BACKOFF_BASE,
    "backoff_cap": DEFAULT_BACKOFF_CAP,
    "gate_timeout": DEFAULT_GATE_TIMEOUT,
    "max_iterations": DEFAULT_MAX_ITERATIONS,
    "parallel_failure_policy": "abort_all",
}
