"""Retry, gate, loop and parallel defaults parsed from an engine policy YAML."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from swarmflow.enums import GateTimeoutPolicy, ParallelFailurePolicy

from .defaults import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_CAP,
    DEFAULT_GATE_TIMEOUT,
    DEFAULT_MAX_ITERATIONS,
    MAX_RETRIES_HARD_CAP,
)


@dataclass
class RetryPolicy:
    """Backoff used by the leaf invoker when a contract does not set its own."""

    backoff_base: float = DEFAULT_BACKOFF_BASE
    backoff_cap: float = DEFAULT_BACKOFF_CAP
    max_retries_cap: int = MAX_RETRIES_HARD_CAP

    def delay_for(
        self,
        retry_number: int,
        base: float | None = None,
        cap: float | None = None,
    ) -> float:
        """Delay before retry ``retry_number`` (1-based): base doubling, capped."""
        if retry_number < 1:
            raise ValueError("retry_number starts at 1")
        resolved_base = self.backoff_base if base is None else base
        resolved_cap = self.backoff_cap if cap is None else cap
        return min(resolved_base * (2 ** (retry_number - 1)), resolved_cap)


@dataclass
class GatePolicy:
    default_timeout: float = DEFAULT_GATE_TIMEOUT
    default_on_timeout: GateTimeoutPolicy = GateTimeoutPolicy.CANCEL

    def __post_init__(self) -> None:
        self.default_on_timeout = GateTimeoutPolicy(self.default_on_timeout)


@dataclass
class LoopPolicy:
    default_max_iterations: int = DEFAULT_MAX_ITERATIONS


@dataclass
class ParallelPolicy:
    default_failure_policy: ParallelFailurePolicy = ParallelFailurePolicy.ABORT_ALL

    def __post_init__(self) -> None:
        self.default_failure_policy = ParallelFailurePolicy(
            self.default_failure_policy
        )


@dataclass
class EnginePolicy:
    """Aggregates the defaults the engine applies to nodes that leave them unset."""

    retry: RetryPolicy = field(default_factory=RetryPolicy)
    gate: GatePolicy = field(default_factory=GatePolicy)
    loop: LoopPolicy = field(default_factory=LoopPolicy)
    parallel: ParallelPolicy = field(default_factory=ParallelPolicy)

    @classmethod
    def load(cls, path: Path | str) -> EnginePolicy:
        """Load overrides from a YAML policy file if it exists."""
        resolved = Path(path)
        if not resolved.is_file():
            return cls()
        raw: dict[str, Any] = yaml.safe_load(resolved.read_text(encoding="utf-8")) or {}
        return cls.from_mapping(raw)

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> EnginePolicy:
        return cls(
            retry=RetryPolicy(**raw.get("retry", {})),
            gate=GatePolicy(**raw.get("gate", {})),
            loop=LoopPolicy(**raw.get("loop", {})),
            parallel=ParallelPolicy(**raw.get("parallel", {})),
        )
