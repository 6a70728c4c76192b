"""Guard against implicit configuration paths."""

from __future__ import annotations

from pathlib import Path

import pytest

from swarmflow.config import ENGINE_DEFAULTS
from swarmflow.config.policy import EnginePolicy, GatePolicy, RetryPolicy
from swarmflow.enums import GateTimeoutPolicy, ParallelFailurePolicy
from swarmflow.registry.contract import AgentContract


def test_engine_policy_uses_declared_defaults() -> None:
    policy = EnginePolicy()
    assert policy.retry == RetryPolicy()
    assert policy.retry.backoff_base == ENGINE_DEFAULTS["backoff_base"]
    assert policy.gate.default_timeout == ENGINE_DEFAULTS["gate_timeout"]
    assert policy.gate.default_on_timeout is GateTimeoutPolicy.CANCEL
    assert policy.loop.default_max_iterations == ENGINE_DEFAULTS["max_iterations"]
    assert policy.parallel.default_failure_policy is ParallelFailurePolicy.ABORT_ALL


def test_contract_defaults_match_engine_defaults() -> None:
    contract = AgentContract(name="writer")
    assert contract.timeout == ENGINE_DEFAULTS["agent_timeout"]
    assert contract.max_retries == ENGINE_DEFAULTS["max_retries"]
    assert contract.idempotent is False


def test_policy_load_returns_defaults_for_missing_file(tmp_path: Path) -> None:
    policy = EnginePolicy.load(tmp_path / "does_not_exist.yaml")
    assert policy == EnginePolicy()


def test_policy_load_applies_overrides(tmp_path: Path) -> None:
    path = tmp_path / "policy.yaml"
    path.write_text(
        "retry:\n"
        "  backoff_base: 0.1\n"
        "  backoff_cap: 1.0\n"
        "gate:\n"
        "  default_on_timeout: proceed_default\n"
        "parallel:\n"
        "  default_failure_policy: best_effort\n",
        encoding="utf-8",
    )
    policy = EnginePolicy.load(path)

    assert policy.retry == RetryPolicy(backoff_base=0.1, backoff_cap=1.0)
    assert policy.gate == GatePolicy(default_on_timeout=GateTimeoutPolicy.PROCEED_DEFAULT)
    assert policy.parallel.default_failure_policy is ParallelFailurePolicy.BEST_EFFORT
    assert policy.loop.default_max_iterations == ENGINE_DEFAULTS["max_iterations"]


def test_empty_policy_file_is_all_defaults(tmp_path: Path) -> None:
    path = tmp_path / "policy.yaml"
    path.write_text("", encoding="utf-8")
    assert EnginePolicy.load(path) == EnginePolicy()


def test_backoff_doubles_and_caps() -> None:
    policy = RetryPolicy(backoff_base=0.5, backoff_cap=3.0)
    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [0.5, 1.0, 2.0, 3.0]
    assert policy.delay_for(2, base=0.1) == pytest.approx(0.2)
    assert policy.delay_for(5, cap=0.25) == 0.25
    with pytest.raises(ValueError):
        policy.delay_for(0)


def test_unknown_policy_values_are_rejected() -> None:
    with pytest.raises(ValueError):
        EnginePolicy.from_mapping({"parallel": {"default_failure_policy": "sometimes"}})
    with pytest.raises(TypeError):
        EnginePolicy.from_mapping({"loop": {"max_loops": 3}})
