from __future__ import annotations

from pathlib import Path

import pytest
from tests.stubs.scripted_transport import ScriptedTransport

from swarmflow.config.policy import EnginePolicy, GatePolicy, RetryPolicy
from swarmflow.engine.engine import ExecutionEngine
from swarmflow.registry.registry import CapabilityRegistry
from swarmflow.utilities.logger_manager import LoggerConfig, LoggerManager

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ALLOWED_ARTIFACTS_ROOT = PROJECT_ROOT / "artifacts" / "test"


@pytest.fixture
def test_artifacts_dir(request) -> Path:
    safe_name = (
        request.node.nodeid.replace("::", "__").replace("/", "_").replace("\\", "_")
    )
    target = ALLOWED_ARTIFACTS_ROOT / safe_name
    target.mkdir(parents=True, exist_ok=True)
    return target


@pytest.fixture
def tmp_path(test_artifacts_dir: Path) -> Path:
    return test_artifacts_dir


@pytest.fixture
def logger_manager() -> LoggerManager:
    return LoggerManager("swarmflow.tests", LoggerConfig(log_level="DEBUG"))


@pytest.fixture
def fast_policy() -> EnginePolicy:
    """Engine policy with millisecond backoff so retry tests stay quick."""
    return EnginePolicy(
        retry=RetryPolicy(backoff_base=0.001, backoff_cap=0.004),
        gate=GatePolicy(default_timeout=1.0),
    )


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def registry(logger_manager: LoggerManager) -> CapabilityRegistry:
    return CapabilityRegistry(logger_manager=logger_manager)


@pytest.fixture
def engine(
    registry: CapabilityRegistry,
    transport: ScriptedTransport,
    fast_policy: EnginePolicy,
    logger_manager: LoggerManager,
) -> ExecutionEngine:
    return ExecutionEngine(
        registry, transport, policy=fast_policy, logger_manager=logger_manager
    )

