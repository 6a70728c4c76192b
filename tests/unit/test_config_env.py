from __future__ import annotations

from pathlib import Path

import pytest

from swarmflow.config.env import EngineSettings, load_environment
from swarmflow.config.policy import EnginePolicy


def test_settings_default_without_variables() -> None:
    settings = EngineSettings.from_env({})
    assert settings == EngineSettings()
    assert settings.load_policy() == EnginePolicy()


def test_settings_read_prefixed_variables(tmp_path: Path) -> None:
    policy_file = tmp_path / "policy.yaml"
    policy_file.write_text("loop:\n  default_max_iterations: 9\n", encoding="utf-8")
    settings = EngineSettings.from_env(
        {
            "SWARMFLOW_LOG_LEVEL": "debug",
            "SWARMFLOW_STRUCTURED_LOGS": "yes",
            "SWARMFLOW_LOG_DIR": str(tmp_path / "logs"),
            "SWARMFLOW_POLICY_FILE": str(policy_file),
        }
    )

    assert settings.log_level == "DEBUG"
    assert settings.structured_logs is True
    config = settings.logger_config()
    assert config.structured_logging is True
    assert config.log_dir == tmp_path / "logs"
    assert config.log_level == "DEBUG"
    assert settings.load_policy().loop.default_max_iterations == 9


def test_load_environment_reads_dotenv(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("SWARMFLOW_LOG_LEVEL", "unset")
    monkeypatch.delenv("SWARMFLOW_LOG_LEVEL")
    dotenv = tmp_path / "swarmflow.env"
    dotenv.write_text("SWARMFLOW_LOG_LEVEL=warning\n", encoding="utf-8")

    load_environment(dotenv)

    assert EngineSettings.from_env().log_level == "WARNING"


def test_load_environment_ignores_missing_file(tmp_path: Path) -> None:
    load_environment(tmp_path / "absent.env")
