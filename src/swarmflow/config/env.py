"""Loads engine settings from the environment and optional `.env` files."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os
from pathlib import Path

from dotenv import load_dotenv

from swarmflow.constants import ENV_PREFIX
from swarmflow.utilities.logger_manager import LoggerConfig

from .policy import EnginePolicy

_TRUTHY = {"1", "true", "yes", "on"}


def load_environment(dotenv_path: str | Path | None = None) -> None:
    """Load `.env` files when available to seed setting lookups."""
    path = Path(dotenv_path) if dotenv_path else Path(".env")
    if path.exists():
        load_dotenv(dotenv_path=path)


@dataclass(frozen=True)
class EngineSettings:
    """Process-level settings read from ``SWARMFLOW_*`` variables."""

    log_level: str = "INFO"
    structured_logs: bool = False
    log_dir: Path | None = None
    policy_file: Path | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineSettings:
        env = os.environ if environ is None else environ
        log_dir = env.get(f"{ENV_PREFIX}LOG_DIR")
        policy_file = env.get(f"{ENV_PREFIX}POLICY_FILE")
        return cls(
            log_level=env.get(f"{ENV_PREFIX}LOG_LEVEL", "INFO").upper(),
            structured_logs=env.get(f"{ENV_PREFIX}STRUCTURED_LOGS", "").lower()
            in _TRUTHY,
            log_dir=Path(log_dir) if log_dir else None,
            policy_file=Path(policy_file) if policy_file else None,
        )

    def logger_config(self) -> LoggerConfig:
        return LoggerConfig(
            log_dir=self.log_dir,
            log_level=self.log_level,
            structured_logging=self.structured_logs,
        )

    def load_policy(self) -> EnginePolicy:
        if self.policy_file is None:
            return EnginePolicy()
        return EnginePolicy.load(self.policy_file)


__all__ = ["EngineSettings", "load_environment"]
