"""Utilities package for swarmflow.

Logging and telemetry helpers shared by the registry, invoker and engine.
"""

from __future__ import annotations

from .logger_manager import (
    CustomLogger,
    LoggerConfig,
    LoggerManager,
    MetricType,
    default_logger_manager,
)

__all__ = [
    "CustomLogger",
    "LoggerConfig",
    "LoggerManager",
    "MetricType",
    "default_logger_manager",
]
