"""Logger manager with coloured console output, JSON records, and run telemetry.

The engine logs through a :class:`CustomLogger` obtained from a
:class:`LoggerManager`. Every call passes ``extra={"context": {...}}`` so the
structured formatter can emit the workflow run id, node path and similar
fields alongside the message. Counters, gauges and histograms recorded with
:meth:`LoggerManager.log_metric` stay in memory and can be read back with
:meth:`LoggerManager.get_metrics`.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
import datetime
from enum import Enum
import json
import logging
from logging import Handler, Logger, LogRecord, getLevelName
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys
import threading
from typing import Any, ClassVar

import colorlog

_BOUND_CONTEXT: ContextVar[dict[str, Any]] = ContextVar(
    "swarmflow_log_context", default={}
)


class MetricType(Enum):
    """Enum for supported metric types."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass
class LoggerConfig:
    """Configuration for LoggerManager."""

    log_dir: Path | None = None
    log_level: str = "INFO"
    log_file_name: str = "swarmflow.log"
    max_file_size_mb: int = 10
    backup_count: int = 3
    structured_logging: bool = False
    telemetry_enabled: bool = True
    propagate: bool = False
    log_colors: dict[str, str] | None = None
    histogram_buckets: list[float] = field(default_factory=list)

    DEFAULT_LOG_COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "cyan",
        "INFO": "green",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "red,bg_white",
    }
    DEFAULT_HISTOGRAM_BUCKETS: ClassVar[list[float]] = [
        0.01,
        0.1,
        0.5,
        1.0,
        5.0,
        30.0,
        float("inf"),
    ]

    def __post_init__(self) -> None:
        self.log_level = self.log_level.upper()
        if self.log_dir is not None:
            self.log_dir = Path(self.log_dir).resolve()
            self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_colors = self.log_colors or dict(self.DEFAULT_LOG_COLORS)
        self.histogram_buckets = self.histogram_buckets or list(
            self.DEFAULT_HISTOGRAM_BUCKETS
        )


class _ContextFilter(logging.Filter):
    """Attach the bound context to every record that lacks an explicit one."""

    def filter(self, record: LogRecord) -> bool:
        bound = _BOUND_CONTEXT.get()
        explicit = getattr(record, "context", None)
        if isinstance(explicit, Mapping):
            record.context = {**bound, **explicit}
        else:
            record.context = dict(bound)
        return True


class StructuredFormatter(logging.Formatter):
    """Render records as one JSON object per line."""

    def format(self, record: LogRecord) -> str:
        payload = {
            "timestamp": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
            "context": getattr(record, "context", {}),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class LoggerSettings:
    """Builds the console and file handlers for a configuration."""

    def __init__(self, config: LoggerConfig) -> None:
        self.config = config

    def get_handlers(self) -> list[Handler]:
        handlers = [self._get_console_handler()]
        file_handler = self._get_file_handler()
        if file_handler is not None:
            handlers.append(file_handler)
        return handlers

    def _get_console_handler(self) -> Handler:
        handler = colorlog.StreamHandler(sys.stderr)
        if self.config.structured_logging:
            handler.setFormatter(StructuredFormatter())
        else:
            handler.setFormatter(
                colorlog.ColoredFormatter(
                    "%(log_color)s%(asctime)s - [%(levelname)s] %(name)s: %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                    log_colors=self.config.log_colors,
                )
            )
        handler.addFilter(_ContextFilter())
        return handler

    def _get_file_handler(self) -> Handler | None:
        if self.config.log_dir is None:
            return None
        file_path = self.config.log_dir / self.config.log_file_name
        try:
            handler = RotatingFileHandler(
                file_path,
                maxBytes=self.config.max_file_size_mb * 1024 * 1024,
                backupCount=self.config.backup_count,
                encoding="utf-8",
            )
        except OSError as exc:
            print(f"Failed to create RotatingFileHandler: {exc}", file=sys.stderr)
            return None
        handler.setFormatter(
            StructuredFormatter()
            if self.config.structured_logging
            else logging.Formatter(
                "%(asctime)s - [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        handler.addFilter(_ContextFilter())
        return handler


class CustomLogger:
    """Thin wrapper exposing the manager's context binding on a logger."""

    def __init__(self, logger: Logger, manager: LoggerManager) -> None:
        self.logger = logger
        self.manager = manager

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.logger.error(msg, *args, **kwargs)

    def log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        self.logger.log(level, msg, *args, **kwargs)

    @contextmanager
    def context(self, **context_kwargs: Any) -> Iterator[CustomLogger]:
        with self.manager.context(**context_kwargs):
            yield self


class LoggerManager:
    """Owns one configured logger plus the in-memory telemetry store."""

    def __init__(
        self,
        name: str | LoggerConfig = "swarmflow",
        config: LoggerConfig | None = None,
    ) -> None:
        if isinstance(name, LoggerConfig):
            config = name
            name = "swarmflow"
        self.name = name
        self.config = config or LoggerConfig()
        self.settings = LoggerSettings(self.config)
        self._telemetry_metrics: dict[str, dict[str, Any]] = defaultdict(
            lambda: {
                "type": MetricType.COUNTER.value,
                "value": 0,
                "histogram": defaultdict(int),
                "tags": {},
            }
        )
        self._metrics_lock = threading.Lock()
        self._logger = self._configure_logger()

    def get_logger(self) -> CustomLogger:
        return CustomLogger(self._logger, self)

    def _configure_logger(self) -> Logger:
        logger = logging.getLogger(self.name)
        logger.setLevel(getLevelName(self.config.log_level))
        logger.propagate = self.config.propagate
        if getattr(logger, "_swarmflow_configured", False):
            return logger
        for handler in self.settings.get_handlers():
            logger.addHandler(handler)
        logger._swarmflow_configured = True  # type: ignore[attr-defined]
        return logger

    @contextmanager
    def context(self, **context_kwargs: Any) -> Iterator[Logger]:
        """Bind fields to every record logged inside the block (task-local)."""
        token = _BOUND_CONTEXT.set({**_BOUND_CONTEXT.get(), **context_kwargs})
        try:
            yield self._logger
        finally:
            _BOUND_CONTEXT.reset(token)

    def log_metric(
        self,
        metric_name: str,
        value: int | float,
        metric_type: MetricType = MetricType.COUNTER,
        tags: Mapping[str, str] | None = None,
    ) -> None:
        """Record a counter increment, gauge value, or histogram observation."""
        if not self.config.telemetry_enabled:
            return
        tags_dict = dict(tags or {})
        with self._metrics_lock:
            metric = self._telemetry_metrics[metric_name]
            metric["type"] = metric_type.value
            metric["tags"] = tags_dict
            if metric_type == MetricType.GAUGE:
                metric["value"] = value
            else:
                metric["value"] += value
            if metric_type == MetricType.HISTOGRAM:
                for bucket in self.config.histogram_buckets:
                    if value <= bucket:
                        metric["histogram"][f"le_{bucket}"] += 1
                        break
        self._logger.debug(
            f"Metric recorded: {metric_name} = {value}",
            extra={"context": {"metric": metric_name, "tags": tags_dict}},
        )

    def get_metrics(self) -> dict[str, dict[str, Any]]:
        with self._metrics_lock:
            return {
                name: {**metric, "histogram": dict(metric["histogram"])}
                for name, metric in self._telemetry_metrics.items()
            }

    def metric_value(self, metric_name: str) -> int | float:
        with self._metrics_lock:
            metric = self._telemetry_metrics.get(metric_name)
            return metric["value"] if metric else 0

    def reset_metrics(self) -> None:
        with self._metrics_lock:
            self._telemetry_metrics.clear()

    def flush(self) -> None:
        for handler in self._logger.handlers:
            handler.flush()


_default_manager: LoggerManager | None = None


def default_logger_manager() -> LoggerManager:
    """Process-wide manager used when a component is built without one."""
    global _default_manager
    if _default_manager is None:
        _default_manager = LoggerManager("swarmflow")
    return _default_manager
