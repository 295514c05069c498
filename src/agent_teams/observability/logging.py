"""Structured logging with context for agent teams.

This module provides a logging system with:
- Structured logging using structlog on top of the standard library
- Context propagation (team, session, task and member ids)
- Correlation IDs for request tracking
- Console and rotating file exporters
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Union

import structlog
from structlog.types import Processor

ROOT_LOGGER_NAME = "agent_teams"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def to_int(self) -> int:
        """Convert to logging module integer level."""
        return {
            LogLevel.DEBUG: logging.DEBUG,
            LogLevel.INFO: logging.INFO,
            LogLevel.WARNING: logging.WARNING,
            LogLevel.ERROR: logging.ERROR,
            LogLevel.CRITICAL: logging.CRITICAL,
        }[self]


@dataclass
class LogContext:
    """Context for structured logging.

    Holds contextual data that should be included in all log entries
    within the current execution scope.

    Attributes:
        correlation_id: ID for tracking related requests/operations.
        team_id: ID of the current team.
        session_id: ID of the current collaboration session.
        task_id: ID of the current task.
        member_id: ID of the current team member.
        extra: Additional context data.
    """

    correlation_id: Optional[str] = None
    team_id: Optional[str] = None
    session_id: Optional[str] = None
    task_id: Optional[str] = None
    member_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary for logging."""
        result: Dict[str, Any] = {}
        for key in ("correlation_id", "team_id", "session_id", "task_id", "member_id"):
            value = getattr(self, key)
            if value:
                result[key] = value
        result.update(self.extra)
        return result

    def with_extra(self, **kwargs: Any) -> "LogContext":
        """Create a new context with additional data."""
        return LogContext(
            correlation_id=self.correlation_id,
            team_id=self.team_id,
            session_id=self.session_id,
            task_id=self.task_id,
            member_id=self.member_id,
            extra={**self.extra, **kwargs},
        )


_log_context: ContextVar[Optional[LogContext]] = ContextVar(
    "agent_teams_log_context", default=None
)

# Global context that applies to all log entries
_global_context: Dict[str, Any] = {}


def set_context(context: LogContext) -> None:
    """Set the current log context."""
    _log_context.set(context)


def get_context() -> Optional[LogContext]:
    """Get the current log context."""
    return _log_context.get()


def clear_context() -> None:
    """Clear the current log context."""
    _log_context.set(None)


def set_global_context(**kwargs: Any) -> None:
    """Set global context that applies to all log entries."""
    _global_context.update(kwargs)


def clear_global_context() -> None:
    """Clear all global context."""
    _global_context.clear()


def get_global_context() -> Dict[str, Any]:
    """Get the global context."""
    return _global_context.copy()


@dataclass
class LogExporter:
    """Base configuration for log exporters."""

    name: str
    min_level: LogLevel = LogLevel.DEBUG


@dataclass
class ConsoleExporter(LogExporter):
    """Console log exporter configuration."""

    name: str = "console"
    stream: TextIO = field(default_factory=lambda: sys.stderr)


@dataclass
class FileExporter(LogExporter):
    """File log exporter configuration."""

    name: str = "file"
    path: Union[str, Path] = "agent_teams.log"
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


@dataclass
class LogConfig:
    """Configuration for the logging system.

    Attributes:
        level: Minimum log level.
        exporters: List of log exporters.
        include_caller: Whether to include caller info.
        json_format: Render entries as JSON instead of console lines.
    """

    level: LogLevel = LogLevel.INFO
    exporters: List[LogExporter] = field(default_factory=list)
    include_caller: bool = False
    json_format: bool = False

    def __post_init__(self) -> None:
        if not self.exporters:
            self.exporters = [ConsoleExporter()]


_configured: Optional[LogConfig] = None


def _build_processors(config: LogConfig) -> List[Processor]:
    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if config.include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if config.json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def _build_handler(exporter: LogExporter) -> logging.Handler:
    if isinstance(exporter, FileExporter):
        path = Path(exporter.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            path,
            maxBytes=exporter.max_bytes,
            backupCount=exporter.backup_count,
        )
    elif isinstance(exporter, ConsoleExporter):
        handler = logging.StreamHandler(exporter.stream)
    else:
        handler = logging.StreamHandler()
    handler.setLevel(exporter.min_level.to_int())
    # structlog has already rendered the entry
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def configure_logging(config: Optional[LogConfig] = None) -> None:
    """Configure structlog and the package's standard library handlers.

    Args:
        config: Logging configuration to apply. Defaults to LogConfig().
    """
    global _configured
    config = config or LogConfig()

    structlog.configure(
        processors=_build_processors(config),
        wrapper_class=structlog.make_filtering_bound_logger(config.level.to_int()),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for exporter in config.exporters:
        root.addHandler(_build_handler(exporter))
    root.setLevel(config.level.to_int())

    _configured = config
    for cached in _loggers.values():
        cached._rebind()


def is_configured() -> bool:
    return _configured is not None


class TeamLogger:
    """Structured logger with context support.

    Provides structured logging with automatic context inclusion and
    correlation ID tracking.
    """

    def __init__(self, name: str, bound: Optional[Dict[str, Any]] = None):
        """Initialize the logger.

        Args:
            name: Logger name (usually module name).
            bound: Key-value pairs included in every entry.
        """
        if _configured is None:
            configure_logging()
        self.name = name
        self._bound: Dict[str, Any] = dict(bound or {})
        self._rebind()

    def _rebind(self) -> None:
        self._logger = structlog.get_logger(self.name).bind(**self._bound)

    def _get_merged_context(self, **extra: Any) -> Dict[str, Any]:
        """Merge all context sources into a single dict."""
        context: Dict[str, Any] = {}
        context.update(_global_context)

        log_context = get_context()
        if log_context:
            context.update(log_context.to_dict())

        context.update(extra)
        return context

    def bind(self, **kwargs: Any) -> "TeamLogger":
        """Create a new logger with bound context."""
        return TeamLogger(self.name, {**self._bound, **kwargs})

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log a debug message."""
        self._logger.debug(msg, **self._get_merged_context(**kwargs))

    def info(self, msg: str, **kwargs: Any) -> None:
        """Log an info message."""
        self._logger.info(msg, **self._get_merged_context(**kwargs))

    def warning(self, msg: str, **kwargs: Any) -> None:
        """Log a warning message."""
        self._logger.warning(msg, **self._get_merged_context(**kwargs))

    def error(self, msg: str, **kwargs: Any) -> None:
        """Log an error message."""
        self._logger.error(msg, **self._get_merged_context(**kwargs))

    def critical(self, msg: str, **kwargs: Any) -> None:
        """Log a critical message."""
        self._logger.critical(msg, **self._get_merged_context(**kwargs))

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log an exception with traceback."""
        self._logger.exception(msg, **self._get_merged_context(**kwargs))

    def log(self, level: LogLevel, msg: str, **kwargs: Any) -> None:
        """Log a message at the specified level."""
        method = getattr(self, level.value)
        method(msg, **kwargs)


_loggers: Dict[str, TeamLogger] = {}


def get_logger(name: str = ROOT_LOGGER_NAME) -> TeamLogger:
    """Get or create a logger instance.

    Args:
        name: Logger name.

    Returns:
        TeamLogger instance.
    """
    if name not in _loggers:
        _loggers[name] = TeamLogger(name)
    return _loggers[name]
