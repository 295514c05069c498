"""Observability module for structured logging.

Example:
    from agent_teams.observability import get_logger, LogContext, set_context

    logger = get_logger("agent_teams.my_component")
    set_context(LogContext(team_id="team-1", correlation_id="req-123"))
    logger.info("Dispatching task", task_id="task-456")
"""

from .logging import (
    ConsoleExporter,
    FileExporter,
    LogConfig,
    LogContext,
    LogExporter,
    LogLevel,
    TeamLogger,
    clear_context,
    clear_global_context,
    configure_logging,
    get_context,
    get_global_context,
    get_logger,
    set_context,
    set_global_context,
)

__all__ = [
    "ConsoleExporter",
    "FileExporter",
    "LogConfig",
    "LogContext",
    "LogExporter",
    "LogLevel",
    "TeamLogger",
    "clear_context",
    "clear_global_context",
    "configure_logging",
    "get_context",
    "get_global_context",
    "get_logger",
    "set_context",
    "set_global_context",
]
