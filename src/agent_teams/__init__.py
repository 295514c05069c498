"""Agent Teams - multi-agent team management and collaboration.

This package provides:
- A team manager owning teams, members, tasks and inter-agent messages
- Predefined team templates (code review, development, brainstorming)
- A collaboration engine running sessions in sequential, parallel,
  hierarchical or debate mode over pluggable agent executors
- A bounded event bus and structured logging

Example:
    from agent_teams import (
        CollaborationEngine,
        RoleExecutorRouter,
        TaskResult,
        TeamManager,
    )

    async def review(context):
        return TaskResult(success=True, output=f"Reviewed {context.task.title}")

    router = RoleExecutorRouter(default=review)
    manager = TeamManager()
    engine = CollaborationEngine(manager, router)

    session = await engine.collaborate({
        "template": "code-review",
        "tasks": [{"title": "Review parser", "requires": ["lint"]}],
    })
"""

__version__ = "0.1.0"

from .teams import (
    TEAM_TEMPLATES,
    CancellationError,
    CapabilityMismatchError,
    CollaborationMode,
    CollaborationStoppedError,
    CollaborationTimeoutError,
    EventBus,
    EventSink,
    ExecutionError,
    FileSnapshotStore,
    MemberNotFoundError,
    MemberRole,
    MemberSpec,
    MemberStatus,
    MessageType,
    RegistryStore,
    RetryPolicy,
    SessionNotFoundError,
    TaskNotFoundError,
    TaskPriority,
    TaskResult,
    TaskStatus,
    Team,
    TeamConfig,
    TeamControl,
    TeamError,
    TeamEvent,
    TeamEventType,
    TeamManager,
    TeamMember,
    TeamMessage,
    TeamNotFoundError,
    TeamStatus,
    TeamTask,
    TeamTemplate,
    ValidationError,
    get_template,
)
from .collaboration import (
    AgentExecutionContext,
    AgentExecutor,
    CandidateSelector,
    CollaborationEngine,
    CollaborationPhase,
    CollaborationProgress,
    CollaborationRequest,
    CollaborationResult,
    CollaborationSession,
    CollaborationTask,
    EngineConfig,
    LongestOutputSelector,
    RoleExecutorRouter,
    SessionStatus,
)
from .observability import LogConfig, LogContext, configure_logging, get_logger

__all__ = [
    "__version__",
    # Teams
    "TEAM_TEMPLATES",
    "CollaborationMode",
    "EventBus",
    "EventSink",
    "FileSnapshotStore",
    "MemberRole",
    "MemberSpec",
    "MemberStatus",
    "MessageType",
    "RegistryStore",
    "RetryPolicy",
    "TaskPriority",
    "TaskResult",
    "TaskStatus",
    "Team",
    "TeamConfig",
    "TeamControl",
    "TeamEvent",
    "TeamEventType",
    "TeamManager",
    "TeamMember",
    "TeamMessage",
    "TeamStatus",
    "TeamTask",
    "TeamTemplate",
    "get_template",
    # Errors
    "CancellationError",
    "CapabilityMismatchError",
    "CollaborationStoppedError",
    "CollaborationTimeoutError",
    "ExecutionError",
    "MemberNotFoundError",
    "SessionNotFoundError",
    "TaskNotFoundError",
    "TeamError",
    "TeamNotFoundError",
    "ValidationError",
    # Collaboration
    "AgentExecutionContext",
    "AgentExecutor",
    "CandidateSelector",
    "CollaborationEngine",
    "CollaborationPhase",
    "CollaborationProgress",
    "CollaborationRequest",
    "CollaborationResult",
    "CollaborationSession",
    "CollaborationTask",
    "EngineConfig",
    "LongestOutputSelector",
    "RoleExecutorRouter",
    "SessionStatus",
    # Observability
    "LogConfig",
    "LogContext",
    "configure_logging",
    "get_logger",
]
