"""Team management: registry records, lifecycle and events."""

from .control import TeamControl
from .errors import (
    CancellationError,
    CapabilityMismatchError,
    CollaborationStoppedError,
    CollaborationTimeoutError,
    ExecutionError,
    MemberNotFoundError,
    SessionNotFoundError,
    TaskNotFoundError,
    TeamError,
    TeamLookupError,
    TeamNotFoundError,
    ValidationError,
)
from .events import EventBus, EventSink, TeamEvent, TeamEventType
from .manager import TeamManager
from .models import (
    CollaborationMode,
    MemberRole,
    MemberSpec,
    MemberStatus,
    MessageType,
    RetryPolicy,
    TaskKind,
    TaskPriority,
    TaskResult,
    TaskStatus,
    Team,
    TeamConfig,
    TeamMember,
    TeamMessage,
    TeamStatus,
    TeamTask,
)
from .snapshot import FileSnapshotStore, SnapshotStore
from .store import RegistryStore
from .templates import TEAM_TEMPLATES, TeamTemplate, get_template, list_templates

__all__ = [
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
    "TeamLookupError",
    "TeamNotFoundError",
    "ValidationError",
    # Events
    "EventBus",
    "EventSink",
    "TeamEvent",
    "TeamEventType",
    # Records
    "CollaborationMode",
    "MemberRole",
    "MemberSpec",
    "MemberStatus",
    "MessageType",
    "RetryPolicy",
    "TaskKind",
    "TaskPriority",
    "TaskResult",
    "TaskStatus",
    "Team",
    "TeamConfig",
    "TeamMember",
    "TeamMessage",
    "TeamStatus",
    "TeamTask",
    # Lifecycle
    "FileSnapshotStore",
    "RegistryStore",
    "SnapshotStore",
    "TeamControl",
    "TeamManager",
    # Templates
    "TEAM_TEMPLATES",
    "TeamTemplate",
    "get_template",
    "list_templates",
]
