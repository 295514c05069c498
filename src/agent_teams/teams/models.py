"""Core records for teams, members, tasks and messages.

Every record is an immutable dataclass. The registry store replaces
records wholesale (read, compute the new record with ``dataclasses.replace``,
store it), so a record handed out to a caller is never mutated afterwards.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ValidationError


def new_id(prefix: str) -> str:
    """Create a fresh identifier with a readable prefix."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class MemberRole(str, Enum):
    """Well-known member roles.

    Roles are capability tags rather than a type hierarchy; any string is
    accepted as a role, these are the ones the collaboration strategies
    look for.
    """

    LEADER = "leader"
    WORKER = "worker"
    REVIEWER = "reviewer"
    COORDINATOR = "coordinator"
    SPECIALIST = "specialist"


class MemberStatus(str, Enum):
    """Availability of a team member."""

    IDLE = "idle"
    BUSY = "busy"
    OFFLINE = "offline"


class TaskStatus(str, Enum):
    """Lifecycle state of a team task."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether the task can no longer transition."""
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)

    @property
    def is_active(self) -> bool:
        """Whether the task currently occupies a member."""
        return self in (TaskStatus.ASSIGNED, TaskStatus.RUNNING)


# Allowed transitions. Pending tasks may be resolved directly when their
# work was delegated (hierarchical and debate umbrella tasks). Assigned is
# only entered through the manager's assignment calls.
TASK_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({
        TaskStatus.ASSIGNED,
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    }),
    TaskStatus.ASSIGNED: frozenset({
        TaskStatus.RUNNING,
        TaskStatus.PENDING,
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    }),
    TaskStatus.RUNNING: frozenset({
        TaskStatus.PENDING,
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    }),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


class TaskPriority(str, Enum):
    """Priority of a task; lower rank is scheduled first."""

    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    TaskPriority.CRITICAL: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.NORMAL: 2,
    TaskPriority.LOW: 3,
}


class TaskKind(str, Enum):
    """What a task represents inside a collaboration session."""

    STANDARD = "standard"
    DECOMPOSE = "decompose"
    SUBTASK = "subtask"
    SYNTHESIZE = "synthesize"
    CANDIDATE = "candidate"
    JUDGE = "judge"


class CollaborationMode(str, Enum):
    """Dispatch strategy for a collaboration session."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    HIERARCHICAL = "hierarchical"
    DEBATE = "debate"


class MessageType(str, Enum):
    """Type of an inter-agent message."""

    PLAN = "plan"
    RESULT = "result"
    PROPOSAL = "proposal"
    VERDICT = "verdict"
    STATUS = "status"
    REQUEST = "request"
    RESPONSE = "response"


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy for failed task executions.

    Attributes:
        max_retries: Extra attempts after the first failed one.
        backoff: Delay in seconds between attempts.
    """

    max_retries: int = 0
    backoff: float = 0.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValidationError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.backoff < 0:
            raise ValidationError(f"backoff must be >= 0, got {self.backoff}")


@dataclass(frozen=True)
class TeamConfig:
    """Configuration for a team.

    Attributes:
        max_concurrency: Maximum tasks simultaneously assigned or running.
        task_timeout: Per-execution timeout in seconds, None to disable.
        retry: Retry policy for failed executions.
    """

    max_concurrency: int = 5
    task_timeout: Optional[float] = 300.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValidationError(
                f"max_concurrency must be >= 1, got {self.max_concurrency}"
            )
        if self.task_timeout is not None and self.task_timeout <= 0:
            raise ValidationError(f"task_timeout must be > 0, got {self.task_timeout}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_concurrency": self.max_concurrency,
            "task_timeout": self.task_timeout,
            "retry": {"max_retries": self.retry.max_retries, "backoff": self.retry.backoff},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeamConfig":
        retry = data.get("retry") or {}
        return cls(
            max_concurrency=data.get("max_concurrency", 5),
            task_timeout=data.get("task_timeout", 300.0),
            retry=RetryPolicy(**retry),
        )


@dataclass(frozen=True)
class TaskResult:
    """Outcome of executing a task.

    Attributes:
        success: Whether the execution succeeded.
        output: Output produced by the agent.
        error: Error message if the execution failed.
        duration: Execution time in seconds.
        metadata: Additional result metadata.
    """

    success: bool
    output: Any = None
    error: Optional[str] = None
    duration: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "duration": self.duration,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskResult":
        return cls(
            success=data["success"],
            output=data.get("output"),
            error=data.get("error"),
            duration=data.get("duration", 0.0),
            metadata=data.get("metadata") or {},
        )


@dataclass(frozen=True)
class TeamMember:
    """An agent worker within a team.

    Attributes:
        id: Unique identifier of the member.
        name: Name, unique within the team.
        role: Role tag such as leader, worker or reviewer.
        capabilities: Capability tags the member can serve.
        status: Current availability.
        load: Number of tasks currently assigned to the member.
        metadata: Additional member metadata.
    """

    id: str
    name: str
    role: str
    capabilities: FrozenSet[str] = frozenset()
    status: MemberStatus = MemberStatus.IDLE
    load: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def can_handle(
        self,
        required_capabilities: Iterable[str],
        role: Optional[str] = None,
    ) -> bool:
        """Check whether the member satisfies capabilities (subset match) and role."""
        if role is not None and self.role != role:
            return False
        return frozenset(required_capabilities) <= self.capabilities

    @property
    def is_available(self) -> bool:
        return self.status == MemberStatus.IDLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "capabilities": sorted(self.capabilities),
            "status": self.status.value,
            "load": self.load,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeamMember":
        return cls(
            id=data["id"],
            name=data["name"],
            role=data["role"],
            capabilities=frozenset(data.get("capabilities") or ()),
            status=MemberStatus(data.get("status", MemberStatus.IDLE.value)),
            load=data.get("load", 0),
            metadata=data.get("metadata") or {},
        )


@dataclass(frozen=True)
class TeamTask:
    """A unit of work tracked through the task state machine.

    Attributes:
        id: Unique identifier of the task.
        team_id: Owning team.
        title: Short title.
        description: Longer description of the work.
        priority: Scheduling priority.
        required_capabilities: Capabilities a member must have (may be empty).
        status: Current lifecycle state.
        assignee_id: Member currently or last holding the task.
        result: Execution result once terminal.
        input: Arbitrary input for the executor.
        kind: Role of the task within a collaboration session.
        required_role: Restricts eligible members to a single role.
        parent_id: Umbrella task this task was derived from.
        group: Anti-affinity group; tasks of one group go to distinct members.
        excluded_members: Members that may not take the task.
        depends_on: Tasks that must complete before this one is assigned.
        retry_count: Number of retried executions.
        sequence: Creation order used for FIFO scheduling.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
    """

    id: str
    team_id: str
    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.NORMAL
    required_capabilities: FrozenSet[str] = frozenset()
    status: TaskStatus = TaskStatus.PENDING
    assignee_id: Optional[str] = None
    result: Optional[TaskResult] = None
    input: Any = None
    kind: TaskKind = TaskKind.STANDARD
    required_role: Optional[str] = None
    parent_id: Optional[str] = None
    group: Optional[str] = None
    excluded_members: FrozenSet[str] = frozenset()
    depends_on: Tuple[str, ...] = ()
    retry_count: int = 0
    sequence: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def schedule_key(self) -> Tuple[int, int]:
        """Sort key: priority tier first, then creation order."""
        return (self.priority.rank, self.sequence)

    def can_be_taken_by(self, member: TeamMember) -> bool:
        """Whether the member satisfies capabilities and role and is not excluded."""
        if member.id in self.excluded_members:
            return False
        return member.can_handle(self.required_capabilities, self.required_role)

    def with_status(self, status: TaskStatus, **changes: Any) -> "TeamTask":
        return replace(self, status=status, updated_at=datetime.now(), **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "required_capabilities": sorted(self.required_capabilities),
            "status": self.status.value,
            "assignee_id": self.assignee_id,
            "result": self.result.to_dict() if self.result else None,
            "input": self.input,
            "kind": self.kind.value,
            "required_role": self.required_role,
            "parent_id": self.parent_id,
            "group": self.group,
            "excluded_members": sorted(self.excluded_members),
            "depends_on": list(self.depends_on),
            "retry_count": self.retry_count,
            "sequence": self.sequence,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeamTask":
        result = data.get("result")
        return cls(
            id=data["id"],
            team_id=data["team_id"],
            title=data["title"],
            description=data.get("description", ""),
            priority=TaskPriority(data.get("priority", TaskPriority.NORMAL.value)),
            required_capabilities=frozenset(data.get("required_capabilities") or ()),
            status=TaskStatus(data.get("status", TaskStatus.PENDING.value)),
            assignee_id=data.get("assignee_id"),
            result=TaskResult.from_dict(result) if result else None,
            input=data.get("input"),
            kind=TaskKind(data.get("kind", TaskKind.STANDARD.value)),
            required_role=data.get("required_role"),
            parent_id=data.get("parent_id"),
            group=data.get("group"),
            excluded_members=frozenset(data.get("excluded_members") or ()),
            depends_on=tuple(data.get("depends_on") or ()),
            retry_count=data.get("retry_count", 0),
            sequence=data.get("sequence", 0),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass(frozen=True)
class TeamMessage:
    """An inter-agent message; recipient None means broadcast."""

    id: str
    team_id: str
    sender_id: str
    type: MessageType
    payload: Any = None
    recipient_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_broadcast(self) -> bool:
        return self.recipient_id is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "sender_id": self.sender_id,
            "type": self.type.value,
            "payload": self.payload,
            "recipient_id": self.recipient_id,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeamMessage":
        return cls(
            id=data["id"],
            team_id=data["team_id"],
            sender_id=data["sender_id"],
            type=MessageType(data["type"]),
            payload=data.get("payload"),
            recipient_id=data.get("recipient_id"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass(frozen=True)
class Team:
    """A named collection of members collaborating under one mode and config.

    The store keeps teams without their members; ``members`` is filled with
    the current member records whenever a team is read.
    """

    id: str
    name: str
    description: Optional[str] = None
    members: Tuple[TeamMember, ...] = ()
    mode: CollaborationMode = CollaborationMode.PARALLEL
    config: TeamConfig = field(default_factory=TeamConfig)
    dissolving: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def get_member(self, member_id: str) -> Optional[TeamMember]:
        for member in self.members:
            if member.id == member_id:
                return member
        return None

    def members_with_role(self, role: str) -> Tuple[TeamMember, ...]:
        return tuple(m for m in self.members if m.role == role)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "members": [m.to_dict() for m in self.members],
            "mode": self.mode.value,
            "config": self.config.to_dict(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Team":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description"),
            members=tuple(TeamMember.from_dict(m) for m in data.get("members") or ()),
            mode=CollaborationMode(data.get("mode", CollaborationMode.PARALLEL.value)),
            config=TeamConfig.from_dict(data.get("config") or {}),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass
class TeamStatus:
    """Aggregate, read-only view of a team's workload."""

    team: Team
    total_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    pending_tasks: int = 0
    running_tasks: int = 0
    cancelled_tasks: int = 0
    member_load: Dict[str, int] = field(default_factory=dict)
    active_sessions: List[Any] = field(default_factory=list)


class MemberSpec(BaseModel):
    """Description of a member to create; ids are assigned by the manager.

    Attributes:
        name: Member name, unique within the team.
        role: Role tag; ``MemberRole`` values are normalized to strings.
        capabilities: Capability tags the member can serve.
        metadata: Additional member metadata.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    role: str = Field(min_length=1)
    capabilities: FrozenSet[str] = Field(default_factory=frozenset)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        return value
