"""Collaboration session records and request models.

Requests arrive as pydantic models (or mappings validated into them);
sessions, results and progress snapshots are plain dataclasses owned by
the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from agent_teams.teams.errors import ValidationError
from agent_teams.teams.models import CollaborationMode, TaskPriority, new_id


class SessionStatus(str, Enum):
    """Lifecycle state of a collaboration session."""

    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED)


class CollaborationPhase(str, Enum):
    """Phase of a running session; phases only move forward."""

    PLANNING = "planning"
    EXECUTING = "executing"
    REVIEWING = "reviewing"
    AGGREGATING = "aggregating"

    @property
    def order(self) -> int:
        return _PHASE_ORDER.index(self)


_PHASE_ORDER = [
    CollaborationPhase.PLANNING,
    CollaborationPhase.EXECUTING,
    CollaborationPhase.REVIEWING,
    CollaborationPhase.AGGREGATING,
]


@dataclass
class CollaborationResult:
    """Outcome of one top-level task of a session.

    Attributes:
        task_id: Top-level task id.
        title: Task title.
        success: Whether the task completed successfully.
        output: Final output of the task.
        error: Error message if the task failed.
        duration: Execution time in seconds.
        attempts: Number of executor invocations.
        member_id: Member that produced the final output.
        candidates: Debate candidate results.
        sub_results: Hierarchical sub-task results.
    """

    task_id: str
    title: str
    success: bool
    output: Any = None
    error: Optional[str] = None
    duration: float = 0.0
    attempts: int = 1
    member_id: Optional[str] = None
    candidates: List["CollaborationResult"] = field(default_factory=list)
    sub_results: List["CollaborationResult"] = field(default_factory=list)


@dataclass
class CollaborationProgress:
    """Progress snapshot delivered to progress callbacks."""

    session_id: str
    phase: Optional[CollaborationPhase]
    completed_tasks: int
    total_tasks: int
    current_task: Optional[str] = None
    results: List[CollaborationResult] = field(default_factory=list)

    @property
    def fraction(self) -> float:
        if self.total_tasks == 0:
            return 1.0
        return self.completed_tasks / self.total_tasks


@dataclass
class CollaborationSession:
    """Record of one collaboration run.

    Attributes:
        id: Session id.
        team_id: Team executing the session.
        mode: Collaboration mode in effect.
        status: Session lifecycle state.
        phase: Current phase; None while initializing.
        task_ids: Participating top-level tasks in submission order.
        results: Results of finished top-level tasks.
        started_at: When the session was created.
        ended_at: When the session reached a terminal status.
        deadline: Absolute deadline derived from the timeout option.
        error: Cause of failure or cancellation.
        template: Template the team was created from, if any.
        summary: Aggregated counts written in the aggregating phase.
    """

    team_id: str
    mode: CollaborationMode
    id: str = field(default_factory=lambda: new_id("session"))
    status: SessionStatus = SessionStatus.INITIALIZING
    phase: Optional[CollaborationPhase] = None
    task_ids: List[str] = field(default_factory=list)
    results: List[CollaborationResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: Optional[datetime] = None
    deadline: Optional[datetime] = None
    error: Optional[str] = None
    template: Optional[str] = None
    summary: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal

    @property
    def duration(self) -> Optional[float]:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

    def snapshot(self) -> "CollaborationSession":
        """Copy that shares no mutable containers with this session."""
        return replace(
            self,
            task_ids=list(self.task_ids),
            results=list(self.results),
            summary=dict(self.summary),
        )


ProgressCallback = Callable[[CollaborationProgress], Any]


class CollaborationTask(BaseModel):
    """A task submitted for collaboration.

    ``key`` names the task within its request so that later tasks can list
    it in ``depends_on``.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    description: str = ""
    priority: TaskPriority = TaskPriority.NORMAL
    required_capabilities: List[str] = Field(default_factory=list, alias="requires")
    input: Any = None
    key: Optional[str] = Field(default=None, min_length=1)
    depends_on: List[str] = Field(default_factory=list)


class CollaborationOptions(BaseModel):
    """Options of a collaboration request.

    Attributes:
        timeout: Seconds before the session is cancelled.
        on_progress: Called synchronously after every finished task.
        stop_on_first_failure: Sequential mode stops at the first failure.
        debate_candidates: Candidates per task in debate mode.
        shared_context: Data handed to every executor invocation.
    """

    timeout: Optional[float] = Field(default=None, gt=0)
    on_progress: Optional[ProgressCallback] = None
    stop_on_first_failure: bool = False
    debate_candidates: Optional[int] = Field(default=None, ge=1)
    shared_context: Dict[str, Any] = Field(default_factory=dict)


class CollaborationRequest(BaseModel):
    """Request to run a set of tasks on a team or a template team."""

    team_id: Optional[str] = None
    template: Optional[str] = None
    tasks: List[CollaborationTask] = Field(min_length=1)
    mode: Optional[CollaborationMode] = None
    options: CollaborationOptions = Field(default_factory=CollaborationOptions)

    @model_validator(mode="after")
    def _check_target(self) -> "CollaborationRequest":
        if (self.team_id is None) == (self.template is None):
            raise ValueError("exactly one of team_id or template must be given")
        return self

    @model_validator(mode="after")
    def _check_dependencies(self) -> "CollaborationRequest":
        seen = set()
        for task in self.tasks:
            for key in task.depends_on:
                if key not in seen:
                    raise ValueError(
                        f"task '{task.title}' depends on '{key}', which is not an earlier task key"
                    )
            if task.key is not None:
                if task.key in seen:
                    raise ValueError(f"duplicate task key '{task.key}'")
                seen.add(task.key)
        return self

    @classmethod
    def parse(cls, data: Union["CollaborationRequest", Mapping[str, Any]]) -> "CollaborationRequest":
        """Validate a request given as a model or a mapping.

        Raises:
            ValidationError: If the request is malformed.
        """
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid collaboration request: {exc}") from exc
