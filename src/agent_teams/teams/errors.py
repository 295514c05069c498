"""Error taxonomy for team management and collaboration.

Lookup errors (unknown team, member, task or session ids) are raised
synchronously by the manager and the engine and are never mixed up with
execution errors, which stay scoped to a single task.
"""

from __future__ import annotations

from typing import Iterable, Optional


class TeamError(Exception):
    """Base class for all team and collaboration errors."""

    pass


class ValidationError(TeamError):
    """Raised for malformed team, member, template or request input."""

    pass


class CapabilityMismatchError(ValidationError):
    """Raised when no member can ever satisfy a task's required capabilities.

    Attributes:
        task_titles: Titles of the tasks that cannot be served.
    """

    def __init__(self, message: str, task_titles: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.task_titles = list(task_titles or [])


class ExecutionError(TeamError):
    """Wraps an agent executor failure for a single task.

    Attributes:
        task_id: ID of the task whose execution failed.
    """

    def __init__(self, message: str, task_id: Optional[str] = None):
        super().__init__(message)
        self.task_id = task_id


class CollaborationStoppedError(TeamError):
    """Raised when a session stops early because a task failed.

    Attributes:
        task_id: ID of the failed task that stopped the session.
    """

    def __init__(self, message: str, task_id: Optional[str] = None):
        super().__init__(message)
        self.task_id = task_id


class CollaborationTimeoutError(TeamError, TimeoutError):
    """Raised when a collaboration session runs past its deadline."""

    pass


class CancellationError(TeamError):
    """Raised when a collaboration session is cancelled explicitly."""

    pass


class TeamLookupError(TeamError, LookupError):
    """Base class for unknown id errors."""

    pass


class TeamNotFoundError(TeamLookupError):
    """Raised when a team id is unknown."""

    def __init__(self, team_id: str):
        super().__init__(f"Team '{team_id}' not found")
        self.team_id = team_id


class MemberNotFoundError(TeamLookupError):
    """Raised when a member id is unknown within a team."""

    def __init__(self, member_id: str, team_id: Optional[str] = None):
        where = f" in team '{team_id}'" if team_id else ""
        super().__init__(f"Member '{member_id}' not found{where}")
        self.member_id = member_id
        self.team_id = team_id


class TaskNotFoundError(TeamLookupError):
    """Raised when a task id is unknown within a team."""

    def __init__(self, task_id: str, team_id: Optional[str] = None):
        where = f" in team '{team_id}'" if team_id else ""
        super().__init__(f"Task '{task_id}' not found{where}")
        self.task_id = task_id
        self.team_id = team_id


class SessionNotFoundError(TeamLookupError):
    """Raised when a collaboration session id is unknown."""

    def __init__(self, session_id: str):
        super().__init__(f"Session '{session_id}' not found")
        self.session_id = session_id
