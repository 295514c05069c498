"""Agent executor capability.

The engine never runs agent logic itself; it calls an ``AgentExecutor``
with an ``AgentExecutionContext`` describing the assignment. Executors are
typically registered per member role through ``RoleExecutorRouter``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable

from agent_teams.observability.logging import get_logger
from agent_teams.teams.models import MemberRole, TaskResult, Team, TeamMember, TeamTask

logger = get_logger("agent_teams.executor")


@dataclass
class AgentExecutionContext:
    """Everything an executor needs for one assignment.

    Attributes:
        task: The task being executed.
        member: The member executing it.
        team: The team at assignment time.
        session_id: Collaboration session the task belongs to.
        shared_context: Data shared by every execution of the session.
        cancel_event: Set when the session is cancelled.
    """

    task: TeamTask
    member: TeamMember
    team: Team
    session_id: Optional[str] = None
    shared_context: Dict[str, Any] = field(default_factory=dict)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@runtime_checkable
class AgentExecutor(Protocol):
    """Runs one task on behalf of a member."""

    async def __call__(self, context: AgentExecutionContext) -> Any:
        """Execute the task.

        Returns:
            A TaskResult, or any other value which is taken as successful
            output.
        """
        ...


def coerce_result(value: Any) -> TaskResult:
    """Turn an executor return value into a TaskResult."""
    if isinstance(value, TaskResult):
        return value
    return TaskResult(success=True, output=value)


class RoleExecutorRouter:
    """Dispatches executions to the executor registered for the member's role.

    Example:
        router = RoleExecutorRouter()
        router.register(MemberRole.LEADER, plan_executor)
        router.register("worker", work_executor)

        engine = CollaborationEngine(manager, router)
    """

    def __init__(self, default: Optional[AgentExecutor] = None):
        """Initialize the router.

        Args:
            default: Executor used for roles with no registration.
        """
        self._executors: Dict[str, AgentExecutor] = {}
        self._default = default

    def register(self, role: Union[MemberRole, str], executor: AgentExecutor) -> None:
        key = role.value if isinstance(role, MemberRole) else role
        self._executors[key] = executor
        logger.debug("Executor registered", role=key)

    def unregister(self, role: Union[MemberRole, str]) -> bool:
        key = role.value if isinstance(role, MemberRole) else role
        return self._executors.pop(key, None) is not None

    def get(self, role: str) -> Optional[AgentExecutor]:
        return self._executors.get(role, self._default)

    def __contains__(self, role: str) -> bool:
        return role in self._executors

    async def __call__(self, context: AgentExecutionContext) -> TaskResult:
        executor = self.get(context.member.role)
        if executor is None:
            return TaskResult(
                success=False,
                error=f"No executor registered for role '{context.member.role}'",
            )
        return coerce_result(await executor(context))
