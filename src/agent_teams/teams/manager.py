"""Team manager: lifecycle of teams, members, tasks and messages.

The manager owns every state transition of the registry. It is created
explicitly and injected wherever it is needed; nothing in the package
holds a process-wide instance.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

from pydantic import ValidationError as PydanticValidationError

from agent_teams.observability.logging import get_logger

from .errors import MemberNotFoundError, TeamNotFoundError, ValidationError
from .events import EventBus, TeamEvent, TeamEventType
from .models import (
    TASK_TRANSITIONS,
    CollaborationMode,
    MemberSpec,
    MemberStatus,
    MessageType,
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
    new_id,
)
from .store import RegistryStore

if TYPE_CHECKING:
    from .snapshot import SnapshotStore

logger = get_logger("agent_teams.manager")

MemberInput = Union[MemberSpec, TeamMember, Mapping[str, Any]]

_TASK_EVENTS = {
    TaskStatus.RUNNING: TeamEventType.TASK_STARTED,
    TaskStatus.COMPLETED: TeamEventType.TASK_COMPLETED,
    TaskStatus.FAILED: TeamEventType.TASK_FAILED,
    TaskStatus.CANCELLED: TeamEventType.TASK_CANCELLED,
}


def _role_value(role: Any) -> Optional[str]:
    if role is None:
        return None
    return role.value if hasattr(role, "value") else str(role)


class TeamManager:
    """Registry and lifecycle controller for agent teams.

    Example:
        manager = TeamManager(events=EventBus())

        team = manager.create_team(
            "qa",
            members=[
                {"name": "tester", "role": "worker", "capabilities": ["test"]},
                {"name": "reviewer", "role": "reviewer", "capabilities": ["review"]},
            ],
        )
        task = manager.create_task(team.id, "Run tests", required_capabilities=["test"])
        assignment = manager.assign_task(team.id)
        if assignment:
            task, member = assignment
            manager.update_task_status(team.id, task.id, TaskStatus.RUNNING)
    """

    def __init__(
        self,
        store: Optional[RegistryStore] = None,
        events: Optional[EventBus] = None,
    ):
        """Initialize the manager.

        Args:
            store: Record store; a fresh empty store when omitted.
            events: Event bus receiving lifecycle events.
        """
        self._store = store if store is not None else RegistryStore()
        self._events = events
        self._release_signals: Dict[str, asyncio.Event] = {}

    @property
    def events(self) -> Optional[EventBus]:
        return self._events

    @property
    def store(self) -> RegistryStore:
        return self._store

    def _emit(
        self,
        event_type: TeamEventType,
        team_id: Optional[str],
        payload: Any = None,
    ) -> None:
        if self._events is not None:
            self._events.emit(TeamEvent(type=event_type, team_id=team_id, payload=payload))

    def _signal_release(self, team_id: str) -> None:
        # Waiters hold the old event; the next waiter gets a fresh one.
        signal = self._release_signals.pop(team_id, None)
        if signal is not None:
            signal.set()

    @staticmethod
    def _to_spec(member: MemberInput) -> MemberSpec:
        if isinstance(member, MemberSpec):
            return member
        if isinstance(member, TeamMember):
            return MemberSpec(
                name=member.name,
                role=member.role,
                capabilities=member.capabilities,
                metadata=dict(member.metadata),
            )
        try:
            return MemberSpec.model_validate(dict(member))
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid member definition: {exc}") from exc

    @staticmethod
    def _build_member(spec: MemberSpec) -> TeamMember:
        return TeamMember(
            id=new_id("member"),
            name=spec.name,
            role=spec.role,
            capabilities=frozenset(spec.capabilities),
            metadata=dict(spec.metadata),
        )

    # -- Teams ---------------------------------------------------------------

    def create_team(
        self,
        name: str,
        members: Iterable[MemberInput] = (),
        config: Union[TeamConfig, Mapping[str, Any], None] = None,
        description: Optional[str] = None,
        mode: Union[CollaborationMode, str, None] = None,
    ) -> Team:
        """Create and register a new team.

        Args:
            name: Team name.
            members: Member definitions; ids are assigned here.
            config: Team configuration or a mapping of its fields.
            description: Optional description.
            mode: Default collaboration mode (parallel when omitted).

        Returns:
            The registered team with its members.

        Raises:
            ValidationError: If the name is empty or member names repeat.
        """
        if not name or not name.strip():
            raise ValidationError("Team name must not be empty")

        specs = [self._to_spec(m) for m in members]
        seen: Set[str] = set()
        for spec in specs:
            if spec.name in seen:
                raise ValidationError(f"Duplicate member name '{spec.name}'")
            seen.add(spec.name)

        if config is None:
            config = TeamConfig()
        elif not isinstance(config, TeamConfig):
            config = TeamConfig.from_dict(dict(config))

        try:
            resolved_mode = CollaborationMode(mode) if mode is not None else CollaborationMode.PARALLEL
        except ValueError as exc:
            raise ValidationError(f"Unknown collaboration mode '{mode}'") from exc

        team = Team(
            id=new_id("team"),
            name=name,
            description=description,
            mode=resolved_mode,
            config=config,
        )
        self._store.add_team(team)
        for spec in specs:
            self._store.add_member(team.id, self._build_member(spec))

        created = self._store.get_team(team.id)
        logger.info(
            "Team created",
            team_id=created.id,
            team_name=created.name,
            members=len(created.members),
            mode=created.mode.value,
        )
        self._emit(TeamEventType.TEAM_CREATED, created.id, created)
        return created

    def get_team(self, team_id: str) -> Team:
        """Get a team by id.

        Raises:
            TeamNotFoundError: If the team does not exist.
        """
        return self._store.get_team(team_id)

    def list_teams(self) -> List[Team]:
        return self._store.list_teams()

    def dissolve_team(self, team_id: str) -> List[TeamTask]:
        """Dissolve a team, cancelling all of its unfinished tasks.

        The team is first marked dissolving so no further assignment
        happens, then every non-terminal task is cancelled exactly once and
        the team is removed together with its members, tasks and messages.
        A single team-dissolved event is emitted.

        Returns:
            The tasks cancelled by the dissolution.
        """
        self._store.update_team(
            team_id, lambda t: replace(t, dissolving=True, updated_at=datetime.now())
        )

        cancelled: List[TeamTask] = []
        for task in self._store.list_tasks(team_id):
            if task.status.is_terminal:
                continue
            _, updated = self._store.update_task(
                team_id, task.id, lambda t: t.with_status(TaskStatus.CANCELLED)
            )
            cancelled.append(updated)

        team = self._store.remove_team(team_id)
        logger.info("Team dissolved", team_id=team_id, cancelled_tasks=len(cancelled))
        self._emit(
            TeamEventType.TEAM_DISSOLVED,
            team_id,
            {"team": team, "cancelled_task_ids": [t.id for t in cancelled]},
        )
        self._signal_release(team_id)
        return cancelled

    def get_team_status(self, team_id: str) -> TeamStatus:
        """Compute a read-only aggregate of the team's workload."""
        team = self._store.get_team(team_id)
        tasks = self._store.list_tasks(team_id)
        counts = {status: 0 for status in TaskStatus}
        for task in tasks:
            counts[task.status] += 1
        return TeamStatus(
            team=team,
            total_tasks=len(tasks),
            completed_tasks=counts[TaskStatus.COMPLETED],
            failed_tasks=counts[TaskStatus.FAILED],
            pending_tasks=counts[TaskStatus.PENDING],
            running_tasks=counts[TaskStatus.ASSIGNED] + counts[TaskStatus.RUNNING],
            cancelled_tasks=counts[TaskStatus.CANCELLED],
            member_load={m.id: m.load for m in team.members},
        )

    # -- Members -------------------------------------------------------------

    def get_member(self, team_id: str, member_id: str) -> TeamMember:
        return self._store.get_member(team_id, member_id)

    def add_member(self, team_id: str, member: MemberInput) -> TeamMember:
        """Add a member to an existing team.

        Raises:
            TeamNotFoundError: If the team does not exist.
            ValidationError: If the team is dissolving or the name is taken.
        """
        team = self._store.get_team(team_id)
        if team.dissolving:
            raise ValidationError(f"Team '{team_id}' is dissolving")
        spec = self._to_spec(member)
        if any(m.name == spec.name for m in team.members):
            raise ValidationError(f"Member name '{spec.name}' already used in team '{team_id}'")

        added = self._build_member(spec)
        self._store.add_member(team_id, added)
        logger.info("Member joined", team_id=team_id, member_id=added.id, role=added.role)
        self._emit(TeamEventType.MEMBER_JOINED, team_id, added)
        self._signal_release(team_id)
        return added

    def remove_member(self, team_id: str, member_id: str, force: bool = False) -> TeamMember:
        """Remove a member from a team.

        Args:
            team_id: Team id.
            member_id: Member to remove.
            force: Remove even while the member holds tasks; those tasks
                return to pending with no assignee.

        Raises:
            ValidationError: If the member holds tasks and force is False.
        """
        member = self._store.get_member(team_id, member_id)
        if member.load > 0 and not force:
            raise ValidationError(
                f"Member '{member_id}' has {member.load} task(s) in flight; use force to remove"
            )

        requeued = 0
        for task in self._store.list_tasks(team_id):
            if task.assignee_id == member_id and task.status.is_active:
                self._store.update_task(
                    team_id,
                    task.id,
                    lambda t: t.with_status(TaskStatus.PENDING, assignee_id=None),
                )
                requeued += 1

        removed = self._store.remove_member(team_id, member_id)
        logger.info("Member left", team_id=team_id, member_id=member_id, requeued_tasks=requeued)
        self._emit(TeamEventType.MEMBER_LEFT, team_id, removed)
        self._signal_release(team_id)
        return removed

    def set_member_status(
        self,
        team_id: str,
        member_id: str,
        status: Union[MemberStatus, str],
    ) -> TeamMember:
        """Take a member offline or bring it back.

        Busy is derived from load and cannot be set directly; bringing a
        member back while it still holds tasks leaves it busy.
        """
        status = MemberStatus(status)
        if status == MemberStatus.BUSY:
            raise ValidationError("Member status 'busy' is derived from load")

        def apply(member: TeamMember) -> TeamMember:
            if status == MemberStatus.OFFLINE:
                new_status = MemberStatus.OFFLINE
            else:
                new_status = MemberStatus.BUSY if member.load > 0 else MemberStatus.IDLE
            if new_status == member.status:
                return member
            return replace(member, status=new_status)

        old, new = self._store.update_member(team_id, member_id, apply)
        if new is not old:
            logger.info(
                "Member status changed",
                team_id=team_id,
                member_id=member_id,
                status=new.status.value,
            )
            self._emit(TeamEventType.MEMBER_STATUS_CHANGED, team_id, new)
            self._signal_release(team_id)
        return new

    def find_eligible_members(
        self,
        team_id: str,
        capabilities: Iterable[str] = (),
        role: Optional[str] = None,
    ) -> List[TeamMember]:
        """Members that are not offline and satisfy capabilities and role."""
        required = frozenset(capabilities)
        role = _role_value(role)
        return [
            m
            for m in self._store.list_members(team_id)
            if m.status != MemberStatus.OFFLINE and m.can_handle(required, role)
        ]

    def _release_member(self, team_id: str, member_id: str) -> None:
        if not self._store.has_member(team_id, member_id):
            return

        def release(member: TeamMember) -> TeamMember:
            load = max(0, member.load - 1)
            if member.status == MemberStatus.OFFLINE:
                status = MemberStatus.OFFLINE
            else:
                status = MemberStatus.IDLE if load == 0 else MemberStatus.BUSY
            return replace(member, load=load, status=status)

        self._store.update_member(team_id, member_id, release)

    # -- Tasks ---------------------------------------------------------------

    def create_task(
        self,
        team_id: str,
        title: str,
        *,
        description: str = "",
        priority: Union[TaskPriority, str] = TaskPriority.NORMAL,
        required_capabilities: Iterable[str] = (),
        required_role: Optional[str] = None,
        input: Any = None,
        kind: Union[TaskKind, str] = TaskKind.STANDARD,
        parent_id: Optional[str] = None,
        group: Optional[str] = None,
        excluded_members: Iterable[str] = (),
        depends_on: Iterable[str] = (),
    ) -> TeamTask:
        """Register a pending task.

        Args:
            excluded_members: Members that may not take the task.
            depends_on: Tasks of the same team that must complete first.

        Raises:
            TeamNotFoundError: If the team does not exist.
            TaskNotFoundError: If a dependency does not exist.
            ValidationError: If the title is empty, the team is dissolving
                or a dependency already failed or was cancelled.
        """
        team = self._store.get_team(team_id)
        if team.dissolving:
            raise ValidationError(f"Team '{team_id}' is dissolving")
        if not title or not title.strip():
            raise ValidationError("Task title must not be empty")
        try:
            priority = TaskPriority(priority)
            kind = TaskKind(kind)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        dependencies = tuple(dict.fromkeys(depends_on))
        for dependency_id in dependencies:
            dependency = self._store.get_task(team_id, dependency_id)
            if dependency.status in (TaskStatus.FAILED, TaskStatus.CANCELLED):
                raise ValidationError(
                    f"Dependency '{dependency_id}' is {dependency.status.value}"
                )

        task = TeamTask(
            id=new_id("task"),
            team_id=team_id,
            title=title,
            description=description,
            priority=priority,
            required_capabilities=frozenset(required_capabilities),
            input=input,
            kind=kind,
            required_role=_role_value(required_role),
            parent_id=parent_id,
            group=group,
            excluded_members=frozenset(excluded_members),
            depends_on=dependencies,
            sequence=self._store.next_sequence(),
        )
        self._store.add_task(task)
        logger.debug(
            "Task created",
            team_id=team_id,
            task_id=task.id,
            kind=task.kind.value,
            priority=task.priority.value,
        )
        self._emit(TeamEventType.TASK_CREATED, team_id, task)
        return task

    def get_task(self, team_id: str, task_id: str) -> TeamTask:
        return self._store.get_task(team_id, task_id)

    def list_tasks(
        self,
        team_id: str,
        status: Union[TaskStatus, str, None] = None,
        task_ids: Optional[Iterable[str]] = None,
    ) -> List[TeamTask]:
        return self._store.list_tasks(
            team_id,
            status=TaskStatus(status) if status is not None else None,
            task_ids=task_ids,
        )

    def _active_count(self, team_id: str) -> int:
        return sum(1 for t in self._store.list_tasks(team_id) if t.status.is_active)

    def _group_holders(self, tasks: Sequence[TeamTask]) -> Dict[str, Set[str]]:
        """Members that hold or held a task of each anti-affinity group."""
        holders: Dict[str, Set[str]] = {}
        for task in tasks:
            if task.group is not None and task.assignee_id is not None:
                holders.setdefault(task.group, set()).add(task.assignee_id)
        return holders

    def unmet_dependencies(self, team_id: str, task: TeamTask) -> List[str]:
        """Ids of the task's dependencies that have not completed."""
        unmet = []
        for dependency_id in task.depends_on:
            if not self._store.has_task(team_id, dependency_id):
                unmet.append(dependency_id)
            elif self._store.get_task(team_id, dependency_id).status != TaskStatus.COMPLETED:
                unmet.append(dependency_id)
        return unmet

    def assign_task(
        self,
        team_id: str,
        task_ids: Optional[Iterable[str]] = None,
    ) -> Optional[Tuple[TeamTask, TeamMember]]:
        """Assign the next schedulable pending task to an idle member.

        Pending tasks are considered by priority tier, then creation order.
        Tasks with unmet dependencies are skipped. The first task for which
        an idle, non-excluded member satisfies capabilities, role and group
        anti-affinity is assigned to the first such member in team order.

        Args:
            team_id: Team id.
            task_ids: Restrict the candidates to these tasks.

        Returns:
            The assigned task and member, or None when nothing is eligible,
            the team is dissolving or the concurrency limit is reached.
        """
        team = self._store.get_team(team_id)
        if team.dissolving:
            return None

        tasks = self._store.list_tasks(team_id)
        active = sum(1 for t in tasks if t.status.is_active)
        if active >= team.config.max_concurrency:
            logger.debug("Concurrency limit reached", team_id=team_id, active=active)
            return None

        wanted = set(task_ids) if task_ids is not None else None
        pending = sorted(
            (
                t
                for t in tasks
                if t.status == TaskStatus.PENDING and (wanted is None or t.id in wanted)
            ),
            key=lambda t: t.schedule_key,
        )
        if not pending:
            return None

        holders = self._group_holders(tasks)
        for task in pending:
            if self.unmet_dependencies(team_id, task):
                continue
            excluded = holders.get(task.group, set()) if task.group is not None else set()
            for member in team.members:
                if member.status != MemberStatus.IDLE or member.id in excluded:
                    continue
                if task.can_be_taken_by(member):
                    return self._assign(team_id, task.id, member.id)
        return None

    def assign_task_to(self, team_id: str, task_id: str, member_id: str) -> TeamTask:
        """Manually assign a pending task to a specific member.

        The member may already be busy but must not be offline and must
        satisfy the task's capabilities and role. The task's dependencies
        must have completed.

        Raises:
            ValidationError: If the assignment is not allowed.
        """
        team = self._store.get_team(team_id)
        if team.dissolving:
            raise ValidationError(f"Team '{team_id}' is dissolving")
        task = self._store.get_task(team_id, task_id)
        member = self._store.get_member(team_id, member_id)

        if task.status != TaskStatus.PENDING:
            raise ValidationError(f"Task '{task_id}' is {task.status.value}, not pending")
        if member.status == MemberStatus.OFFLINE:
            raise ValidationError(f"Member '{member_id}' is offline")
        if not task.can_be_taken_by(member):
            raise ValidationError(f"Member '{member_id}' cannot handle task '{task_id}'")
        unmet = self.unmet_dependencies(team_id, task)
        if unmet:
            raise ValidationError(
                f"Task '{task_id}' has unmet dependencies: {', '.join(unmet)}"
            )
        if self._active_count(team_id) >= team.config.max_concurrency:
            raise ValidationError(
                f"Team '{team_id}' is at its concurrency limit ({team.config.max_concurrency})"
            )

        assigned, _ = self._assign(team_id, task_id, member_id)
        return assigned

    def _assign(self, team_id: str, task_id: str, member_id: str) -> Tuple[TeamTask, TeamMember]:
        _, task = self._store.update_task(
            team_id,
            task_id,
            lambda t: t.with_status(TaskStatus.ASSIGNED, assignee_id=member_id),
        )

        def occupy(member: TeamMember) -> TeamMember:
            status = member.status if member.status == MemberStatus.OFFLINE else MemberStatus.BUSY
            return replace(member, load=member.load + 1, status=status)

        _, member = self._store.update_member(team_id, member_id, occupy)
        logger.debug("Task assigned", team_id=team_id, task_id=task_id, member_id=member_id)
        self._emit(TeamEventType.TASK_ASSIGNED, team_id, task)
        return task, member

    def update_task_status(
        self,
        team_id: str,
        task_id: str,
        status: Union[TaskStatus, str],
        result: Optional[TaskResult] = None,
        member_id: Optional[str] = None,
    ) -> TeamTask:
        """Move a task through its state machine.

        Terminal tasks never change; the call returns the record unchanged.
        When ``member_id`` is given and the task is no longer held by that
        member the call is a stale completion and is likewise ignored.

        On a terminal transition, or a return to pending, the assignee's
        load is released exactly once. A task that fails or is cancelled
        fails its pending dependents.

        Assignment goes through ``assign_task`` or ``assign_task_to``, which
        also occupy the member.

        Raises:
            ValidationError: If the transition is not allowed.
        """
        status = TaskStatus(status)
        if status == TaskStatus.ASSIGNED:
            raise ValidationError(
                f"Task '{task_id}' cannot be set to assigned directly; use assign_task or assign_task_to"
            )
        current = self._store.get_task(team_id, task_id)

        if current.status.is_terminal:
            logger.debug(
                "Ignoring update of terminal task",
                team_id=team_id,
                task_id=task_id,
                status=current.status.value,
            )
            return current
        if member_id is not None and current.assignee_id != member_id:
            logger.debug(
                "Ignoring stale task update",
                team_id=team_id,
                task_id=task_id,
                member_id=member_id,
            )
            return current
        if status not in TASK_TRANSITIONS[current.status]:
            raise ValidationError(
                f"Invalid task transition {current.status.value} -> {status.value}"
            )

        changes: Dict[str, Any] = {}
        if result is not None:
            changes["result"] = result
        if status == TaskStatus.PENDING:
            changes["assignee_id"] = None

        _, updated = self._store.update_task(
            team_id, task_id, lambda t: t.with_status(status, **changes)
        )

        released = current.status.is_active and (status.is_terminal or status == TaskStatus.PENDING)
        if released and current.assignee_id is not None:
            self._release_member(team_id, current.assignee_id)

        event_type = _TASK_EVENTS.get(status)
        if event_type is not None:
            self._emit(event_type, team_id, updated)
        if status.is_terminal:
            logger.debug("Task finished", team_id=team_id, task_id=task_id, status=status.value)
        if released or status.is_terminal:
            self._signal_release(team_id)
        if status in (TaskStatus.FAILED, TaskStatus.CANCELLED):
            self._fail_dependents(team_id, updated)
        return updated

    def _fail_dependents(self, team_id: str, task: TeamTask) -> None:
        for dependent in self._store.list_tasks(team_id, status=TaskStatus.PENDING):
            if task.id not in dependent.depends_on:
                continue
            logger.debug(
                "Failing dependent task",
                team_id=team_id,
                task_id=dependent.id,
                dependency_id=task.id,
            )
            self.update_task_status(
                team_id,
                dependent.id,
                TaskStatus.FAILED,
                result=TaskResult(
                    success=False,
                    error=f"Dependency '{task.title}' {task.status.value}",
                ),
            )

    def record_retry(self, team_id: str, task_id: str) -> TeamTask:
        _, updated = self._store.update_task(
            team_id,
            task_id,
            lambda t: replace(t, retry_count=t.retry_count + 1, updated_at=datetime.now()),
        )
        return updated

    def cleanup_tasks(self, team_id: str) -> int:
        """Remove terminal tasks of a team.

        Tasks that an unfinished task still depends on are kept.

        Returns:
            Number of tasks removed.
        """
        tasks = self._store.list_tasks(team_id)
        referenced = {
            dependency_id
            for task in tasks
            if not task.status.is_terminal
            for dependency_id in task.depends_on
        }
        removed = 0
        for task in tasks:
            if task.status.is_terminal and task.id not in referenced:
                self._store.remove_task(team_id, task.id)
                removed += 1
        if removed:
            logger.debug("Terminal tasks removed", team_id=team_id, count=removed)
        return removed

    async def wait_for_release(self, team_id: str, timeout: Optional[float] = None) -> bool:
        """Wait until a task of the team is released or membership changes.

        Returns:
            True if signalled, False on timeout.
        """
        if not self._store.has_team(team_id):
            raise TeamNotFoundError(team_id)
        signal = self._release_signals.get(team_id)
        if signal is None:
            signal = asyncio.Event()
            self._release_signals[team_id] = signal
        try:
            await asyncio.wait_for(signal.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # -- Messages ------------------------------------------------------------

    def send_message(
        self,
        team_id: str,
        sender_id: str,
        type: Union[MessageType, str],
        payload: Any = None,
        recipient_id: Optional[str] = None,
    ) -> TeamMessage:
        """Append a message to the team's message log.

        Args:
            team_id: Team id.
            sender_id: Sending member.
            type: Message type.
            payload: Message content.
            recipient_id: Receiving member; None broadcasts to the team.

        Raises:
            MemberNotFoundError: If sender or recipient is not in the team.
        """
        if not self._store.has_member(team_id, sender_id):
            self._store.get_team(team_id)
            raise MemberNotFoundError(sender_id, team_id)
        if recipient_id is not None and not self._store.has_member(team_id, recipient_id):
            raise MemberNotFoundError(recipient_id, team_id)

        message = TeamMessage(
            id=new_id("msg"),
            team_id=team_id,
            sender_id=sender_id,
            type=MessageType(type),
            payload=payload,
            recipient_id=recipient_id,
        )
        self._store.append_message(message)
        self._emit(TeamEventType.MESSAGE_SENT, team_id, message)
        return message

    def get_messages(self, team_id: str, member_id: Optional[str] = None) -> List[TeamMessage]:
        """Messages of a team, optionally as seen by one member.

        A member sees messages it sent, messages addressed to it and
        broadcasts.
        """
        messages = self._store.list_messages(team_id)
        if member_id is None:
            return messages
        return [
            m
            for m in messages
            if m.sender_id == member_id or m.recipient_id == member_id or m.is_broadcast
        ]

    # -- Snapshots -----------------------------------------------------------

    async def save_snapshot(self, snapshot_store: "SnapshotStore") -> None:
        """Persist the registry through a snapshot store."""
        await snapshot_store.save(self._store.to_dict())
        logger.info("Registry snapshot saved", teams=len(self._store))

    @classmethod
    async def restore(
        cls,
        snapshot_store: "SnapshotStore",
        events: Optional[EventBus] = None,
    ) -> "TeamManager":
        """Create a manager from a saved snapshot.

        In-flight work is not recovered; an absent snapshot yields an empty
        manager.
        """
        data = await snapshot_store.load()
        store = RegistryStore.from_dict(data) if data else RegistryStore()
        logger.info("Registry restored", teams=len(store))
        return cls(store=store, events=events)
