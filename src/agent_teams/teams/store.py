"""Registry store: the canonical in-memory arena of team records.

The store holds teams, members, tasks and messages addressed by id and
contains no business logic. Records are immutable; ``update_*`` methods
perform a read-compute-replace with no suspension point in between, so
under asyncio each update is atomic per record and concurrent completions
for different records never interleave destructively. Internal mappings
are never handed out; list methods return fresh lists.
"""

from __future__ import annotations

import itertools
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import MemberNotFoundError, TaskNotFoundError, TeamNotFoundError
from .models import (
    MemberStatus,
    Team,
    TeamMember,
    TeamMessage,
    TeamTask,
    TaskStatus,
)

TeamUpdate = Callable[[Team], Team]
MemberUpdate = Callable[[TeamMember], TeamMember]
TaskUpdate = Callable[[TeamTask], TeamTask]


class RegistryStore:
    """Copy-on-write storage for teams, members, tasks and messages.

    Example:
        store = RegistryStore()
        store.add_team(team)
        store.add_member(team.id, member)

        # Read-compute-replace
        old, new = store.update_member(
            team.id, member.id, lambda m: replace(m, load=m.load + 1)
        )
    """

    def __init__(self) -> None:
        self._teams: Dict[str, Team] = {}
        self._members: Dict[str, TeamMember] = {}
        self._tasks: Dict[str, TeamTask] = {}
        self._team_members: Dict[str, List[str]] = {}  # team_id -> ordered member ids
        self._team_tasks: Dict[str, List[str]] = {}  # team_id -> task ids in creation order
        self._messages: Dict[str, List[TeamMessage]] = {}
        self._member_team: Dict[str, str] = {}
        self._sequence = itertools.count(1)

    def next_sequence(self) -> int:
        """Return the next creation sequence number."""
        return next(self._sequence)

    # -- Teams ---------------------------------------------------------------

    def add_team(self, team: Team) -> None:
        if team.id in self._teams:
            raise ValueError(f"Team '{team.id}' is already stored")
        self._teams[team.id] = replace(team, members=())
        self._team_members[team.id] = []
        self._team_tasks[team.id] = []
        self._messages[team.id] = []

    def has_team(self, team_id: str) -> bool:
        return team_id in self._teams

    def get_team(self, team_id: str) -> Team:
        """Get a team with its current members materialized."""
        team = self._teams.get(team_id)
        if team is None:
            raise TeamNotFoundError(team_id)
        return replace(team, members=tuple(self.list_members(team_id)))

    def list_teams(self) -> List[Team]:
        return [self.get_team(team_id) for team_id in self._teams]

    def update_team(self, team_id: str, fn: TeamUpdate) -> Tuple[Team, Team]:
        old = self._teams.get(team_id)
        if old is None:
            raise TeamNotFoundError(team_id)
        new = fn(old)
        if new is not old:
            self._teams[team_id] = replace(new, members=())
        return old, new

    def remove_team(self, team_id: str) -> Team:
        """Remove a team together with its members, tasks and messages."""
        team = self.get_team(team_id)
        for member_id in self._team_members.pop(team_id, []):
            self._members.pop(member_id, None)
            self._member_team.pop(member_id, None)
        for task_id in self._team_tasks.pop(team_id, []):
            self._tasks.pop(task_id, None)
        self._messages.pop(team_id, None)
        del self._teams[team_id]
        return team

    # -- Members -------------------------------------------------------------

    def add_member(self, team_id: str, member: TeamMember) -> None:
        if team_id not in self._teams:
            raise TeamNotFoundError(team_id)
        self._members[member.id] = member
        self._member_team[member.id] = team_id
        self._team_members[team_id].append(member.id)

    def get_member(self, team_id: str, member_id: str) -> TeamMember:
        if self._member_team.get(member_id) != team_id:
            if team_id not in self._teams:
                raise TeamNotFoundError(team_id)
            raise MemberNotFoundError(member_id, team_id)
        return self._members[member_id]

    def has_member(self, team_id: str, member_id: str) -> bool:
        return self._member_team.get(member_id) == team_id

    def list_members(self, team_id: str) -> List[TeamMember]:
        if team_id not in self._teams:
            raise TeamNotFoundError(team_id)
        return [self._members[mid] for mid in self._team_members[team_id]]

    def update_member(
        self, team_id: str, member_id: str, fn: MemberUpdate
    ) -> Tuple[TeamMember, TeamMember]:
        old = self.get_member(team_id, member_id)
        new = fn(old)
        if new is not old:
            self._members[member_id] = new
        return old, new

    def remove_member(self, team_id: str, member_id: str) -> TeamMember:
        member = self.get_member(team_id, member_id)
        del self._members[member_id]
        del self._member_team[member_id]
        self._team_members[team_id].remove(member_id)
        return member

    # -- Tasks ---------------------------------------------------------------

    def add_task(self, task: TeamTask) -> None:
        if task.team_id not in self._teams:
            raise TeamNotFoundError(task.team_id)
        self._tasks[task.id] = task
        self._team_tasks[task.team_id].append(task.id)

    def get_task(self, team_id: str, task_id: str) -> TeamTask:
        task = self._tasks.get(task_id)
        if task is None or task.team_id != team_id:
            if team_id not in self._teams:
                raise TeamNotFoundError(team_id)
            raise TaskNotFoundError(task_id, team_id)
        return task

    def has_task(self, team_id: str, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        return task is not None and task.team_id == team_id

    def list_tasks(
        self,
        team_id: str,
        status: Optional[TaskStatus] = None,
        task_ids: Optional[Iterable[str]] = None,
    ) -> List[TeamTask]:
        """List tasks of a team in creation order.

        Args:
            team_id: Team whose tasks to list.
            status: Optional status filter.
            task_ids: Optional restriction to these task ids.
        """
        if team_id not in self._teams:
            raise TeamNotFoundError(team_id)
        wanted = set(task_ids) if task_ids is not None else None
        tasks = []
        for task_id in self._team_tasks[team_id]:
            if wanted is not None and task_id not in wanted:
                continue
            task = self._tasks[task_id]
            if status is not None and task.status != status:
                continue
            tasks.append(task)
        return tasks

    def update_task(
        self, team_id: str, task_id: str, fn: TaskUpdate
    ) -> Tuple[TeamTask, TeamTask]:
        old = self.get_task(team_id, task_id)
        new = fn(old)
        if new is not old:
            self._tasks[task_id] = new
        return old, new

    def remove_task(self, team_id: str, task_id: str) -> TeamTask:
        task = self.get_task(team_id, task_id)
        del self._tasks[task_id]
        self._team_tasks[team_id].remove(task_id)
        return task

    # -- Messages ------------------------------------------------------------

    def append_message(self, message: TeamMessage) -> None:
        if message.team_id not in self._teams:
            raise TeamNotFoundError(message.team_id)
        self._messages[message.team_id].append(message)

    def list_messages(self, team_id: str) -> List[TeamMessage]:
        if team_id not in self._teams:
            raise TeamNotFoundError(team_id)
        return list(self._messages[team_id])

    # -- Snapshots -----------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Produce a JSON-compatible snapshot of every record."""
        return {
            "teams": [self.get_team(team_id).to_dict() for team_id in self._teams],
            "tasks": [
                self._tasks[task_id].to_dict()
                for team_id in self._teams
                for task_id in self._team_tasks[team_id]
            ],
            "messages": [
                message.to_dict()
                for team_id in self._teams
                for message in self._messages[team_id]
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryStore":
        """Rebuild a store from a snapshot.

        In-flight work is not recovered: assigned or running tasks return to
        pending and members come back idle with no load.
        """
        store = cls()
        for team_data in data.get("teams") or []:
            team = Team.from_dict(team_data)
            store.add_team(team)
            for member in team.members:
                status = (
                    MemberStatus.OFFLINE
                    if member.status == MemberStatus.OFFLINE
                    else MemberStatus.IDLE
                )
                store.add_member(team.id, replace(member, status=status, load=0))

        max_sequence = 0
        for task_data in data.get("tasks") or []:
            task = TeamTask.from_dict(task_data)
            if task.status.is_active:
                task = replace(task, status=TaskStatus.PENDING, assignee_id=None)
            max_sequence = max(max_sequence, task.sequence)
            store.add_task(task)
        store._sequence = itertools.count(max_sequence + 1)

        for message_data in data.get("messages") or []:
            store.append_message(TeamMessage.from_dict(message_data))
        return store

    def __len__(self) -> int:
        return len(self._teams)

    def __contains__(self, team_id: str) -> bool:
        return team_id in self._teams

    def __repr__(self) -> str:
        return (
            f"RegistryStore(teams={len(self._teams)}, members={len(self._members)}, "
            f"tasks={len(self._tasks)})"
        )
