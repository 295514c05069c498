"""Unit tests for the team manager."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Callable

import pytest

from agent_teams.teams.errors import (
    MemberNotFoundError,
    TaskNotFoundError,
    TeamNotFoundError,
    ValidationError,
)
from agent_teams.teams.events import EventBus, TeamEventType
from agent_teams.teams.manager import TeamManager
from agent_teams.teams.models import (
    CollaborationMode,
    MemberRole,
    MemberStatus,
    MessageType,
    TaskPriority,
    TaskResult,
    TaskStatus,
    Team,
)


def total_load(manager: TeamManager, team_id: str) -> int:
    return sum(m.load for m in manager.get_team(team_id).members)


# ============================================================================
# Team lifecycle
# ============================================================================


class TestTeamLifecycle:
    """Tests for creating, listing and dissolving teams."""

    def test_create_team_assigns_ids(self, manager: TeamManager, qa_team: Team):
        """Test that teams and members get fresh ids and start idle."""
        assert qa_team.id.startswith("team-")
        assert len(qa_team.members) == 2
        assert len({m.id for m in qa_team.members}) == 2
        for member in qa_team.members:
            assert member.status == MemberStatus.IDLE
            assert member.load == 0
        assert manager.get_team(qa_team.id) == qa_team

    def test_create_team_duplicate_member_name(self, manager: TeamManager):
        with pytest.raises(ValidationError):
            manager.create_team(
                "dup",
                members=[{"name": "a", "role": "worker"}, {"name": "a", "role": "reviewer"}],
            )

    def test_create_team_empty_name(self, manager: TeamManager):
        with pytest.raises(ValidationError):
            manager.create_team("  ", members=[])

    def test_create_team_invalid_member(self, manager: TeamManager):
        """Test that malformed member definitions raise our ValidationError."""
        with pytest.raises(ValidationError):
            manager.create_team("bad", members=[{"role": "worker"}])

    def test_create_team_mode_and_config_mapping(self, manager: TeamManager):
        team = manager.create_team(
            "cfg",
            members=[{"name": "a", "role": "worker"}],
            config={"max_concurrency": 2, "task_timeout": 30.0},
            mode="debate",
        )

        assert team.mode == CollaborationMode.DEBATE
        assert team.config.max_concurrency == 2

    def test_unknown_team(self, manager: TeamManager):
        with pytest.raises(TeamNotFoundError):
            manager.get_team("team-missing")
        with pytest.raises(LookupError):
            manager.get_team_status("team-missing")

    def test_list_teams(self, manager: TeamManager, make_team: Callable[..., Team]):
        make_team(("a", "worker"), name="one")
        make_team(("b", "worker"), name="two")

        assert [t.name for t in manager.list_teams()] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_dissolve_cancels_pending_tasks(
        self, manager: TeamManager, event_bus: EventBus, recorder, qa_team: Team
    ):
        """Test dissolution cancels every unfinished task and emits one event."""
        for title in ("a", "b", "c"):
            manager.create_task(qa_team.id, title)

        cancelled = manager.dissolve_team(qa_team.id)
        await event_bus.join()

        assert len(cancelled) == 3
        assert all(t.status == TaskStatus.CANCELLED for t in cancelled)
        assert len(recorder.of_type(TeamEventType.TEAM_DISSOLVED)) == 1
        assert recorder.of_type(TeamEventType.TASK_CANCELLED) == []
        with pytest.raises(TeamNotFoundError):
            manager.get_team(qa_team.id)

    def test_dissolve_skips_terminal_tasks(self, manager: TeamManager, qa_team: Team):
        done = manager.create_task(qa_team.id, "done")
        manager.update_task_status(qa_team.id, done.id, TaskStatus.COMPLETED)
        manager.create_task(qa_team.id, "open")

        cancelled = manager.dissolve_team(qa_team.id)

        assert [t.title for t in cancelled] == ["open"]


# ============================================================================
# Members
# ============================================================================


class TestMembers:
    """Tests for member management."""

    @pytest.mark.asyncio
    async def test_add_member(self, manager: TeamManager, event_bus: EventBus, recorder, qa_team: Team):
        member = manager.add_member(qa_team.id, {"name": "ops", "role": "specialist", "capabilities": ["deploy"]})
        await event_bus.join()

        assert member.capabilities == frozenset({"deploy"})
        assert manager.get_member(qa_team.id, member.id) == member
        assert recorder.of_type(TeamEventType.MEMBER_JOINED)[0].payload == member

    def test_add_member_duplicate_name(self, manager: TeamManager, qa_team: Team):
        with pytest.raises(ValidationError):
            manager.add_member(qa_team.id, {"name": "tester", "role": "worker"})

    def test_remove_busy_member_requires_force(self, manager: TeamManager, qa_team: Team):
        manager.create_task(qa_team.id, "t", required_capabilities=["test"])
        task, member = manager.assign_task(qa_team.id)

        with pytest.raises(ValidationError):
            manager.remove_member(qa_team.id, member.id)

    def test_force_remove_requeues_tasks(self, manager: TeamManager, qa_team: Team):
        """Test that forced removal returns in-flight tasks to pending."""
        manager.create_task(qa_team.id, "t", required_capabilities=["test"])
        task, member = manager.assign_task(qa_team.id)
        manager.update_task_status(qa_team.id, task.id, TaskStatus.RUNNING)

        manager.remove_member(qa_team.id, member.id, force=True)

        requeued = manager.get_task(qa_team.id, task.id)
        assert requeued.status == TaskStatus.PENDING
        assert requeued.assignee_id is None
        with pytest.raises(MemberNotFoundError):
            manager.get_member(qa_team.id, member.id)

    def test_offline_member_is_never_assigned(self, manager: TeamManager, qa_team: Team):
        tester = qa_team.members[0]
        manager.set_member_status(qa_team.id, tester.id, MemberStatus.OFFLINE)
        manager.create_task(qa_team.id, "t", required_capabilities=["test"])

        assert manager.assign_task(qa_team.id) is None
        assert manager.find_eligible_members(qa_team.id, ["test"]) == []

        manager.set_member_status(qa_team.id, tester.id, MemberStatus.IDLE)
        assert manager.assign_task(qa_team.id) is not None

    def test_busy_status_cannot_be_set(self, manager: TeamManager, qa_team: Team):
        with pytest.raises(ValidationError):
            manager.set_member_status(qa_team.id, qa_team.members[0].id, MemberStatus.BUSY)

    def test_find_eligible_members_by_role(self, manager: TeamManager, qa_team: Team):
        eligible = manager.find_eligible_members(qa_team.id, [], role=MemberRole.REVIEWER)

        assert [m.name for m in eligible] == ["reviewer"]


# ============================================================================
# Tasks and assignment
# ============================================================================


class TestAssignment:
    """Tests for task creation and assignment."""

    def test_create_task_is_pending(self, manager: TeamManager, qa_team: Team):
        task = manager.create_task(qa_team.id, "write tests", priority="high")

        assert task.status == TaskStatus.PENDING
        assert task.priority == TaskPriority.HIGH
        assert manager.get_task(qa_team.id, task.id) == task

    def test_create_task_empty_title(self, manager: TeamManager, qa_team: Team):
        with pytest.raises(ValidationError):
            manager.create_task(qa_team.id, "")

    def test_unknown_task(self, manager: TeamManager, qa_team: Team):
        with pytest.raises(TaskNotFoundError):
            manager.get_task(qa_team.id, "task-missing")

    def test_assign_matches_capabilities(self, manager: TeamManager, qa_team: Team):
        """Test that the member with the required capability is chosen."""
        manager.create_task(qa_team.id, "review", required_capabilities=["review"])

        task, member = manager.assign_task(qa_team.id)

        assert member.name == "reviewer"
        assert member.load == 1
        assert member.status == MemberStatus.BUSY
        assert task.status == TaskStatus.ASSIGNED
        assert task.assignee_id == member.id

    def test_assign_priority_then_fifo(self, manager: TeamManager, make_team):
        team = make_team(("a", "worker"), ("b", "worker"), ("c", "worker"))
        first = manager.create_task(team.id, "first")
        manager.create_task(team.id, "later", priority=TaskPriority.LOW)
        urgent = manager.create_task(team.id, "urgent", priority=TaskPriority.CRITICAL)

        assigned = [manager.assign_task(team.id)[0].id for _ in range(2)]

        assert assigned == [urgent.id, first.id]

    def test_first_member_in_team_order_wins(self, manager: TeamManager, make_team):
        team = make_team(("a", "worker", ["x"]), ("b", "worker", ["x"]))
        manager.create_task(team.id, "t", required_capabilities=["x"])

        _, member = manager.assign_task(team.id)

        assert member.name == "a"

    def test_nothing_eligible(self, manager: TeamManager, qa_team: Team):
        manager.create_task(qa_team.id, "deploy", required_capabilities=["deploy"])

        assert manager.assign_task(qa_team.id) is None

    def test_max_concurrency_limits_assignment(self, manager: TeamManager, make_team):
        """Test the sum of loads never exceeds max_concurrency."""
        team = make_team(("a", "worker"), ("b", "worker"), ("c", "worker"), max_concurrency=2)
        for i in range(4):
            manager.create_task(team.id, f"t{i}")

        assert manager.assign_task(team.id) is not None
        assert manager.assign_task(team.id) is not None
        assert manager.assign_task(team.id) is None
        assert total_load(manager, team.id) == 2

    def test_group_anti_affinity(self, manager: TeamManager, make_team):
        """Test that tasks of one group go to distinct members."""
        team = make_team(("a", "worker"), ("b", "worker"))
        first = manager.create_task(team.id, "c1", group="g")
        second = manager.create_task(team.id, "c2", group="g")

        _, m1 = manager.assign_task(team.id)
        manager.update_task_status(team.id, first.id, TaskStatus.COMPLETED)
        _, m2 = manager.assign_task(team.id)

        assert m1.name == "a"
        assert m2.name == "b"
        assert manager.get_task(team.id, second.id).assignee_id == m2.id

    def test_excluded_members_are_skipped(self, manager: TeamManager, make_team):
        team = make_team(("lead", "leader"), ("a", "worker"))
        lead, worker = team.members
        task = manager.create_task(team.id, "idea", excluded_members=[lead.id])

        _, member = manager.assign_task(team.id)

        assert member.id == worker.id
        assert manager.get_task(team.id, task.id).assignee_id == worker.id

    def test_manual_assignment_rejects_excluded_member(self, manager: TeamManager, make_team):
        team = make_team(("lead", "leader"), ("a", "worker"))
        lead = team.members[0]
        task = manager.create_task(team.id, "idea", excluded_members=[lead.id])

        with pytest.raises(ValidationError):
            manager.assign_task_to(team.id, task.id, lead.id)

    def test_restricted_assignment(self, manager: TeamManager, qa_team: Team):
        manager.create_task(qa_team.id, "first", required_capabilities=["test"])
        wanted = manager.create_task(qa_team.id, "second", required_capabilities=["test"])

        task, _ = manager.assign_task(qa_team.id, [wanted.id])

        assert task.id == wanted.id

    def test_manual_assignment_allows_busy_member(self, manager: TeamManager, make_team):
        team = make_team(("a", "worker"))
        manager.create_task(team.id, "one")
        second = manager.create_task(team.id, "two")
        _, member = manager.assign_task(team.id)

        task = manager.assign_task_to(team.id, second.id, member.id)

        assert task.assignee_id == member.id
        assert manager.get_member(team.id, member.id).load == 2

    def test_manual_assignment_respects_limits(self, manager: TeamManager, make_team):
        team = make_team(("a", "worker", ["x"]), ("b", "worker"), max_concurrency=1)
        capable = team.members[0]
        incapable = team.members[1]
        first = manager.create_task(team.id, "one", required_capabilities=["x"])
        second = manager.create_task(team.id, "two")

        with pytest.raises(ValidationError):
            manager.assign_task_to(team.id, first.id, incapable.id)

        manager.assign_task_to(team.id, first.id, capable.id)
        with pytest.raises(ValidationError):
            manager.assign_task_to(team.id, second.id, incapable.id)

    def test_dissolving_team_assigns_nothing(self, manager: TeamManager, qa_team: Team):
        manager.create_task(qa_team.id, "t")
        manager.store.update_team(qa_team.id, lambda t: replace(t, dissolving=True))

        assert manager.assign_task(qa_team.id) is None


class TestTaskStatusUpdates:
    """Tests for the task state machine."""

    def test_completion_releases_member(self, manager: TeamManager, qa_team: Team):
        manager.create_task(qa_team.id, "t", required_capabilities=["test"])
        task, member = manager.assign_task(qa_team.id)
        manager.update_task_status(qa_team.id, task.id, TaskStatus.RUNNING)

        result = TaskResult(success=True, output="ok")
        done = manager.update_task_status(qa_team.id, task.id, TaskStatus.COMPLETED, result=result)

        assert done.result == result
        released = manager.get_member(qa_team.id, member.id)
        assert released.load == 0
        assert released.status == MemberStatus.IDLE

    def test_terminal_task_never_transitions(self, manager: TeamManager, qa_team: Team):
        """Test that updates of terminal tasks are ignored."""
        task = manager.create_task(qa_team.id, "t")
        manager.update_task_status(qa_team.id, task.id, TaskStatus.CANCELLED)

        again = manager.update_task_status(qa_team.id, task.id, TaskStatus.COMPLETED)

        assert again.status == TaskStatus.CANCELLED

    def test_double_completion_decrements_once(self, manager: TeamManager, qa_team: Team):
        manager.create_task(qa_team.id, "t", required_capabilities=["test"])
        task, member = manager.assign_task(qa_team.id)

        manager.update_task_status(qa_team.id, task.id, TaskStatus.FAILED)
        manager.update_task_status(qa_team.id, task.id, TaskStatus.FAILED)

        assert manager.get_member(qa_team.id, member.id).load == 0

    def test_invalid_transition(self, manager: TeamManager, qa_team: Team):
        task = manager.create_task(qa_team.id, "t")

        with pytest.raises(ValidationError):
            manager.update_task_status(qa_team.id, task.id, TaskStatus.RUNNING)

    def test_assigned_only_through_assignment(self, manager: TeamManager, make_team):
        """Test a direct move to assigned is rejected and holds no slot."""
        team = make_team(("a", "worker"), max_concurrency=1)
        first = manager.create_task(team.id, "one")
        second = manager.create_task(team.id, "two")

        with pytest.raises(ValidationError, match="assign_task"):
            manager.update_task_status(team.id, first.id, TaskStatus.ASSIGNED)

        assert manager.get_task(team.id, first.id).status == TaskStatus.PENDING
        task, member = manager.assign_task(team.id, [second.id])
        assert task.assignee_id == member.id
        assert total_load(manager, team.id) == 1

    def test_stale_completion_is_ignored(self, manager: TeamManager, qa_team: Team):
        """Test that a completion from a previous assignee is a no-op."""
        manager.create_task(qa_team.id, "t", required_capabilities=["test"])
        task, member = manager.assign_task(qa_team.id)
        manager.update_task_status(qa_team.id, task.id, TaskStatus.PENDING)

        stale = manager.update_task_status(
            qa_team.id, task.id, TaskStatus.COMPLETED, member_id=member.id
        )

        assert stale.status == TaskStatus.PENDING
        assert manager.get_member(qa_team.id, member.id).load == 0

    def test_offline_member_stays_offline_after_release(self, manager: TeamManager, qa_team: Team):
        manager.create_task(qa_team.id, "t", required_capabilities=["test"])
        task, member = manager.assign_task(qa_team.id)
        manager.set_member_status(qa_team.id, member.id, MemberStatus.OFFLINE)

        manager.update_task_status(qa_team.id, task.id, TaskStatus.COMPLETED)

        released = manager.get_member(qa_team.id, member.id)
        assert released.status == MemberStatus.OFFLINE
        assert released.load == 0

    def test_record_retry(self, manager: TeamManager, qa_team: Team):
        task = manager.create_task(qa_team.id, "t")

        assert manager.record_retry(qa_team.id, task.id).retry_count == 1

    def test_status_aggregate(self, manager: TeamManager, qa_team: Team):
        manager.create_task(qa_team.id, "a", required_capabilities=["test"])
        done = manager.create_task(qa_team.id, "b")
        manager.create_task(qa_team.id, "c", required_capabilities=["deploy"])
        manager.update_task_status(qa_team.id, done.id, TaskStatus.COMPLETED)
        _, member = manager.assign_task(qa_team.id)

        status = manager.get_team_status(qa_team.id)

        assert status.total_tasks == 3
        assert status.completed_tasks == 1
        assert status.running_tasks == 1
        assert status.pending_tasks == 1
        assert status.member_load[member.id] == 1

    def test_cleanup_tasks(self, manager: TeamManager, qa_team: Team):
        done = manager.create_task(qa_team.id, "a")
        manager.create_task(qa_team.id, "b")
        manager.update_task_status(qa_team.id, done.id, TaskStatus.COMPLETED)

        assert manager.cleanup_tasks(qa_team.id) == 1
        assert [t.title for t in manager.list_tasks(qa_team.id)] == ["b"]

    @pytest.mark.asyncio
    async def test_task_events(self, manager: TeamManager, event_bus: EventBus, recorder, qa_team: Team):
        manager.create_task(qa_team.id, "t", required_capabilities=["test"])
        task, _ = manager.assign_task(qa_team.id)
        manager.update_task_status(qa_team.id, task.id, TaskStatus.RUNNING)
        manager.update_task_status(qa_team.id, task.id, TaskStatus.COMPLETED)
        await event_bus.join()

        types = recorder.types()
        assert types.index(TeamEventType.TASK_CREATED) < types.index(TeamEventType.TASK_ASSIGNED)
        assert types.index(TeamEventType.TASK_STARTED) < types.index(TeamEventType.TASK_COMPLETED)


class TestDependencies:
    """Tests for dependency gating between tasks."""

    def test_dependent_waits_for_completion(self, manager: TeamManager, make_team):
        team = make_team(("a", "worker"), ("b", "worker"))
        build = manager.create_task(team.id, "build")
        deploy = manager.create_task(team.id, "deploy", priority="critical", depends_on=[build.id])

        task, _ = manager.assign_task(team.id)
        assert task.id == build.id
        assert manager.assign_task(team.id) is None
        assert manager.unmet_dependencies(team.id, deploy) == [build.id]

        manager.update_task_status(team.id, build.id, TaskStatus.COMPLETED)
        task, _ = manager.assign_task(team.id)

        assert task.id == deploy.id
        assert manager.unmet_dependencies(team.id, task) == []

    def test_manual_assignment_requires_met_dependencies(self, manager: TeamManager, make_team):
        team = make_team(("a", "worker"))
        build = manager.create_task(team.id, "build")
        deploy = manager.create_task(team.id, "deploy", depends_on=[build.id])

        with pytest.raises(ValidationError, match="unmet dependencies"):
            manager.assign_task_to(team.id, deploy.id, team.members[0].id)

    def test_failed_dependency_fails_dependents(self, manager: TeamManager, make_team):
        """Test a failure propagates along the dependency chain."""
        team = make_team(("a", "worker"))
        build = manager.create_task(team.id, "build")
        test = manager.create_task(team.id, "test", depends_on=[build.id])
        deploy = manager.create_task(team.id, "deploy", depends_on=[test.id])
        unrelated = manager.create_task(team.id, "docs")

        manager.update_task_status(
            team.id, build.id, TaskStatus.FAILED, result=TaskResult(success=False, error="boom")
        )

        failed_test = manager.get_task(team.id, test.id)
        assert failed_test.status == TaskStatus.FAILED
        assert failed_test.result.error == "Dependency 'build' failed"
        assert manager.get_task(team.id, deploy.id).status == TaskStatus.FAILED
        assert manager.get_task(team.id, unrelated.id).status == TaskStatus.PENDING

    def test_cancelled_dependency_fails_dependent(self, manager: TeamManager, qa_team: Team):
        build = manager.create_task(qa_team.id, "build")
        deploy = manager.create_task(qa_team.id, "deploy", depends_on=[build.id])

        manager.update_task_status(qa_team.id, build.id, TaskStatus.CANCELLED)

        failed = manager.get_task(qa_team.id, deploy.id)
        assert failed.status == TaskStatus.FAILED
        assert failed.result.error == "Dependency 'build' cancelled"

    def test_unknown_dependency(self, manager: TeamManager, qa_team: Team):
        with pytest.raises(TaskNotFoundError):
            manager.create_task(qa_team.id, "deploy", depends_on=["task-missing"])

    def test_dependency_on_failed_task(self, manager: TeamManager, qa_team: Team):
        build = manager.create_task(qa_team.id, "build")
        manager.update_task_status(qa_team.id, build.id, TaskStatus.FAILED)

        with pytest.raises(ValidationError):
            manager.create_task(qa_team.id, "deploy", depends_on=[build.id])

    def test_cleanup_keeps_dependencies_of_unfinished_tasks(self, manager: TeamManager, qa_team: Team):
        build = manager.create_task(qa_team.id, "build")
        manager.create_task(qa_team.id, "deploy", depends_on=[build.id])
        manager.update_task_status(qa_team.id, build.id, TaskStatus.COMPLETED)

        assert manager.cleanup_tasks(qa_team.id) == 0
        assert len(manager.list_tasks(qa_team.id)) == 2


class TestWaitForRelease:
    """Tests for release signalling."""

    @pytest.mark.asyncio
    async def test_wakes_on_completion(self, manager: TeamManager, qa_team: Team):
        manager.create_task(qa_team.id, "t", required_capabilities=["test"])
        task, _ = manager.assign_task(qa_team.id)

        waiter = asyncio.create_task(manager.wait_for_release(qa_team.id, timeout=1.0))
        await asyncio.sleep(0)
        manager.update_task_status(qa_team.id, task.id, TaskStatus.COMPLETED)

        assert await waiter is True

    @pytest.mark.asyncio
    async def test_times_out(self, manager: TeamManager, qa_team: Team):
        assert await manager.wait_for_release(qa_team.id, timeout=0.01) is False


class TestMessages:
    """Tests for inter-agent messages."""

    def test_member_view(self, manager: TeamManager, make_team):
        team = make_team(("lead", "leader"), ("a", "worker"), ("b", "worker"))
        lead, a, b = team.members
        manager.send_message(team.id, lead.id, MessageType.PLAN, payload="plan")
        manager.send_message(team.id, a.id, MessageType.RESULT, payload="to lead", recipient_id=lead.id)
        manager.send_message(team.id, b.id, MessageType.REQUEST, payload="to a", recipient_id=a.id)

        assert len(manager.get_messages(team.id)) == 3
        assert [m.payload for m in manager.get_messages(team.id, lead.id)] == ["plan", "to lead"]
        assert [m.payload for m in manager.get_messages(team.id, b.id)] == ["plan", "to a"]

    def test_unknown_sender(self, manager: TeamManager, qa_team: Team):
        with pytest.raises(MemberNotFoundError):
            manager.send_message(qa_team.id, "member-missing", MessageType.STATUS)
