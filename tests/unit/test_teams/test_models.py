"""Unit tests for team records."""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from agent_teams.teams.errors import ValidationError
from agent_teams.teams.models import (
    TASK_TRANSITIONS,
    CollaborationMode,
    MemberRole,
    MemberSpec,
    MemberStatus,
    RetryPolicy,
    TaskPriority,
    TaskResult,
    TaskStatus,
    Team,
    TeamConfig,
    TeamMember,
    TeamMessage,
    TeamTask,
    MessageType,
    new_id,
)


# ============================================================================
# Enum Tests
# ============================================================================


class TestTaskStatus:
    """Tests for TaskStatus and the transition table."""

    def test_terminal_statuses(self):
        """Test which statuses are terminal."""
        assert TaskStatus.COMPLETED.is_terminal
        assert TaskStatus.FAILED.is_terminal
        assert TaskStatus.CANCELLED.is_terminal
        assert not TaskStatus.PENDING.is_terminal
        assert not TaskStatus.RUNNING.is_terminal

    def test_active_statuses(self):
        assert TaskStatus.ASSIGNED.is_active
        assert TaskStatus.RUNNING.is_active
        assert not TaskStatus.PENDING.is_active

    def test_terminal_statuses_have_no_transitions(self):
        """Test that terminal states never transition."""
        for status in TaskStatus:
            if status.is_terminal:
                assert TASK_TRANSITIONS[status] == frozenset()

    def test_running_cannot_return_to_assigned(self):
        assert TaskStatus.ASSIGNED not in TASK_TRANSITIONS[TaskStatus.RUNNING]


class TestTaskPriority:
    """Tests for TaskPriority ranking."""

    def test_rank_order(self):
        ranks = [p.rank for p in (TaskPriority.CRITICAL, TaskPriority.HIGH, TaskPriority.NORMAL, TaskPriority.LOW)]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == 4


# ============================================================================
# Config Tests
# ============================================================================


class TestTeamConfig:
    """Tests for TeamConfig validation."""

    def test_defaults(self):
        config = TeamConfig()

        assert config.max_concurrency == 5
        assert config.task_timeout == 300.0
        assert config.retry.max_retries == 0

    def test_invalid_concurrency(self):
        """Test that max_concurrency below 1 is rejected."""
        with pytest.raises(ValidationError):
            TeamConfig(max_concurrency=0)

    def test_invalid_timeout(self):
        with pytest.raises(ValidationError):
            TeamConfig(task_timeout=0)

    def test_timeout_can_be_disabled(self):
        assert TeamConfig(task_timeout=None).task_timeout is None

    def test_invalid_retry_policy(self):
        with pytest.raises(ValidationError):
            RetryPolicy(max_retries=-1)
        with pytest.raises(ValidationError):
            RetryPolicy(backoff=-0.5)

    def test_dict_round_trip(self):
        config = TeamConfig(max_concurrency=2, task_timeout=10.0, retry=RetryPolicy(2, 0.1))

        assert TeamConfig.from_dict(config.to_dict()) == config


# ============================================================================
# Record Tests
# ============================================================================


class TestTeamMember:
    """Tests for TeamMember."""

    def test_can_handle_subset(self):
        """Test capability matching is a subset check."""
        member = TeamMember(id="m1", name="dev", role="worker", capabilities=frozenset({"code", "test"}))

        assert member.can_handle([])
        assert member.can_handle(["code"])
        assert member.can_handle(["code", "test"])
        assert not member.can_handle(["code", "deploy"])

    def test_can_handle_role(self):
        member = TeamMember(id="m1", name="lead", role="leader")

        assert member.can_handle([], role="leader")
        assert not member.can_handle([], role="worker")

    def test_member_is_immutable(self):
        member = TeamMember(id="m1", name="dev", role="worker")

        with pytest.raises(FrozenInstanceError):
            member.load = 3

    def test_availability(self):
        member = TeamMember(id="m1", name="dev", role="worker")

        assert member.is_available
        assert not TeamMember(id="m2", name="x", role="worker", status=MemberStatus.OFFLINE).is_available


class TestMemberSpec:
    """Tests for the MemberSpec input model."""

    def test_role_enum_is_normalized(self):
        spec = MemberSpec(name="lead", role=MemberRole.LEADER, capabilities=frozenset({"plan"}))

        assert spec.role == "leader"
        assert isinstance(spec.role, str)

    def test_empty_name_rejected(self):
        from pydantic import ValidationError as PydanticValidationError

        with pytest.raises(PydanticValidationError):
            MemberSpec(name="", role="worker")


class TestTeamTask:
    """Tests for TeamTask."""

    def test_schedule_key_orders_priority_then_sequence(self):
        low_first = TeamTask(id="a", team_id="t", title="a", priority=TaskPriority.LOW, sequence=1)
        critical = TeamTask(id="b", team_id="t", title="b", priority=TaskPriority.CRITICAL, sequence=3)
        normal = TeamTask(id="c", team_id="t", title="c", sequence=2)

        ordered = sorted([low_first, critical, normal], key=lambda t: t.schedule_key)

        assert [t.id for t in ordered] == ["b", "c", "a"]

    def test_with_status_updates_timestamp(self):
        task = TeamTask(id="a", team_id="t", title="a")

        updated = task.with_status(TaskStatus.ASSIGNED, assignee_id="m1")

        assert updated.status == TaskStatus.ASSIGNED
        assert updated.assignee_id == "m1"
        assert updated.updated_at >= task.updated_at
        assert task.status == TaskStatus.PENDING

    def test_dict_round_trip_keeps_result(self):
        task = TeamTask(
            id="a",
            team_id="t",
            title="a",
            required_capabilities=frozenset({"x"}),
            status=TaskStatus.COMPLETED,
            excluded_members=frozenset({"m2"}),
            depends_on=("b",),
            result=TaskResult(success=True, output="done", duration=1.5),
        )

        restored = TeamTask.from_dict(task.to_dict())

        assert restored == task

    def test_excluded_member_cannot_take_task(self):
        task = TeamTask(id="a", team_id="t", title="a", excluded_members=frozenset({"m1"}))
        excluded = TeamMember(id="m1", name="lead", role="leader")
        other = TeamMember(id="m2", name="w", role="worker")

        assert not task.can_be_taken_by(excluded)
        assert task.can_be_taken_by(other)


class TestTeam:
    """Tests for Team."""

    def test_member_lookup(self):
        lead = TeamMember(id="m1", name="lead", role="leader")
        dev = TeamMember(id="m2", name="dev", role="worker")
        team = Team(id="t", name="team", members=(lead, dev))

        assert team.get_member("m2") is dev
        assert team.get_member("missing") is None
        assert team.members_with_role("leader") == (lead,)
        assert team.mode == CollaborationMode.PARALLEL


class TestTeamMessage:
    """Tests for TeamMessage."""

    def test_broadcast(self):
        message = TeamMessage(id=new_id("msg"), team_id="t", sender_id="m1", type=MessageType.PLAN)

        assert message.is_broadcast
        assert message.id.startswith("msg-")
