"""Debate strategy: redundant candidates, then a verdict.

Each task is executed by several members at once. The candidates share an
anti-affinity group, so no member produces two of them, and leaders only
propose when no other capable member exists. In the reviewing
phase a reviewer judges the proposals; without a reviewer, or when judging
fails, the configured candidate selector picks the winner.
"""

from __future__ import annotations

from typing import FrozenSet, List, Optional, Tuple

from agent_teams.teams.models import (
    CollaborationMode,
    MemberRole,
    MemberStatus,
    MessageType,
    TaskKind,
    TaskResult,
    TaskStatus,
    TeamTask,
)

from ..models import CollaborationResult
from ..runtime import SessionRuntime
from .base import CollaborationStrategy, logger


class DebateStrategy(CollaborationStrategy):
    """Run candidate executions per task and keep the best one."""

    mode = CollaborationMode.DEBATE
    has_review_phase = True
    supports_dependencies = False

    def candidate_pool(self, runtime: SessionRuntime, task: TeamTask) -> Tuple[int, FrozenSet[str]]:
        """Number of candidates for a task and the members kept out of proposing.

        Leaders only propose when no other capable member exists. The count
        is the requested one, or the number of proposers, at least one and
        never more than the proposers.
        """
        team = self.manager.get_team(runtime.team_id)
        eligible = self.manager.find_eligible_members(runtime.team_id, task.required_capabilities)
        proposers = [m for m in eligible if m.role != MemberRole.LEADER.value]
        excluded: FrozenSet[str] = frozenset()
        if proposers:
            excluded = frozenset(m.id for m in team.members_with_role(MemberRole.LEADER.value))
        else:
            proposers = eligible
        requested = runtime.options.debate_candidates
        if requested is None:
            requested = len(proposers)
        return max(1, min(requested, len(proposers))), excluded

    async def execute(self, runtime: SessionRuntime) -> None:
        candidate_ids: List[str] = []
        for task in self.top_level_tasks(runtime):
            count, excluded = self.candidate_pool(runtime, task)
            candidates = [
                self.create_derived_task(
                    runtime,
                    task.title,
                    description=task.description,
                    priority=task.priority,
                    required_capabilities=task.required_capabilities,
                    kind=TaskKind.CANDIDATE,
                    parent_id=task.id,
                    group=task.id,
                    excluded_members=excluded,
                    input=task.input,
                )
                for _ in range(count)
            ]
            runtime.plans[task.id] = [c.id for c in candidates]
            candidate_ids.extend(c.id for c in candidates)
            logger.debug(
                "Candidates created",
                session_id=runtime.session.id,
                task_id=task.id,
                candidates=count,
            )
        await self.dispatch_parallel(runtime, candidate_ids)

    def on_task_finished(self, runtime: SessionRuntime, task: TeamTask) -> None:
        if task.kind != TaskKind.CANDIDATE or task.assignee_id is None:
            return
        if task.result is None or not task.result.success:
            return
        if not self.manager.store.has_member(runtime.team_id, task.assignee_id):
            return
        self.manager.send_message(
            runtime.team_id,
            task.assignee_id,
            MessageType.PROPOSAL,
            payload={"task_id": task.parent_id, "candidate_id": task.id, "output": task.result.output},
        )

    async def review(self, runtime: SessionRuntime) -> None:
        for task in self.top_level_tasks(runtime):
            candidate_ids = runtime.plans.get(task.id)
            if candidate_ids is None or task.status.is_terminal:
                continue
            await self._decide(runtime, task, candidate_ids)

    def _has_reviewer(self, runtime: SessionRuntime) -> bool:
        team = self.manager.get_team(runtime.team_id)
        return any(
            m.status != MemberStatus.OFFLINE
            for m in team.members_with_role(MemberRole.REVIEWER.value)
        )

    async def _judge(
        self,
        runtime: SessionRuntime,
        task: TeamTask,
        proposals: List[CollaborationResult],
    ) -> Optional[TeamTask]:
        judge = self.create_derived_task(
            runtime,
            f"Judge: {task.title}",
            description=task.description,
            priority=task.priority,
            required_role=MemberRole.REVIEWER.value,
            kind=TaskKind.JUDGE,
            parent_id=task.id,
            input={
                "title": task.title,
                "description": task.description,
                "candidates": [
                    {"index": i, "member_id": p.member_id, "output": p.output}
                    for i, p in enumerate(proposals)
                ],
            },
        )
        verdict = await self.run_single(runtime, judge.id)
        if verdict.result is None or not verdict.result.success:
            logger.warning(
                "Judging failed, falling back to selector",
                session_id=runtime.session.id,
                task_id=task.id,
                error=verdict.result.error if verdict.result else verdict.status.value,
            )
            return None
        if verdict.assignee_id is not None and self.manager.store.has_member(runtime.team_id, verdict.assignee_id):
            self.manager.send_message(
                runtime.team_id,
                verdict.assignee_id,
                MessageType.VERDICT,
                payload={"task_id": task.id, "output": verdict.result.output},
            )
        return verdict

    async def _decide(self, runtime: SessionRuntime, task: TeamTask, candidate_ids: List[str]) -> None:
        candidates = [
            self.to_result(t)
            for t in self.manager.list_tasks(runtime.team_id, task_ids=candidate_ids)
        ]
        proposals = [c for c in candidates if c.success]

        verdict = None
        if proposals and self._has_reviewer(runtime):
            verdict = await self._judge(runtime, task, proposals)

        if verdict is not None and verdict.result is not None:
            outcome = TaskResult(success=True, output=verdict.result.output)
            member_id = verdict.assignee_id
        else:
            winner = self.selector.select(candidates)
            if winner is not None:
                outcome = TaskResult(success=True, output=winner.output)
                member_id = winner.member_id
            else:
                errors = "; ".join(c.error or "failed" for c in candidates)
                outcome = TaskResult(success=False, error=f"No successful candidate: {errors}")
                member_id = None

        status = TaskStatus.COMPLETED if outcome.success else TaskStatus.FAILED
        resolved = self.manager.update_task_status(runtime.team_id, task.id, status, result=outcome)
        if resolved.result is not outcome:
            return

        runtime.add_result(
            CollaborationResult(
                task_id=task.id,
                title=task.title,
                success=outcome.success,
                output=outcome.output,
                error=outcome.error,
                duration=max((c.duration for c in candidates), default=0.0),
                attempts=sum(c.attempts for c in candidates),
                member_id=member_id,
                candidates=candidates,
            )
        )
        runtime.task_finished(resolved)
