"""Hierarchical strategy: leader decomposes, workers execute, leader synthesizes.

For each top-level task the leader runs a decompose task whose output is
parsed into sub-tasks. The leader broadcasts the plan, the sub-tasks run
with the parallel policy and workers report their results to the leader.
In the reviewing phase the leader synthesizes the sub-results; the
synthesis resolves the original task.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, FrozenSet, List, Optional

from agent_teams.teams.errors import ValidationError
from agent_teams.teams.models import (
    CollaborationMode,
    MemberRole,
    MemberStatus,
    MessageType,
    TaskKind,
    TaskPriority,
    TaskResult,
    TaskStatus,
    Team,
    TeamTask,
)

from ..models import CollaborationResult
from ..runtime import SessionRuntime
from .base import CollaborationStrategy, logger


@dataclass
class SubTaskSpec:
    """A sub-task proposed by the leader."""

    title: str
    description: str = ""
    role: Optional[str] = None
    capabilities: FrozenSet[str] = frozenset()
    priority: Optional[TaskPriority] = None
    input: Any = None


@dataclass
class _Plan:
    leader_id: Optional[str]
    subtask_ids: List[str] = field(default_factory=list)


class HierarchicalStrategy(CollaborationStrategy):
    """Leader-driven decomposition and synthesis."""

    mode = CollaborationMode.HIERARCHICAL
    has_review_phase = True
    supports_dependencies = False

    def validate(self, team: Team) -> None:
        leaders = [
            m for m in team.members_with_role(MemberRole.LEADER.value)
            if m.status != MemberStatus.OFFLINE
        ]
        if not leaders:
            raise ValidationError(f"Hierarchical mode requires a leader in team '{team.id}'")

    def _default_role(self, team: Team) -> Optional[str]:
        if team.members_with_role(MemberRole.WORKER.value):
            return MemberRole.WORKER.value
        return None

    def _parse_subtasks(self, task: TeamTask, output: Any, default_role: Optional[str]) -> List[SubTaskSpec]:
        """Parse leader output into sub-task specs.

        Accepts a list of strings or dicts (title, description, role,
        capabilities, priority); anything else falls back to a single
        sub-task mirroring the original task.
        """
        specs: List[SubTaskSpec] = []
        if isinstance(output, dict) and isinstance(output.get("subtasks"), list):
            output = output["subtasks"]

        if isinstance(output, list):
            for i, item in enumerate(output):
                if isinstance(item, str) and item.strip():
                    specs.append(SubTaskSpec(title=item.strip(), role=default_role))
                elif isinstance(item, dict):
                    title = item.get("title") or item.get("description") or f"{task.title} #{i + 1}"
                    priority = item.get("priority")
                    try:
                        priority = TaskPriority(priority) if priority is not None else None
                    except ValueError:
                        priority = None
                    role = item.get("role", default_role)
                    specs.append(
                        SubTaskSpec(
                            title=str(title),
                            description=str(item.get("description", "")),
                            role=role.value if isinstance(role, MemberRole) else role,
                            capabilities=frozenset(
                                item.get("capabilities") or item.get("requires") or ()
                            ),
                            priority=priority,
                            input=item.get("input"),
                        )
                    )

        if specs:
            return specs
        return [
            SubTaskSpec(
                title=task.title,
                description=task.description,
                capabilities=task.required_capabilities,
                input=task.input,
            )
        ]

    async def execute(self, runtime: SessionRuntime) -> None:
        team = self.manager.get_team(runtime.team_id)
        default_role = self._default_role(team)

        for task in self.top_level_tasks(runtime):
            decompose = self.create_derived_task(
                runtime,
                f"Decompose: {task.title}",
                description=task.description,
                priority=task.priority,
                required_role=MemberRole.LEADER.value,
                kind=TaskKind.DECOMPOSE,
                parent_id=task.id,
                input={
                    "title": task.title,
                    "description": task.description,
                    "input": task.input,
                    "capabilities": sorted(task.required_capabilities),
                },
            )
            planned = await self.run_single(runtime, decompose.id)
            output = None
            if planned.result is not None and planned.result.success:
                output = planned.result.output
            specs = self._parse_subtasks(task, output, default_role)

            subtasks = [
                self.create_derived_task(
                    runtime,
                    spec.title,
                    description=spec.description,
                    priority=spec.priority or task.priority,
                    required_capabilities=spec.capabilities,
                    required_role=spec.role,
                    kind=TaskKind.SUBTASK,
                    parent_id=task.id,
                    input=spec.input if spec.input is not None else task.input,
                )
                for spec in specs
            ]
            leader_id = planned.assignee_id
            runtime.plans[task.id] = _Plan(leader_id=leader_id, subtask_ids=[s.id for s in subtasks])

            if leader_id is not None and self.manager.store.has_member(runtime.team_id, leader_id):
                self.manager.send_message(
                    runtime.team_id,
                    leader_id,
                    MessageType.PLAN,
                    payload={
                        "task_id": task.id,
                        "subtasks": [{"id": s.id, "title": s.title, "role": s.required_role} for s in subtasks],
                    },
                )
            logger.info(
                "Task decomposed",
                session_id=runtime.session.id,
                task_id=task.id,
                subtasks=len(subtasks),
            )

            servable = self.fail_unservable(runtime, subtasks)
            await self.dispatch_parallel(runtime, [s.id for s in servable])

    def on_task_finished(self, runtime: SessionRuntime, task: TeamTask) -> None:
        if task.kind != TaskKind.SUBTASK or task.assignee_id is None:
            return
        plan = runtime.plans.get(task.parent_id or "")
        if plan is None or plan.leader_id is None:
            return
        if not self.manager.store.has_member(runtime.team_id, plan.leader_id):
            return
        if not self.manager.store.has_member(runtime.team_id, task.assignee_id):
            return
        result = task.result
        self.manager.send_message(
            runtime.team_id,
            task.assignee_id,
            MessageType.RESULT,
            payload={
                "task_id": task.id,
                "success": result.success if result else False,
                "output": result.output if result else None,
                "error": result.error if result else None,
            },
            recipient_id=plan.leader_id,
        )

    async def review(self, runtime: SessionRuntime) -> None:
        for task in self.top_level_tasks(runtime):
            plan = runtime.plans.get(task.id)
            if plan is None or task.status.is_terminal:
                continue
            await self._synthesize(runtime, task, plan)

    async def _synthesize(self, runtime: SessionRuntime, task: TeamTask, plan: _Plan) -> None:
        sub_tasks = self.manager.list_tasks(runtime.team_id, task_ids=plan.subtask_ids)
        sub_results = [self.to_result(t) for t in sub_tasks]

        synthesis = self.create_derived_task(
            runtime,
            f"Synthesize: {task.title}",
            description=task.description,
            priority=task.priority,
            required_role=MemberRole.LEADER.value,
            kind=TaskKind.SYNTHESIZE,
            parent_id=task.id,
            input={
                "title": task.title,
                "results": [
                    {"title": r.title, "success": r.success, "output": r.output, "error": r.error}
                    for r in sub_results
                ],
            },
        )
        synthesized = await self.run_single(runtime, synthesis.id)

        succeeded = [r for r in sub_results if r.success]
        if synthesized.result is not None and synthesized.result.success:
            outcome = TaskResult(success=True, output=synthesized.result.output)
            member_id = synthesized.assignee_id
        elif succeeded:
            # Synthesis unavailable: aggregate the sub-results.
            outcome = TaskResult(
                success=True,
                output={
                    "results": {r.task_id: r.output for r in succeeded},
                    "failed": [{"id": r.task_id, "error": r.error} for r in sub_results if not r.success],
                },
                metadata={"synthesis_error": synthesized.result.error if synthesized.result else None},
            )
            member_id = None
        else:
            errors = "; ".join(r.error or "failed" for r in sub_results)
            outcome = TaskResult(success=False, error=f"All sub-tasks failed: {errors}")
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
                duration=sum(r.duration for r in sub_results),
                attempts=sum(r.attempts for r in sub_results),
                member_id=member_id,
                sub_results=sub_results,
            )
        )
        runtime.task_finished(resolved)
