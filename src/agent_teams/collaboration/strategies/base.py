"""Base collaboration strategy and shared dispatch machinery.

Every strategy executes assignments the same way: the task is marked
running, the executor is invoked under the team's task timeout with
retries, and the outcome is written back through the manager with the
member id so that late completions of cancelled or requeued tasks are
ignored.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import Any, Iterable, List, Optional, Sequence, Set

from agent_teams.observability.logging import get_logger
from agent_teams.teams.errors import ExecutionError
from agent_teams.teams.manager import TeamManager
from agent_teams.teams.models import (
    CollaborationMode,
    MemberStatus,
    TaskKind,
    TaskResult,
    TaskStatus,
    Team,
    TeamMember,
    TeamTask,
)

from ..executor import AgentExecutionContext, AgentExecutor, coerce_result
from ..models import CollaborationResult
from ..runtime import SessionRuntime
from ..selection import CandidateSelector, LongestOutputSelector

logger = get_logger("agent_teams.collaboration")


class CollaborationStrategy:
    """Base class for mode-specific dispatch.

    Subclasses implement ``execute`` (executing phase) and, when
    ``has_review_phase`` is set, ``review`` (reviewing phase). Modes that
    resolve top-level tasks through derived ones clear
    ``supports_dependencies``.
    """

    mode: CollaborationMode
    has_review_phase: bool = False
    supports_dependencies: bool = True

    def __init__(
        self,
        manager: TeamManager,
        executor: AgentExecutor,
        selector: Optional[CandidateSelector] = None,
    ):
        self.manager = manager
        self.executor = executor
        self.selector = selector or LongestOutputSelector()

    @property
    def name(self) -> str:
        return self.mode.value

    def validate(self, team: Team) -> None:
        """Check that the team can run this mode. Raises ValidationError."""

    async def execute(self, runtime: SessionRuntime) -> None:
        raise NotImplementedError("Subclasses must implement execute()")

    async def review(self, runtime: SessionRuntime) -> None:
        """Reviewing phase; only called when has_review_phase is set."""

    def on_task_finished(self, runtime: SessionRuntime, task: TeamTask) -> None:
        """Hook called after an execution result was recorded."""

    # -- Task helpers --------------------------------------------------------

    def top_level_tasks(self, runtime: SessionRuntime) -> List[TeamTask]:
        """Top-level tasks of the session in scheduling order.

        A task never precedes a task it depends on; otherwise priority tier,
        then creation order decides.
        """
        tasks = self.manager.list_tasks(runtime.team_id, task_ids=runtime.session.task_ids)
        remaining = sorted(tasks, key=lambda t: t.schedule_key)
        session_ids = {t.id for t in tasks}
        placed: Set[str] = set()
        ordered: List[TeamTask] = []
        while remaining:
            ready = next(
                (
                    t
                    for t in remaining
                    if all(d in placed or d not in session_ids for d in t.depends_on)
                ),
                remaining[0],
            )
            remaining.remove(ready)
            placed.add(ready.id)
            ordered.append(ready)
        return ordered

    def create_derived_task(self, runtime: SessionRuntime, title: str, **options: Any) -> TeamTask:
        task = self.manager.create_task(runtime.team_id, title, **options)
        return runtime.track(task)

    @staticmethod
    def to_result(task: TeamTask) -> CollaborationResult:
        result = task.result
        if result is None:
            return CollaborationResult(
                task_id=task.id,
                title=task.title,
                success=False,
                error=f"Task {task.status.value}",
                attempts=0,
                member_id=task.assignee_id,
            )
        return CollaborationResult(
            task_id=task.id,
            title=task.title,
            success=result.success,
            output=result.output,
            error=result.error,
            duration=result.duration,
            attempts=result.metadata.get("attempts", 1),
            member_id=task.assignee_id,
        )

    def record_finished(self, runtime: SessionRuntime, task: TeamTask) -> None:
        """Record a terminal task: results for top-level tasks, then progress.

        Session tasks that failed because this task did not complete are
        recorded right after it.
        """
        if task.id in runtime.finished_ids:
            return
        runtime.finished_ids.add(task.id)
        if task.kind == TaskKind.STANDARD:
            runtime.add_result(self.to_result(task))
        self.on_task_finished(runtime, task)
        runtime.task_finished(task)
        if task.status == TaskStatus.COMPLETED:
            return
        for dependent in self.manager.list_tasks(runtime.team_id, task_ids=runtime.owned_task_ids):
            if task.id in dependent.depends_on and dependent.status.is_terminal:
                self.record_finished(runtime, dependent)

    def fail_task(self, runtime: SessionRuntime, task_id: str, error: str) -> TeamTask:
        """Fail a task that can no longer be served."""
        result = TaskResult(success=False, error=error)
        final = self.manager.update_task_status(
            runtime.team_id, task_id, TaskStatus.FAILED, result=result
        )
        if final.result is result:
            logger.warning("Task failed without execution", task_id=task_id, error=error)
            self.record_finished(runtime, final)
        return final

    def is_unservable(self, runtime: SessionRuntime, task: TeamTask) -> bool:
        """Whether no non-offline member can ever take the pending task."""
        excluded = set()
        if task.group is not None:
            for other in self.manager.list_tasks(runtime.team_id):
                if other.group == task.group and other.assignee_id is not None:
                    excluded.add(other.assignee_id)
        for member in self.manager.get_team(runtime.team_id).members:
            if member.status == MemberStatus.OFFLINE or member.id in excluded:
                continue
            if task.can_be_taken_by(member):
                return False
        return True

    # -- Execution -----------------------------------------------------------

    async def _invoke(
        self,
        runtime: SessionRuntime,
        task: TeamTask,
        member: TeamMember,
        team: Team,
    ) -> TaskResult:
        context = AgentExecutionContext(
            task=task,
            member=member,
            team=team,
            session_id=runtime.session.id,
            shared_context=runtime.shared_context,
            cancel_event=runtime.cancel_event,
        )
        timeout = team.config.task_timeout
        try:
            return coerce_result(await asyncio.wait_for(self.executor(context), timeout))
        except asyncio.TimeoutError:
            return TaskResult(success=False, error=f"Task timed out after {timeout}s")
        except Exception as exc:
            error = ExecutionError(str(exc) or type(exc).__name__, task_id=task.id)
            logger.warning(
                "Executor failed",
                session_id=runtime.session.id,
                task_id=task.id,
                member_id=member.id,
                error=str(error),
            )
            return TaskResult(success=False, error=str(error))

    async def run_assignment(
        self,
        runtime: SessionRuntime,
        task: TeamTask,
        member: TeamMember,
    ) -> TeamTask:
        """Execute one assigned task to a terminal state.

        Returns:
            The task record after the final status update. If the task was
            cancelled or requeued meanwhile, the record is returned unchanged
            and no result is recorded.
        """
        team_id = runtime.team_id
        running = self.manager.update_task_status(
            team_id, task.id, TaskStatus.RUNNING, member_id=member.id
        )
        if running.status != TaskStatus.RUNNING:
            return running

        team = self.manager.get_team(team_id)
        retry = team.config.retry
        started = time.monotonic()
        attempts = 0
        while True:
            attempts += 1
            result = await self._invoke(runtime, running, member, team)
            if result.success or attempts > retry.max_retries or runtime.cancelled:
                break
            self.manager.record_retry(team_id, task.id)
            logger.warning(
                "Retrying task",
                task_id=task.id,
                attempt=attempts,
                error=result.error,
            )
            if retry.backoff:
                await asyncio.sleep(retry.backoff)

        result = replace(
            result,
            duration=time.monotonic() - started,
            metadata={**result.metadata, "attempts": attempts},
        )
        status = TaskStatus.COMPLETED if result.success else TaskStatus.FAILED
        final = self.manager.update_task_status(
            team_id, task.id, status, result=result, member_id=member.id
        )
        if final.result is not result:
            logger.debug("Discarding late result", task_id=task.id, status=final.status.value)
            return final
        if not result.success:
            logger.warning("Task failed", task_id=task.id, member_id=member.id, error=result.error)
        self.record_finished(runtime, final)
        return final

    async def run_single(self, runtime: SessionRuntime, task_id: str) -> TeamTask:
        """Assign and execute a single task, waiting for a free member.

        A task requeued while it ran (its member was removed) is assigned
        again until it reaches a terminal state.
        """
        team_id = runtime.team_id
        while True:
            assignment = self.manager.assign_task(team_id, [task_id])
            if assignment is not None:
                task, member = assignment
                execution = runtime.spawn(self.run_assignment(runtime, task, member))
                # asyncio.wait leaves the execution running if we are cancelled
                await asyncio.wait({execution})
                execution.result()
                final = self.manager.get_task(team_id, task_id)
                if final.status.is_terminal or runtime.cancelled:
                    return final
                logger.info(
                    "Task requeued, assigning again",
                    session_id=runtime.session.id,
                    task_id=task_id,
                    status=final.status.value,
                )
                continue

            task = self.manager.get_task(team_id, task_id)
            if task.status.is_terminal:
                return task
            if task.status == TaskStatus.PENDING and self.is_unservable(runtime, task):
                return self.fail_task(runtime, task_id, "No eligible member available")
            await self.manager.wait_for_release(team_id)

    async def dispatch_parallel(self, runtime: SessionRuntime, task_ids: Iterable[str]) -> None:
        """Run tasks over a pool bounded by the team's max concurrency.

        Slots are refilled as soon as any execution finishes. Pending tasks
        that no member can ever take are failed once nothing else runs.
        """
        team_id = runtime.team_id
        ids = list(task_ids)
        running: set = set()
        while True:
            while not runtime.cancelled:
                assignment = self.manager.assign_task(team_id, ids)
                if assignment is None:
                    break
                task, member = assignment
                running.add(runtime.spawn(self.run_assignment(runtime, task, member)))

            unfinished = [
                t for t in self.manager.list_tasks(team_id, task_ids=ids) if not t.status.is_terminal
            ]
            if not unfinished and not running:
                return
            if running:
                done, running = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
                for execution in done:
                    execution.result()
                continue

            unservable = [
                t
                for t in unfinished
                if t.status == TaskStatus.PENDING and self.is_unservable(runtime, t)
            ]
            if unservable:
                for task in unservable:
                    self.fail_task(runtime, task.id, "No eligible member available")
                continue
            await self.manager.wait_for_release(team_id)

    def fail_unservable(self, runtime: SessionRuntime, tasks: Sequence[TeamTask]) -> List[TeamTask]:
        """Fail the given pending tasks that no member can take; return the rest."""
        servable = []
        for task in tasks:
            if self.is_unservable(runtime, task):
                self.fail_task(runtime, task.id, "No member can satisfy the required capabilities")
            else:
                servable.append(task)
        return servable
