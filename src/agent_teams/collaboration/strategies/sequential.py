"""Sequential strategy: one task at a time in scheduling order."""

from __future__ import annotations

from agent_teams.teams.errors import CollaborationStoppedError
from agent_teams.teams.models import CollaborationMode, TaskStatus

from ..runtime import SessionRuntime
from .base import CollaborationStrategy, logger


class SequentialStrategy(CollaborationStrategy):
    """Assign, execute and finish each task before the next one.

    Tasks run by priority tier, then submission order. Failures are
    recorded and the run continues, unless ``stop_on_first_failure`` is
    set: then the remaining tasks are cancelled and the session fails.
    """

    mode = CollaborationMode.SEQUENTIAL

    async def execute(self, runtime: SessionRuntime) -> None:
        tasks = self.top_level_tasks(runtime)
        for index, task in enumerate(tasks):
            final = await self.run_single(runtime, task.id)
            if final.status == TaskStatus.COMPLETED:
                continue
            if not runtime.options.stop_on_first_failure:
                continue

            for remaining in tasks[index + 1:]:
                self.manager.update_task_status(runtime.team_id, remaining.id, TaskStatus.CANCELLED)
            error = final.result.error if final.result else final.status.value
            logger.warning(
                "Stopping after first failure",
                session_id=runtime.session.id,
                task_id=final.id,
                cancelled=len(tasks) - index - 1,
            )
            raise CollaborationStoppedError(f"Task '{final.title}' failed: {error}", task_id=final.id)
