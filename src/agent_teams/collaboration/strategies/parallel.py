"""Parallel strategy: fan-out over a bounded pool, fan-in on completion."""

from __future__ import annotations

from agent_teams.teams.models import CollaborationMode

from ..runtime import SessionRuntime
from .base import CollaborationStrategy


class ParallelStrategy(CollaborationStrategy):
    """Run all tasks concurrently, at most ``max_concurrency`` at a time."""

    mode = CollaborationMode.PARALLEL

    async def execute(self, runtime: SessionRuntime) -> None:
        await self.dispatch_parallel(runtime, runtime.session.task_ids)
