"""Per-session runtime state shared between the engine and strategies."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Dict, List, Optional, Set

from agent_teams.teams.models import TeamTask

from .models import (
    CollaborationOptions,
    CollaborationPhase,
    CollaborationRequest,
    CollaborationResult,
    CollaborationSession,
)


@dataclass
class SessionRuntime:
    """Mutable bookkeeping of one running session.

    Attributes:
        session: The session record owned by the engine.
        request: The validated request.
        cancel_event: Set once the session is being torn down.
        inflight: Executor invocations that have not finished yet.
        owned_task_ids: Every task registered for the session, including
            derived decompose, sub-task, candidate, synthesize and judge tasks.
        plans: Strategy plan per top-level task.
        finished_ids: Tasks whose outcome was already recorded.
        driver: Task running the session phases.
        cancel_reason: Why the session was cancelled, if it was.
        ephemeral: Whether the team was created for this session only.
        on_phase: Called when a strategy enters a new phase.
        on_task_finished: Called after every terminal task transition.
    """

    session: CollaborationSession
    request: CollaborationRequest
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    inflight: Set[asyncio.Task] = field(default_factory=set)
    owned_task_ids: List[str] = field(default_factory=list)
    plans: Dict[str, Any] = field(default_factory=dict)
    finished_ids: Set[str] = field(default_factory=set)
    driver: Optional[asyncio.Task] = None
    cancel_reason: Optional[str] = None
    ephemeral: bool = False
    on_phase: Optional[Callable[[CollaborationPhase], None]] = None
    on_task_finished: Optional[Callable[[TeamTask], None]] = None

    @property
    def team_id(self) -> str:
        return self.session.team_id

    @property
    def options(self) -> CollaborationOptions:
        return self.request.options

    @property
    def shared_context(self) -> Dict[str, Any]:
        return self.request.options.shared_context

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def track(self, task: TeamTask) -> TeamTask:
        self.owned_task_ids.append(task.id)
        return task

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run an executor invocation as an in-flight task of the session."""
        task = asyncio.create_task(coro)
        self.inflight.add(task)
        task.add_done_callback(self._settle)
        return task

    def _settle(self, task: asyncio.Task) -> None:
        self.inflight.discard(task)
        if not task.cancelled():
            # Mark the outcome retrieved; errors surface through the dispatcher.
            task.exception()

    def enter_phase(self, phase: CollaborationPhase) -> None:
        if self.on_phase is not None:
            self.on_phase(phase)

    def add_result(self, result: CollaborationResult) -> None:
        self.session.results.append(result)

    def task_finished(self, task: TeamTask) -> None:
        if self.on_task_finished is not None:
            self.on_task_finished(task)
