"""Collaboration engine: session state machine and dispatch.

A session moves through planning, executing, reviewing (hierarchical and
debate only) and aggregating. The phases run inside a driver task; the
engine races it against the session timeout and tears the session down
on timeout, cancellation or team dissolution.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from agent_teams.observability.logging import get_logger
from agent_teams.teams.errors import (
    CancellationError,
    CapabilityMismatchError,
    CollaborationTimeoutError,
    SessionNotFoundError,
    TeamError,
    TeamNotFoundError,
    ValidationError,
)
from agent_teams.teams.events import EventBus, TeamEvent, TeamEventType
from agent_teams.teams.manager import TeamManager
from agent_teams.teams.models import CollaborationMode, TaskStatus, Team, TeamTask
from agent_teams.teams.templates import get_template

from .executor import AgentExecutor
from .models import (
    CollaborationPhase,
    CollaborationProgress,
    CollaborationRequest,
    CollaborationSession,
    SessionStatus,
)
from .runtime import SessionRuntime
from .selection import CandidateSelector
from .strategies import STRATEGIES, CollaborationStrategy

logger = get_logger("agent_teams.engine")


@dataclass(frozen=True)
class EngineConfig:
    """Configuration for the collaboration engine.

    Attributes:
        cancel_grace_period: Seconds in-flight executions may keep running
            after a session is cancelled before they are cancelled too.
        default_timeout: Session timeout used when a request sets none.
        event_queue_size: Queue size of the event bus the engine creates
            when neither it nor the manager was given one.
    """

    cancel_grace_period: float = 1.0
    default_timeout: Optional[float] = None
    event_queue_size: int = 1000

    def __post_init__(self) -> None:
        if self.cancel_grace_period < 0:
            raise ValidationError(
                f"cancel_grace_period must be >= 0, got {self.cancel_grace_period}"
            )
        if self.default_timeout is not None and self.default_timeout <= 0:
            raise ValidationError(f"default_timeout must be > 0, got {self.default_timeout}")
        if self.event_queue_size < 1:
            raise ValidationError(f"event_queue_size must be >= 1, got {self.event_queue_size}")


class CollaborationEngine:
    """Runs collaboration sessions over teams managed by a TeamManager.

    Example:
        manager = TeamManager()
        engine = CollaborationEngine(manager, executor)

        session = await engine.collaborate({
            "template": "development",
            "tasks": [{"title": "Design API"}, {"title": "Implement API"}],
            "options": {"timeout": 60},
        })
        for result in session.results:
            print(result.title, result.success)
    """

    def __init__(
        self,
        manager: TeamManager,
        executor: AgentExecutor,
        events: Optional[EventBus] = None,
        config: Optional[EngineConfig] = None,
        selector: Optional[CandidateSelector] = None,
    ):
        """Initialize the engine.

        Args:
            manager: Team manager owning the registry.
            executor: Executor invoked for every assignment.
            events: Event bus; defaults to the manager's bus.
            config: Engine configuration.
            selector: Candidate selector for debate sessions without a judge.
        """
        self.manager = manager
        self.executor = executor
        self.config = config or EngineConfig()
        if events is None:
            events = manager.events
        if events is None:
            events = EventBus(max_queue_size=self.config.event_queue_size)
        self.events = events
        self._strategies: Dict[CollaborationMode, CollaborationStrategy] = {
            mode: strategy_cls(manager, executor, selector)
            for mode, strategy_cls in STRATEGIES.items()
        }
        self._sessions: Dict[str, SessionRuntime] = {}

    # -- Public API ----------------------------------------------------------

    async def collaborate(
        self,
        request: Union[CollaborationRequest, Mapping[str, Any]],
    ) -> CollaborationSession:
        """Run a collaboration session to completion.

        Args:
            request: Request model or mapping.

        Returns:
            A copy of the finished session.

        Raises:
            ValidationError: If the request or template is invalid.
            TeamNotFoundError: If the team id is unknown.
        """
        request = CollaborationRequest.parse(request)
        team, ephemeral = self._resolve_team(request)
        mode = request.mode or team.mode

        session = CollaborationSession(team_id=team.id, mode=mode, template=request.template)
        timeout = request.options.timeout or self.config.default_timeout
        if timeout is not None:
            session.deadline = session.started_at + timedelta(seconds=timeout)

        runtime = SessionRuntime(session=session, request=request, ephemeral=ephemeral)
        runtime.on_phase = lambda phase: self._enter_phase(runtime, phase)
        runtime.on_task_finished = lambda task: self._report_progress(runtime, task)
        self._sessions[session.id] = runtime

        session.status = SessionStatus.RUNNING
        logger.info(
            "Session started",
            session_id=session.id,
            team_id=team.id,
            mode=mode.value,
            tasks=len(request.tasks),
        )
        self._emit(TeamEventType.SESSION_STARTED, runtime, session.snapshot())

        runtime.driver = asyncio.create_task(self._drive(runtime, self._strategies[mode]))
        try:
            done, _ = await asyncio.wait({runtime.driver}, timeout=timeout)
            if not done:
                error = CollaborationTimeoutError(f"Session timed out after {timeout}s")
                await self._teardown(runtime, SessionStatus.CANCELLED, str(error))
            else:
                await self._conclude(runtime)
        except asyncio.CancelledError:
            await self._teardown(runtime, SessionStatus.CANCELLED, "Session cancelled by caller")
            raise
        finally:
            if ephemeral and self.manager.store.has_team(team.id):
                self.manager.dissolve_team(team.id)

        return session.snapshot()

    def cancel_session(self, session_id: str, reason: Optional[str] = None) -> bool:
        """Request cancellation of a running session.

        The session ends cancelled once its teardown completes.

        Returns:
            False if the session had already finished.
        """
        runtime = self._get_runtime(session_id)
        if runtime.session.is_finished:
            return False
        runtime.cancel_reason = reason or str(CancellationError(f"Session '{session_id}' cancelled"))
        runtime.cancel_event.set()
        if runtime.driver is not None and not runtime.driver.done():
            runtime.driver.cancel()
        logger.info("Session cancellation requested", session_id=session_id)
        return True

    def get_session(self, session_id: str) -> CollaborationSession:
        """Get a copy of a session.

        Raises:
            SessionNotFoundError: If the id is unknown.
        """
        return self._get_runtime(session_id).session.snapshot()

    def list_sessions(
        self,
        team_id: Optional[str] = None,
        active_only: bool = False,
    ) -> List[CollaborationSession]:
        sessions = []
        for runtime in self._sessions.values():
            session = runtime.session
            if team_id is not None and session.team_id != team_id:
                continue
            if active_only and session.is_finished:
                continue
            sessions.append(session.snapshot())
        return sessions

    def forget_session(self, session_id: str) -> bool:
        """Drop a finished session from the engine's records."""
        runtime = self._sessions.get(session_id)
        if runtime is None or not runtime.session.is_finished:
            return False
        del self._sessions[session_id]
        return True

    # -- Internals -----------------------------------------------------------

    def _get_runtime(self, session_id: str) -> SessionRuntime:
        runtime = self._sessions.get(session_id)
        if runtime is None:
            raise SessionNotFoundError(session_id)
        return runtime

    def _emit(self, event_type: TeamEventType, runtime: SessionRuntime, payload: Any) -> None:
        self.events.emit(
            TeamEvent(
                type=event_type,
                team_id=runtime.team_id,
                payload=payload,
                session_id=runtime.session.id,
            )
        )

    def _resolve_team(self, request: CollaborationRequest) -> Tuple[Team, bool]:
        if request.team_id is not None:
            return self.manager.get_team(request.team_id), False
        template = get_template(request.template)
        team = self.manager.create_team(
            f"{template.name}-{datetime.now().strftime('%Y%m%d%H%M%S')}",
            members=template.members,
            config=template.config,
            description=template.description,
            mode=template.mode,
        )
        return team, True

    def _enter_phase(self, runtime: SessionRuntime, phase: CollaborationPhase) -> None:
        session = runtime.session
        if session.phase is not None and phase.order <= session.phase.order:
            raise ValueError(
                f"Phase cannot move from {session.phase.value} to {phase.value}"
            )
        previous = session.phase
        session.phase = phase
        logger.info(
            "Session phase changed",
            session_id=session.id,
            phase=phase.value,
            previous=previous.value if previous else None,
        )
        self._emit(
            TeamEventType.SESSION_PHASE_CHANGED,
            runtime,
            {"phase": phase.value, "previous": previous.value if previous else None},
        )

    def _report_progress(self, runtime: SessionRuntime, task: TeamTask) -> None:
        session = runtime.session
        progress = CollaborationProgress(
            session_id=session.id,
            phase=session.phase,
            completed_tasks=len(session.results),
            total_tasks=len(session.task_ids),
            current_task=task.title,
            results=list(session.results),
        )
        callback = runtime.options.on_progress
        if callback is not None:
            try:
                callback(progress)
            except Exception:
                logger.exception("Progress callback failed", session_id=session.id)
        self._emit(TeamEventType.SESSION_PROGRESS, runtime, progress)

    def _plan(self, runtime: SessionRuntime, strategy: CollaborationStrategy) -> None:
        """Validate the team for the mode and register the top-level tasks."""
        team_id = runtime.team_id
        strategy.validate(self.manager.get_team(team_id))
        if not strategy.supports_dependencies and any(t.depends_on for t in runtime.request.tasks):
            raise ValidationError(f"Task dependencies are not supported in {strategy.name} mode")

        unservable = [
            task.title
            for task in runtime.request.tasks
            if not self.manager.find_eligible_members(team_id, task.required_capabilities)
        ]
        if unservable:
            raise CapabilityMismatchError(
                f"No member can satisfy the required capabilities of: {', '.join(unservable)}",
                task_titles=unservable,
            )

        keyed: Dict[str, str] = {}
        for spec in runtime.request.tasks:
            task = self.manager.create_task(
                team_id,
                spec.title,
                description=spec.description,
                priority=spec.priority,
                required_capabilities=spec.required_capabilities,
                input=spec.input,
                depends_on=[keyed[key] for key in spec.depends_on],
            )
            if spec.key is not None:
                keyed[spec.key] = task.id
            runtime.track(task)
            runtime.session.task_ids.append(task.id)

    def _aggregate(self, runtime: SessionRuntime) -> None:
        session = runtime.session
        succeeded = sum(1 for r in session.results if r.success)
        session.summary = {
            "total_tasks": len(session.task_ids),
            "succeeded": succeeded,
            "failed": len(session.results) - succeeded,
            "unfinished": len(session.task_ids) - len(session.results),
        }

    async def _drive(self, runtime: SessionRuntime, strategy: CollaborationStrategy) -> None:
        runtime.enter_phase(CollaborationPhase.PLANNING)
        self._plan(runtime, strategy)

        runtime.enter_phase(CollaborationPhase.EXECUTING)
        await strategy.execute(runtime)

        if strategy.has_review_phase:
            runtime.enter_phase(CollaborationPhase.REVIEWING)
            await strategy.review(runtime)

        runtime.enter_phase(CollaborationPhase.AGGREGATING)
        self._aggregate(runtime)

    async def _conclude(self, runtime: SessionRuntime) -> None:
        """Settle the session after the driver finished on its own."""
        driver = runtime.driver
        if driver.cancelled():
            await self._teardown(
                runtime, SessionStatus.CANCELLED, runtime.cancel_reason or "Session cancelled"
            )
            return

        error = driver.exception()
        if error is None:
            self._finish(runtime, SessionStatus.COMPLETED)
        elif isinstance(error, TeamNotFoundError):
            await self._teardown(runtime, SessionStatus.CANCELLED, f"Team dissolved: {error}")
        elif isinstance(error, CancellationError):
            await self._teardown(runtime, SessionStatus.CANCELLED, str(error))
        elif isinstance(error, TeamError):
            logger.warning("Session failed", session_id=runtime.session.id, error=str(error))
            await self._teardown(runtime, SessionStatus.FAILED, str(error))
        else:
            logger.error(
                "Session crashed",
                session_id=runtime.session.id,
                error=f"{type(error).__name__}: {error}",
            )
            await self._teardown(runtime, SessionStatus.FAILED, f"{type(error).__name__}: {error}")

    def _cancel_open_tasks(self, runtime: SessionRuntime) -> int:
        team_id = runtime.team_id
        if not self.manager.store.has_team(team_id):
            return 0
        cancelled = 0
        for task in self.manager.list_tasks(team_id, task_ids=runtime.owned_task_ids):
            # Re-read: cancelling a task fails its pending dependents.
            if self.manager.get_task(team_id, task.id).status.is_terminal:
                continue
            self.manager.update_task_status(team_id, task.id, TaskStatus.CANCELLED)
            cancelled += 1
        return cancelled

    async def _teardown(self, runtime: SessionRuntime, status: SessionStatus, error: str) -> None:
        """Stop dispatching, cancel open tasks and settle in-flight executions."""
        runtime.cancel_event.set()
        driver = runtime.driver
        if driver is not None and not driver.done():
            driver.cancel()
        cancelled = self._cancel_open_tasks(runtime)
        if driver is not None:
            await asyncio.wait({driver})

        inflight = set(runtime.inflight)
        if inflight:
            _, leftover = await asyncio.wait(inflight, timeout=self.config.cancel_grace_period)
            for execution in leftover:
                execution.cancel()
            if leftover:
                logger.warning(
                    "Cancelled executions after grace period",
                    session_id=runtime.session.id,
                    count=len(leftover),
                )
        cancelled += self._cancel_open_tasks(runtime)

        logger.info(
            "Session torn down",
            session_id=runtime.session.id,
            status=status.value,
            cancelled_tasks=cancelled,
        )
        self._finish(runtime, status, error)

    def _finish(
        self,
        runtime: SessionRuntime,
        status: SessionStatus,
        error: Optional[str] = None,
    ) -> None:
        session = runtime.session
        session.status = status
        session.error = error
        session.ended_at = datetime.now()
        if not session.summary:
            self._aggregate(runtime)

        event_type = {
            SessionStatus.COMPLETED: TeamEventType.SESSION_COMPLETED,
            SessionStatus.FAILED: TeamEventType.SESSION_FAILED,
            SessionStatus.CANCELLED: TeamEventType.SESSION_CANCELLED,
        }[status]
        logger.info(
            "Session finished",
            session_id=session.id,
            status=status.value,
            results=len(session.results),
            error=error,
        )
        self._emit(event_type, runtime, session.snapshot())
