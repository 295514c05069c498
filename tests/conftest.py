"""Common test fixtures and doubles for agent_teams tests."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import pytest

from agent_teams.collaboration.engine import CollaborationEngine, EngineConfig
from agent_teams.collaboration.executor import AgentExecutionContext
from agent_teams.teams.events import EventBus, TeamEvent, TeamEventType
from agent_teams.teams.manager import TeamManager
from agent_teams.teams.models import MemberRole, TaskResult, Team, TeamConfig


# ============================================================================
# Doubles
# ============================================================================


class ScriptedExecutor:
    """Executor double with per-title outputs, delays and failures.

    Attributes:
        calls: Every execution context received, in call order.
        max_running: Highest number of simultaneous executions observed.
    """

    def __init__(
        self,
        delay: float = 0.0,
        delays: Optional[Dict[str, float]] = None,
        outputs: Optional[Dict[str, Any]] = None,
        failures: Iterable[str] = (),
        fail_roles: Iterable[str] = (),
    ):
        self.delay = delay
        self.delays = delays or {}
        self.outputs = outputs or {}
        self.failures = set(failures)
        self.fail_roles = set(fail_roles)
        self.calls: List[AgentExecutionContext] = []
        self.completed: List[str] = []
        self.running = 0
        self.max_running = 0

    async def __call__(self, context: AgentExecutionContext) -> Any:
        self.calls.append(context)
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            title = context.task.title
            delay = self.delays.get(title, self.delay)
            if delay:
                await asyncio.sleep(delay)
            if title in self.failures or context.member.role in self.fail_roles:
                raise RuntimeError(f"{title} exploded")
            self.completed.append(title)
            if title in self.outputs:
                value = self.outputs[title]
                return value(context) if callable(value) else value
            return TaskResult(success=True, output=f"{context.member.name}: {title}")
        finally:
            self.running -= 1

    def titles(self) -> List[str]:
        return [c.task.title for c in self.calls]

    def members_for(self, title: str) -> List[str]:
        return [c.member.name for c in self.calls if c.task.title == title]


class EventRecorder:
    """Event bus subscriber keeping every delivered event."""

    def __init__(self) -> None:
        self.events: List[TeamEvent] = []

    def __call__(self, event: TeamEvent) -> None:
        self.events.append(event)

    def types(self) -> List[TeamEventType]:
        return [e.type for e in self.events]

    def of_type(self, event_type: TeamEventType) -> List[TeamEvent]:
        return [e for e in self.events if e.type == event_type]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
async def event_bus():
    """Started event bus, stopped after the test."""
    bus = EventBus(max_queue_size=1000)
    await bus.start()
    yield bus
    await bus.stop(drain=False)


@pytest.fixture
def recorder(event_bus: EventBus) -> EventRecorder:
    recorder = EventRecorder()
    event_bus.subscribe(recorder)
    return recorder


@pytest.fixture
def manager(event_bus: EventBus) -> TeamManager:
    return TeamManager(events=event_bus)


@pytest.fixture
def executor() -> ScriptedExecutor:
    return ScriptedExecutor()


@pytest.fixture
def engine(manager: TeamManager, executor: ScriptedExecutor) -> CollaborationEngine:
    return CollaborationEngine(manager, executor, config=EngineConfig(cancel_grace_period=0.5))


@pytest.fixture
def make_team(manager: TeamManager) -> Callable[..., Team]:
    """Factory creating teams from (name, role, capabilities) tuples."""

    def factory(
        *members: tuple,
        name: str = "team",
        max_concurrency: int = 5,
        task_timeout: Optional[float] = 5.0,
        mode: Union[str, None] = None,
        **config: Any,
    ) -> Team:
        return manager.create_team(
            name,
            members=[
                {"name": m[0], "role": m[1], "capabilities": list(m[2]) if len(m) > 2 else []}
                for m in members
            ],
            config=TeamConfig(max_concurrency=max_concurrency, task_timeout=task_timeout, **config),
            mode=mode,
        )

    return factory


@pytest.fixture
def qa_team(make_team: Callable[..., Team]) -> Team:
    """Tester and reviewer with disjoint capabilities."""
    return make_team(
        ("tester", MemberRole.WORKER, ["test"]),
        ("reviewer", MemberRole.REVIEWER, ["review"]),
        name="qa",
    )
