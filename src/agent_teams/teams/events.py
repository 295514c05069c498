"""Team events and the bounded event bus.

Producers (the team manager and the collaboration engine) emit events
without ever blocking on consumers: events are placed on a bounded
``asyncio.Queue`` and a single consumer task fans them out to
subscribers and sinks. When the queue is full the event is dropped and
counted; consumers such as an SSE broadcaster must tolerate drops.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)

from agent_teams.observability.logging import get_logger

logger = get_logger("agent_teams.events")


class TeamEventType(str, Enum):
    """Types of team and session notifications."""

    TEAM_CREATED = "team-created"
    TEAM_DISSOLVED = "team-dissolved"
    MEMBER_JOINED = "member-joined"
    MEMBER_LEFT = "member-left"
    MEMBER_STATUS_CHANGED = "member-status-changed"
    TASK_CREATED = "task-created"
    TASK_ASSIGNED = "task-assigned"
    TASK_STARTED = "task-started"
    TASK_COMPLETED = "task-completed"
    TASK_FAILED = "task-failed"
    TASK_CANCELLED = "task-cancelled"
    MESSAGE_SENT = "message-sent"
    SESSION_STARTED = "session-started"
    SESSION_PHASE_CHANGED = "session-phase-changed"
    SESSION_PROGRESS = "session-progress"
    SESSION_COMPLETED = "session-completed"
    SESSION_FAILED = "session-failed"
    SESSION_CANCELLED = "session-cancelled"


@dataclass(frozen=True)
class TeamEvent:
    """Immutable notification carrying a snapshot of the affected entity.

    Attributes:
        type: Event type.
        team_id: Team the event relates to.
        payload: Snapshot of the affected entity.
        session_id: Collaboration session, when the event comes from one.
        timestamp: When the event was created.
    """

    type: TeamEventType
    team_id: Optional[str] = None
    payload: Any = None
    session_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)


@runtime_checkable
class EventSink(Protocol):
    """External consumer of events (for example a transport broadcaster)."""

    def emit(self, event_type: str, payload: Any) -> None:
        """Receive an event; must not assume at-least-once delivery."""
        ...


EventHandler = Callable[[TeamEvent], Any]


class EventBus:
    """Bounded channel between event producers and subscribers.

    Example:
        bus = EventBus(max_queue_size=100)
        bus.subscribe(print, [TeamEventType.TEAM_CREATED])
        await bus.start()

        bus.emit(TeamEvent(TeamEventType.TEAM_CREATED, team_id="team-1"))
        await bus.join()
        await bus.stop()
    """

    def __init__(self, max_queue_size: int = 1000):
        """Initialize the bus.

        Args:
            max_queue_size: Maximum number of undelivered events.
        """
        self._queue: asyncio.Queue[TeamEvent] = asyncio.Queue(maxsize=max_queue_size)
        self._subscribers: List[Tuple[EventHandler, Optional[FrozenSet[TeamEventType]]]] = []
        self._consumer: Optional[asyncio.Task] = None
        self._dropped = 0
        self._delivered = 0

    @property
    def dropped_count(self) -> int:
        """Number of events dropped because the queue was full."""
        return self._dropped

    @property
    def delivered_count(self) -> int:
        return self._delivered

    @property
    def is_running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def subscribe(
        self,
        handler: EventHandler,
        event_types: Optional[Iterable[TeamEventType]] = None,
    ) -> Callable[[], None]:
        """Register a handler, optionally filtered by event type.

        Args:
            handler: Sync or async callable receiving each TeamEvent.
            event_types: Types to deliver; None delivers everything.

        Returns:
            A callable that removes the subscription.
        """
        entry = (handler, frozenset(event_types) if event_types is not None else None)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def add_sink(
        self,
        sink: EventSink,
        event_types: Optional[Iterable[TeamEventType]] = None,
    ) -> Callable[[], None]:
        """Forward events to an external sink as ``(event_type, event)``."""
        return self.subscribe(lambda event: sink.emit(event.type.value, event), event_types)

    def emit(self, event: TeamEvent) -> bool:
        """Queue an event without blocking.

        Returns:
            True if queued, False if the event was dropped.
        """
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.debug("Event dropped, queue full", event_type=event.type.value)
            return False
        return True

    async def start(self) -> None:
        """Start the consumer task."""
        if self.is_running:
            return
        self._consumer = asyncio.create_task(self._consume())

    async def stop(self, drain: bool = True) -> None:
        """Stop the consumer task.

        Args:
            drain: Deliver already queued events before stopping.
        """
        if self._consumer is None:
            return
        if drain and not self._consumer.done():
            await self._queue.join()
        self._consumer.cancel()
        await asyncio.gather(self._consumer, return_exceptions=True)
        self._consumer = None

    async def join(self) -> None:
        """Wait until every queued event has been delivered."""
        await self._queue.join()

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: TeamEvent) -> None:
        for handler, types in list(self._subscribers):
            if types is not None and event.type not in types:
                continue
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Event handler failed", event_type=event.type.value)
        self._delivered += 1

    def stats(self) -> Dict[str, int]:
        return {
            "queued": self._queue.qsize(),
            "delivered": self._delivered,
            "dropped": self._dropped,
            "subscribers": len(self._subscribers),
        }
