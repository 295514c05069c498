"""Collaboration engine: sessions, executors and dispatch strategies."""

from .engine import CollaborationEngine, EngineConfig
from .executor import AgentExecutionContext, AgentExecutor, RoleExecutorRouter, coerce_result
from .models import (
    CollaborationOptions,
    CollaborationPhase,
    CollaborationProgress,
    CollaborationRequest,
    CollaborationResult,
    CollaborationSession,
    CollaborationTask,
    SessionStatus,
)
from .runtime import SessionRuntime
from .selection import CandidateSelector, FirstSuccessSelector, LongestOutputSelector
from .strategies import (
    CollaborationStrategy,
    DebateStrategy,
    HierarchicalStrategy,
    ParallelStrategy,
    SequentialStrategy,
)

__all__ = [
    "AgentExecutionContext",
    "AgentExecutor",
    "CandidateSelector",
    "CollaborationEngine",
    "CollaborationOptions",
    "CollaborationPhase",
    "CollaborationProgress",
    "CollaborationRequest",
    "CollaborationResult",
    "CollaborationSession",
    "CollaborationStrategy",
    "CollaborationTask",
    "DebateStrategy",
    "EngineConfig",
    "FirstSuccessSelector",
    "HierarchicalStrategy",
    "LongestOutputSelector",
    "ParallelStrategy",
    "RoleExecutorRouter",
    "SequentialStrategy",
    "SessionRuntime",
    "SessionStatus",
    "coerce_result",
]
