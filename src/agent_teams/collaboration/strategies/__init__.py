"""Collaboration strategies, one per collaboration mode."""

from .base import CollaborationStrategy
from .debate import DebateStrategy
from .hierarchical import HierarchicalStrategy, SubTaskSpec
from .parallel import ParallelStrategy
from .sequential import SequentialStrategy

STRATEGIES = {
    strategy.mode: strategy
    for strategy in (SequentialStrategy, ParallelStrategy, HierarchicalStrategy, DebateStrategy)
}

__all__ = [
    "CollaborationStrategy",
    "DebateStrategy",
    "HierarchicalStrategy",
    "ParallelStrategy",
    "STRATEGIES",
    "SequentialStrategy",
    "SubTaskSpec",
]
