"""Candidate selection for debate sessions without a judge."""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from .models import CollaborationResult


@runtime_checkable
class CandidateSelector(Protocol):
    """Picks the winning candidate among debate results."""

    def select(self, candidates: Sequence[CollaborationResult]) -> Optional[CollaborationResult]:
        ...


class LongestOutputSelector:
    """Select the successful candidate with the longest output.

    Ties go to the earliest candidate. Returns None when no candidate
    succeeded.
    """

    def select(self, candidates: Sequence[CollaborationResult]) -> Optional[CollaborationResult]:
        best: Optional[CollaborationResult] = None
        best_length = -1
        for candidate in candidates:
            if not candidate.success:
                continue
            length = len(str(candidate.output)) if candidate.output is not None else 0
            if length > best_length:
                best, best_length = candidate, length
        return best


class FirstSuccessSelector:
    """Select the first successful candidate."""

    def select(self, candidates: Sequence[CollaborationResult]) -> Optional[CollaborationResult]:
        for candidate in candidates:
            if candidate.success:
                return candidate
        return None
