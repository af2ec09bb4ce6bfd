"""Candidate lifecycle: creation from scores and user accept/dismiss decisions."""

from .commands import AcceptCandidate, AcceptResult, DismissCandidate, build_subscription
from .lifecycle_service import CandidateLifecycleManager

__all__ = [
    'AcceptCandidate',
    'AcceptResult',
    'DismissCandidate',
    'build_subscription',
    'CandidateLifecycleManager',
]
