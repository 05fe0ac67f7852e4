"""
I/O Module: Collaborators of the arbitration engine.

- CandidateStore: durable key/value storage of retained candidates
- DeadlineScheduler: per-target one-shot deadlines
- PositionSource: provider subscriptions and last-known fixes
"""

from .candidate_store import (
    CandidateStore,
    InMemoryCandidateStore,
    JsonFileCandidateStore,
    StoreUnavailable,
    candidate_key,
)
from .deadline_scheduler import DeadlineScheduler
from .position_source import (
    PositionSource,
    PositionSourceError,
    ReplayPositionSource,
    LOCATION_MIN_TIME_MS,
    LOCATION_MIN_DISTANCE_M,
)

__all__ = [
    'CandidateStore',
    'InMemoryCandidateStore',
    'JsonFileCandidateStore',
    'StoreUnavailable',
    'candidate_key',
    'DeadlineScheduler',
    'PositionSource',
    'PositionSourceError',
    'ReplayPositionSource',
    'LOCATION_MIN_TIME_MS',
    'LOCATION_MIN_DISTANCE_M',
]
