"""
Localization Module: Candidate arbitration and per-target sessions.

Key classes:
- is_better / pick_best: Pure candidate comparison
- LocationArbitrationEngine: WAITING -> RESOLVED / EXHAUSTED state machine
- CompletionPolicy: Accuracy, altitude and timeout settings
"""

from .candidate_arbitrator import (
    is_better,
    pick_best,
)
from .arbitration_engine import (
    LocationArbitrationEngine,
    ArbitrationState,
    CompletionPolicy,
    NoProvidersUsable,
    MIN_TIMEOUT_S,
    SUBSCRIBED_PROVIDERS,
)

__all__ = [
    'is_better',
    'pick_best',
    'LocationArbitrationEngine',
    'ArbitrationState',
    'CompletionPolicy',
    'NoProvidersUsable',
    'MIN_TIMEOUT_S',
    'SUBSCRIBED_PROVIDERS',
]
