"""
Pytest configuration and shared fixtures for fine geotag tests.

Provides synthetic geoid grids, in-process fakes for the engine's
collaborators (position source, deadline scheduler) and a sample factory.
"""

import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from geotag_core.geoid import (
    GeoidGridStore,
    GeoidOffsetResolver,
    GRID_ROWS,
    GRID_COLS,
)
from geotag_core.io import InMemoryCandidateStore, PositionSource, PositionSourceError
from geotag_core.localization import CompletionPolicy, LocationArbitrationEngine
from geotag_core.metrics import reset_metrics
from geotag_core.proto import LocationSample


# Fixed "now" for engine tests: 2024-06-01T12:00:00Z
NOW_S = 1717243200.0
NOW_MS = int(NOW_S * 1000)


# =============================================================================
# Geoid Grid Fixtures
# =============================================================================


def patterned_grid() -> np.ndarray:
    """
    Deterministic grid with distinct, partly negative values per node.

    Returns:
        (GRID_ROWS, GRID_COLS) int array in centimeters
    """
    rows = np.arange(GRID_ROWS) * 37
    cols = np.arange(GRID_COLS) * 11
    return np.add.outer(rows, cols) % 4000 - 2000


def grid_to_bytes(grid: np.ndarray) -> bytes:
    """Encode a grid as the big-endian int16 dataset layout."""
    return np.asarray(grid).astype('>i2').tobytes()


@pytest.fixture(scope="session")
def patterned_values() -> np.ndarray:
    return patterned_grid()


@pytest.fixture(scope="session")
def patterned_store(patterned_values) -> GeoidGridStore:
    """Grid store over the patterned grid."""
    return GeoidGridStore.from_bytes(grid_to_bytes(patterned_values))


@pytest.fixture(scope="session")
def patterned_resolver(patterned_store) -> GeoidOffsetResolver:
    return GeoidOffsetResolver(patterned_store)


@pytest.fixture(scope="session")
def constant_resolver() -> GeoidOffsetResolver:
    """Resolver returning +34.5m everywhere."""
    grid = np.full((GRID_ROWS, GRID_COLS), 3450)
    return GeoidOffsetResolver(GeoidGridStore.from_bytes(grid_to_bytes(grid)))


@pytest.fixture
def unavailable_resolver(tmp_path) -> GeoidOffsetResolver:
    """Resolver whose dataset file does not exist."""
    return GeoidOffsetResolver(GeoidGridStore(tmp_path / "missing.DAC"))


# =============================================================================
# Collaborator Fakes
# =============================================================================


class FakePositionSource(PositionSource):
    """
    Synchronous position source.

    Tests push samples through emit(); nothing is delivered on its own.
    """

    def __init__(self, enabled=("network", "gps")):
        self.enabled = set(enabled)
        self.failing = set()
        self.subscriptions: Dict[Tuple[str, str], Callable] = {}
        self.subscribe_args: Dict[Tuple[str, str], Tuple[int, float]] = {}
        self.last_known_fixes: Dict[str, LocationSample] = {}
        self.unsubscribe_calls: List[Tuple[str, str]] = []

    def providers(self) -> List[str]:
        return sorted({"network", "gps", "passive"} | set(self.last_known_fixes))

    def is_provider_enabled(self, provider: str) -> bool:
        return provider in self.enabled

    def subscribe(self, target, provider, callback, min_time_ms=1000, min_distance_m=1.0):
        if provider in self.failing:
            raise PositionSourceError(f"{provider} refused")
        self.subscriptions[(target, provider)] = callback
        self.subscribe_args[(target, provider)] = (min_time_ms, min_distance_m)

    def unsubscribe(self, target, provider):
        self.unsubscribe_calls.append((target, provider))
        self.subscriptions.pop((target, provider), None)

    def last_known(self, provider) -> Optional[LocationSample]:
        return self.last_known_fixes.get(provider)

    def is_subscribed(self, target, provider) -> bool:
        return (target, provider) in self.subscriptions

    def emit(self, target, provider, sample) -> bool:
        """Deliver sample to the subscriber, if any."""
        callback = self.subscriptions.get((target, provider))
        if callback is None:
            return False
        callback(sample)
        return True


class ManualScheduler:
    """Deadline scheduler that only fires when told to."""

    def __init__(self):
        self.armed: Dict[str, Tuple[float, Callable]] = {}
        self.cancelled: List[str] = []

    def arm(self, target, delay_s, on_fire):
        self.armed[target] = (delay_s, on_fire)

    def cancel(self, target):
        self.cancelled.append(target)
        return self.armed.pop(target, None) is not None

    def cancel_all(self):
        self.armed.clear()

    def pending(self):
        return sorted(self.armed)

    def delay(self, target) -> Optional[float]:
        entry = self.armed.get(target)
        return entry[0] if entry else None

    def fire(self, target) -> bool:
        entry = self.armed.pop(target, None)
        if entry is None:
            return False
        entry[1]()
        return True


class RecordingConsumer:
    """Downstream consumer that records every emission."""

    def __init__(self):
        self.calls: List[Tuple[str, LocationSample]] = []

    def __call__(self, target, sample):
        self.calls.append((target, sample))


# =============================================================================
# Sample Factory
# =============================================================================


def make_sample(
    provider: str = "network",
    latitude: float = 52.3702,
    longitude: float = 4.8952,
    accuracy_m: Optional[float] = None,
    altitude_m: Optional[float] = None,
    time_ms: int = NOW_MS,
    speed: Optional[float] = None,
    bearing: Optional[float] = None,
) -> LocationSample:
    return LocationSample(
        provider=provider,
        timestamp_ms=time_ms,
        latitude=latitude,
        longitude=longitude,
        altitude_m=altitude_m,
        speed=speed,
        bearing=bearing,
        accuracy_m=accuracy_m,
    )


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def position_source() -> FakePositionSource:
    return FakePositionSource()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def store() -> InMemoryCandidateStore:
    return InMemoryCandidateStore()


@pytest.fixture
def consumer() -> RecordingConsumer:
    return RecordingConsumer()


@pytest.fixture
def policy() -> CompletionPolicy:
    return CompletionPolicy(
        require_altitude=True,
        max_acceptable_accuracy_m=10.0,
        timeout_s=30.0,
        stale_fallback_window_min=5.0,
    )


@pytest.fixture
def engine_factory(position_source, store, scheduler, consumer, constant_resolver, policy):
    """Build an engine over the fakes; keyword overrides replace collaborators."""
    reset_metrics()

    def build(**overrides) -> LocationArbitrationEngine:
        kwargs = dict(
            position_source=position_source,
            store=store,
            scheduler=scheduler,
            resolver=constant_resolver,
            consumer=consumer,
            policy=policy,
            clock=lambda: NOW_S,
        )
        kwargs.update(overrides)
        return LocationArbitrationEngine(**kwargs)

    return build


@pytest.fixture
def engine(engine_factory) -> LocationArbitrationEngine:
    return engine_factory()
