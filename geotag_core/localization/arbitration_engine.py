"""
Location Arbitration Engine.

Runs one arbitration session per target (e.g. an image awaiting a geotag):

    start(target)            WAITING   subscribe providers, arm deadline
    on_sample(target, s)     WAITING   correct GPS altitude, keep best,
                                       RESOLVED once good enough
    on_timeout(target)       WAITING   fall back to fresh last-known fixes,
                                       RESOLVED or EXHAUSTED

The best sample so far is persisted per target so an interrupted session
can resume after a restart. Concluding a session retires its
subscriptions and deadline, removes the persisted candidate and hands the
result to the downstream consumer exactly once.

Every failure in a collaborator degrades to "proceed with the best
information available"; nothing here raises into the event source.
"""

import functools
import logging
import threading
import time
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Callable, Dict, List, Optional

from geotag_core.geoid import GeoidOffsetResolver, DataUnavailable
from geotag_core.io.candidate_store import CandidateStore, StoreUnavailable, candidate_key
from geotag_core.io.deadline_scheduler import DeadlineScheduler
from geotag_core.io.position_source import (
    PositionSource,
    PositionSourceError,
    LOCATION_MIN_TIME_MS,
    LOCATION_MIN_DISTANCE_M,
)
from geotag_core.proto.location_sample import LocationSample, ProviderKind
from geotag_core.proto.location_codec import encode, decode, DecodeError
from geotag_core.localization.candidate_arbitrator import is_better, pick_best
from geotag_core.metrics import get_metrics

logger = logging.getLogger(__name__)

# Deadline used when no provider could be subscribed
MIN_TIMEOUT_S = 1.0

# Coarse first, then fine
SUBSCRIBED_PROVIDERS = (ProviderKind.NETWORK.value, ProviderKind.GPS.value)

LocationConsumer = Callable[[str, LocationSample], None]


class ArbitrationState(Enum):
    """Arbitration session state."""

    WAITING = "waiting"
    RESOLVED = "resolved"      # Location found and dispatched
    EXHAUSTED = "exhausted"    # Deadline passed without a usable location


class NoProvidersUsable(Exception):
    """Neither the coarse nor the fine provider could be subscribed."""


@dataclass
class CompletionPolicy:
    """
    When a session may stop waiting.

    Attributes:
        require_altitude: A candidate without altitude never completes the
            session and is never preferred over one with altitude
        max_acceptable_accuracy_m: Accuracy at or below this completes the
            session immediately
        timeout_s: Maximum wait before falling back
        stale_fallback_window_min: Maximum age of a last-known fix used at
            timeout
    """

    require_altitude: bool = True
    max_acceptable_accuracy_m: float = 50.0
    timeout_s: float = 60.0
    stale_fallback_window_min: float = 5.0

    def __post_init__(self):
        """Validate policy."""
        if self.max_acceptable_accuracy_m < 0:
            raise ValueError(f"Accuracy threshold cannot be negative: {self.max_acceptable_accuracy_m}")

        if self.timeout_s <= 0:
            raise ValueError(f"Timeout must be positive: {self.timeout_s}")

        if self.stale_fallback_window_min < 0:
            raise ValueError(f"Fallback window cannot be negative: {self.stale_fallback_window_min}")

    @classmethod
    def from_config(cls, config: dict) -> 'CompletionPolicy':
        """Build from a config dict (unknown keys are ignored)."""
        names = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in config.items() if key in names})

    def is_satisfied_by(self, sample: Optional[LocationSample]) -> bool:
        """True if sample is good enough to end the wait."""
        if sample is None:
            return False

        if self.require_altitude and not sample.has_altitude:
            return False

        return sample.has_accuracy and sample.accuracy_m <= self.max_acceptable_accuracy_m


@dataclass
class _Session:
    """Per-target session bookkeeping, guarded by its own lock."""

    target: str
    state: ArbitrationState = ArbitrationState.WAITING
    providers: List[str] = field(default_factory=list)
    result: Optional[LocationSample] = None
    lock: threading.RLock = field(default_factory=threading.RLock)


class LocationArbitrationEngine:
    """
    Per-target location arbitration state machine.

    Usage:
        engine = LocationArbitrationEngine(
            position_source=source,
            store=JsonFileCandidateStore("state/candidates.json"),
            scheduler=DeadlineScheduler(),
            resolver=GeoidOffsetResolver(GeoidGridStore("data/WW15MGH.DAC")),
            consumer=dispatcher,
            policy=CompletionPolicy(max_acceptable_accuracy_m=10.0),
        )
        engine.start("IMG_0001.jpg")

    Events for one target are serialized by a per-session lock; sessions
    for different targets share nothing but the collaborators.
    """

    def __init__(
        self,
        position_source: PositionSource,
        store: CandidateStore,
        scheduler: DeadlineScheduler,
        resolver: GeoidOffsetResolver,
        consumer: LocationConsumer,
        policy: Optional[CompletionPolicy] = None,
        clock: Callable[[], float] = time.time,
        min_time_ms: int = LOCATION_MIN_TIME_MS,
        min_distance_m: float = LOCATION_MIN_DISTANCE_M
    ):
        """
        Initialize arbitration engine.

        Args:
            position_source: Provider subscriptions and last-known fixes
            store: Durable store for retained candidates
            scheduler: Deadline scheduler
            resolver: Geoid resolver for GPS altitude correction
            consumer: Called with (target, sample) when a session resolves
            policy: Completion policy (uses defaults if None)
            clock: Wall clock in epoch seconds
            min_time_ms: Minimum spacing between provider updates
            min_distance_m: Minimum movement between provider updates
        """
        self.position_source = position_source
        self.store = store
        self.scheduler = scheduler
        self.resolver = resolver
        self.consumer = consumer
        self.policy = policy or CompletionPolicy()
        self.clock = clock
        self.min_time_ms = min_time_ms
        self.min_distance_m = min_distance_m
        self.metrics = get_metrics()

        self._sessions: Dict[str, _Session] = {}
        self._sessions_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def start(self, target: str) -> ArbitrationState:
        """
        Begin arbitration for target.

        A persisted candidate left by an interrupted run is kept and
        competes with new samples.

        Args:
            target: Target identifier

        Returns:
            Session state after starting (WAITING unless a provider resolved
            it synchronously during subscription)
        """
        with self._sessions_lock:
            session = self._sessions.get(target)
            if session is not None and session.state == ArbitrationState.WAITING:
                logger.warning(f"Arbitration already running for {target}")
                return session.state
            session = _Session(target=target)
            self._sessions[target] = session

        with session.lock:
            self.metrics.increment('sessions_started')
            timeout_s = self.policy.timeout_s

            try:
                self._subscribe_all(session)
            except NoProvidersUsable as e:
                logger.warning(f"{e}; falling back in {MIN_TIMEOUT_S:.0f}s for {target}")
                timeout_s = MIN_TIMEOUT_S

            if session.state == ArbitrationState.WAITING:
                self.scheduler.arm(target, timeout_s, functools.partial(self._handle_timeout, session))
                logger.info(f"Arbitration started for {target} (timeout={timeout_s}s, "
                            f"providers={session.providers})")

            return session.state

    def on_sample(self, target: str, sample: LocationSample):
        """
        Handle a position update for target.

        Args:
            target: Target identifier
            sample: Raw sample as delivered by the provider
        """
        session = self._get_session(target)
        if session is None:
            logger.debug(f"Sample for unknown target {target}, dropped")
            self.metrics.increment_drop('unknown_target')
            return

        self._handle_sample(session, sample)

    def on_timeout(self, target: str):
        """
        Handle the deadline for target.

        Uses the retained candidate if any, otherwise the best last-known
        fix no older than the fallback window. Last-known fixes are taken
        as-is, without altitude correction.
        """
        session = self._get_session(target)
        if session is None:
            logger.debug(f"Timeout for unknown target {target}, ignored")
            self.metrics.increment_drop('unknown_target')
            return

        self._handle_timeout(session)

    def forget(self, target: str) -> bool:
        """
        Drop a concluded session for target.

        Returns:
            True if a RESOLVED or EXHAUSTED session was removed (a WAITING
            session is kept)
        """
        with self._sessions_lock:
            session = self._sessions.get(target)
            if session is None or session.state == ArbitrationState.WAITING:
                return False
            del self._sessions[target]

        logger.debug(f"Forgot {session.state.value} session for {target}")
        return True

    # ------------------------------------------------------------------
    # Session handlers
    # ------------------------------------------------------------------

    def _handle_sample(self, session: _Session, sample: LocationSample):
        """Sample delivered through this session's subscriptions."""
        target = session.target

        with session.lock:
            if session.state != ArbitrationState.WAITING:
                logger.debug(f"Sample after {session.state.value} for {target}, dropped")
                self.metrics.increment_drop('session_closed')
                return

            self.metrics.increment('samples_in')

            if sample.is_unset:
                logger.debug(f"Zero coordinates from {sample.provider} for {target}, dropped")
                self.metrics.increment_drop('zero_coordinates')
                return

            if sample.is_satellite:
                sample = self._correct_altitude(sample)

            if sample.has_accuracy:
                self.metrics.record_histogram('sample_accuracy_m', sample.accuracy_m)

            retained = self._load_candidate(target)
            if is_better(retained, sample, self.policy.require_altitude):
                logger.info(f"Better location for {target}: provider={sample.provider}, "
                            f"accuracy={sample.accuracy_m}, altitude={sample.altitude_m}")
                self._persist_candidate(target, sample)
                self.metrics.increment('candidates_replaced')
                retained = sample

            if self.policy.is_satisfied_by(retained):
                self._conclude(session, retained)
            else:
                logger.debug(f"Retained location for {target} not good enough yet "
                             f"(accuracy={retained.accuracy_m}, altitude={retained.altitude_m})")

    def _handle_timeout(self, session: _Session):
        """Deadline armed by start() for this session only."""
        target = session.target

        with session.lock:
            if session.state != ArbitrationState.WAITING:
                logger.debug(f"Timeout after {session.state.value} for {target}, ignored")
                self.metrics.increment_drop('session_closed')
                return

            logger.info(f"Timeout for {target}")

            best = self._load_candidate(target)
            if best is None:
                best = self._best_last_known(target)
                if best is not None:
                    self.metrics.increment('fallback_fixes_used')

            self._conclude(session, best)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def state(self, target: str) -> Optional[ArbitrationState]:
        """Session state for target, or None if never started."""
        session = self._get_session(target)
        return session.state if session is not None else None

    def result(self, target: str) -> Optional[LocationSample]:
        """Finalized location for a resolved target."""
        session = self._get_session(target)
        return session.result if session is not None else None

    def active_targets(self) -> List[str]:
        """Targets still WAITING."""
        with self._sessions_lock:
            return sorted(
                target for target, session in self._sessions.items()
                if session.state == ArbitrationState.WAITING
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_session(self, target: str) -> Optional[_Session]:
        with self._sessions_lock:
            return self._sessions.get(target)

    def _subscribe_all(self, session: _Session):
        """
        Subscribe every enabled provider for the session.

        Raises:
            NoProvidersUsable: If no provider could be subscribed
        """
        target = session.target
        callback = functools.partial(self._handle_sample, session)

        for provider in SUBSCRIBED_PROVIDERS:
            if session.state != ArbitrationState.WAITING:
                # Resolved by a synchronous delivery
                return

            if not self.position_source.is_provider_enabled(provider):
                logger.debug(f"Provider {provider} disabled")
                continue

            try:
                self.position_source.subscribe(
                    target, provider, callback,
                    min_time_ms=self.min_time_ms,
                    min_distance_m=self.min_distance_m,
                )
            except PositionSourceError as e:
                logger.warning(f"Cannot subscribe {provider} for {target}: {e}")
                self.metrics.increment('subscribe_failures')
                self.metrics.increment_drop('subscribe_failed')
                continue

            if session.state != ArbitrationState.WAITING:
                # Concluded during subscribe(); this provider was not yet tracked
                self._unsubscribe(target, provider)
                return

            session.providers.append(provider)
            logger.info(f"Requested {provider} locations for {target}")

        if not session.providers and session.state == ArbitrationState.WAITING:
            raise NoProvidersUsable(f"No usable location provider for {target}")

    def _unsubscribe(self, target: str, provider: str):
        try:
            self.position_source.unsubscribe(target, provider)
        except PositionSourceError as e:
            logger.warning(f"Cannot unsubscribe {provider} for {target}: {e}")

    def _correct_altitude(self, sample: LocationSample) -> LocationSample:
        """GPS altitude to mean sea level; uncorrected sample if the geoid is unavailable."""
        if not sample.has_altitude:
            return sample

        try:
            corrected = self.resolver.correct_altitude(sample)
        except DataUnavailable as e:
            logger.warning(f"Geoid correction skipped: {e}")
            self.metrics.increment('geoid_unavailable')
            return sample

        offset_m = sample.altitude_m - corrected.altitude_m
        self.metrics.increment('samples_corrected')
        self.metrics.record_histogram('geoid_offset_m', offset_m)
        logger.debug(f"Corrected altitude {sample.altitude_m:.2f}m -> {corrected.altitude_m:.2f}m "
                     f"(offset={offset_m:.2f}m)")
        return corrected

    def _load_candidate(self, target: str) -> Optional[LocationSample]:
        """Retained candidate for target; None if absent or unreadable."""
        try:
            text = self.store.get(candidate_key(target))
        except StoreUnavailable as e:
            logger.warning(f"Cannot load candidate for {target}: {e}")
            self.metrics.increment('store_errors')
            return None

        try:
            return decode(text)
        except DecodeError as e:
            logger.warning(f"Discarding malformed candidate for {target}: {e}")
            self.metrics.increment('decode_errors')
            return None

    def _persist_candidate(self, target: str, sample: LocationSample):
        try:
            self.store.put(candidate_key(target), encode(sample))
        except StoreUnavailable as e:
            logger.warning(f"Cannot persist candidate for {target}: {e}")
            self.metrics.increment('store_errors')

    def _best_last_known(self, target: str) -> Optional[LocationSample]:
        """Best last-known fix across providers within the fallback window."""
        now_ms = int(self.clock() * 1000)
        cutoff_ms = now_ms - int(self.policy.stale_fallback_window_min * 60 * 1000)

        try:
            providers = self.position_source.providers()
        except PositionSourceError as e:
            logger.warning(f"Cannot list providers for {target}: {e}")
            return None

        fresh = []
        for provider in providers:
            try:
                fix = self.position_source.last_known(provider)
            except PositionSourceError as e:
                logger.warning(f"Cannot query last known {provider} location: {e}")
                continue

            logger.info(f"Last known location provider={provider} fix={fix}")
            if fix is None:
                continue

            if fix.is_unset:
                self.metrics.increment_drop('zero_coordinates')
                continue

            if fix.timestamp_ms <= cutoff_ms:
                age_s = (now_ms - fix.timestamp_ms) / 1000.0
                logger.debug(f"Last known {provider} fix too old ({age_s:.0f}s)")
                self.metrics.increment_drop('stale_fix')
                continue

            fresh.append(fix)

        return pick_best(fresh, self.policy.require_altitude)

    def _conclude(self, session: _Session, best: Optional[LocationSample]):
        """Retire subscriptions and deadline, clear persistence, dispatch."""
        target = session.target

        for provider in session.providers:
            self._unsubscribe(target, provider)
        session.providers = []

        self.scheduler.cancel(target)

        try:
            self.store.remove(candidate_key(target))
        except StoreUnavailable as e:
            logger.warning(f"Cannot remove candidate for {target}: {e}")
            self.metrics.increment('store_errors')

        session.result = best
        if best is None:
            session.state = ArbitrationState.EXHAUSTED
            self.metrics.increment('sessions_exhausted')
            logger.info(f"No location found for {target}")
            return

        session.state = ArbitrationState.RESOLVED
        self.metrics.increment('sessions_resolved')
        logger.info(f"Best location for {target}: provider={best.provider}, "
                    f"accuracy={best.accuracy_m}, altitude={best.altitude_m}")

        try:
            self.consumer(target, best)
        except Exception:
            self.metrics.increment('consumer_errors')
            logger.exception(f"Location consumer failed for {target}")
