"""
Position update sources.

A source delivers LocationSample events for subscribed (target, provider)
pairs and answers last-known-fix queries per provider.

ReplayPositionSource plays back a scripted scenario: per provider, a list
of samples each delivered after a delay on a daemon timer thread.
Scenario file format (JSON):

    {
      "enabled": ["network", "gps"],
      "samples": [
        {"delay_s": 0.5, "provider": "network", "latitude": 52.37,
         "longitude": 4.89, "accuracy_m": 50.0},
        {"delay_s": 2.0, "provider": "gps", "latitude": 52.3702,
         "longitude": 4.8901, "altitude_m": 120.0, "accuracy_m": 8.0}
      ],
      "last_known": {
        "network": {"age_s": 180, "latitude": 52.37, "longitude": 4.89,
                    "accuracy_m": 40.0}
      }
    }
"""

import json
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from geotag_core.proto.location_sample import LocationSample, ProviderKind

logger = logging.getLogger(__name__)

SampleCallback = Callable[[LocationSample], None]

LOCATION_MIN_TIME_MS = 1000
LOCATION_MIN_DISTANCE_M = 1.0


class PositionSourceError(Exception):
    """Provider subscription or query failed."""


class PositionSource:
    """
    Interface for position update delivery.

    Implementations may deliver on any thread; the consumer serializes
    events per target.
    """

    def providers(self) -> List[str]:
        """All providers known to the source, enabled or not."""
        raise NotImplementedError

    def is_provider_enabled(self, provider: str) -> bool:
        raise NotImplementedError

    def subscribe(
        self,
        target: str,
        provider: str,
        callback: SampleCallback,
        min_time_ms: int = LOCATION_MIN_TIME_MS,
        min_distance_m: float = LOCATION_MIN_DISTANCE_M
    ):
        """
        Start delivering provider updates for target to callback.

        Raises:
            PositionSourceError: If the provider cannot be subscribed
        """
        raise NotImplementedError

    def unsubscribe(self, target: str, provider: str):
        raise NotImplementedError

    def last_known(self, provider: str) -> Optional[LocationSample]:
        """Most recent fix the provider holds, or None."""
        raise NotImplementedError


@dataclass
class ScriptedSample:
    """A sample scheduled relative to subscription time."""

    delay_s: float
    sample: LocationSample


class ReplayPositionSource(PositionSource):
    """
    Scripted position source.

    Usage:
        source = ReplayPositionSource.from_scenario_file("scenario.json")
        source.subscribe("IMG_0001.jpg", "gps", engine_callback)

    Scripted samples without an explicit time_ms are stamped with the time
    the scenario was loaded.
    """

    def __init__(
        self,
        enabled: Optional[List[str]] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            enabled: Enabled providers (default: network and gps)
            clock: Wall clock in epoch seconds
        """
        if enabled is None:
            enabled = [ProviderKind.NETWORK.value, ProviderKind.GPS.value]
        self.enabled = list(enabled)
        self.clock = clock

        self._lock = threading.Lock()
        self._scripts: Dict[str, List[ScriptedSample]] = {}
        self._last_known: Dict[str, LocationSample] = {}
        self._timers: Dict[Tuple[str, str], List[threading.Timer]] = {}

    @classmethod
    def from_scenario(cls, scenario: dict, clock: Callable[[], float] = time.time) -> 'ReplayPositionSource':
        """Build a source from a parsed scenario dict (see module docstring)."""
        source = cls(enabled=scenario.get('enabled'), clock=clock)
        now_ms = int(clock() * 1000)

        for entry in scenario.get('samples', []):
            entry = dict(entry)
            delay_s = float(entry.pop('delay_s', 0.0))
            source.add_sample(entry['provider'], _sample_from_entry(entry, now_ms), delay_s)

        for provider, entry in scenario.get('last_known', {}).items():
            entry = dict(entry)
            age_s = float(entry.pop('age_s', 0.0))
            entry.setdefault('provider', provider)
            entry.setdefault('time_ms', now_ms - int(age_s * 1000))
            source.set_last_known(provider, _sample_from_entry(entry, now_ms))

        return source

    @classmethod
    def from_scenario_file(cls, path: Union[str, Path], clock: Callable[[], float] = time.time) -> 'ReplayPositionSource':
        """
        Load a scenario JSON file.

        Raises:
            PositionSourceError: If the file is unreadable or malformed
        """
        try:
            with open(path, 'r', encoding='utf-8') as f:
                scenario = json.load(f)
            return cls.from_scenario(scenario, clock=clock)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise PositionSourceError(f"Invalid scenario {path}: {e}") from e

    def add_sample(self, provider: str, sample: LocationSample, delay_s: float = 0.0):
        """Script a sample for provider, delivered delay_s after subscribe."""
        with self._lock:
            self._scripts.setdefault(provider, []).append(ScriptedSample(delay_s, sample))

    def set_last_known(self, provider: str, sample: Optional[LocationSample]):
        with self._lock:
            if sample is None:
                self._last_known.pop(provider, None)
            else:
                self._last_known[provider] = sample

    def providers(self) -> List[str]:
        with self._lock:
            known = set(self.enabled) | set(self._scripts) | set(self._last_known)
        return sorted(known)

    def is_provider_enabled(self, provider: str) -> bool:
        return provider in self.enabled

    def subscribe(
        self,
        target: str,
        provider: str,
        callback: SampleCallback,
        min_time_ms: int = LOCATION_MIN_TIME_MS,
        min_distance_m: float = LOCATION_MIN_DISTANCE_M
    ):
        if not self.is_provider_enabled(provider):
            raise PositionSourceError(f"Provider {provider} is disabled")

        self.unsubscribe(target, provider)

        with self._lock:
            script = list(self._scripts.get(provider, []))
            timers = []
            for scripted in script:
                timer = threading.Timer(
                    scripted.delay_s, self._deliver,
                    args=(target, provider, scripted.sample, callback)
                )
                timer.daemon = True
                timers.append(timer)
            self._timers[(target, provider)] = timers
            for timer in timers:
                timer.start()

        logger.info(f"Subscribed {provider} for {target} ({len(script)} scripted samples, "
                    f"min_time={min_time_ms}ms, min_distance={min_distance_m}m)")

    def unsubscribe(self, target: str, provider: str):
        with self._lock:
            timers = self._timers.pop((target, provider), [])
        for timer in timers:
            timer.cancel()
        if timers:
            logger.debug(f"Unsubscribed {provider} for {target}")

    def is_subscribed(self, target: str, provider: str) -> bool:
        with self._lock:
            return (target, provider) in self._timers

    def last_known(self, provider: str) -> Optional[LocationSample]:
        with self._lock:
            return self._last_known.get(provider)

    def _deliver(self, target: str, provider: str, sample: LocationSample, callback: SampleCallback):
        with self._lock:
            if (target, provider) not in self._timers:
                return
            self._last_known[provider] = sample

        logger.debug(f"Delivering {provider} sample for {target}")
        callback(sample)


def _sample_from_entry(entry: dict, default_time_ms: int) -> LocationSample:
    return LocationSample(
        provider=str(entry['provider']),
        timestamp_ms=int(entry.get('time_ms', default_time_ms)),
        latitude=float(entry['latitude']),
        longitude=float(entry['longitude']),
        altitude_m=_optional_float(entry.get('altitude_m')),
        speed=_optional_float(entry.get('speed')),
        bearing=_optional_float(entry.get('bearing')),
        accuracy_m=_optional_float(entry.get('accuracy_m')),
    )


def _optional_float(value) -> Optional[float]:
    return None if value is None else float(value)
