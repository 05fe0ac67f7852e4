"""
Geotag dispatch.

Receives the finalized location for a target and fans it out to
registered listeners (metadata writer, notifier, broadcast). A failing
listener is logged and does not stop the others.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from geotag_core.proto.location_sample import LocationSample
from geotag_core.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class GeotagResult:
    """
    Finalized location for a target.

    Attributes:
        target: Target identifier (e.g. image path)
        sample: Altitude-corrected location
        resolved_at: Epoch seconds when the result was dispatched
    """

    target: str
    sample: LocationSample
    resolved_at: float

    def to_dict(self) -> dict:
        return {
            'target': self.target,
            'resolved_at': self.resolved_at,
            'location': self.sample.to_dict(),
        }


GeotagListener = Callable[[GeotagResult], None]


class GeotagDispatcher:
    """
    Downstream consumer for the arbitration engine.

    Usage:
        dispatcher = GeotagDispatcher()
        dispatcher.add_listener(lambda result: print(result.to_dict()))
        engine = LocationArbitrationEngine(..., consumer=dispatcher)
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self.metrics = get_metrics()
        self._lock = threading.Lock()
        self._listeners: List[GeotagListener] = []
        self._results: Dict[str, GeotagResult] = {}

    def add_listener(self, listener: GeotagListener):
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: GeotagListener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def __call__(self, target: str, sample: LocationSample):
        """Dispatch a finalized location (engine consumer signature)."""
        result = GeotagResult(target=target, sample=sample, resolved_at=self.clock())

        with self._lock:
            self._results[target] = result
            listeners = list(self._listeners)

        logger.info(f"Geotagged {target}: lat={sample.latitude:.6f}, lon={sample.longitude:.6f}, "
                    f"alt={sample.altitude_m}, accuracy={sample.accuracy_m}, provider={sample.provider}")

        for listener in listeners:
            try:
                listener(result)
            except Exception:
                self.metrics.increment('consumer_errors')
                logger.exception(f"Geotag listener failed for {target}")

    def last_result(self, target: str) -> Optional[GeotagResult]:
        with self._lock:
            return self._results.get(target)

    def forget(self, target: str) -> Optional[GeotagResult]:
        """Remove and return the recorded result for target."""
        with self._lock:
            return self._results.pop(target, None)
