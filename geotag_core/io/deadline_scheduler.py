"""
Per-target deadline scheduler.

Bounds how long an arbitration session waits for a good enough fix.
Each target has at most one pending deadline; arming again replaces it.
"""

import logging
import threading
from typing import Callable, Dict

logger = logging.getLogger(__name__)


class DeadlineScheduler:
    """
    One-shot timers keyed by target, backed by threading.Timer.

    Usage:
        scheduler = DeadlineScheduler()
        scheduler.arm("IMG_0001.jpg", 30.0, on_fire)
        scheduler.cancel("IMG_0001.jpg")

    Callbacks run on the timer thread and fire at most once per arm().
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._timers: Dict[str, threading.Timer] = {}

    def arm(self, target: str, delay_s: float, on_fire: Callable[[], None]):
        """
        Schedule on_fire after delay_s, replacing any pending deadline.

        Args:
            target: Target identifier
            delay_s: Delay in seconds
            on_fire: Callback (no arguments)
        """
        timer = threading.Timer(max(0.0, delay_s), self._fire, args=(target, on_fire))
        timer.daemon = True

        with self._lock:
            previous = self._timers.pop(target, None)
            if previous is not None:
                previous.cancel()
            self._timers[target] = timer
            timer.start()

        logger.debug(f"Deadline armed in {delay_s:.1f}s for {target}")

    def cancel(self, target: str) -> bool:
        """
        Cancel the pending deadline for target.

        Returns:
            True if a pending deadline was cancelled
        """
        with self._lock:
            timer = self._timers.pop(target, None)
        if timer is None:
            return False
        timer.cancel()
        logger.debug(f"Deadline cancelled for {target}")
        return True

    def cancel_all(self):
        """Cancel every pending deadline."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def pending(self) -> list:
        """Targets with a pending deadline."""
        with self._lock:
            return sorted(self._timers)

    def _fire(self, target: str, on_fire: Callable[[], None]):
        with self._lock:
            current = self._timers.get(target)
            if current is None or current is not threading.current_thread():
                # Cancelled or replaced after the timer started running
                return
            del self._timers[target]

        logger.info(f"Deadline reached for {target}")
        try:
            on_fire()
        except Exception:
            logger.exception(f"Deadline callback failed for {target}")
