"""
Fine geotag command line runner.

Arbitrates the location of one target (e.g. an image file) from a replayed
position scenario, prints the finalized location and a metrics summary.

    python main.py IMG_0001.jpg --scenario scenario.json --geoid data/WW15MGH.DAC
"""

import sys
import json
import time
import signal
import logging
import argparse
from typing import Optional

import config
from geotag_core.geoid import GeoidGridStore, GeoidOffsetResolver
from geotag_core.io import (
    DeadlineScheduler,
    JsonFileCandidateStore,
    PositionSourceError,
    ReplayPositionSource,
)
from geotag_core.localization import (
    ArbitrationState,
    CompletionPolicy,
    LocationArbitrationEngine,
)
from geotag_core.domain import GeotagDispatcher, GeotagResult
from geotag_core.metrics import get_metrics

logging.basicConfig(
    level=getattr(logging, config.LOGGING_CONFIG["level"]),
    format=config.LOGGING_CONFIG["format"]
)
logger = logging.getLogger(__name__)


class GeotagRunner:
    """Wires the arbitration engine to its collaborators for one run."""

    POLL_INTERVAL_S = 0.1

    def __init__(self, source: ReplayPositionSource, policy: CompletionPolicy,
                 geoid_path: str, store_path: str):
        """
        Args:
            source: Position source to arbitrate from
            policy: Completion policy
            geoid_path: Path to WW15MGH.DAC
            store_path: Path to the candidate store JSON file
        """
        self.running = False
        self.scheduler = DeadlineScheduler()
        self.dispatcher = GeotagDispatcher()
        self.dispatcher.add_listener(self._print_result)

        self.engine = LocationArbitrationEngine(
            position_source=source,
            store=JsonFileCandidateStore(store_path),
            scheduler=self.scheduler,
            resolver=GeoidOffsetResolver(GeoidGridStore(geoid_path)),
            consumer=self.dispatcher,
            policy=policy,
            min_time_ms=config.PROVIDER_CONFIG["min_time_ms"],
            min_distance_m=config.PROVIDER_CONFIG["min_distance_m"],
        )

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}, stopping...")
        self.running = False

    def _print_result(self, result: GeotagResult):
        print(json.dumps(result.to_dict(), indent=2))

    def run(self, target: str) -> Optional[ArbitrationState]:
        """
        Arbitrate target until it resolves, exhausts or the run is interrupted.

        Returns:
            Final state (WAITING if interrupted)
        """
        self.running = True
        state = self.engine.start(target)

        while self.running and state == ArbitrationState.WAITING:
            time.sleep(self.POLL_INTERVAL_S)
            state = self.engine.state(target)

        self.scheduler.cancel_all()

        if state == ArbitrationState.EXHAUSTED:
            print(f"No location found for {target}")
        elif state == ArbitrationState.WAITING:
            print(f"Interrupted; best candidate for {target} stays persisted")

        self.engine.forget(target)
        self.dispatcher.forget(target)

        get_metrics().print_summary()
        return state


def main():
    parser = argparse.ArgumentParser(description='Fine geotag location arbitration')
    parser.add_argument('target', type=str,
                        help='Target identifier (e.g. image path)')
    parser.add_argument('--scenario', '-s', type=str, required=True,
                        help='Replay scenario JSON file')
    parser.add_argument('--geoid', '-g', type=str, default=config.GEOID_CONFIG["dataset_path"],
                        help='EGM96 WW15MGH.DAC file')
    parser.add_argument('--store', type=str, default=config.STORE_CONFIG["path"],
                        help='Candidate store JSON file')
    parser.add_argument('--timeout', '-t', type=float, default=None,
                        help='Timeout in seconds')
    parser.add_argument('--accuracy', '-a', type=float, default=None,
                        help='Acceptable accuracy in meters')
    parser.add_argument('--known', '-k', type=float, default=None,
                        help='Maximum age of last-known fixes in minutes')
    parser.add_argument('--no-altitude', action='store_true',
                        help='Do not require altitude')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    policy_config = dict(config.COMPLETION_CONFIG)
    if args.timeout is not None:
        policy_config["timeout_s"] = args.timeout
    if args.accuracy is not None:
        policy_config["max_acceptable_accuracy_m"] = args.accuracy
    if args.known is not None:
        policy_config["stale_fallback_window_min"] = args.known
    if args.no_altitude:
        policy_config["require_altitude"] = False

    try:
        policy = CompletionPolicy.from_config(policy_config)
        source = ReplayPositionSource.from_scenario_file(args.scenario)
    except (ValueError, PositionSourceError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    runner = GeotagRunner(source, policy, args.geoid, args.store)
    state = runner.run(args.target)
    return 0 if state == ArbitrationState.RESOLVED else 1


if __name__ == "__main__":
    sys.exit(main())
