"""
Candidate arbitration between location samples.

Decides whether a newly received sample supersedes the candidate retained
so far for a target. Pure functions; no persisted state is touched.
"""

from typing import Iterable, Optional

from geotag_core.proto.location_sample import LocationSample


def is_better(
    previous: Optional[LocationSample],
    candidate: LocationSample,
    require_altitude: bool
) -> bool:
    """
    Check whether candidate should replace previous.

    Args:
        previous: Currently retained sample (None if nothing retained yet)
        candidate: Newly received sample
        require_altitude: Never trade an altitude-bearing sample for one without

    Returns:
        True if candidate wins

    Notes:
        - Missing accuracy counts as infinitely bad, so two samples without
          accuracy never replace each other
        - Strict comparison: equal accuracy keeps the previous sample
    """
    if previous is None:
        return True

    altitude_ok = (
        not require_altitude or
        not previous.has_altitude or
        candidate.has_altitude
    )
    return altitude_ok and candidate.accuracy_or_worst < previous.accuracy_or_worst


def pick_best(
    samples: Iterable[Optional[LocationSample]],
    require_altitude: bool,
    initial: Optional[LocationSample] = None
) -> Optional[LocationSample]:
    """
    Fold is_better over samples, keeping the running best.

    Args:
        samples: Samples in arrival order (None entries are skipped)
        require_altitude: Passed through to is_better
        initial: Starting best (default: none)

    Returns:
        Best sample, or None if there were none
    """
    best = initial
    for sample in samples:
        if sample is not None and is_better(best, sample, require_altitude):
            best = sample
    return best
