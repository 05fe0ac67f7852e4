"""
Persisted text encoding for LocationSample.

The retained candidate for a target is stored as a JSON object. Required
fields are always written; optional fields are written only when present
so that "absent" survives a round trip instead of turning into 0.
"""

import json
from typing import Optional

from .location_sample import LocationSample

REQUIRED_FIELDS = ('provider', 'time_ms', 'latitude', 'longitude')
OPTIONAL_FIELDS = ('altitude_m', 'speed', 'bearing', 'accuracy_m')


class DecodeError(ValueError):
    """Persisted location text is malformed."""


def encode(sample: LocationSample) -> str:
    """
    Encode a sample as JSON text.

    Args:
        sample: Location sample

    Returns:
        Compact JSON object string
    """
    return json.dumps(sample.to_dict(), separators=(',', ':'))


def decode(text: Optional[str]) -> Optional[LocationSample]:
    """
    Decode a persisted sample.

    Args:
        text: JSON text, or None/empty when nothing is persisted

    Returns:
        LocationSample, or None if there is no prior candidate

    Raises:
        DecodeError: If text is present but malformed
    """
    if text is None or not text.strip():
        return None

    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid location JSON: {e}") from e

    if not isinstance(obj, dict):
        raise DecodeError(f"Location must be a JSON object, got {type(obj).__name__}")

    missing = [name for name in REQUIRED_FIELDS if name not in obj]
    if missing:
        raise DecodeError(f"Location missing required fields: {', '.join(missing)}")

    provider = obj['provider']
    if not isinstance(provider, str) or not provider:
        raise DecodeError(f"Invalid provider: {provider!r}")

    time_ms = obj['time_ms']
    if isinstance(time_ms, bool) or not isinstance(time_ms, int):
        raise DecodeError(f"Invalid time_ms: {time_ms!r}")

    kwargs = {
        'provider': provider,
        'timestamp_ms': time_ms,
        'latitude': _as_float(obj, 'latitude'),
        'longitude': _as_float(obj, 'longitude'),
    }
    for key in OPTIONAL_FIELDS:
        if obj.get(key) is not None:
            kwargs[key] = _as_float(obj, key)

    try:
        return LocationSample(**kwargs)
    except ValueError as e:
        raise DecodeError(f"Invalid location: {e}") from e


def _as_float(obj: dict, key: str) -> float:
    value = obj[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"Invalid {key}: {value!r}")
    return float(value)
