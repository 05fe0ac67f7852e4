"""
Location Sample Schema.

Defines the value type for one position observation delivered by a
provider (coarse network fix or fine GPS fix).

Optional fields use None for "not present". The presence distinction is
significant: a sample without altitude or accuracy is treated differently
from one reporting 0.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional


class ProviderKind(str, Enum):
    """Position provider identity."""

    NETWORK = "network"  # Coarse, cell/wifi based
    GPS = "gps"          # Fine, satellite based (ellipsoidal altitude)


@dataclass(frozen=True)
class LocationSample:
    """
    One position fix.

    Attributes:
        provider: Provider identity (e.g. "network", "gps")
        timestamp_ms: Epoch time of the fix in milliseconds
        latitude: Latitude in degrees
        longitude: Longitude in degrees
        altitude_m: Altitude in meters (None if not reported)
        speed: Speed in m/s (None if not reported)
        bearing: Bearing in degrees (None if not reported)
        accuracy_m: Horizontal accuracy radius in meters (None if not reported)

    Notes:
        - Samples are immutable; altitude correction yields a new sample
        - latitude == longitude == 0 marks an unset fix
    """

    provider: str
    timestamp_ms: int
    latitude: float
    longitude: float
    altitude_m: Optional[float] = None
    speed: Optional[float] = None
    bearing: Optional[float] = None
    accuracy_m: Optional[float] = None

    def __post_init__(self):
        """Validate sample."""
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {self.latitude}")

        if not -180.0 <= self.longitude < 360.0:
            raise ValueError(f"Longitude out of range: {self.longitude}")

        if self.accuracy_m is not None and self.accuracy_m < 0:
            raise ValueError(f"Accuracy cannot be negative: {self.accuracy_m}")

    @property
    def has_altitude(self) -> bool:
        return self.altitude_m is not None

    @property
    def has_speed(self) -> bool:
        return self.speed is not None

    @property
    def has_bearing(self) -> bool:
        return self.bearing is not None

    @property
    def has_accuracy(self) -> bool:
        return self.accuracy_m is not None

    @property
    def is_unset(self) -> bool:
        """True for the 0/0 placeholder some providers report before a fix."""
        return self.latitude == 0.0 and self.longitude == 0.0

    @property
    def is_satellite(self) -> bool:
        return self.provider == ProviderKind.GPS.value

    @property
    def accuracy_or_worst(self) -> float:
        """Accuracy in meters, or infinity when not reported."""
        return self.accuracy_m if self.accuracy_m is not None else float('inf')

    def with_altitude(self, altitude_m: Optional[float]) -> 'LocationSample':
        """Return a copy with a different altitude."""
        return replace(self, altitude_m=altitude_m)

    def to_dict(self) -> dict:
        """Convert to dictionary (absent optional fields omitted)."""
        result = {
            'provider': self.provider,
            'time_ms': self.timestamp_ms,
            'latitude': self.latitude,
            'longitude': self.longitude,
        }
        if self.altitude_m is not None:
            result['altitude_m'] = self.altitude_m
        if self.speed is not None:
            result['speed'] = self.speed
        if self.bearing is not None:
            result['bearing'] = self.bearing
        if self.accuracy_m is not None:
            result['accuracy_m'] = self.accuracy_m
        return result
