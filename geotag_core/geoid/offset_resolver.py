"""
Geoid offset resolver.

Converts GPS ellipsoidal altitude to height above mean sea level:

    H = h - N

where N is the EGM96 undulation at the fix position, bilinearly
interpolated from the four grid nodes surrounding it.
"""

import logging
import math

from .grid_store import (
    GeoidGridStore,
    GRID_ROWS,
    GRID_COLS,
    GRID_INTERVAL_DEG,
)
from geotag_core.proto.location_sample import LocationSample

logger = logging.getLogger(__name__)


class GeoidOffsetResolver:
    """
    Bilinear geoid undulation lookup.

    Usage:
        resolver = GeoidOffsetResolver(GeoidGridStore("data/WW15MGH.DAC"))
        offset_m = resolver.resolve_offset_m(22.29, 114.17)
        corrected = resolver.correct_altitude(sample)

    Stateless apart from the read-only grid; safe to share across threads.
    """

    def __init__(self, grid_store: GeoidGridStore):
        """
        Args:
            grid_store: Source of raw undulation values
        """
        self.grid_store = grid_store

    def resolve_offset_m(self, latitude: float, longitude: float) -> float:
        """
        Geoid undulation at a position.

        Args:
            latitude: Latitude in degrees [-90, 90]
            longitude: Longitude in degrees (any range, normalized to [0, 360))

        Returns:
            Undulation in meters

        Raises:
            ValueError: If latitude is out of range
            DataUnavailable: If the grid cannot be read
        """
        if not -90.0 <= latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {latitude}")

        lat = latitude
        lon = longitude % 360.0
        if lon >= 360.0:
            # Tiny negative inputs round up to exactly 360
            lon = 0.0

        top_row = int(math.floor((90.0 - lat) / GRID_INTERVAL_DEG))
        if lat <= -90.0:
            top_row = GRID_ROWS - 2
        bottom_row = top_row + 1

        left_col = int(math.floor(lon / GRID_INTERVAL_DEG))
        right_col = left_col + 1
        if lon >= 360.0 - GRID_INTERVAL_DEG:
            left_col = GRID_COLS - 1
            right_col = 0

        ul = self.grid_store.point_value(top_row, left_col)
        ur = self.grid_store.point_value(top_row, right_col)
        ll = self.grid_store.point_value(bottom_row, left_col)
        lr = self.grid_store.point_value(bottom_row, right_col)

        lat_top = 90.0 - top_row * GRID_INTERVAL_DEG
        lon_left = left_col * GRID_INTERVAL_DEG

        # u runs east from the left column, v runs south from the top row
        u = (lon - lon_left) / GRID_INTERVAL_DEG
        v = (lat_top - lat) / GRID_INTERVAL_DEG

        w_ul = (1.0 - u) * (1.0 - v)
        w_ur = u * (1.0 - v)
        w_ll = (1.0 - u) * v
        w_lr = u * v

        offset_cm = w_ul * ul + w_ur * ur + w_ll * ll + w_lr * lr
        return offset_cm / 100.0

    def correct_altitude(self, sample: LocationSample) -> LocationSample:
        """
        Ellipsoidal to orthometric altitude for a sample.

        Args:
            sample: Sample carrying ellipsoidal altitude

        Returns:
            New sample with altitude_m reduced by the undulation, or the same
            sample if it reports no altitude

        Raises:
            DataUnavailable: If the grid cannot be read
        """
        if not sample.has_altitude:
            return sample

        offset_m = self.resolve_offset_m(sample.latitude, sample.longitude)
        logger.debug(f"Geoid offset {offset_m:.3f}m at ({sample.latitude:.6f}, {sample.longitude:.6f})")
        return sample.with_altitude(sample.altitude_m - offset_m)
