"""
Geoid Module: EGM96 undulation grid and altitude correction.

Key classes:
- GeoidGridStore: Raw 721 x 1440 centimeter grid (WW15MGH.DAC)
- GeoidOffsetResolver: Bilinear undulation lookup, GPS altitude correction
"""

from .grid_store import (
    GeoidGridStore,
    DataUnavailable,
    GRID_ROWS,
    GRID_COLS,
    GRID_INTERVAL_DEG,
    GRID_SIZE_BYTES,
)
from .offset_resolver import GeoidOffsetResolver

__all__ = [
    'GeoidGridStore',
    'DataUnavailable',
    'GRID_ROWS',
    'GRID_COLS',
    'GRID_INTERVAL_DEG',
    'GRID_SIZE_BYTES',
    'GeoidOffsetResolver',
]
