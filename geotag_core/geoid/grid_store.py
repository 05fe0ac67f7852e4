"""
EGM96 geoid undulation grid store.

Holds the WW15MGH.DAC dataset: 721 x 1440 big-endian 16-bit signed
integers, row-major from 90N / 0E at 15' spacing, each value the geoid
undulation in centimeters.

The grid is loaded once and never written afterwards, so lookups are
safe to run concurrently from any number of arbitration sessions.
"""

import logging
import threading
from pathlib import Path
from typing import Optional, Union

import numpy as np

logger = logging.getLogger(__name__)

GRID_ROWS = 721
GRID_COLS = 1440
GRID_INTERVAL_DEG = 15.0 / 60.0  # 15' angle delta
GRID_DTYPE = np.dtype('>i2')
GRID_SIZE_BYTES = GRID_ROWS * GRID_COLS * GRID_DTYPE.itemsize  # 2,076,480


class DataUnavailable(Exception):
    """Geoid dataset missing, unreadable or truncated."""


class GeoidGridStore:
    """
    Read-only access to the raw geoid undulation grid.

    Usage:
        store = GeoidGridStore("data/WW15MGH.DAC")
        raw_cm = store.point_value(row, col)
    """

    def __init__(self, path: Union[str, Path, None] = None):
        """
        Initialize grid store.

        Args:
            path: Path to the WW15MGH.DAC file (loaded lazily on first lookup)
        """
        self.path = Path(path) if path is not None else None
        self._grid: Optional[np.ndarray] = None
        self._load_lock = threading.Lock()

    @classmethod
    def from_bytes(cls, data: bytes) -> 'GeoidGridStore':
        """
        Build a store from an in-memory copy of the dataset.

        Raises:
            DataUnavailable: If data is not exactly GRID_SIZE_BYTES long
        """
        store = cls()
        store._grid = cls._to_grid(bytes(data), source="<bytes>")
        return store

    @property
    def is_loaded(self) -> bool:
        return self._grid is not None

    def load(self) -> np.ndarray:
        """
        Load the dataset if needed and return the grid.

        Returns:
            Read-only (GRID_ROWS, GRID_COLS) int16 array

        Raises:
            DataUnavailable: If the file cannot be opened or read fully
        """
        if self._grid is not None:
            return self._grid

        with self._load_lock:
            if self._grid is None:
                if self.path is None:
                    raise DataUnavailable("No geoid dataset configured")
                try:
                    data = self.path.read_bytes()
                except OSError as e:
                    raise DataUnavailable(f"Cannot read geoid dataset {self.path}: {e}") from e
                self._grid = self._to_grid(data, source=str(self.path))
                logger.info(f"Geoid grid loaded from {self.path}")

        return self._grid

    def point_value(self, row: int, col: int) -> int:
        """
        Raw undulation at a grid cell.

        Column indices wrap around the globe; row indices are clamped to the
        poles.

        Args:
            row: Grid row (0 = 90N)
            col: Grid column (0 = 0E, increasing eastward)

        Returns:
            Undulation in centimeters
        """
        grid = self.load()
        row = min(max(int(row), 0), GRID_ROWS - 1)
        col = int(col) % GRID_COLS
        return int(grid[row, col])

    @staticmethod
    def _to_grid(data: bytes, source: str) -> np.ndarray:
        if len(data) != GRID_SIZE_BYTES:
            raise DataUnavailable(
                f"Geoid dataset {source} has {len(data)} bytes, expected {GRID_SIZE_BYTES}"
            )
        grid = np.frombuffer(data, dtype=GRID_DTYPE).reshape(GRID_ROWS, GRID_COLS)
        grid.setflags(write=False)
        return grid
