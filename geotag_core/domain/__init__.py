"""
Domain Module: What happens to a finalized geotag.
"""

from .geotag_dispatcher import (
    GeotagDispatcher,
    GeotagResult,
)

__all__ = [
    'GeotagDispatcher',
    'GeotagResult',
]
