"""
Protocol Module: Location sample schema and persisted encoding.
"""

from .location_sample import (
    LocationSample,
    ProviderKind,
)
from .location_codec import (
    DecodeError,
    encode,
    decode,
)

__all__ = [
    'LocationSample',
    'ProviderKind',
    'DecodeError',
    'encode',
    'decode',
]
