"""Numeric precision of node coordinates.

The precision is picked once, in :class:`~osmify.config.OsmifyConfig`, and
every element store quantizes node coordinates through it so that one store
never holds a mix of single- and double-precision values.
"""

from __future__ import annotations

import struct
from enum import Enum


class CoordinatePrecision(str, Enum):
    """Floating-point width used to hold latitude and longitude values."""

    SINGLE = "single"
    """IEEE-754 binary32 (about 7 significant digits)."""

    DOUBLE = "double"
    """IEEE-754 binary64.  OSM stores 7 decimal places, which binary64
    represents without loss."""

    def quantize(self, value: float) -> float:
        """Round *value* to this precision."""
        value = float(value)
        if self is CoordinatePrecision.SINGLE:
            return struct.unpack("<f", struct.pack("<f", value))[0]
        return value

    def format(self, value: float) -> str:
        """Render *value* the way the OSM API expects it (7 decimals max)."""
        text = f"{self.quantize(value):.7f}".rstrip("0").rstrip(".")
        return "0" if text in ("-0", "") else text
