"""XML codec for the OSM API 0.6 wire formats."""

from __future__ import annotations

from .osmchange import GENERATOR, encode_changeset, encode_osmchange
from .responses import (
    decode_changeset,
    decode_diff_result,
    decode_elements,
    decode_id,
    parse_version_conflict,
)

__all__ = [
    "GENERATOR",
    "decode_changeset",
    "decode_diff_result",
    "decode_elements",
    "decode_id",
    "encode_changeset",
    "encode_osmchange",
    "parse_version_conflict",
]
