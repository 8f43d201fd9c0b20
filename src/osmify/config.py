"""Library configuration for osmify.

:class:`OsmifyConfig` is a dataclass that captures every tuneable knob
exposed by the library.  Instances are passed to both
:class:`OsmifyClient` and :class:`AsyncOsmifyClient`; the execution mode
(blocking or asyncio) is chosen by picking one of those two classes.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Literal

from osmify.geo.precision import CoordinatePrecision

__version__ = "0.3.0"

DEFAULT_API_URL = "https://api.openstreetmap.org/api/0.6"
"""Production OSM editing API root."""

DEFAULT_OVERPASS_URL = "https://overpass-api.de/api/interpreter"
"""Public Overpass API interpreter endpoint."""


def _default_changeset_tags() -> dict[str, str]:
    return {"created_by": f"osmify/{__version__}"}


@dataclass
class OsmifyConfig:
    """Complete configuration for an osmify client.

    Every parameter has a default.  A ``token`` is only needed for write
    operations (opening, uploading to and closing changesets).

    Parameters
    ----------
    token:
        OAuth 2.0 access token with the ``write_api`` scope.  Never logged.
    base_url:
        OSM API root URL.  Point it at the development server
        (``https://master.apis.dev.openstreetmap.org/api/0.6``) for testing.
    overpass_url:
        Overpass interpreter URL used by :meth:`query_overpass`.
    user_agent:
        ``User-Agent`` header sent with every request.
    coordinate_precision:
        Numeric precision of node coordinates.  Chosen once per client; a
        single element store never mixes precisions.

        * ``"double"`` -- IEEE-754 binary64 (recommended).
        * ``"single"`` -- IEEE-754 binary32.
    enable_overpass:
        Build the optional read-only Overpass query path.
    changeset_tags:
        Tags added to every changeset this client opens (the caller's tags
        and comment take precedence).
    retry_max_attempts:
        Maximum number of attempts for idempotent (read) requests.  Upload,
        open and close requests are never retried.
    retry_base_delay:
        Base delay (seconds) for exponential backoff.
    retry_max_delay:
        Upper cap (seconds) on computed backoff delay.
    retry_jitter:
        Add random jitter to backoff intervals.
    rate_limit_rps:
        Target requests per second for client-side pacing (token bucket).
    timeout_seconds:
        HTTP request timeout in seconds.
    http_proxy:
        Optional HTTP/HTTPS proxy URL.
    metrics:
        A :class:`~osmify.observability.MetricsHook` implementation.
    debug_dump_payload:
        Write the (redacted) request/response bodies to *stderr*.
    debug_dump_diff:
        Write each osmChange document to *stderr* before it is uploaded.
    """

    # ── Core ────────────────────────────────────────────────────────────
    token: str = ""

    base_url: str = DEFAULT_API_URL

    overpass_url: str = DEFAULT_OVERPASS_URL

    user_agent: str = f"osmify/{__version__}"

    # ── Elements ────────────────────────────────────────────────────────
    coordinate_precision: Literal["single", "double"] = "double"

    # ── Optional features ───────────────────────────────────────────────
    enable_overpass: bool = False

    # ── Changesets ──────────────────────────────────────────────────────
    changeset_tags: dict[str, str] = field(default_factory=_default_changeset_tags)

    # ── Retry & rate ────────────────────────────────────────────────────
    retry_max_attempts: int = 5

    retry_base_delay: float = 1.0

    retry_max_delay: float = 60.0

    retry_jitter: bool = True

    rate_limit_rps: float = 2.0

    # ── HTTP ────────────────────────────────────────────────────────────
    timeout_seconds: float = 30.0

    http_proxy: str | None = None

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    # ── Debug ───────────────────────────────────────────────────────────
    debug_dump_payload: bool = False

    debug_dump_diff: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        from urllib.parse import urlparse

        for name in ("base_url", "overpass_url"):
            parsed = urlparse(getattr(self, name))
            if parsed.scheme == "http" and parsed.hostname not in (
                "localhost",
                "127.0.0.1",
                "::1",
            ):
                raise ValueError(
                    f"{name} uses insecure HTTP for non-local host '{parsed.hostname}'. "
                    "Use HTTPS to protect your access token, or target localhost for testing."
                )

        if self.coordinate_precision not in ("single", "double"):
            raise ValueError(
                f"coordinate_precision must be 'single' or 'double', got {self.coordinate_precision!r}"
            )
        if self.retry_max_attempts < 1:
            raise ValueError(f"retry_max_attempts must be >= 1, got {self.retry_max_attempts}")
        if self.retry_base_delay < 0:
            raise ValueError(f"retry_base_delay must be >= 0, got {self.retry_base_delay}")
        if self.retry_max_delay < 0:
            raise ValueError(f"retry_max_delay must be >= 0, got {self.retry_max_delay}")
        if self.rate_limit_rps <= 0:
            raise ValueError(f"rate_limit_rps must be > 0, got {self.rate_limit_rps}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")

    @property
    def precision(self) -> CoordinatePrecision:
        """The configured :class:`CoordinatePrecision`."""
        return CoordinatePrecision(self.coordinate_precision)

    def __repr__(self) -> str:
        """Mask the token to prevent accidental credential leakage."""
        parts: list[str] = []
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if f.name == "token":
                masked = f"...{val[-4:]}" if len(val) >= 4 else "****"
                parts.append(f"token='{masked}'")
            else:
                parts.append(f"{f.name}={val!r}")
        return f"OsmifyConfig({', '.join(parts)})"
