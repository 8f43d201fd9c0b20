"""Token redaction for debug output.

Everything written by ``debug_dump_payload`` / ``debug_dump_diff`` passes
through :func:`redact` first:

* values under credential-like keys (``Authorization``, ``access_token``,
  ...) are masked;
* the configured access token is scrubbed from every string;
* ``Bearer <token>`` fragments are masked even when the token is unknown;
* raw bytes are replaced with ``<binary:N_bytes>``.
"""

from __future__ import annotations

import re
from typing import Any

# Case-insensitive substrings of key names whose values are always masked.
_SENSITIVE_KEY_PATTERNS: frozenset[str] = frozenset({
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
    "cookie",
    "api_key",
})

_BEARER_RE = re.compile(r"(Bearer\s+)\S+")


def _mask_token(value: str, token: str | None) -> str:
    """Replace *token* and any bearer credential in *value*."""
    if token and token in value:
        suffix = token[-4:] if len(token) >= 8 else "****"
        value = value.replace(token, f"<redacted:...{suffix}>")
    return _BEARER_RE.sub(lambda m: f"{m.group(1)}<redacted>", value)


def _redact_value(value: Any, token: str | None) -> Any:
    if isinstance(value, dict):
        return _redact_dict(value, token)
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, token) for item in value]
    if isinstance(value, str):
        return _mask_token(value, token)
    if isinstance(value, (bytes, bytearray)):
        return f"<binary:{len(value)}_bytes>"
    return value


def _redact_dict(d: dict, token: str | None) -> dict:
    result: dict = {}
    for key, value in d.items():
        key_lower = key.lower() if isinstance(key, str) else ""
        if any(pat in key_lower for pat in _SENSITIVE_KEY_PATTERNS):
            result[key] = _mask_token(value, token) if isinstance(value, str) else "<redacted>"
        else:
            result[key] = _redact_value(value, token)
    return result


def redact(payload: dict, token: str | None = None) -> dict:
    """Return a redacted copy of *payload*; the input is never mutated.

    Parameters
    ----------
    payload:
        Typically a request/response dump or a header mapping.
    token:
        The OAuth access token.  Every occurrence is scrubbed.

    Examples
    --------
    >>> redact({"Authorization": "Bearer abc123"})
    {'Authorization': 'Bearer <redacted>'}
    """
    return _redact_dict(payload, token)
