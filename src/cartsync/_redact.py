"""Helpers for safe debug logging.

Every remote call carries the shopper's opaque credential in the
``Authorization`` header.  Traces keep the auth scheme (``Basic``,
``Bearer``) visible but never the secret itself.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "credential",
        "token",
        "accesstoken",
        "refreshtoken",
        "cookie",
        "set-cookie",
    }
)
_AUTH_HEADER_KEYS: frozenset[str] = frozenset({"authorization", "proxy-authorization"})

_MAX_DEPTH = 20


def _mask_authorization(value: Any) -> str:
    if isinstance(value, str):
        scheme, _, secret = value.strip().partition(" ")
        if secret:
            return f"{scheme} <redacted>"
    return "<redacted>"


def _redact_entry(key: str, value: Any, *, max_string: int, depth: int) -> Any:
    lowered = key.lower()
    if lowered in _AUTH_HEADER_KEYS:
        return _mask_authorization(value)
    if lowered in _SECRET_KEYS:
        return "<redacted>"
    return redact_for_log(value, max_string=max_string, _depth=depth)


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of *value* safe to put in a DEBUG log line.

    Mappings are walked recursively; secret-looking keys are masked, long
    strings truncated and raw bytes summarized by length.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, Mapping):
        return {
            str(k): _redact_entry(str(k), v, max_string=max_string, depth=_depth + 1) for k, v in value.items()
        }
    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]
    return repr(value)
