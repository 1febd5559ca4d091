"""Masking for DEBUG request/response traces.

Sync bodies carry the bearer credential, admin PINs and inline base64
photos, and a full poll can hold hundreds of entries. Traces keep the shape
of a body while hiding secrets and summarizing bulk.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from racesync._constants import is_photo_marker

_SECRET_KEYS: frozenset[str] = frozenset(
    {"authorization", "token", "accesstoken", "refreshtoken", "pin", "password", "cookie"}
)

# Binary payloads shipped as strings; only their size is logged.
_BLOB_KEYS: frozenset[str] = frozenset({"photo", "audio"})

_MAX_DEPTH = 20


def _summarize_blob(key: str, value: Any) -> Any:
    if not isinstance(value, str) or is_photo_marker(value):
        return value
    return f"<{key}:{len(value)}chars>"


def _mask_field(key: str, value: Any, max_string: int, max_items: int, depth: int) -> Any:
    lowered = key.lower()
    if lowered in _SECRET_KEYS:
        return "<redacted>"
    if lowered in _BLOB_KEYS:
        return _summarize_blob(lowered, value)
    return redact_for_log(value, max_string=max_string, max_items=max_items, _depth=depth + 1)


def redact_for_log(value: Any, *, max_string: int = 512, max_items: int = 50, _depth: int = 0) -> Any:
    """Return a log-safe copy of *value*.

    Secret fields become ``"<redacted>"``, photo and audio data become a
    length summary, long strings are cut at *max_string* and lists keep
    their first *max_items* elements.
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
            str(key): _mask_field(str(key), item, max_string, max_items, _depth) for key, item in value.items()
        }

    if isinstance(value, Sequence):
        shown = [
            redact_for_log(item, max_string=max_string, max_items=max_items, _depth=_depth + 1)
            for item in value[:max_items]
        ]
        if len(value) > max_items:
            shown.append(f"<+{len(value) - max_items} more>")
        return shown

    return repr(value)
